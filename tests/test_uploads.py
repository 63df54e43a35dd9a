"""Test suite for two-phase uploads"""

import os

import pytest
from metaworks_ecc.uploads import (
    UploadError, create_slot, store_object, complete_upload, stored_object,
    is_allowed_type, object_id_from_url,
)

MB = 1024 * 1024


def test_allowed_types():
    """Test category allow-lists"""
    assert is_allowed_type('logo', 'image/png')
    assert is_allowed_type('policy', 'application/pdf; charset=binary')
    assert not is_allowed_type('logo', 'application/pdf')
    assert not is_allowed_type('policy', None)


def test_slot_url(store):
    """Test the reserved slot URL"""
    slot, url = create_slot(store, 1, 'policy')
    assert url == f"/api/upload/objects/{slot['object_id']}?token={slot['token']}"
    assert object_id_from_url(url) == slot['object_id']
    assert object_id_from_url('https://cdn.example.com/file.pdf') is None


def test_unknown_category(store):
    """Test only policy and logo slots exist"""
    with pytest.raises(UploadError):
        create_slot(store, 1, 'video')


def test_store_and_complete(store, tmp_path):
    """Test the full upload flow"""
    slot, url = create_slot(store, 1, 'policy')
    stored = store_object(store, str(tmp_path), slot['object_id'], slot['token'], b'%PDF-1.4', 'application/pdf', MB)

    assert stored['size'] == 8
    assert os.path.isfile(stored['stored_path'])
    assert stored_object(store, slot['object_id'])['content_type'] == 'application/pdf'

    record = complete_upload(store, 1, {'fileName': 'policy.pdf', 'fileType': 'application/pdf',
                                        'fileUrl': url, 'category': 'policy'})
    assert record['object_id'] == slot['object_id']
    assert record['file_url'] == f"/api/upload/objects/{slot['object_id']}"
    assert record['size'] == 8


@pytest.mark.parametrize('token, data, content_type, status', [
    ('wrong', b'x', 'application/pdf', 403),
    (None, b'x' * (MB + 1), 'application/pdf', 413),
    (None, b'x', 'application/zip', 415),
])
def test_store_rejections(store, tmp_path, token, data, content_type, status):
    """Test bad token, oversize and type rejections"""
    slot, _ = create_slot(store, 1, 'policy')
    with pytest.raises(UploadError) as excinfo:
        store_object(store, str(tmp_path), slot['object_id'], token or slot['token'], data, content_type, MB)
    assert excinfo.value.status_code == status


def test_store_twice_and_expired(store, tmp_path):
    """Test a slot accepts one upload before it expires"""
    slot, _ = create_slot(store, 1, 'logo')
    store_object(store, str(tmp_path), slot['object_id'], slot['token'], b'png', 'image/png', MB)
    with pytest.raises(UploadError) as excinfo:
        store_object(store, str(tmp_path), slot['object_id'], slot['token'], b'png', 'image/png', MB)
    assert excinfo.value.status_code == 409

    expired, _ = create_slot(store, 1, 'logo')
    store.conn.execute("UPDATE upload_slots SET expires_at = '2000-01-01T00:00:00' WHERE object_id = ?",
                       (expired['object_id'],))
    with pytest.raises(UploadError) as excinfo:
        store_object(store, str(tmp_path), expired['object_id'], expired['token'], b'png', 'image/png', MB)
    assert excinfo.value.status_code == 410

    with pytest.raises(UploadError) as excinfo:
        store_object(store, str(tmp_path), 'missing', 't', b'png', 'image/png', MB)
    assert excinfo.value.status_code == 404


def test_complete_requires_fields(store):
    """Test metadata validation"""
    with pytest.raises(UploadError, match='required'):
        complete_upload(store, 1, {'fileName': 'a.pdf'})

    slot, url = create_slot(store, 1, 'policy')
    with pytest.raises(UploadError) as excinfo:
        complete_upload(store, 1, {'fileName': 'a.pdf', 'fileUrl': url})
    assert excinfo.value.status_code == 404


def test_complete_external_url(store):
    """Test externally hosted files are recorded as given"""
    record = complete_upload(store, 1, {'fileName': 'logo.png', 'fileUrl': 'https://cdn.example.com/logo.png'})
    assert record['object_id'] is None
    assert record['file_url'] == 'https://cdn.example.com/logo.png'
    assert record['category'] == 'document'
