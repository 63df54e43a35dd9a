"""Two-phase file uploads backed by the local upload directory.

1. ``create_slot`` reserves an object id and returns a tokenised upload URL.
2. The client PUTs the raw bytes to that URL (``store_object``).
3. ``complete_upload`` records the file metadata.
"""

import os
import secrets
import uuid
from datetime import datetime, timedelta


SLOT_TTL_MINUTES = 15

ALLOWED_TYPES = {
    'policy': [
        'application/pdf',
        'application/msword',
        'application/vnd.openxmlformats-officedocument.wordprocessingml.document',
        'text/plain',
        'image/*',
    ],
    'logo': ['image/*'],
}

OBJECT_URL_PREFIX = '/api/upload/objects/'


class UploadError(Exception):
    """Rejected upload; carries the HTTP status to answer with"""

    def __init__(self, message, status_code=400):
        super().__init__(message)
        self.status_code = status_code


def is_allowed_type(category, content_type):
    """Check a MIME type against the category allow-list (``image/*`` style wildcards)."""
    if not content_type:
        return False
    mime = content_type.split(';')[0].strip().lower()
    for allowed in ALLOWED_TYPES.get(category, []):
        if allowed.endswith('/*'):
            if mime.startswith(allowed[:-1]):
                return True
        elif mime == allowed:
            return True
    return False


def object_url(object_id):
    return f"{OBJECT_URL_PREFIX}{object_id}"


def create_slot(store, user_id, category):
    """Reserve an upload slot and return ``(slot, upload_url)``."""
    if category not in ALLOWED_TYPES:
        raise UploadError(f"Unknown upload category: {category}")
    slot = store.create_upload_slot({
        'object_id': str(uuid.uuid4()),
        'token': secrets.token_urlsafe(32),
        'user_id': user_id,
        'category': category,
        'expires_at': (datetime.now() + timedelta(minutes=SLOT_TTL_MINUTES)).isoformat(),
    })
    return slot, f"{object_url(slot['object_id'])}?token={slot['token']}"


def store_object(store, upload_dir, object_id, token, data, content_type, max_bytes):
    """Validate a PUT against its slot and write the bytes to disk."""
    slot = store.get_upload_slot(object_id)
    if not slot:
        raise UploadError('Upload slot not found', 404)
    if not token or not secrets.compare_digest(str(token), slot['token']):
        raise UploadError('Invalid upload token', 403)
    if datetime.fromisoformat(slot['expires_at']) < datetime.now():
        raise UploadError('Upload URL has expired', 410)
    if slot.get('stored_path'):
        raise UploadError('Object already uploaded', 409)
    if len(data) > max_bytes:
        raise UploadError(f'File exceeds the {max_bytes // (1024 * 1024)} MB limit', 413)
    if not is_allowed_type(slot['category'], content_type):
        raise UploadError(f'File type not allowed: {content_type}', 415)

    os.makedirs(upload_dir, exist_ok=True)
    path = os.path.join(upload_dir, object_id)
    with open(path, 'wb') as f:
        f.write(data)
    store.mark_upload_stored(object_id, path, len(data), content_type)
    print(f"✅ Stored upload {object_id} ({len(data)} bytes)", flush=True)
    return store.get_upload_slot(object_id)


def object_id_from_url(file_url):
    """Object id from an ``/api/upload/objects/<id>[?token=...]`` URL."""
    if not file_url:
        return None
    path = file_url.split('?', 1)[0]
    if OBJECT_URL_PREFIX not in path:
        return None
    return path.split(OBJECT_URL_PREFIX, 1)[1].strip('/') or None


def complete_upload(store, user_id, data):
    """Record metadata for an uploaded object."""
    file_name = (data.get('fileName') or '').strip()
    file_url = (data.get('fileUrl') or '').strip()
    if not file_name or not file_url:
        raise UploadError('fileName and fileUrl are required')

    object_id = object_id_from_url(file_url)
    size = None
    if object_id:
        slot = store.get_upload_slot(object_id)
        if not slot or not slot.get('stored_path'):
            raise UploadError('Uploaded object not found', 404)
        size = slot['size']
        file_url = object_url(object_id)

    return store.create_uploaded_file({
        'id': str(uuid.uuid4()),
        'user_id': user_id,
        'object_id': object_id,
        'file_name': file_name,
        'file_type': data.get('fileType') or '',
        'file_url': file_url,
        'category': data.get('category') or 'document',
        'size': size,
        'uploaded_at': datetime.now().isoformat(),
    })


def stored_object(store, object_id):
    """Slot for a stored object, or None when nothing was uploaded."""
    slot = store.get_upload_slot(object_id)
    if not slot or not slot.get('stored_path') or not os.path.isfile(slot['stored_path']):
        return None
    return slot
