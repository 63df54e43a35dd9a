"""Shared fixtures for the Metaworks ECC test suite"""

import os
import sqlite3
import tempfile

import pytest

# app.py reads its settings and creates the database at import time
_TMP = tempfile.mkdtemp(prefix='metaworks-test-')
os.environ['DB_PATH'] = os.path.join(_TMP, 'import.db')
os.environ['UPLOAD_DIR'] = os.path.join(_TMP, 'uploads')
os.environ['SECRET_KEY'] = 'test-secret-key-for-sessions-0123456789'
for _key in ('OPENAI_API_KEY', 'ANTHROPIC_API_KEY', 'GOOGLE_API_KEY', 'GEMINI_API_KEY',
             'GROQ_API_KEY', 'ELEVENLABS_API_KEY', 'DID_API_KEY'):
    os.environ[_key] = ''

import app as app_module  # noqa: E402
from metaworks_ecc.storage import ComplianceStore, init_schema  # noqa: E402


AI_KEYS = ('OPENAI_API_KEY', 'ANTHROPIC_API_KEY', 'GOOGLE_API_KEY', 'GEMINI_API_KEY',
           'GROQ_API_KEY', 'ELEVENLABS_API_KEY', 'DID_API_KEY')


@pytest.fixture
def store(tmp_path):
    """Store over a fresh database file"""
    conn = sqlite3.connect(str(tmp_path / 'store.db'))
    init_schema(conn)
    yield ComplianceStore(conn)
    conn.close()


@pytest.fixture
def client(tmp_path, monkeypatch):
    """Test client against an isolated database with the default users"""
    monkeypatch.setattr(app_module.config, 'DB_PATH', str(tmp_path / 'app.db'))
    monkeypatch.setattr(app_module.config, 'UPLOAD_DIR', str(tmp_path / 'uploads'))
    for key in AI_KEYS:
        monkeypatch.setattr(app_module.config, key, '')
    app_module.init_db()
    app_module.rate_limiter.reset()
    app_module.app.config['TESTING'] = True
    return app_module.app.test_client()


def login(client, username='admin', password='admin123'):
    """Log in and send the CSRF token on every later request"""
    response = client.post('/api/auth/login', json={'username': username, 'password': password})
    assert response.status_code == 200, response.get_json()
    client.environ_base['HTTP_X_CSRFTOKEN'] = response.get_json()['csrfToken']
    return response.get_json()['user']


@pytest.fixture
def auth_client(client):
    """Client logged in as the built-in Super Admin"""
    login(client)
    return client
