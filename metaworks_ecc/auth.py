"""Authentication helpers - password hashing, roles and input checks"""

import hashlib
import re
import secrets
from datetime import datetime
from typing import List


ROLE_PERMISSIONS = {
    'Super Admin': ['read', 'write', 'delete', 'admin', 'user_management', 'system_config'],
    'CISO': ['read', 'write', 'delete', 'policy_management', 'risk_assessment', 'compliance'],
    'IT Manager': ['read', 'write', 'it_management', 'infrastructure', 'user_support'],
    'Security Analyst': ['read', 'write', 'risk_assessment', 'vulnerability_management'],
    'Auditor': ['read', 'audit', 'compliance', 'reporting'],
    'Employee': ['read'],
}

PUBLIC_FIELDS = (
    'id', 'username', 'email', 'first_name', 'last_name', 'role',
    'department', 'status', 'permissions', 'is_active', 'phone_number',
    'preferences', 'created_at', 'last_login',
)


def hash_password(password):
    """Hash password with salt."""
    salt = secrets.token_hex(16)
    hash_obj = hashlib.pbkdf2_hmac('sha256', password.encode(), salt.encode(), 100000)
    return f"{salt}${hash_obj.hex()}"


def verify_password(password, stored_hash):
    """Verify password against stored hash."""
    try:
        salt, hash_value = stored_hash.split('$')
    except (AttributeError, ValueError):
        return False
    hash_obj = hashlib.pbkdf2_hmac('sha256', password.encode(), salt.encode(), 100000)
    return secrets.compare_digest(hash_obj.hex(), hash_value)


def get_role_permissions(role) -> List[str]:
    return list(ROLE_PERMISSIONS.get(role, ['read']))


def has_permission(user_permissions, required_permission) -> bool:
    """Super admin ('admin') implies every permission."""
    if not user_permissions:
        return False
    if 'admin' in user_permissions:
        return True
    return required_permission in user_permissions


def public_user(user) -> dict:
    """User row without the password hash."""
    if not user:
        return None
    return {key: user.get(key) for key in PUBLIC_FIELDS if key in user}


def validate_username(username):
    """Validate username format."""
    if not username or not re.match(r'^[a-zA-Z0-9_.]{3,50}$', username):
        return False
    return True


def validate_email(email):
    """Validate email format."""
    return bool(email and re.match(r'^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$', email))


def validate_password(password):
    """Validate password strength."""
    if not password or len(password) < 8:
        return False, 'Password must be at least 8 characters'
    if not re.search(r'[A-Z]', password):
        return False, 'Password must contain uppercase letter'
    if not re.search(r'[a-z]', password):
        return False, 'Password must contain lowercase letter'
    if not re.search(r'[0-9]', password):
        return False, 'Password must contain a number'
    return True, ''


class RateLimiter:
    """Sliding-window request counter (in-memory, resets on restart)"""

    def __init__(self):
        self.store = {}

    def allow(self, key, max_requests=10, window_seconds=60):
        now = datetime.now()
        hits = [t for t in self.store.get(key, []) if (now - t).total_seconds() < window_seconds]
        if len(hits) >= max_requests:
            self.store[key] = hits
            return False
        hits.append(now)
        self.store[key] = hits
        return True

    def reset(self):
        self.store.clear()
