"""Test suite for built-in seed data"""

from metaworks_ecc.auth import verify_password
from metaworks_ecc.seed import COMMON_CYBER_RISKS, seed_risk_register, initialize_default_users


def test_initialize_default_users(store):
    """Test the five built-in accounts are created only once"""
    assert initialize_default_users(store) == 5
    assert initialize_default_users(store) == 0

    admin = store.get_user_by_username('admin')
    assert admin['role'] == 'Super Admin'
    assert 'user_management' in admin['permissions']
    assert verify_password('admin123', admin['password_hash'])
    assert store.get_user_by_username('auditor')['permissions'] == ['read', 'audit', 'compliance', 'reporting']


def test_seed_risk_register(store):
    """Test the common risks catalogue"""
    assert seed_risk_register(store) == len(COMMON_CYBER_RISKS) == 10

    risks = store.get_risk_register()
    assert len(risks) == 10
    assert all(r['threats'] for r in risks)
    assert {r['risk_level'] for r in risks} <= {'Low', 'Medium', 'High', 'Critical'}
