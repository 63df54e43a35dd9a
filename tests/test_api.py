"""Test suite for the Flask JSON API"""

from datetime import datetime
from io import BytesIO
from unittest.mock import MagicMock, patch

from openpyxl import Workbook, load_workbook

import app as app_module
from conftest import login


STRONG_PASSWORD = 'Str0ngPass1'


def _signup_payload(**overrides):
    payload = {
        'username': 'new.analyst',
        'email': 'new.analyst@example.com',
        'password': STRONG_PASSWORD,
        'firstName': 'Nora',
        'lastName': 'Analyst',
        'role': 'Security Analyst',
        'department': 'Cybersecurity',
    }
    payload.update(overrides)
    return payload


# -- auth ---------------------------------------------------------------------

def test_login_success(client):
    """Test login returns the public user and a CSRF token"""
    response = client.post('/api/auth/login', json={'username': 'admin', 'password': 'admin123'})
    data = response.get_json()

    assert response.status_code == 200
    assert data['success'] is True
    assert data['csrfToken']
    assert data['user']['role'] == 'Super Admin'
    assert 'password_hash' not in data['user']
    assert data['user']['last_login']


def test_login_by_email(client):
    """Test users may log in with their email"""
    response = client.post('/api/auth/login', json={'username': 'ciso@metaworks.com', 'password': 'ciso123'})
    assert response.status_code == 200
    assert response.get_json()['user']['username'] == 'ciso'


def test_login_failures(client):
    """Test missing fields and bad credentials"""
    assert client.post('/api/auth/login', json={'username': 'admin'}).status_code == 400

    response = client.post('/api/auth/login', json={'username': 'admin', 'password': 'nope'})
    assert response.status_code == 401
    assert response.get_json()['error'] == 'Invalid username or password'


def test_login_inactive_account(client, auth_client):
    """Test deactivated users cannot log in"""
    auth_client.put('/api/users-management/5', json={'isActive': False})
    auth_client.post('/api/auth/logout')

    response = client.post('/api/auth/login', json={'username': 'auditor', 'password': 'audit123'})
    assert response.status_code == 403


def test_login_rate_limit(client):
    """Test the sixth attempt in a minute is rejected"""
    for _ in range(5):
        client.post('/api/auth/login', json={'username': 'admin', 'password': 'wrong'})
    response = client.post('/api/auth/login', json={'username': 'admin', 'password': 'admin123'})
    assert response.status_code == 429


def test_signup(client):
    """Test self registration logs the new user in"""
    response = client.post('/api/auth/signup', json=_signup_payload())
    data = response.get_json()

    assert response.status_code == 201
    assert data['user']['username'] == 'new.analyst'
    assert data['user']['permissions'] == ['read', 'write', 'risk_assessment', 'vulnerability_management']
    assert client.get('/api/auth/me').get_json()['user']['username'] == 'new.analyst'


def test_signup_duplicates(client):
    """Test duplicate usernames and emails are rejected"""
    response = client.post('/api/auth/signup', json=_signup_payload(username='admin'))
    assert response.status_code == 400
    assert response.get_json()['error'] == 'Username already exists'

    response = client.post('/api/auth/signup', json=_signup_payload(email='ADMIN@metaworks.com'))
    assert response.status_code == 400
    assert response.get_json()['error'] == 'Email already exists'


def test_signup_validation(client):
    """Test missing fields, weak passwords and privileged roles"""
    assert client.post('/api/auth/signup', json=_signup_payload(department='')).status_code == 400
    assert client.post('/api/auth/signup', json=_signup_payload(password='weak')).status_code == 400
    response = client.post('/api/auth/signup', json=_signup_payload(role='Super Admin'))
    assert response.status_code == 400
    assert 'Invalid role' in response.get_json()['error']


def test_me_verify_logout(auth_client):
    """Test session lifecycle"""
    assert auth_client.get('/api/auth/me').get_json()['user']['username'] == 'admin'

    verify = auth_client.post('/api/auth/verify').get_json()
    assert verify['valid'] is True

    response = auth_client.post('/api/auth/logout')
    assert response.get_json() == {'success': True, 'message': 'Logged out successfully'}
    assert auth_client.get('/api/auth/me').status_code == 401


def test_verify_without_session(client):
    """Test verify reports an invalid session"""
    response = client.post('/api/auth/verify')
    assert response.status_code == 401
    assert response.get_json()['valid'] is False


def test_login_required(client):
    """Test API routes reject anonymous callers"""
    response = client.get('/api/assessments/1')
    assert response.status_code == 401
    assert response.get_json()['session_expired'] is True


def test_csrf_token_required(client):
    """Test state-changing requests need the X-CSRFToken header"""
    client.post('/api/auth/login', json={'username': 'admin', 'password': 'admin123'})
    response = client.post('/api/assessments', json={'domain': 'Access Control', 'score': 50})
    assert response.status_code == 403
    assert 'CSRF' in response.get_json()['error']


def test_security_headers(client):
    """Test security headers on every response"""
    response = client.get('/api/auth/me')
    assert response.headers['X-Content-Type-Options'] == 'nosniff'
    assert response.headers['X-Frame-Options'] == 'SAMEORIGIN'
    assert 'Strict-Transport-Security' not in response.headers


# -- assessments and policies ---------------------------------------------------

def test_assessments(auth_client):
    """Test creating and listing assessments"""
    response = auth_client.post('/api/assessments', json={'domain': 'Access Control', 'score': 85})
    assert response.status_code == 201
    assert response.get_json()['assessment']['user_id'] == 1

    assert auth_client.post('/api/assessments', json={'domain': 'Mars', 'score': 1}).status_code == 400
    assessments = auth_client.get('/api/assessments/1').get_json()['assessments']
    assert [a['score'] for a in assessments] == [85]


def test_policy_with_content(auth_client):
    """Test a provided policy body is stored as-is"""
    response = auth_client.post('/api/policies', json={'domain': 'Data Protection', 'content': '# Mine'})
    assert response.status_code == 201
    assert response.get_json()['policy']['content'] == '# Mine'
    assert len(auth_client.get('/api/policies/1').get_json()['policies']) == 1


def test_policy_generated_from_template(auth_client):
    """Test empty content is generated (built-in template without AI keys)"""
    response = auth_client.post('/api/policies', json={'domain': 'Access Control', 'subdomain': 'MFA'})
    assert response.get_json()['policy']['content'].startswith('# Security Policy for Access Control - MFA')


def test_policy_generation_failure(auth_client):
    """Test generation errors store a placeholder"""
    with patch.object(app_module, 'generate_security_policy', side_effect=RuntimeError('down')):
        response = auth_client.post('/api/policies', json={'domain': 'Network Security'})
    assert response.status_code == 201
    assert response.get_json()['policy']['content'] == 'Policy for Network Security - AI generation failed'


def test_policy_pdf(auth_client):
    """Test policy PDF export"""
    policy = auth_client.post('/api/policies', json={'domain': 'Access Control', 'content': '# Policy\n- item'}).get_json()['policy']

    response = auth_client.get(f"/api/policies/policy/{policy['id']}/pdf")
    assert response.status_code == 200
    assert response.mimetype == 'application/pdf'
    assert response.data.startswith(b'%PDF')
    assert auth_client.get('/api/policies/policy/999/pdf').status_code == 404


# -- assistant ------------------------------------------------------------------

def test_assistant_chat_fallback(auth_client):
    """Test the assistant answers without AI keys"""
    response = auth_client.post('/api/assistant/chat', json={'message': 'What is NCA ECC?', 'language': 'en'})
    data = response.get_json()

    assert response.status_code == 200
    assert 'Governance' in data['message']
    assert data['language'] == 'en'
    assert data['timestamp']
    assert auth_client.post('/api/assistant/chat', json={}).status_code == 400


def test_ai_status(auth_client):
    """Test provider status without keys"""
    data = auth_client.get('/api/ai/status').get_json()
    assert data['provider'] == 'simulation'
    assert data['connected'] is False


def test_sarah_without_keys(auth_client):
    """Test the voice assistant degrades without keys"""
    assert auth_client.post('/api/sarah/detect-language', json={'text': 'hello'}).get_json()['language'] == 'en'
    translated = auth_client.post('/api/sarah/translate', json={'text': 'hello', 'targetLanguage': 'ar'}).get_json()
    assert translated['translatedText'] == 'hello'
    assert auth_client.post('/api/sarah/speak', json={'text': 'hello'}).status_code == 500
    reply = auth_client.post('/api/sarah/respond', json={'message': 'hi', 'language': 'ar'}).get_json()
    assert reply['response'] == 'أنا هنا لمساعدتك في الامتثال للأمن السيبراني.'
    assert datetime.fromisoformat(reply['timestamp'])
    assert len(auth_client.get('/api/sarah/languages').get_json()['languages']) == 8
    assert auth_client.post('/api/sarah/translate', json={'text': 'hello'}).status_code == 400


def test_sarah_speak(auth_client, monkeypatch):
    """Test speech is returned as MP3"""
    monkeypatch.setattr(app_module.config, 'ELEVENLABS_API_KEY', 'xi')
    with patch('metaworks_ecc.multilingual.requests.post', return_value=MagicMock(ok=True, content=b'ID3mp3')):
        response = auth_client.post('/api/sarah/speak', json={'text': 'hello', 'language': 'en'})
    assert response.status_code == 200
    assert response.mimetype == 'audio/mpeg'
    assert response.data == b'ID3mp3'


def test_did_routes(auth_client, monkeypatch):
    """Test avatar listing, talk creation and advice"""
    assert len(auth_client.get('/api/did/avatars').get_json()['avatars']) == 3
    assert auth_client.post('/api/did/talks', json={'message': 'hi'}).status_code == 503
    status = auth_client.get('/api/did/talks/tlk_1')
    assert status.status_code == 503
    assert status.get_json()['error'] == 'D-ID API key not configured'
    assert auth_client.delete('/api/did/talks/tlk_1').status_code == 503

    monkeypatch.setattr(app_module.config, 'DID_API_KEY', 'key')
    created = MagicMock(ok=True, content=b'{}')
    created.json.return_value = {'id': 'tlk_1', 'status': 'created'}
    with patch('metaworks_ecc.did.requests.request', return_value=created):
        response = auth_client.post('/api/did/talks', json={'message': 'Enable MFA'})
    assert response.status_code == 201
    assert response.get_json()['talk']['id'] == 'tlk_1'

    failed = MagicMock(ok=False, status_code=500, reason='Server Error', content=b'{}')
    failed.json.return_value = {'message': 'boom'}
    with patch('metaworks_ecc.did.requests.request', return_value=failed):
        assert auth_client.get('/api/did/talks/tlk_1').status_code == 502

    advice = auth_client.post('/api/did/advice', json={'topic': 'compliance', 'context': 'PDPL'}).get_json()
    assert 'For PDPL compliance,' in advice['message']


# -- vulnerabilities and plans ----------------------------------------------------

def _plan_payload(**overrides):
    payload = {
        'title': 'Weak passwords',
        'description': 'Legacy systems allow short passwords',
        'riskLevel': 'critical',
        'mitigationStrategy': 'Enforce password policy',
        'responsibleParty': 'IT Security',
        'targetDate': '2025-09-30',
    }
    payload.update(overrides)
    return payload


def test_vulnerabilities(auth_client):
    """Test vulnerability filters"""
    auth_client.post('/api/vulnerabilities', json={'domain': 'Access Control', 'title': 'No MFA', 'assessmentId': 7})
    auth_client.post('/api/vulnerabilities', json={'domain': 'Network Security', 'title': 'Flat network'})

    assert len(auth_client.get('/api/vulnerabilities/1').get_json()['vulnerabilities']) == 2
    filtered = auth_client.get('/api/vulnerabilities/1?assessmentId=7').get_json()['vulnerabilities']
    assert [v['title'] for v in filtered] == ['No MFA']
    by_domain = auth_client.get('/api/vulnerabilities/1/domain/Network%20Security').get_json()['vulnerabilities']
    assert [v['title'] for v in by_domain] == ['Flat network']
    assert auth_client.get('/api/vulnerabilities/1?assessmentId=x').status_code == 400


def test_risk_management_plan_crud(auth_client):
    """Test plan create, update and delete"""
    response = auth_client.post('/api/risk-management-plans', json=_plan_payload())
    plan = response.get_json()['plan']
    assert response.status_code == 201
    assert plan['risk_level'] == 'Critical'
    assert plan['status'] == 'Planned'

    updated = auth_client.patch(f"/api/risk-management-plans/{plan['id']}",
                                json={'progress': 50, 'status': 'in progress'}).get_json()['plan']
    assert updated['progress'] == 50
    assert updated['status'] == 'In Progress'
    assert auth_client.patch(f"/api/risk-management-plans/{plan['id']}", json={'progress': 150}).status_code == 400

    assert auth_client.get(f"/api/risk-management-plans/plan/{plan['id']}").get_json()['plan']['title'] == 'Weak passwords'
    assert len(auth_client.get('/api/risk-management-plans/1').get_json()['plans']) == 1
    assert auth_client.delete(f"/api/risk-management-plans/{plan['id']}").status_code == 200
    assert auth_client.get(f"/api/risk-management-plans/plan/{plan['id']}").status_code == 404
    assert auth_client.delete(f"/api/risk-management-plans/{plan['id']}").status_code == 404


def test_plan_missing_fields(auth_client):
    """Test plan validation errors are 400s"""
    response = auth_client.post('/api/risk-management-plans', json=_plan_payload(responsibleParty=''))
    assert response.status_code == 400
    assert 'responsibleParty' in response.get_json()['error']


def test_plan_update_keeps_required_fields(auth_client):
    """Test a PATCH cannot blank fields the create requires"""
    plan = auth_client.post('/api/risk-management-plans', json=_plan_payload()).get_json()['plan']

    response = auth_client.patch(f"/api/risk-management-plans/{plan['id']}", json={'title': '', 'description': None})
    assert response.status_code == 400
    assert 'title' in response.get_json()['error']
    assert auth_client.patch(f"/api/risk-management-plans/{plan['id']}", json={'description': None}).status_code == 400
    assert auth_client.patch(f"/api/risk-management-plans/{plan['id']}", json={'status': 'abandoned'}).status_code == 400

    stored = auth_client.get(f"/api/risk-management-plans/plan/{plan['id']}").get_json()['plan']
    assert stored['title'] == 'Weak passwords'
    assert stored['description'] == 'Legacy systems allow short passwords'


def test_plan_template_download(auth_client):
    """Test the import template download"""
    response = auth_client.get('/api/risk-management-plans/template')
    assert response.status_code == 200
    ws = load_workbook(BytesIO(response.data)).active
    assert ws['A1'].value == 'Title'


def test_plan_import(auth_client):
    """Test importing plans from Excel"""
    wb = Workbook()
    ws = wb.active
    ws.append(['Title', 'Description', 'Risk Level', 'Mitigation Strategy', 'Responsible Party', 'Target Date'])
    ws.append(['Ransomware', 'Encrypted file shares after phishing', 'High', 'Offline backups and EDR', 'SOC Lead', '2025-08-01'])
    ws.append(['X', 'short', 'Low', 'n/a', 'IT', '2025-08-01'])
    buffer = BytesIO()
    wb.save(buffer)
    buffer.seek(0)

    response = auth_client.post('/api/risk-management-plans/import',
                                data={'file': (buffer, 'plans.xlsx'), 'userId': '1'},
                                content_type='multipart/form-data')
    data = response.get_json()

    assert response.status_code == 200
    assert data['imported'] == 1
    assert len(data['errors']) == 1
    assert data['errors'][0].startswith('Row 3:')
    plans = auth_client.get('/api/risk-management-plans/1').get_json()['plans']
    assert plans[0]['title'] == 'Ransomware'
    assert plans[0]['target_date'] == '2025-08-01'


def test_plan_import_requires_file(auth_client):
    """Test import without a file"""
    response = auth_client.post('/api/risk-management-plans/import', data={}, content_type='multipart/form-data')
    assert response.status_code == 400


# -- risk register -----------------------------------------------------------------

def test_risk_register_seed_and_filter(auth_client):
    """Test seeding and filtering the register"""
    response = auth_client.post('/api/risk-register/seed')
    assert response.get_json()['count'] == 10

    risks = auth_client.get('/api/risk-register').get_json()['risks']
    assert len(risks) == 10
    critical = auth_client.get('/api/risk-register?riskLevel=Critical').get_json()['risks']
    assert critical and all(r['risk_level'] == 'Critical' for r in critical)
    by_category = auth_client.get('/api/risk-register?category=Data%20Security').get_json()['risks']
    assert all(r['category'] == 'Data Security' for r in by_category)


def test_risk_register_crud(auth_client):
    """Test register create, update and delete"""
    response = auth_client.post('/api/risk-register', json={
        'category': 'Cloud Security',
        'title': 'Open storage bucket',
        'description': 'Bucket readable by anyone',
        'riskLevel': 'High',
        'threats': ['Scanners'],
    })
    risk = response.get_json()['risk']
    assert response.status_code == 201
    assert risk['threats'] == ['Scanners']

    updated = auth_client.patch(f"/api/risk-register/{risk['id']}",
                                json={'riskLevel': 'low', 'mitigationStrategies': ['Block public access']}).get_json()['risk']
    assert updated['risk_level'] == 'Low'
    assert updated['mitigation_strategies'] == ['Block public access']
    assert auth_client.patch(f"/api/risk-register/{risk['id']}", json={'riskLevel': 'extreme'}).status_code == 400

    assert auth_client.delete(f"/api/risk-register/{risk['id']}").status_code == 200
    assert auth_client.get(f"/api/risk-register/{risk['id']}").status_code == 404


def test_risk_register_update_coerces_values(auth_client):
    """Test register PATCH splits list strings and parses isActive"""
    risk = auth_client.post('/api/risk-register', json={
        'category': 'Cloud Security',
        'title': 'Open storage bucket',
        'description': 'Bucket readable by anyone',
        'riskLevel': 'High',
        'tags': 'a,b',
    }).get_json()['risk']
    assert risk['tags'] == ['a', 'b']

    updated = auth_client.patch(f"/api/risk-register/{risk['id']}",
                                json={'tags': 'x, y', 'isActive': 'false'}).get_json()['risk']
    assert updated['tags'] == ['x', 'y']
    assert updated['is_active'] is False
    assert auth_client.get(f"/api/risk-register/{risk['id']}").get_json()['risk']['tags'] == ['x', 'y']

    assert auth_client.patch(f"/api/risk-register/{risk['id']}", json={'isActive': 'maybe'}).status_code == 400
    assert auth_client.patch(f"/api/risk-register/{risk['id']}", json={'tags': {'a': 1}}).status_code == 400
    assert auth_client.patch(f"/api/risk-register/{risk['id']}", json={'category': ' '}).status_code == 400


def test_risk_register_create_parses_is_active(auth_client):
    """Test the string "false" creates an inactive entry"""
    risk = auth_client.post('/api/risk-register', json={
        'category': 'Cloud Security',
        'title': 'Retired risk',
        'description': 'No longer tracked',
        'riskLevel': 'Low',
        'isActive': 'false',
    }).get_json()['risk']
    assert risk['is_active'] is False


def test_risk_register_export(auth_client):
    """Test Excel export of the register"""
    auth_client.post('/api/risk-register/seed')
    response = auth_client.get('/api/risk-register/export')

    assert response.status_code == 200
    assert response.mimetype == 'application/vnd.openxmlformats-officedocument.spreadsheetml.sheet'
    ws = load_workbook(BytesIO(response.data)).active
    assert ws.max_row == 11


def test_auditor_permissions(client):
    """Test read-only roles cannot write"""
    login(client, 'auditor', 'audit123')

    assert client.get('/api/risk-register').status_code == 200
    assert client.post('/api/risk-register/seed').status_code == 403
    assert client.post('/api/risk-register', json={'category': 'x'}).status_code == 403
    assert client.post('/api/users-management', json={}).status_code == 403
    assert client.post('/api/roles', json={'name': 'Viewer'}).status_code == 403


# -- users management -----------------------------------------------------------------

def test_users_management(auth_client):
    """Test admin user management"""
    users = auth_client.get('/api/users-management').get_json()['users']
    assert len(users) == 5
    assert all('password_hash' not in u for u in users)

    response = auth_client.post('/api/users-management', json={
        'username': 'employee1',
        'email': 'employee1@metaworks.com',
        'password': STRONG_PASSWORD,
        'firstName': 'Emp',
        'lastName': 'One',
        'role': 'Employee',
        'department': 'Finance',
    })
    user = response.get_json()['user']
    assert response.status_code == 201
    assert user['permissions'] == ['read']

    updated = auth_client.put(f"/api/users-management/{user['id']}",
                              json={'role': 'Auditor', 'department': 'Audit'}).get_json()['user']
    assert updated['role'] == 'Auditor'
    assert updated['permissions'] == ['read', 'audit', 'compliance', 'reporting']
    assert updated['department'] == 'Audit'

    assert auth_client.put(f"/api/users-management/{user['id']}", json={'password': 'weak'}).status_code == 400
    assert auth_client.put(f"/api/users-management/{user['id']}", json={'password': 'N3wPassword'}).status_code == 200
    assert auth_client.delete('/api/users-management/1').status_code == 400
    assert auth_client.delete(f"/api/users-management/{user['id']}").status_code == 200
    assert auth_client.get(f"/api/users-management/{user['id']}").status_code == 404


def test_users_management_duplicate(auth_client):
    """Test duplicate usernames conflict"""
    response = auth_client.post('/api/users-management', json={
        'username': 'ciso',
        'email': 'other@metaworks.com',
        'password': STRONG_PASSWORD,
        'role': 'CISO',
    })
    assert response.status_code == 409


# -- badges, roles, activities, workspaces ------------------------------------------------

def test_badges(auth_client):
    """Test badge creation and awards"""
    badge = auth_client.post('/api/achievement-badges', json={'name': 'Policy Pro', 'points': 50}).get_json()['badge']
    assert len(auth_client.get('/api/achievement-badges').get_json()['badges']) == 1

    response = auth_client.post('/api/award-badge', json={'userId': 2, 'badgeId': badge['id']})
    assert response.status_code == 200
    achievements = auth_client.get('/api/user-achievements/2').get_json()['achievements']
    assert [a['name'] for a in achievements] == ['Policy Pro']

    assert auth_client.post('/api/award-badge', json={'userId': 2, 'badgeId': 999}).status_code == 404


def test_roles(auth_client):
    """Test custom roles"""
    response = auth_client.post('/api/roles', json={'name': 'Viewer', 'permissions': ['read']})
    assert response.status_code == 201
    assert response.get_json()['role']['permissions'] == ['read']
    assert auth_client.post('/api/roles', json={'name': 'Viewer'}).status_code == 409
    assert [r['name'] for r in auth_client.get('/api/roles').get_json()['roles']] == ['Viewer']


def test_activities(auth_client):
    """Test the audit trail records logins and custom actions"""
    latest = auth_client.get('/api/user-activities?userId=1&limit=1').get_json()['activities']
    assert latest[0]['action'] == 'login'

    response = auth_client.post('/api/user-activities', json={'action': 'viewed_dashboard', 'metadata': {'tab': 'risks'}})
    assert response.status_code == 201
    latest = auth_client.get('/api/user-activities?userId=1&limit=1').get_json()['activities']
    assert latest[0]['metadata'] == {'tab': 'risks'}


def test_workspaces(auth_client):
    """Test user workspaces"""
    response = auth_client.post('/api/user-workspaces', json={'name': 'ECC 2025', 'settings': {'theme': 'dark'}})
    assert response.status_code == 201
    workspaces = auth_client.get('/api/user-workspaces/1').get_json()['workspaces']
    assert workspaces[0]['settings'] == {'theme': 'dark'}
    assert auth_client.post('/api/user-workspaces', json={}).status_code == 400


# -- ECC implementation ----------------------------------------------------------------------

def test_ecc_project_workflow(auth_client):
    """Test projects with gap and risk assessments"""
    project = auth_client.post('/api/ecc-projects', json={'name': 'ECC rollout', 'organization': 'Metaworks'}).get_json()['project']
    assert project['ciso_user_id'] == 1
    assert [p['name'] for p in auth_client.get('/api/ecc-projects/1').get_json()['projects']] == ['ECC rollout']

    updated = auth_client.put(f"/api/ecc-projects/{project['id']}", json={'status': 'in_progress'}).get_json()['project']
    assert updated['status'] == 'in_progress'

    gap = auth_client.post('/api/ecc-gap-assessments', json={
        'projectId': project['id'], 'overallComplianceScore': 62, 'domainScores': {'Governance': 70},
    }).get_json()['assessment']
    assert gap['domain_scores'] == {'Governance': 70}
    assert gap['assessed_by'] == 1
    gap = auth_client.put(f"/api/ecc-gap-assessments/{gap['id']}", json={'overallComplianceScore': 75}).get_json()['assessment']
    assert gap['overall_compliance_score'] == 75

    auth_client.post('/api/ecc-risk-assessments', json={
        'projectId': project['id'], 'gapAssessmentId': gap['id'], 'controlId': '1-1-1', 'riskLevel': 'HIGH',
    })
    auth_client.post('/api/ecc-risk-assessments', json={'projectId': project['id'], 'controlId': '2-1-1', 'riskLevel': 'low'})
    risks = auth_client.get(f"/api/ecc-risk-assessments/{project['id']}?gapAssessmentId={gap['id']}").get_json()['assessments']
    assert [r['risk_level'] for r in risks] == ['high']
    risk = auth_client.put(f"/api/ecc-risk-assessments/{risks[0]['id']}", json={'riskLevel': 'Medium'}).get_json()['assessment']
    assert risk['risk_level'] == 'medium'

    assert auth_client.get(f"/api/ecc-projects/project/{project['id']}").status_code == 200
    assert auth_client.delete(f"/api/ecc-projects/{project['id']}").status_code == 200
    assert auth_client.get(f"/api/ecc-projects/project/{project['id']}").status_code == 404


def test_ecc_updates_are_validated(auth_client):
    """Test ECC PUTs reject values their create would reject"""
    project = auth_client.post('/api/ecc-projects', json={'name': 'ECC rollout'}).get_json()['project']
    gap = auth_client.post('/api/ecc-gap-assessments', json={
        'projectId': project['id'], 'overallComplianceScore': 62,
    }).get_json()['assessment']

    response = auth_client.put(f"/api/ecc-gap-assessments/{gap['id']}", json={'overallComplianceScore': 150})
    assert response.status_code == 400
    assert auth_client.put(f"/api/ecc-gap-assessments/{gap['id']}", json={'domainScores': 'high'}).status_code == 400
    assert auth_client.put(f"/api/ecc-projects/{project['id']}", json={'name': ''}).status_code == 400

    module = auth_client.post('/api/ecc-training-modules', json={'title': 'Phishing awareness'}).get_json()['module']
    training = auth_client.post('/api/ecc-user-training', json={
        'projectId': project['id'], 'moduleId': module['id'],
    }).get_json()['training']
    assert auth_client.put(f"/api/ecc-user-training/{training['id']}", json={'score': 101}).status_code == 400
    assert auth_client.get('/api/ecc-training-modules?isActive=perhaps').status_code == 400


def test_ecc_roadmap_and_training(auth_client):
    """Test roadmap tasks, training modules and user training"""
    project = auth_client.post('/api/ecc-projects', json={'name': 'ECC rollout'}).get_json()['project']

    task = auth_client.post('/api/ecc-roadmap-tasks', json={'projectId': project['id'], 'title': 'Deploy MFA'}).get_json()['task']
    auth_client.post('/api/ecc-roadmap-tasks', json={'projectId': project['id'], 'title': 'SIEM', 'status': 'done'})
    done = auth_client.get(f"/api/ecc-roadmap-tasks/{project['id']}?status=done").get_json()['tasks']
    assert [t['title'] for t in done] == ['SIEM']
    assert auth_client.put(f"/api/ecc-roadmap-tasks/{task['id']}", json={'status': 'done'}).get_json()['task']['status'] == 'done'
    assert auth_client.delete(f"/api/ecc-roadmap-tasks/{task['id']}").status_code == 200
    assert auth_client.delete(f"/api/ecc-roadmap-tasks/{task['id']}").status_code == 404

    module = auth_client.post('/api/ecc-training-modules', json={'title': 'Phishing awareness'}).get_json()['module']
    auth_client.post('/api/ecc-training-modules', json={'title': 'Old module', 'isActive': False})
    active = auth_client.get('/api/ecc-training-modules?isActive=true').get_json()['modules']
    assert [m['title'] for m in active] == ['Phishing awareness']
    assert len(auth_client.get('/api/ecc-training-modules').get_json()['modules']) == 2

    training = auth_client.post('/api/ecc-user-training', json={
        'projectId': project['id'], 'moduleId': module['id'],
    }).get_json()['training']
    assert training['status'] == 'not_started'
    training = auth_client.put(f"/api/ecc-user-training/{training['id']}",
                               json={'progress': 100, 'status': 'completed'}).get_json()['training']
    assert training['progress'] == 100
    records = auth_client.get(f"/api/ecc-user-training/{project['id']}/1").get_json()['training']
    assert records[0]['status'] == 'completed'


# -- uploads ------------------------------------------------------------------------------------

def test_upload_flow(auth_client):
    """Test reserve, PUT, complete and download"""
    reserved = auth_client.post('/api/upload/policy').get_json()
    url = reserved['uploadURL']
    assert url.startswith('/api/upload/objects/')

    response = auth_client.put(url, data=b'%PDF-1.4 demo', content_type='application/pdf')
    assert response.status_code == 200
    assert auth_client.put(url, data=b'%PDF-1.4 demo', content_type='application/pdf').status_code == 409

    completed = auth_client.post('/api/upload/complete', json={
        'fileName': 'policy.pdf', 'fileType': 'application/pdf', 'fileUrl': url, 'category': 'policy',
    }).get_json()
    assert completed['fileUrl'] == f"/api/upload/objects/{reserved['objectId']}"
    assert completed['fileId']

    download = auth_client.get(completed['fileUrl'])
    assert download.status_code == 200
    assert download.data == b'%PDF-1.4 demo'
    download.close()


def test_upload_rejections(auth_client):
    """Test token and type checks on object uploads"""
    url = auth_client.post('/api/upload/logo').get_json()['uploadURL']
    object_path = url.split('?')[0]

    assert auth_client.put(f"{object_path}?token=wrong", data=b'png', content_type='image/png').status_code == 403
    assert auth_client.put(url, data=b'%PDF', content_type='application/pdf').status_code == 415
    assert auth_client.get(object_path).status_code == 404
    assert auth_client.post('/api/upload/complete', json={'fileName': 'x.png'}).status_code == 400
