"""
Metaworks ECC - NCA Essential Cybersecurity Controls Compliance Platform
Flask Application - JSON API
"""

import os
import sqlite3
import secrets
from contextlib import closing
from datetime import datetime, timedelta
from functools import wraps
from io import BytesIO

from flask import Flask, request, session, jsonify, g, Response, send_file

from dotenv import load_dotenv

from version import __version__
from metaworks_ecc.ai import get_ai_status, generate_security_policy, generate_compliance_response
from metaworks_ecc.auth import (
    hash_password, verify_password, get_role_permissions, has_permission, public_user,
    validate_username, validate_email, validate_password, RateLimiter, ROLE_PERMISSIONS,
)
from metaworks_ecc.did import DIDService, DIDError
from metaworks_ecc.exports import (
    build_policy_pdf, build_risk_register_workbook, build_plan_template_workbook,
    parse_plan_workbook, XLSX_MIMETYPE,
)
from metaworks_ecc.models import (
    ValidationError, parse_bool, to_columns,
    Assessment, Policy, Vulnerability, RiskManagementPlan, RiskRegisterEntry, UserAccount,
    AchievementBadge, EccProject, EccGapAssessment, EccRiskAssessment, EccRoadmapTask,
    EccTrainingModule, EccUserTraining,
)
from metaworks_ecc.multilingual import MultilingualService
from metaworks_ecc.seed import seed_risk_register, initialize_default_users
from metaworks_ecc.storage import ComplianceStore, init_schema
from metaworks_ecc.uploads import (
    UploadError, create_slot, store_object, complete_upload, stored_object,
)

# Load environment variables
load_dotenv()


# Configuration
class Config:
    APP_NAME = "Metaworks ECC"
    APP_VERSION = __version__
    DB_PATH = os.getenv('DB_PATH', 'metaworks.db')
    UPLOAD_DIR = os.getenv('UPLOAD_DIR', 'uploads')
    MAX_UPLOAD_MB = int(os.getenv('MAX_UPLOAD_MB', '10'))
    OPENAI_API_KEY = os.getenv('OPENAI_API_KEY', '')
    ANTHROPIC_API_KEY = os.getenv('ANTHROPIC_API_KEY', '')
    GOOGLE_API_KEY = os.getenv('GOOGLE_API_KEY', '')
    GEMINI_API_KEY = os.getenv('GEMINI_API_KEY', '') or GOOGLE_API_KEY  # Sarah assistant
    GROQ_API_KEY = os.getenv('GROQ_API_KEY', '')
    AI_PROVIDER = os.getenv('AI_PROVIDER', 'auto')  # auto, openai, anthropic, google, groq
    AI_MODEL = os.getenv('AI_MODEL', '')  # Override model name
    ELEVENLABS_API_KEY = os.getenv('ELEVENLABS_API_KEY', '')
    DID_API_KEY = os.getenv('DID_API_KEY', '')
    SESSION_HOURS = int(os.getenv('SESSION_HOURS', '24'))

config = Config()

app = Flask(__name__)


# Stable secret key - persists across restarts to keep sessions alive
def _get_stable_secret_key():
    """Get or create a stable secret key that survives server restarts."""
    env_key = os.getenv('SECRET_KEY')
    if env_key:
        return env_key
    key_file = os.path.join(os.path.dirname(os.path.abspath(__file__)), '.secret_key')
    try:
        if os.path.exists(key_file):
            with open(key_file, 'r') as f:
                key = f.read().strip()
                if len(key) >= 32:
                    return key
        key = secrets.token_hex(32)
        with open(key_file, 'w') as f:
            f.write(key)
        os.chmod(key_file, 0o600)
        return key
    except OSError:
        return secrets.token_hex(32)

app.secret_key = _get_stable_secret_key()
app.permanent_session_lifetime = timedelta(hours=config.SESSION_HOURS)

# Security configurations
app.config['SESSION_COOKIE_SECURE'] = os.getenv('FLASK_ENV') == 'production'
app.config['SESSION_COOKIE_HTTPONLY'] = True
app.config['SESSION_COOKIE_SAMESITE'] = 'Lax'


# CSRF Protection
def generate_csrf_token():
    if 'csrf_token' not in session:
        session['csrf_token'] = secrets.token_hex(32)
    return session['csrf_token']


@app.before_request
def csrf_protect():
    """Validate CSRF token for state-changing requests."""
    if request.method not in ("POST", "PUT", "PATCH", "DELETE"):
        return
    # Pre-authentication endpoints have no session to protect
    csrf_exempt_prefixes = (
        '/api/auth/login',
        '/api/auth/signup',
    )
    if request.path.startswith(csrf_exempt_prefixes):
        return
    # Raw object uploads are authorised by the slot token in the URL
    if request.method == 'PUT' and request.path.startswith('/api/upload/objects/'):
        return

    token = session.get('csrf_token')
    if not token:
        # No session yet; login_required rejects the request
        return

    req_token = request.headers.get('X-CSRFToken', '')
    if not req_token or not secrets.compare_digest(req_token, token):
        print(f"CSRF REJECT: method={request.method} path={request.path} "
              f"has_header={'yes' if req_token else 'no'}", flush=True)
        return jsonify({'success': False, 'error': 'CSRF token missing or invalid'}), 403


@app.after_request
def add_security_headers(response):
    """Add security headers to all responses."""
    response.headers['X-Content-Type-Options'] = 'nosniff'
    response.headers['X-Frame-Options'] = 'SAMEORIGIN'
    response.headers['X-XSS-Protection'] = '1; mode=block'
    response.headers['Referrer-Policy'] = 'strict-origin-when-cross-origin'
    if os.getenv('FLASK_ENV') == 'production':
        response.headers['Strict-Transport-Security'] = 'max-age=31536000; includeSubDomains'
    return response


# Simple rate limiting (in-memory, resets on restart)
rate_limiter = RateLimiter()


def check_rate_limit(key, max_requests=10, window_seconds=60):
    """Check if request is within rate limit."""
    return rate_limiter.allow(key, max_requests, window_seconds)


def client_ip():
    return request.environ.get('HTTP_X_FORWARDED_FOR', request.remote_addr)


# ============================================================================
# DATABASE
# ============================================================================

def get_db():
    """Get database connection (request-scoped, auto-closed at request end)."""
    if '_database' not in g:
        g._database = sqlite3.connect(config.DB_PATH)
        g._database.row_factory = sqlite3.Row
    return g._database


def get_store():
    if '_store' not in g:
        g._store = ComplianceStore(get_db())
    return g._store


@app.teardown_appcontext
def close_db(exception):
    """Auto-close DB connection at end of every request."""
    g.pop('_store', None)
    db = g.pop('_database', None)
    if db is not None:
        db.close()


def get_db_direct():
    """Get a standalone DB connection outside a request.
    Caller MUST use: with closing(get_db_direct()) as conn: ..."""
    conn = sqlite3.connect(config.DB_PATH)
    conn.row_factory = sqlite3.Row
    return conn


def init_db():
    """Initialize database tables and the built-in accounts."""
    with closing(get_db_direct()) as conn:
        init_schema(conn)
        initialize_default_users(ComplianceStore(conn))
    print(f"✅ Database ready: {config.DB_PATH}", flush=True)

# Initialize database on startup
init_db()


# ============================================================================
# AUTHENTICATION
# ============================================================================

def login_required(f):
    """Decorator to require login. Returns JSON 401 for API calls."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if 'user_id' not in session:
            return jsonify({'success': False, 'error': 'Session expired. Please login again.', 'session_expired': True}), 401
        return f(*args, **kwargs)
    return decorated_function


def permission_required(permission):
    """Decorator to require a role permission ('admin' implies all)."""
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            if 'user_id' not in session:
                return jsonify({'success': False, 'error': 'Session expired. Please login again.', 'session_expired': True}), 401
            if not has_permission(session.get('permissions'), permission):
                return jsonify({'success': False, 'error': 'Insufficient permissions'}), 403
            return f(*args, **kwargs)
        return decorated_function
    return decorator


admin_required = permission_required('admin')


def log_action(user_id, action, metadata=None):
    """Write an entry to the user_activities table (fire-and-forget)."""
    try:
        get_store().create_user_activity({
            'user_id': user_id,
            'action': action,
            'metadata': metadata or {},
            'created_at': datetime.now().isoformat(),
        })
    except Exception as e:
        print(f"Audit log error (non-fatal): {e}", flush=True)


def request_data(with_user=False):
    """JSON body as a dict; fills userId from the session when asked."""
    data = request.get_json(silent=True)
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ValidationError('Request body must be a JSON object')
    if with_user and not data.get('userId'):
        data['userId'] = session['user_id']
    return data


def error_response(e, action):
    """Map an exception raised inside a route to a JSON error."""
    if isinstance(e, ValidationError):
        return jsonify({'success': False, 'error': str(e)}), 400
    if isinstance(e, sqlite3.IntegrityError):
        return jsonify({'success': False, 'error': 'Record already exists or references a missing row'}), 409
    print(f"{action} error: {e}", flush=True)
    return jsonify({'success': False, 'error': str(e)}), 500


def not_found(thing):
    return jsonify({'success': False, 'error': f'{thing} not found'}), 404


def query_int(name):
    value = request.args.get(name)
    if value in (None, ''):
        return None
    try:
        return int(value)
    except ValueError:
        raise ValidationError(f'{name} must be an integer')


def start_session(user):
    """Regenerate session to prevent session fixation."""
    session.clear()
    session.permanent = True
    session['user_id'] = user['id']
    session['username'] = user['username']
    session['role'] = user['role']
    session['permissions'] = user.get('permissions') or get_role_permissions(user['role'])
    return generate_csrf_token()


# ============================================================================
# ROUTES - AUTH
# ============================================================================

@app.route('/api/auth/login', methods=['POST'])
def api_login():
    """Login with rate limiting - 5 attempts per minute per IP."""
    try:
        if not check_rate_limit(f'login_{client_ip()}', max_requests=5, window_seconds=60):
            return jsonify({'success': False, 'error': 'Too many login attempts. Please wait a minute.'}), 429

        data = request_data()
        username = (data.get('username') or '').strip()
        password = data.get('password') or ''
        if not username or not password:
            return jsonify({'success': False, 'error': 'Username and password are required'}), 400

        store = get_store()
        if '@' in username:
            user = store.get_user_by_email(username)
        else:
            user = store.get_user_by_username(username)

        if not user or not verify_password(password, user['password_hash']):
            return jsonify({'success': False, 'error': 'Invalid username or password'}), 401
        if not user['is_active']:
            return jsonify({'success': False, 'error': 'Account is inactive'}), 403

        store.touch_login(user['id'])
        token = start_session(user)
        log_action(user['id'], 'login')
        return jsonify({'success': True, 'user': public_user(store.get_user(user['id'])), 'csrfToken': token})
    except Exception as e:
        return error_response(e, 'Login')


@app.route('/api/auth/signup', methods=['POST'])
def api_signup():
    """Register new user with rate limiting - 3 attempts per minute per IP."""
    try:
        if not check_rate_limit(f'signup_{client_ip()}', max_requests=3, window_seconds=60):
            return jsonify({'success': False, 'error': 'Too many registration attempts. Please wait.'}), 429

        data = request_data()
        required = ('username', 'email', 'password', 'firstName', 'lastName', 'role', 'department')
        if any(not data.get(key) for key in required):
            return jsonify({'success': False, 'error': 'All fields are required'}), 400

        username = data['username'].strip()
        email = data['email'].strip().lower()
        role = data['role']
        if not validate_username(username):
            return jsonify({'success': False, 'error': 'Username: 3-50 characters, letters/numbers/underscore/dot only'}), 400
        if not validate_email(email):
            return jsonify({'success': False, 'error': 'Invalid email format'}), 400
        valid, msg = validate_password(data['password'])
        if not valid:
            return jsonify({'success': False, 'error': msg}), 400
        if role not in ROLE_PERMISSIONS or role == 'Super Admin':
            return jsonify({'success': False, 'error': f'Invalid role: {role}'}), 400

        store = get_store()
        if store.get_user_by_username(username):
            return jsonify({'success': False, 'error': 'Username already exists'}), 400
        if store.get_user_by_email(email):
            return jsonify({'success': False, 'error': 'Email already exists'}), 400

        user = store.create_user(UserAccount(
            username=username,
            email=email,
            password_hash=hash_password(data['password']),
            first_name=data['firstName'].strip(),
            last_name=data['lastName'].strip(),
            role=role,
            department=data['department'].strip(),
            permissions=get_role_permissions(role),
        ))
        token = start_session(user)
        log_action(user['id'], 'signup', {'role': role})
        return jsonify({'success': True, 'user': public_user(user), 'csrfToken': token}), 201
    except Exception as e:
        return error_response(e, 'Signup')


@app.route('/api/auth/logout', methods=['POST'])
@login_required
def api_logout():
    log_action(session['user_id'], 'logout')
    session.clear()
    return jsonify({'success': True, 'message': 'Logged out successfully'})


@app.route('/api/auth/me')
@login_required
def api_me():
    try:
        user = get_store().get_user(session['user_id'])
        if not user:
            session.clear()
            return jsonify({'success': False, 'error': 'Session expired. Please login again.', 'session_expired': True}), 401
        return jsonify({'success': True, 'user': public_user(user)})
    except Exception as e:
        return error_response(e, 'Get current user')


@app.route('/api/auth/verify', methods=['POST'])
def api_verify():
    """Report whether the current session belongs to an active user."""
    user = get_store().get_user(session['user_id']) if 'user_id' in session else None
    if not user or not user['is_active']:
        return jsonify({'success': False, 'valid': False, 'error': 'Invalid or inactive user'}), 401
    return jsonify({'success': True, 'valid': True, 'user': public_user(user), 'csrfToken': generate_csrf_token()})


# ============================================================================
# ROUTES - ASSESSMENTS & POLICIES
# ============================================================================

@app.route('/api/assessments/<int:user_id>')
@login_required
def api_get_assessments(user_id):
    try:
        return jsonify({'success': True, 'assessments': get_store().get_assessments(user_id)})
    except Exception as e:
        return error_response(e, 'Get assessments')


@app.route('/api/assessments', methods=['POST'])
@login_required
def api_create_assessment():
    try:
        assessment = get_store().create_assessment(Assessment.from_payload(request_data(with_user=True)))
        log_action(session['user_id'], 'create_assessment', {'domain': assessment['domain'], 'score': assessment['score']})
        return jsonify({'success': True, 'assessment': assessment}), 201
    except Exception as e:
        return error_response(e, 'Create assessment')


@app.route('/api/policies/<int:user_id>')
@login_required
def api_get_policies(user_id):
    try:
        return jsonify({'success': True, 'policies': get_store().get_policies(user_id)})
    except Exception as e:
        return error_response(e, 'Get policies')


@app.route('/api/policies', methods=['POST'])
@login_required
def api_create_policy():
    """Store a policy; empty content is generated by the AI provider."""
    try:
        policy = Policy.from_payload(request_data(with_user=True))
        if not policy.content:
            try:
                policy.content = generate_security_policy(config, policy.domain, policy.subdomain, policy.language)
            except Exception as e:
                print(f"Policy generation error: {e}", flush=True)
                policy.content = f"Policy for {policy.domain} - AI generation failed"
        saved = get_store().create_policy(policy)
        log_action(session['user_id'], 'create_policy', {'domain': policy.domain, 'subdomain': policy.subdomain})
        return jsonify({'success': True, 'policy': saved}), 201
    except Exception as e:
        return error_response(e, 'Create policy')


@app.route('/api/policies/policy/<int:policy_id>/pdf')
@login_required
def api_policy_pdf(policy_id):
    """Export one policy as PDF."""
    try:
        policy = get_store().get_policy(policy_id)
        if not policy:
            return not_found('Policy')
        title = f"{policy['domain']} Policy"
        if policy.get('subdomain'):
            title += f" - {policy['subdomain']}"
        pdf = build_policy_pdf(policy['content'], title, policy.get('language') or 'en')
        log_action(session['user_id'], 'export_pdf', {'policy_id': policy_id})
        filename = f"policy_{policy_id}_{policy['domain'].lower().replace(' ', '_')}.pdf"
        return send_file(BytesIO(pdf), mimetype='application/pdf', as_attachment=True, download_name=filename)
    except Exception as e:
        return error_response(e, 'PDF generation')


# ============================================================================
# ROUTES - AI ASSISTANT
# ============================================================================

@app.route('/api/assistant/chat', methods=['POST'])
@login_required
def api_assistant_chat():
    try:
        data = request_data()
        message = (data.get('message') or '').strip()
        if not message:
            return jsonify({'success': False, 'error': 'Message is required'}), 400
        language = data.get('language') or 'en'
        reply = generate_compliance_response(config, message, language)
        log_action(session['user_id'], 'assistant_chat', {'language': language})
        return jsonify({
            'success': True,
            'message': reply,
            'timestamp': datetime.now().isoformat(),
            'language': language,
        })
    except Exception as e:
        return error_response(e, 'Assistant chat')


@app.route('/api/ai/status')
@login_required
def api_ai_status():
    return jsonify({'success': True, **get_ai_status(config)})


def multilingual_service():
    return MultilingualService(config.GEMINI_API_KEY, config.ELEVENLABS_API_KEY)


@app.route('/api/sarah/detect-language', methods=['POST'])
@login_required
def api_sarah_detect_language():
    try:
        text = (request_data().get('text') or '').strip()
        if not text:
            return jsonify({'success': False, 'error': 'Text is required'}), 400
        return jsonify({'success': True, 'language': multilingual_service().detect_language(text)})
    except Exception as e:
        return error_response(e, 'Language detection')


@app.route('/api/sarah/translate', methods=['POST'])
@login_required
def api_sarah_translate():
    try:
        data = request_data()
        text = (data.get('text') or '').strip()
        target = data.get('targetLanguage')
        if not text or not target:
            return jsonify({'success': False, 'error': 'Text and target language are required'}), 400
        translated = multilingual_service().translate_text(text, target)
        return jsonify({'success': True, 'translatedText': translated, 'targetLanguage': target})
    except Exception as e:
        return error_response(e, 'Translation')


@app.route('/api/sarah/speak', methods=['POST'])
@login_required
def api_sarah_speak():
    """Synthesize speech; the response body is MP3 audio."""
    try:
        data = request_data()
        text = (data.get('text') or '').strip()
        if not text:
            return jsonify({'success': False, 'error': 'Text is required'}), 400
        audio = multilingual_service().generate_speech(text, data.get('language') or 'en', data.get('voiceId'))
        if audio is None:
            return jsonify({'success': False, 'error': 'Failed to generate speech'}), 500
        return Response(audio, mimetype='audio/mpeg', headers={'Content-Length': str(len(audio))})
    except Exception as e:
        return error_response(e, 'Speech generation')


@app.route('/api/sarah/respond', methods=['POST'])
@login_required
def api_sarah_respond():
    try:
        data = request_data()
        message = (data.get('message') or '').strip()
        if not message:
            return jsonify({'success': False, 'error': 'Message is required'}), 400
        language = data.get('language') or 'en'
        reply = multilingual_service().generate_response(message, language, data.get('context') or '')
        return jsonify({'success': True, 'response': reply, 'language': language,
                        'timestamp': datetime.now().isoformat()})
    except Exception as e:
        return error_response(e, 'Response generation')


@app.route('/api/sarah/languages')
@login_required
def api_sarah_languages():
    return jsonify({'success': True, 'languages': multilingual_service().get_available_languages()})


# ============================================================================
# ROUTES - D-ID AVATAR
# ============================================================================

def did_service():
    return DIDService(config.DID_API_KEY)


def did_unconfigured():
    return jsonify({'success': False, 'error': 'D-ID API key not configured'}), 503


def did_error(e):
    print(f"D-ID error: {e}", flush=True)
    status = 404 if e.status_code == 404 else 502
    return jsonify({'success': False, 'error': str(e)}), status


@app.route('/api/did/avatars')
@login_required
def api_did_avatars():
    return jsonify({'success': True, 'avatars': did_service().get_avatar_options()})


@app.route('/api/did/talks', methods=['POST'])
@login_required
def api_did_create_talk():
    try:
        data = request_data()
        message = (data.get('message') or '').strip()
        if not message:
            return jsonify({'success': False, 'error': 'Message is required'}), 400
        if not config.DID_API_KEY:
            return did_unconfigured()
        talk = did_service().create_cybersecurity_talk(
            message, data.get('avatarUrl'), data.get('voiceId') or 'en-US-JennyNeural')
        log_action(session['user_id'], 'create_talk', {'talk_id': talk.get('id')})
        return jsonify({'success': True, 'talk': talk}), 201
    except DIDError as e:
        return did_error(e)
    except Exception as e:
        return error_response(e, 'Create talk')


@app.route('/api/did/talks/<talk_id>')
@login_required
def api_did_talk_status(talk_id):
    try:
        if not config.DID_API_KEY:
            return did_unconfigured()
        return jsonify({'success': True, 'talk': did_service().get_talk_status(talk_id)})
    except DIDError as e:
        return did_error(e)
    except Exception as e:
        return error_response(e, 'Talk status')


@app.route('/api/did/talks/<talk_id>', methods=['DELETE'])
@login_required
def api_did_delete_talk(talk_id):
    try:
        if not config.DID_API_KEY:
            return did_unconfigured()
        did_service().delete_talk(talk_id)
        return jsonify({'success': True})
    except DIDError as e:
        return did_error(e)
    except Exception as e:
        return error_response(e, 'Delete talk')


@app.route('/api/did/advice', methods=['POST'])
@login_required
def api_did_advice():
    try:
        data = request_data()
        advice = did_service().generate_cybersecurity_response(data.get('topic') or 'default', data.get('context'))
        return jsonify({'success': True, 'message': advice})
    except Exception as e:
        return error_response(e, 'Consultant advice')


# ============================================================================
# ROUTES - VULNERABILITIES & RISK MANAGEMENT PLANS
# ============================================================================

@app.route('/api/vulnerabilities/<int:user_id>')
@login_required
def api_get_vulnerabilities(user_id):
    try:
        vulns = get_store().get_vulnerabilities(user_id, query_int('assessmentId'))
        return jsonify({'success': True, 'vulnerabilities': vulns})
    except Exception as e:
        return error_response(e, 'Get vulnerabilities')


@app.route('/api/vulnerabilities/<int:user_id>/domain/<domain>')
@login_required
def api_get_vulnerabilities_by_domain(user_id, domain):
    try:
        return jsonify({'success': True, 'vulnerabilities': get_store().get_vulnerabilities_by_domain(user_id, domain)})
    except Exception as e:
        return error_response(e, 'Get vulnerabilities')


@app.route('/api/vulnerabilities', methods=['POST'])
@login_required
def api_create_vulnerability():
    try:
        vuln = get_store().create_vulnerability(Vulnerability.from_payload(request_data(with_user=True)))
        log_action(session['user_id'], 'create_vulnerability', {'vulnerability_id': vuln['id']})
        return jsonify({'success': True, 'vulnerability': vuln}), 201
    except Exception as e:
        return error_response(e, 'Create vulnerability')


@app.route('/api/risk-management-plans/<int:user_id>')
@login_required
def api_get_plans(user_id):
    try:
        plans = get_store().get_risk_management_plans(user_id, query_int('vulnerabilityId'))
        return jsonify({'success': True, 'plans': plans})
    except Exception as e:
        return error_response(e, 'Get risk management plans')


@app.route('/api/risk-management-plans/plan/<int:plan_id>')
@login_required
def api_get_plan(plan_id):
    try:
        plan = get_store().get_risk_management_plan(plan_id)
        if not plan:
            return not_found('Risk management plan')
        return jsonify({'success': True, 'plan': plan})
    except Exception as e:
        return error_response(e, 'Get risk management plan')


@app.route('/api/risk-management-plans', methods=['POST'])
@login_required
def api_create_plan():
    try:
        plan = get_store().create_risk_management_plan(RiskManagementPlan.from_payload(request_data(with_user=True)))
        log_action(session['user_id'], 'create_risk_plan', {'plan_id': plan['id']})
        return jsonify({'success': True, 'plan': plan}), 201
    except Exception as e:
        return error_response(e, 'Create risk management plan')


@app.route('/api/risk-management-plans/<int:plan_id>', methods=['PATCH'])
@login_required
def api_update_plan(plan_id):
    try:
        changes = to_columns(request_data(), RiskManagementPlan, risk_levels=True)
        plan = get_store().update_risk_management_plan(plan_id, changes)
        if not plan:
            return not_found('Risk management plan')
        log_action(session['user_id'], 'update_risk_plan', {'plan_id': plan_id})
        return jsonify({'success': True, 'plan': plan})
    except Exception as e:
        return error_response(e, 'Update risk management plan')


@app.route('/api/risk-management-plans/<int:plan_id>', methods=['DELETE'])
@login_required
def api_delete_plan(plan_id):
    try:
        if not get_store().delete_risk_management_plan(plan_id):
            return not_found('Risk management plan')
        log_action(session['user_id'], 'delete_risk_plan', {'plan_id': plan_id})
        return jsonify({'success': True})
    except Exception as e:
        return error_response(e, 'Delete risk management plan')


@app.route('/api/risk-management-plans/template')
@login_required
def api_plan_template():
    """Excel template for bulk plan import."""
    try:
        return send_file(BytesIO(build_plan_template_workbook()), mimetype=XLSX_MIMETYPE,
                         as_attachment=True, download_name='risk_management_template.xlsx')
    except Exception as e:
        return error_response(e, 'Plan template')


@app.route('/api/risk-management-plans/import', methods=['POST'])
@login_required
def api_import_plans():
    """Import plans from an uploaded workbook (multipart field 'file')."""
    try:
        upload = request.files.get('file')
        if not upload or not upload.filename:
            return jsonify({'success': False, 'error': 'No file provided'}), 400
        user_id = request.form.get('userId') or session['user_id']

        rows, errors = parse_plan_workbook(BytesIO(upload.read()))
        store = get_store()
        imported = []
        for row in rows:
            imported.append(store.create_risk_management_plan(RiskManagementPlan.from_payload({**row, 'userId': user_id})))

        log_action(session['user_id'], 'import_risk_plans', {'imported': len(imported), 'errors': len(errors)})
        return jsonify({'success': True, 'imported': len(imported), 'errors': errors, 'plans': imported})
    except Exception as e:
        return error_response(e, 'Import risk management plans')


# ============================================================================
# ROUTES - RISK REGISTER
# ============================================================================

@app.route('/api/risk-register/seed', methods=['POST'])
@admin_required
def api_seed_risk_register():
    try:
        count = seed_risk_register(get_store())
        log_action(session['user_id'], 'seed_risk_register', {'count': count})
        return jsonify({'success': True, 'message': 'Risk register seeded successfully', 'count': count})
    except Exception as e:
        return error_response(e, 'Seed risk register')


@app.route('/api/risk-register')
@login_required
def api_get_risk_register():
    try:
        risks = get_store().get_risk_register(request.args.get('category'), request.args.get('riskLevel'))
        return jsonify({'success': True, 'risks': risks})
    except Exception as e:
        return error_response(e, 'Get risk register')


@app.route('/api/risk-register/export')
@login_required
def api_export_risk_register():
    try:
        workbook = build_risk_register_workbook(get_store().get_risk_register())
        log_action(session['user_id'], 'export_risk_register')
        return send_file(BytesIO(workbook), mimetype=XLSX_MIMETYPE,
                         as_attachment=True, download_name='risk_register.xlsx')
    except Exception as e:
        return error_response(e, 'Export risk register')


@app.route('/api/risk-register/<int:entry_id>')
@login_required
def api_get_risk_register_entry(entry_id):
    try:
        risk = get_store().get_risk_register_entry(entry_id)
        if not risk:
            return not_found('Risk')
        return jsonify({'success': True, 'risk': risk})
    except Exception as e:
        return error_response(e, 'Get risk')


@app.route('/api/risk-register', methods=['POST'])
@permission_required('write')
def api_create_risk_register_entry():
    try:
        risk = get_store().create_risk_register_entry(RiskRegisterEntry.from_payload(request_data()))
        log_action(session['user_id'], 'create_risk', {'risk_id': risk['id']})
        return jsonify({'success': True, 'risk': risk}), 201
    except Exception as e:
        return error_response(e, 'Create risk')


@app.route('/api/risk-register/<int:entry_id>', methods=['PATCH'])
@permission_required('write')
def api_update_risk_register_entry(entry_id):
    try:
        changes = to_columns(request_data(), RiskRegisterEntry, risk_levels=True)
        risk = get_store().update_risk_register_entry(entry_id, changes)
        if not risk:
            return not_found('Risk')
        log_action(session['user_id'], 'update_risk', {'risk_id': entry_id})
        return jsonify({'success': True, 'risk': risk})
    except Exception as e:
        return error_response(e, 'Update risk')


@app.route('/api/risk-register/<int:entry_id>', methods=['DELETE'])
@permission_required('delete')
def api_delete_risk_register_entry(entry_id):
    try:
        if not get_store().delete_risk_register_entry(entry_id):
            return not_found('Risk')
        log_action(session['user_id'], 'delete_risk', {'risk_id': entry_id})
        return jsonify({'success': True})
    except Exception as e:
        return error_response(e, 'Delete risk')


# ============================================================================
# ROUTES - USER MANAGEMENT
# ============================================================================

@app.route('/api/users-management')
@login_required
def api_list_users():
    try:
        return jsonify({'success': True, 'users': [public_user(u) for u in get_store().list_users()]})
    except Exception as e:
        return error_response(e, 'List users')


@app.route('/api/users-management/<int:user_id>')
@login_required
def api_get_user(user_id):
    try:
        user = get_store().get_user(user_id)
        if not user:
            return not_found('User')
        return jsonify({'success': True, 'user': public_user(user)})
    except Exception as e:
        return error_response(e, 'Get user')


@app.route('/api/users-management', methods=['POST'])
@permission_required('user_management')
def api_create_user():
    try:
        data = request_data()
        username = (data.get('username') or '').strip()
        email = (data.get('email') or '').strip().lower()
        role = data.get('role') or 'Employee'
        if not validate_username(username):
            return jsonify({'success': False, 'error': 'Invalid username format'}), 400
        if not validate_email(email):
            return jsonify({'success': False, 'error': 'Invalid email format'}), 400
        valid, msg = validate_password(data.get('password'))
        if not valid:
            return jsonify({'success': False, 'error': msg}), 400
        if role not in ROLE_PERMISSIONS:
            return jsonify({'success': False, 'error': f'Invalid role: {role}'}), 400

        user = get_store().create_user(UserAccount(
            username=username,
            email=email,
            password_hash=hash_password(data['password']),
            first_name=(data.get('firstName') or '').strip(),
            last_name=(data.get('lastName') or '').strip(),
            role=role,
            department=(data.get('department') or '').strip(),
            permissions=data.get('permissions') or get_role_permissions(role),
            phone_number=data.get('phoneNumber'),
        ))
        log_action(session['user_id'], 'create_user', {'target_user': user['id']})
        return jsonify({'success': True, 'user': public_user(user)}), 201
    except Exception as e:
        return error_response(e, 'Create user')


@app.route('/api/users-management/<int:user_id>', methods=['PUT'])
@permission_required('user_management')
def api_update_user(user_id):
    try:
        data = request_data()
        changes = to_columns(data, UserAccount)
        for protected in ('id', 'password_hash', 'created_at', 'last_login'):
            changes.pop(protected, None)
        password = changes.pop('password', None)
        if password:
            valid, msg = validate_password(password)
            if not valid:
                return jsonify({'success': False, 'error': msg}), 400
            changes['password_hash'] = hash_password(password)
        if 'role' in changes:
            if changes['role'] not in ROLE_PERMISSIONS:
                return jsonify({'success': False, 'error': f"Invalid role: {changes['role']}"}), 400
            changes.setdefault('permissions', get_role_permissions(changes['role']))
        if 'email' in changes:
            if not validate_email(changes['email']):
                return jsonify({'success': False, 'error': 'Invalid email format'}), 400
            changes['email'] = changes['email'].strip().lower()

        user = get_store().update_user(user_id, changes)
        if not user:
            return not_found('User')
        log_action(session['user_id'], 'update_user', {'target_user': user_id, 'fields': sorted(changes)})
        return jsonify({'success': True, 'user': public_user(user)})
    except Exception as e:
        return error_response(e, 'Update user')


@app.route('/api/users-management/<int:user_id>', methods=['DELETE'])
@permission_required('user_management')
def api_delete_user(user_id):
    try:
        if user_id == session['user_id']:
            return jsonify({'success': False, 'error': 'You cannot delete your own account'}), 400
        if not get_store().delete_user(user_id):
            return not_found('User')
        log_action(session['user_id'], 'delete_user', {'target_user': user_id})
        return jsonify({'success': True})
    except Exception as e:
        return error_response(e, 'Delete user')


# ============================================================================
# ROUTES - ACHIEVEMENTS
# ============================================================================

@app.route('/api/achievement-badges')
@login_required
def api_get_badges():
    try:
        return jsonify({'success': True, 'badges': get_store().get_achievement_badges()})
    except Exception as e:
        return error_response(e, 'Get badges')


@app.route('/api/achievement-badges', methods=['POST'])
@admin_required
def api_create_badge():
    try:
        badge = get_store().create_achievement_badge(AchievementBadge.from_payload(request_data()))
        return jsonify({'success': True, 'badge': badge}), 201
    except Exception as e:
        return error_response(e, 'Create badge')


@app.route('/api/user-achievements/<int:user_id>')
@login_required
def api_get_user_achievements(user_id):
    try:
        return jsonify({'success': True, 'achievements': get_store().get_user_achievements(user_id)})
    except Exception as e:
        return error_response(e, 'Get achievements')


@app.route('/api/award-badge', methods=['POST'])
@login_required
def api_award_badge():
    try:
        data = request_data(with_user=True)
        badge_id = data.get('badgeId')
        if not badge_id:
            return jsonify({'success': False, 'error': 'badgeId is required'}), 400
        try:
            achievement = get_store().award_badge(int(data['userId']), int(badge_id))
        except LookupError:
            return not_found('Badge')
        log_action(session['user_id'], 'award_badge', {'badge_id': badge_id, 'target_user': data['userId']})
        return jsonify({'success': True, 'achievement': achievement})
    except Exception as e:
        return error_response(e, 'Award badge')


# ============================================================================
# ROUTES - ECC IMPLEMENTATION
# ============================================================================

@app.route('/api/ecc-projects/<int:ciso_user_id>')
@login_required
def api_get_ecc_projects(ciso_user_id):
    try:
        return jsonify({'success': True, 'projects': get_store().get_ecc_projects(ciso_user_id)})
    except Exception as e:
        return error_response(e, 'Get ECC projects')


@app.route('/api/ecc-projects/project/<int:project_id>')
@login_required
def api_get_ecc_project(project_id):
    try:
        project = get_store().get_ecc_project(project_id)
        if not project:
            return not_found('Project')
        return jsonify({'success': True, 'project': project})
    except Exception as e:
        return error_response(e, 'Get ECC project')


@app.route('/api/ecc-projects', methods=['POST'])
@login_required
def api_create_ecc_project():
    try:
        data = request_data()
        data.setdefault('cisoUserId', session['user_id'])
        project = get_store().create_ecc_project(EccProject.from_payload(data))
        log_action(session['user_id'], 'create_ecc_project', {'project_id': project['id']})
        return jsonify({'success': True, 'project': project}), 201
    except Exception as e:
        return error_response(e, 'Create ECC project')


@app.route('/api/ecc-projects/<int:project_id>', methods=['PUT'])
@login_required
def api_update_ecc_project(project_id):
    try:
        project = get_store().update_ecc_project(project_id, to_columns(request_data(), EccProject))
        if not project:
            return not_found('Project')
        return jsonify({'success': True, 'project': project})
    except Exception as e:
        return error_response(e, 'Update ECC project')


@app.route('/api/ecc-projects/<int:project_id>', methods=['DELETE'])
@login_required
def api_delete_ecc_project(project_id):
    try:
        if not get_store().delete_ecc_project(project_id):
            return not_found('Project')
        log_action(session['user_id'], 'delete_ecc_project', {'project_id': project_id})
        return jsonify({'success': True})
    except Exception as e:
        return error_response(e, 'Delete ECC project')


@app.route('/api/ecc-gap-assessments/<int:project_id>')
@login_required
def api_get_gap_assessments(project_id):
    try:
        return jsonify({'success': True, 'assessments': get_store().get_ecc_gap_assessments(project_id)})
    except Exception as e:
        return error_response(e, 'Get gap assessments')


@app.route('/api/ecc-gap-assessments', methods=['POST'])
@login_required
def api_create_gap_assessment():
    try:
        data = request_data()
        data.setdefault('assessedBy', session['user_id'])
        assessment = get_store().create_ecc_gap_assessment(EccGapAssessment.from_payload(data))
        return jsonify({'success': True, 'assessment': assessment}), 201
    except Exception as e:
        return error_response(e, 'Create gap assessment')


@app.route('/api/ecc-gap-assessments/<int:assessment_id>', methods=['PUT'])
@login_required
def api_update_gap_assessment(assessment_id):
    try:
        assessment = get_store().update_ecc_gap_assessment(assessment_id, to_columns(request_data(), EccGapAssessment))
        if not assessment:
            return not_found('Gap assessment')
        return jsonify({'success': True, 'assessment': assessment})
    except Exception as e:
        return error_response(e, 'Update gap assessment')


@app.route('/api/ecc-risk-assessments/<int:project_id>')
@login_required
def api_get_ecc_risk_assessments(project_id):
    try:
        assessments = get_store().get_ecc_risk_assessments(project_id, query_int('gapAssessmentId'))
        return jsonify({'success': True, 'assessments': assessments})
    except Exception as e:
        return error_response(e, 'Get risk assessments')


@app.route('/api/ecc-risk-assessments', methods=['POST'])
@login_required
def api_create_ecc_risk_assessment():
    try:
        data = request_data()
        data.setdefault('assessedBy', session['user_id'])
        assessment = get_store().create_ecc_risk_assessment(EccRiskAssessment.from_payload(data))
        return jsonify({'success': True, 'assessment': assessment}), 201
    except Exception as e:
        return error_response(e, 'Create risk assessment')


@app.route('/api/ecc-risk-assessments/<int:assessment_id>', methods=['PUT'])
@login_required
def api_update_ecc_risk_assessment(assessment_id):
    try:
        changes = to_columns(request_data(), EccRiskAssessment)
        if changes.get('risk_level'):
            changes['risk_level'] = str(changes['risk_level']).lower()
        assessment = get_store().update_ecc_risk_assessment(assessment_id, changes)
        if not assessment:
            return not_found('Risk assessment')
        return jsonify({'success': True, 'assessment': assessment})
    except Exception as e:
        return error_response(e, 'Update risk assessment')


@app.route('/api/ecc-roadmap-tasks/<int:project_id>')
@login_required
def api_get_roadmap_tasks(project_id):
    try:
        tasks = get_store().get_ecc_roadmap_tasks(project_id, request.args.get('status'))
        return jsonify({'success': True, 'tasks': tasks})
    except Exception as e:
        return error_response(e, 'Get roadmap tasks')


@app.route('/api/ecc-roadmap-tasks', methods=['POST'])
@login_required
def api_create_roadmap_task():
    try:
        task = get_store().create_ecc_roadmap_task(EccRoadmapTask.from_payload(request_data()))
        return jsonify({'success': True, 'task': task}), 201
    except Exception as e:
        return error_response(e, 'Create roadmap task')


@app.route('/api/ecc-roadmap-tasks/<int:task_id>', methods=['PUT'])
@login_required
def api_update_roadmap_task(task_id):
    try:
        task = get_store().update_ecc_roadmap_task(task_id, to_columns(request_data(), EccRoadmapTask))
        if not task:
            return not_found('Task')
        return jsonify({'success': True, 'task': task})
    except Exception as e:
        return error_response(e, 'Update roadmap task')


@app.route('/api/ecc-roadmap-tasks/<int:task_id>', methods=['DELETE'])
@login_required
def api_delete_roadmap_task(task_id):
    try:
        if not get_store().delete_ecc_roadmap_task(task_id):
            return not_found('Task')
        return jsonify({'success': True})
    except Exception as e:
        return error_response(e, 'Delete roadmap task')


@app.route('/api/ecc-training-modules')
@login_required
def api_get_training_modules():
    try:
        is_active = parse_bool(request.args.get('isActive'), 'isActive')
        return jsonify({'success': True, 'modules': get_store().get_ecc_training_modules(is_active)})
    except Exception as e:
        return error_response(e, 'Get training modules')


@app.route('/api/ecc-training-modules', methods=['POST'])
@login_required
def api_create_training_module():
    try:
        module = get_store().create_ecc_training_module(EccTrainingModule.from_payload(request_data()))
        return jsonify({'success': True, 'module': module}), 201
    except Exception as e:
        return error_response(e, 'Create training module')


@app.route('/api/ecc-user-training/<int:project_id>/<int:user_id>')
@login_required
def api_get_user_training(project_id, user_id):
    try:
        return jsonify({'success': True, 'training': get_store().get_ecc_user_training(project_id, user_id)})
    except Exception as e:
        return error_response(e, 'Get user training')


@app.route('/api/ecc-user-training', methods=['POST'])
@login_required
def api_create_user_training():
    try:
        training = get_store().create_ecc_user_training(EccUserTraining.from_payload(request_data(with_user=True)))
        return jsonify({'success': True, 'training': training}), 201
    except Exception as e:
        return error_response(e, 'Create user training')


@app.route('/api/ecc-user-training/<int:training_id>', methods=['PUT'])
@login_required
def api_update_user_training(training_id):
    try:
        training = get_store().update_ecc_user_training(training_id, to_columns(request_data(), EccUserTraining))
        if not training:
            return not_found('Training record')
        return jsonify({'success': True, 'training': training})
    except Exception as e:
        return error_response(e, 'Update user training')


# ============================================================================
# ROUTES - ROLES, ACTIVITIES, WORKSPACES
# ============================================================================

@app.route('/api/roles')
@login_required
def api_get_roles():
    try:
        return jsonify({'success': True, 'roles': get_store().get_roles()})
    except Exception as e:
        return error_response(e, 'Get roles')


@app.route('/api/roles', methods=['POST'])
@admin_required
def api_create_role():
    try:
        data = request_data()
        name = (data.get('name') or '').strip()
        if not name:
            return jsonify({'success': False, 'error': 'name is required'}), 400
        permissions = data.get('permissions') or []
        if not isinstance(permissions, list):
            return jsonify({'success': False, 'error': 'permissions must be a list'}), 400
        role = get_store().create_role({
            'name': name,
            'description': data.get('description') or '',
            'permissions': permissions,
        })
        log_action(session['user_id'], 'create_role', {'role': name})
        return jsonify({'success': True, 'role': role}), 201
    except Exception as e:
        return error_response(e, 'Create role')


@app.route('/api/user-activities')
@login_required
def api_get_activities():
    try:
        activities = get_store().get_user_activities(query_int('userId'), query_int('limit'))
        return jsonify({'success': True, 'activities': activities})
    except Exception as e:
        return error_response(e, 'Get activities')


@app.route('/api/user-activities', methods=['POST'])
@login_required
def api_create_activity():
    try:
        data = request_data(with_user=True)
        action = (data.get('action') or '').strip()
        if not action:
            return jsonify({'success': False, 'error': 'action is required'}), 400
        activity = get_store().create_user_activity({
            'user_id': int(data['userId']),
            'action': action,
            'metadata': data.get('metadata') or {},
            'created_at': datetime.now().isoformat(),
        })
        return jsonify({'success': True, 'activity': activity}), 201
    except Exception as e:
        return error_response(e, 'Create activity')


@app.route('/api/user-workspaces/<int:user_id>')
@login_required
def api_get_workspaces(user_id):
    try:
        return jsonify({'success': True, 'workspaces': get_store().get_user_workspaces(user_id)})
    except Exception as e:
        return error_response(e, 'Get workspaces')


@app.route('/api/user-workspaces', methods=['POST'])
@login_required
def api_create_workspace():
    try:
        data = request_data(with_user=True)
        name = (data.get('name') or '').strip()
        if not name:
            return jsonify({'success': False, 'error': 'name is required'}), 400
        workspace = get_store().create_user_workspace({
            'user_id': int(data['userId']),
            'name': name,
            'description': data.get('description') or '',
            'settings': data.get('settings') or {},
            'created_at': datetime.now().isoformat(),
        })
        return jsonify({'success': True, 'workspace': workspace}), 201
    except Exception as e:
        return error_response(e, 'Create workspace')


# ============================================================================
# ROUTES - FILE UPLOADS
# ============================================================================

def _upload_url(category):
    try:
        slot, url = create_slot(get_store(), session['user_id'], category)
        return jsonify({'success': True, 'uploadURL': url, 'objectId': slot['object_id']})
    except UploadError as e:
        return jsonify({'success': False, 'error': str(e)}), e.status_code
    except Exception as e:
        print(f"Error getting upload URL: {e}", flush=True)
        return jsonify({'success': False, 'error': 'Failed to get upload URL'}), 500


@app.route('/api/upload/policy', methods=['POST'])
@login_required
def api_upload_policy_url():
    return _upload_url('policy')


@app.route('/api/upload/logo', methods=['POST'])
@login_required
def api_upload_logo_url():
    return _upload_url('logo')


@app.route('/api/upload/objects/<object_id>', methods=['PUT'])
def api_put_object(object_id):
    """Receive raw bytes for a reserved slot (authorised by the URL token)."""
    try:
        max_bytes = config.MAX_UPLOAD_MB * 1024 * 1024
        if request.content_length and request.content_length > max_bytes:
            return jsonify({'success': False, 'error': f'File exceeds the {config.MAX_UPLOAD_MB} MB limit'}), 413
        slot = store_object(get_store(), config.UPLOAD_DIR, object_id, request.args.get('token'),
                            request.get_data(), request.content_type, max_bytes)
        return jsonify({'success': True, 'objectId': object_id, 'size': slot['size']})
    except UploadError as e:
        return jsonify({'success': False, 'error': str(e)}), e.status_code
    except Exception as e:
        return error_response(e, 'Object upload')


@app.route('/api/upload/objects/<object_id>')
@login_required
def api_get_object(object_id):
    try:
        slot = stored_object(get_store(), object_id)
        if not slot:
            return not_found('Object')
        return send_file(os.path.abspath(slot['stored_path']), mimetype=slot['content_type'] or 'application/octet-stream')
    except Exception as e:
        return error_response(e, 'Get object')


@app.route('/api/upload/complete', methods=['POST'])
@login_required
def api_complete_upload():
    try:
        record = complete_upload(get_store(), session['user_id'], request_data())
        log_action(session['user_id'], 'upload_file', {'file_id': record['id'], 'category': record['category']})
        return jsonify({
            'success': True,
            'fileId': record['id'],
            'fileName': record['file_name'],
            'fileType': record['file_type'],
            'fileUrl': record['file_url'],
            'category': record['category'],
            'uploadedAt': record['uploaded_at'],
        })
    except UploadError as e:
        return jsonify({'success': False, 'error': str(e)}), e.status_code
    except Exception as e:
        print(f"Error completing upload: {e}", flush=True)
        return jsonify({'success': False, 'error': 'Failed to complete upload'}), 500


if __name__ == '__main__':
    app.run(debug=os.getenv('FLASK_ENV') != 'production', host='0.0.0.0', port=int(os.getenv('PORT', '5000')))
