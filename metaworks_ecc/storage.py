"""Compliance store - SQLite persistence for the dashboard API"""

import json
import sqlite3
from datetime import datetime
from typing import List, Optional

from .models import as_row, parse_bool


SCHEMA = '''
    CREATE TABLE IF NOT EXISTS users (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        username TEXT UNIQUE NOT NULL,
        email TEXT UNIQUE,
        password_hash TEXT NOT NULL,
        first_name TEXT,
        last_name TEXT,
        role TEXT DEFAULT 'Employee',
        department TEXT,
        status TEXT DEFAULT 'Active',
        permissions TEXT DEFAULT '[]',
        is_active INTEGER DEFAULT 1,
        phone_number TEXT,
        preferences TEXT DEFAULT '{}',
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        last_login TIMESTAMP
    );

    CREATE TABLE IF NOT EXISTS assessments (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        user_id INTEGER NOT NULL,
        domain TEXT NOT NULL,
        score INTEGER NOT NULL,
        completed_at TEXT NOT NULL,
        FOREIGN KEY (user_id) REFERENCES users (id)
    );

    CREATE TABLE IF NOT EXISTS policies (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        user_id INTEGER NOT NULL,
        domain TEXT NOT NULL,
        subdomain TEXT,
        content TEXT NOT NULL,
        language TEXT DEFAULT 'en',
        generated_at TEXT NOT NULL,
        FOREIGN KEY (user_id) REFERENCES users (id)
    );

    CREATE TABLE IF NOT EXISTS vulnerabilities (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        user_id INTEGER NOT NULL,
        assessment_id INTEGER,
        domain TEXT NOT NULL,
        subdomain TEXT,
        title TEXT NOT NULL,
        description TEXT,
        severity TEXT DEFAULT 'Medium',
        status TEXT DEFAULT 'Open',
        impact TEXT,
        risk TEXT,
        created_at TEXT NOT NULL,
        FOREIGN KEY (user_id) REFERENCES users (id)
    );

    CREATE TABLE IF NOT EXISTS risk_management_plans (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        user_id INTEGER NOT NULL,
        vulnerability_id INTEGER,
        title TEXT NOT NULL,
        description TEXT,
        risk_level TEXT,
        mitigation_strategy TEXT,
        responsible_party TEXT,
        target_date TEXT,
        budget TEXT,
        status TEXT DEFAULT 'Planned',
        progress INTEGER DEFAULT 0,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL,
        FOREIGN KEY (vulnerability_id) REFERENCES vulnerabilities (id)
    );

    CREATE TABLE IF NOT EXISTS risk_register (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        category TEXT NOT NULL,
        subcategory TEXT,
        title TEXT NOT NULL,
        description TEXT,
        risk_level TEXT,
        impact TEXT,
        likelihood TEXT,
        threats TEXT DEFAULT '[]',
        vulnerabilities TEXT DEFAULT '[]',
        assets TEXT DEFAULT '[]',
        controls TEXT DEFAULT '[]',
        mitigation_strategies TEXT DEFAULT '[]',
        compliance_frameworks TEXT DEFAULT '[]',
        tags TEXT DEFAULT '[]',
        is_active INTEGER DEFAULT 1,
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    );

    CREATE TABLE IF NOT EXISTS achievement_badges (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        name TEXT NOT NULL,
        description TEXT,
        category TEXT,
        icon TEXT,
        points INTEGER DEFAULT 0,
        criteria TEXT,
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    );

    CREATE TABLE IF NOT EXISTS user_achievements (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        user_id INTEGER NOT NULL,
        badge_id INTEGER NOT NULL,
        earned_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        UNIQUE (user_id, badge_id),
        FOREIGN KEY (badge_id) REFERENCES achievement_badges (id)
    );

    CREATE TABLE IF NOT EXISTS roles (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        name TEXT UNIQUE NOT NULL,
        description TEXT,
        permissions TEXT DEFAULT '[]'
    );

    CREATE TABLE IF NOT EXISTS user_activities (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        user_id INTEGER,
        action TEXT NOT NULL,
        metadata TEXT,
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    );

    CREATE TABLE IF NOT EXISTS user_workspaces (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        user_id INTEGER NOT NULL,
        name TEXT NOT NULL,
        description TEXT,
        settings TEXT DEFAULT '{}',
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    );

    CREATE TABLE IF NOT EXISTS ecc_projects (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        ciso_user_id INTEGER NOT NULL,
        name TEXT NOT NULL,
        organization TEXT,
        description TEXT,
        status TEXT DEFAULT 'planning',
        start_date TEXT,
        target_date TEXT,
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    );

    CREATE TABLE IF NOT EXISTS ecc_gap_assessments (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        project_id INTEGER NOT NULL,
        overall_compliance_score INTEGER DEFAULT 0,
        domain_scores TEXT DEFAULT '{}',
        control_assessments TEXT,
        high_risk_controls TEXT,
        recommendations TEXT,
        assessed_by INTEGER,
        assessment_type TEXT,
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        FOREIGN KEY (project_id) REFERENCES ecc_projects (id)
    );

    CREATE TABLE IF NOT EXISTS ecc_risk_assessments (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        project_id INTEGER NOT NULL,
        gap_assessment_id INTEGER,
        control_id TEXT NOT NULL,
        risk_level TEXT,
        impact TEXT,
        likelihood TEXT,
        risk_score INTEGER DEFAULT 0,
        mitigation_status TEXT DEFAULT 'identified',
        assessed_by INTEGER,
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        FOREIGN KEY (project_id) REFERENCES ecc_projects (id)
    );

    CREATE TABLE IF NOT EXISTS ecc_roadmap_tasks (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        project_id INTEGER NOT NULL,
        title TEXT NOT NULL,
        description TEXT,
        control_id TEXT,
        priority TEXT DEFAULT 'medium',
        status TEXT DEFAULT 'todo',
        assigned_to INTEGER,
        due_date TEXT,
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        FOREIGN KEY (project_id) REFERENCES ecc_projects (id)
    );

    CREATE TABLE IF NOT EXISTS ecc_training_modules (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        title TEXT NOT NULL,
        description TEXT,
        content TEXT,
        domain TEXT,
        duration_minutes INTEGER DEFAULT 30,
        is_active INTEGER DEFAULT 1,
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    );

    CREATE TABLE IF NOT EXISTS ecc_user_training (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        project_id INTEGER NOT NULL,
        user_id INTEGER NOT NULL,
        module_id INTEGER NOT NULL,
        status TEXT DEFAULT 'not_started',
        progress INTEGER DEFAULT 0,
        score INTEGER,
        completed_at TEXT,
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        FOREIGN KEY (module_id) REFERENCES ecc_training_modules (id)
    );

    CREATE TABLE IF NOT EXISTS upload_slots (
        object_id TEXT PRIMARY KEY,
        token TEXT NOT NULL,
        user_id INTEGER,
        category TEXT NOT NULL,
        expires_at TEXT NOT NULL,
        stored_path TEXT,
        size INTEGER,
        content_type TEXT
    );

    CREATE TABLE IF NOT EXISTS uploaded_files (
        id TEXT PRIMARY KEY,
        user_id INTEGER,
        object_id TEXT,
        file_name TEXT NOT NULL,
        file_type TEXT,
        file_url TEXT,
        category TEXT DEFAULT 'document',
        size INTEGER,
        uploaded_at TEXT NOT NULL
    );
'''

# Columns stored as JSON text
JSON_COLUMNS = {
    'permissions', 'preferences', 'threats', 'vulnerabilities', 'assets',
    'controls', 'mitigation_strategies', 'compliance_frameworks', 'tags',
    'domain_scores', 'settings', 'metadata',
}

# Columns stored as 0/1
BOOL_COLUMNS = {'is_active'}

# Tables that carry an updated_at stamp
STAMPED_TABLES = {
    'risk_management_plans', 'risk_register', 'ecc_projects',
    'ecc_gap_assessments', 'ecc_risk_assessments', 'ecc_roadmap_tasks',
    'ecc_user_training',
}


# Rows are stamped from Python so inserts and updates share one format
TIMESTAMP_COLUMNS = ('created_at', 'updated_at')


def _timestamp():
    return datetime.now().isoformat()


def init_schema(conn):
    """Create all tables (idempotent)"""
    conn.executescript(SCHEMA)
    conn.commit()


def _encode(column, value):
    if column in JSON_COLUMNS and value is not None and not isinstance(value, str):
        return json.dumps(value, default=str)
    if column in BOOL_COLUMNS and value is not None:
        return 1 if parse_bool(value, column) else 0
    return value


def _decode(row) -> Optional[dict]:
    if row is None:
        return None
    item = dict(row)
    for key, value in item.items():
        if key in JSON_COLUMNS and isinstance(value, str):
            try:
                item[key] = json.loads(value)
            except ValueError:
                pass
        elif key in BOOL_COLUMNS and value is not None:
            item[key] = bool(value)
    return item


class ComplianceStore:
    """Row-level access to the compliance tables"""

    def __init__(self, conn: sqlite3.Connection):
        self.conn = conn
        self.conn.row_factory = sqlite3.Row
        self._columns = {}

    # -- generic helpers ---------------------------------------------------

    def columns(self, table: str) -> List[str]:
        if table not in self._columns:
            info = self.conn.execute(f'PRAGMA table_info({table})').fetchall()
            self._columns[table] = [col['name'] for col in info]
        return self._columns[table]

    def _insert(self, table: str, row: dict, key: str = 'id') -> dict:
        allowed = self.columns(table)
        now = _timestamp()
        row = dict(row)
        for column in TIMESTAMP_COLUMNS:
            if column in allowed and not row.get(column):
                row[column] = now
        row = {k: _encode(k, v) for k, v in row.items() if k in allowed}
        if key == 'id' and row.get('id') is None:
            row.pop('id', None)
        names = ', '.join(row)
        marks = ', '.join('?' for _ in row)
        cursor = self.conn.execute(f'INSERT INTO {table} ({names}) VALUES ({marks})', list(row.values()))
        self.conn.commit()
        if key == 'id' and 'id' not in row:
            return self._get(table, cursor.lastrowid)
        return self._get(table, row[key], key)

    def _get(self, table: str, value, key: str = 'id') -> Optional[dict]:
        row = self.conn.execute(f'SELECT * FROM {table} WHERE {key} = ?', (value,)).fetchone()
        return _decode(row)

    def _select(self, table: str, where: dict = None, order: str = 'id') -> List[dict]:
        query = f'SELECT * FROM {table}'
        params = []
        clauses = []
        for column, value in (where or {}).items():
            if value is None:
                continue
            clauses.append(f'{column} = ?')
            params.append(_encode(column, value))
        if clauses:
            query += ' WHERE ' + ' AND '.join(clauses)
        query += f' ORDER BY {order}'
        return [_decode(r) for r in self.conn.execute(query, params).fetchall()]

    def _update(self, table: str, row_id: int, changes: dict) -> Optional[dict]:
        if self._get(table, row_id) is None:
            return None
        allowed = set(self.columns(table)) - {'id', 'created_at'}
        fields = []
        params = []
        for column, value in changes.items():
            if column in allowed and column != 'updated_at':
                fields.append(f'{column} = ?')
                params.append(_encode(column, value))
        if table in STAMPED_TABLES:
            fields.append('updated_at = ?')
            params.append(_timestamp())
        if fields:
            params.append(row_id)
            self.conn.execute(f'UPDATE {table} SET {", ".join(fields)} WHERE id = ?', params)
            self.conn.commit()
        return self._get(table, row_id)

    def _delete(self, table: str, row_id) -> bool:
        cursor = self.conn.execute(f'DELETE FROM {table} WHERE id = ?', (row_id,))
        self.conn.commit()
        return cursor.rowcount > 0

    def count(self, table: str) -> int:
        return self.conn.execute(f'SELECT COUNT(*) FROM {table}').fetchone()[0]

    # -- users -------------------------------------------------------------

    def get_user(self, user_id: int) -> Optional[dict]:
        return self._get('users', user_id)

    def get_user_by_username(self, username: str) -> Optional[dict]:
        return self._get('users', username, 'username')

    def get_user_by_email(self, email: str) -> Optional[dict]:
        return self._get('users', email.lower(), 'email')

    def list_users(self) -> List[dict]:
        return self._select('users')

    def create_user(self, account) -> dict:
        row = as_row(account) if not isinstance(account, dict) else dict(account)
        if row.get('email'):
            row['email'] = row['email'].lower()
        return self._insert('users', row)

    def update_user(self, user_id: int, changes: dict) -> Optional[dict]:
        return self._update('users', user_id, changes)

    def delete_user(self, user_id: int) -> bool:
        return self._delete('users', user_id)

    def touch_login(self, user_id: int):
        self.conn.execute('UPDATE users SET last_login = ? WHERE id = ?', (_timestamp(), user_id))
        self.conn.commit()

    # -- assessments and policies -------------------------------------------

    def get_assessments(self, user_id: int) -> List[dict]:
        return self._select('assessments', {'user_id': user_id})

    def create_assessment(self, assessment) -> dict:
        return self._insert('assessments', as_row(assessment))

    def get_policies(self, user_id: int) -> List[dict]:
        return self._select('policies', {'user_id': user_id})

    def get_policy(self, policy_id: int) -> Optional[dict]:
        return self._get('policies', policy_id)

    def create_policy(self, policy) -> dict:
        return self._insert('policies', as_row(policy))

    # -- vulnerabilities -----------------------------------------------------

    def get_vulnerabilities(self, user_id: int, assessment_id: Optional[int] = None) -> List[dict]:
        return self._select('vulnerabilities', {'user_id': user_id, 'assessment_id': assessment_id})

    def get_vulnerabilities_by_domain(self, user_id: int, domain: str) -> List[dict]:
        return self._select('vulnerabilities', {'user_id': user_id, 'domain': domain})

    def create_vulnerability(self, vulnerability) -> dict:
        return self._insert('vulnerabilities', as_row(vulnerability))

    # -- risk management plans ----------------------------------------------

    def get_risk_management_plans(self, user_id: int, vulnerability_id: Optional[int] = None) -> List[dict]:
        return self._select('risk_management_plans', {'user_id': user_id, 'vulnerability_id': vulnerability_id})

    def get_risk_management_plan(self, plan_id: int) -> Optional[dict]:
        return self._get('risk_management_plans', plan_id)

    def create_risk_management_plan(self, plan) -> dict:
        return self._insert('risk_management_plans', as_row(plan))

    def update_risk_management_plan(self, plan_id: int, changes: dict) -> Optional[dict]:
        return self._update('risk_management_plans', plan_id, changes)

    def delete_risk_management_plan(self, plan_id: int) -> bool:
        return self._delete('risk_management_plans', plan_id)

    # -- risk register -------------------------------------------------------

    def get_risk_register(self, category: Optional[str] = None, risk_level: Optional[str] = None) -> List[dict]:
        return self._select('risk_register', {'category': category, 'risk_level': risk_level})

    def get_risk_register_entry(self, entry_id: int) -> Optional[dict]:
        return self._get('risk_register', entry_id)

    def create_risk_register_entry(self, entry) -> dict:
        row = as_row(entry) if not isinstance(entry, dict) else dict(entry)
        return self._insert('risk_register', row)

    def update_risk_register_entry(self, entry_id: int, changes: dict) -> Optional[dict]:
        return self._update('risk_register', entry_id, changes)

    def delete_risk_register_entry(self, entry_id: int) -> bool:
        return self._delete('risk_register', entry_id)

    # -- badges --------------------------------------------------------------

    def get_achievement_badges(self) -> List[dict]:
        return self._select('achievement_badges')

    def create_achievement_badge(self, badge) -> dict:
        return self._insert('achievement_badges', as_row(badge))

    def get_user_achievements(self, user_id: int) -> List[dict]:
        rows = self.conn.execute('''
            SELECT ua.id, ua.user_id, ua.badge_id, ua.earned_at,
                   b.name, b.description, b.category, b.icon, b.points
            FROM user_achievements ua
            JOIN achievement_badges b ON b.id = ua.badge_id
            WHERE ua.user_id = ?
            ORDER BY ua.earned_at
        ''', (user_id,)).fetchall()
        return [dict(r) for r in rows]

    def award_badge(self, user_id: int, badge_id: int) -> dict:
        """Award a badge once; repeat awards return the existing row"""
        if self._get('achievement_badges', badge_id) is None:
            raise LookupError(f"Badge {badge_id} not found")
        self.conn.execute(
            'INSERT OR IGNORE INTO user_achievements (user_id, badge_id, earned_at) VALUES (?, ?, ?)',
            (user_id, badge_id, _timestamp())
        )
        self.conn.commit()
        row = self.conn.execute(
            'SELECT * FROM user_achievements WHERE user_id = ? AND badge_id = ?',
            (user_id, badge_id)
        ).fetchone()
        return dict(row)

    # -- roles, activities, workspaces ----------------------------------------

    def get_roles(self) -> List[dict]:
        return self._select('roles')

    def create_role(self, role: dict) -> dict:
        return self._insert('roles', role)

    def get_user_activities(self, user_id: Optional[int] = None, limit: Optional[int] = None) -> List[dict]:
        query = 'SELECT * FROM user_activities'
        params = []
        if user_id is not None:
            query += ' WHERE user_id = ?'
            params.append(user_id)
        query += ' ORDER BY id DESC'
        if limit:
            query += ' LIMIT ?'
            params.append(int(limit))
        return [_decode(r) for r in self.conn.execute(query, params).fetchall()]

    def create_user_activity(self, activity: dict) -> dict:
        return self._insert('user_activities', activity)

    def get_user_workspaces(self, user_id: int) -> List[dict]:
        return self._select('user_workspaces', {'user_id': user_id})

    def create_user_workspace(self, workspace: dict) -> dict:
        return self._insert('user_workspaces', workspace)

    # -- ECC implementation ---------------------------------------------------

    def get_ecc_projects(self, ciso_user_id: int) -> List[dict]:
        return self._select('ecc_projects', {'ciso_user_id': ciso_user_id})

    def get_ecc_project(self, project_id: int) -> Optional[dict]:
        return self._get('ecc_projects', project_id)

    def create_ecc_project(self, project) -> dict:
        return self._insert('ecc_projects', as_row(project))

    def update_ecc_project(self, project_id: int, changes: dict) -> Optional[dict]:
        return self._update('ecc_projects', project_id, changes)

    def delete_ecc_project(self, project_id: int) -> bool:
        return self._delete('ecc_projects', project_id)

    def get_ecc_gap_assessments(self, project_id: int) -> List[dict]:
        return self._select('ecc_gap_assessments', {'project_id': project_id})

    def create_ecc_gap_assessment(self, assessment) -> dict:
        return self._insert('ecc_gap_assessments', as_row(assessment))

    def update_ecc_gap_assessment(self, assessment_id: int, changes: dict) -> Optional[dict]:
        return self._update('ecc_gap_assessments', assessment_id, changes)

    def get_ecc_risk_assessments(self, project_id: int, gap_assessment_id: Optional[int] = None) -> List[dict]:
        return self._select('ecc_risk_assessments', {'project_id': project_id, 'gap_assessment_id': gap_assessment_id})

    def create_ecc_risk_assessment(self, assessment) -> dict:
        return self._insert('ecc_risk_assessments', as_row(assessment))

    def update_ecc_risk_assessment(self, assessment_id: int, changes: dict) -> Optional[dict]:
        return self._update('ecc_risk_assessments', assessment_id, changes)

    def get_ecc_roadmap_tasks(self, project_id: int, status: Optional[str] = None) -> List[dict]:
        return self._select('ecc_roadmap_tasks', {'project_id': project_id, 'status': status})

    def create_ecc_roadmap_task(self, task) -> dict:
        return self._insert('ecc_roadmap_tasks', as_row(task))

    def update_ecc_roadmap_task(self, task_id: int, changes: dict) -> Optional[dict]:
        return self._update('ecc_roadmap_tasks', task_id, changes)

    def delete_ecc_roadmap_task(self, task_id: int) -> bool:
        return self._delete('ecc_roadmap_tasks', task_id)

    def get_ecc_training_modules(self, is_active: Optional[bool] = None) -> List[dict]:
        return self._select('ecc_training_modules', {'is_active': is_active})

    def create_ecc_training_module(self, module) -> dict:
        return self._insert('ecc_training_modules', as_row(module))

    def get_ecc_user_training(self, project_id: int, user_id: int) -> List[dict]:
        return self._select('ecc_user_training', {'project_id': project_id, 'user_id': user_id})

    def create_ecc_user_training(self, training) -> dict:
        return self._insert('ecc_user_training', as_row(training))

    def update_ecc_user_training(self, training_id: int, changes: dict) -> Optional[dict]:
        return self._update('ecc_user_training', training_id, changes)

    # -- uploads ---------------------------------------------------------------

    def create_upload_slot(self, slot: dict) -> dict:
        return self._insert('upload_slots', slot, key='object_id')

    def get_upload_slot(self, object_id: str) -> Optional[dict]:
        return self._get('upload_slots', object_id, 'object_id')

    def mark_upload_stored(self, object_id: str, stored_path: str, size: int, content_type: str):
        self.conn.execute(
            'UPDATE upload_slots SET stored_path = ?, size = ?, content_type = ? WHERE object_id = ?',
            (stored_path, size, content_type, object_id)
        )
        self.conn.commit()

    def create_uploaded_file(self, record: dict) -> dict:
        return self._insert('uploaded_files', record)
