"""Core domain models for Metaworks ECC"""

from dataclasses import dataclass, field, asdict
from enum import Enum
from typing import List, Optional
from datetime import datetime


# NCA ECC areas tracked by assessments and policies
DOMAINS = (
    "Access Control",
    "Data Protection",
    "Network Security",
    "Incident Response",
    "Business Continuity",
)


class ValidationError(ValueError):
    """Raised when a request payload does not match the expected shape"""


class RiskLevel(Enum):
    """Risk severity levels"""
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"
    CRITICAL = "Critical"

    @classmethod
    def parse(cls, value, default=None):
        if value is None or value == "":
            if default is not None:
                return default
            raise ValidationError("riskLevel is required")
        for level in cls:
            if str(value).strip().lower() == level.value.lower():
                return level
        raise ValidationError(f"Invalid risk level: {value}")


class PlanStatus(Enum):
    """Risk management plan implementation status"""
    PLANNED = "Planned"
    IN_PROGRESS = "In Progress"
    COMPLETED = "Completed"
    ON_HOLD = "On Hold"

    @classmethod
    def parse(cls, value):
        if not value:
            return cls.PLANNED
        for status in cls:
            if str(value).strip().lower() == status.value.lower():
                return status
        raise ValidationError(f"Invalid plan status: {value}")


# ---------------------------------------------------------------------------
# Payload helpers
# ---------------------------------------------------------------------------

def _required(data, key, label=None):
    value = data.get(key)
    if value is None or (isinstance(value, str) and not value.strip()):
        raise ValidationError(f"{label or key} is required")
    return value.strip() if isinstance(value, str) else value


def _int(data, key, default=None, required=False):
    value = data.get(key)
    if value is None or value == "":
        if required:
            raise ValidationError(f"{key} is required")
        return default
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{key} must be an integer")


def _percent(data, key, default=0):
    value = _int(data, key, default)
    if value is not None and not 0 <= value <= 100:
        raise ValidationError(f"{key} must be between 0 and 100")
    return value


def _list(data, key):
    value = data.get(key) or []
    if isinstance(value, str):
        return [item.strip() for item in value.split(",") if item.strip()]
    if not isinstance(value, list):
        raise ValidationError(f"{key} must be a list")
    return [str(item) for item in value]


def parse_bool(value, name="value", default=None):
    """Read a JSON or query-string flag, rejecting anything that is not one"""
    if value is None or value == "":
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, int) and value in (0, 1):
        return bool(value)
    text = str(value).strip().lower()
    if text in ("true", "1", "yes"):
        return True
    if text in ("false", "0", "no"):
        return False
    raise ValidationError(f"{name} must be true or false")


def _now():
    return datetime.now().isoformat()


# ---------------------------------------------------------------------------
# Insert shapes
# ---------------------------------------------------------------------------

@dataclass
class Assessment:
    """A completed questionnaire score for one domain"""
    user_id: int
    domain: str
    score: int
    completed_at: str

    @classmethod
    def from_payload(cls, data: dict) -> "Assessment":
        domain = _required(data, "domain")
        if domain not in DOMAINS:
            raise ValidationError(f"Unknown domain: {domain}")
        score = _percent(data, "score", None)
        if score is None:
            raise ValidationError("score is required")
        return cls(
            user_id=_int(data, "userId", required=True),
            domain=domain,
            score=score,
            completed_at=data.get("completedAt") or _now(),
        )


@dataclass
class Policy:
    """A security policy document for a domain"""
    user_id: int
    domain: str
    content: str = ""
    subdomain: str = ""
    language: str = "en"
    generated_at: str = field(default_factory=_now)

    @classmethod
    def from_payload(cls, data: dict) -> "Policy":
        return cls(
            user_id=_int(data, "userId", required=True),
            domain=_required(data, "domain"),
            content=(data.get("content") or "").strip(),
            subdomain=(data.get("subdomain") or "").strip(),
            language=data.get("language") or "en",
            generated_at=data.get("generatedAt") or _now(),
        )


@dataclass
class Vulnerability:
    """A weakness logged against a domain during an assessment"""
    user_id: int
    domain: str
    title: str
    assessment_id: Optional[int] = None
    subdomain: str = ""
    description: str = ""
    severity: str = "Medium"
    status: str = "Open"
    impact: str = ""
    risk: str = ""
    created_at: str = field(default_factory=_now)

    @classmethod
    def from_payload(cls, data: dict) -> "Vulnerability":
        return cls(
            user_id=_int(data, "userId", required=True),
            domain=_required(data, "domain"),
            title=_required(data, "title"),
            assessment_id=_int(data, "assessmentId"),
            subdomain=data.get("subdomain") or "",
            description=data.get("description") or "",
            severity=RiskLevel.parse(data.get("severity"), RiskLevel.MEDIUM).value,
            status=data.get("status") or "Open",
            impact=data.get("impact") or "",
            risk=data.get("risk") or "",
            created_at=data.get("createdAt") or _now(),
        )


@dataclass
class RiskManagementPlan:
    """Mitigation plan for an identified risk"""
    user_id: int
    title: str
    description: str
    risk_level: str
    mitigation_strategy: str
    responsible_party: str
    target_date: str
    vulnerability_id: Optional[int] = None
    budget: str = ""
    status: str = PlanStatus.PLANNED.value
    progress: int = 0
    created_at: str = field(default_factory=_now)
    updated_at: str = field(default_factory=_now)

    @classmethod
    def from_payload(cls, data: dict) -> "RiskManagementPlan":
        now = _now()
        return cls(
            user_id=_int(data, "userId", required=True),
            title=_required(data, "title"),
            description=_required(data, "description"),
            risk_level=RiskLevel.parse(data.get("riskLevel"), RiskLevel.HIGH).value,
            mitigation_strategy=_required(data, "mitigationStrategy"),
            responsible_party=_required(data, "responsibleParty"),
            target_date=_required(data, "targetDate"),
            vulnerability_id=_int(data, "vulnerabilityId"),
            budget=data.get("budget") or "",
            status=PlanStatus.parse(data.get("status")).value,
            progress=_percent(data, "progress", 0),
            created_at=data.get("createdAt") or now,
            updated_at=data.get("updatedAt") or now,
        )


@dataclass
class RiskRegisterEntry:
    """A catalogued cybersecurity risk"""
    category: str
    title: str
    description: str
    risk_level: str
    subcategory: str = ""
    impact: str = ""
    likelihood: str = ""
    threats: List[str] = field(default_factory=list)
    vulnerabilities: List[str] = field(default_factory=list)
    assets: List[str] = field(default_factory=list)
    controls: List[str] = field(default_factory=list)
    mitigation_strategies: List[str] = field(default_factory=list)
    compliance_frameworks: List[str] = field(default_factory=list)
    tags: List[str] = field(default_factory=list)
    is_active: bool = True

    @classmethod
    def from_payload(cls, data: dict) -> "RiskRegisterEntry":
        return cls(
            category=_required(data, "category"),
            title=_required(data, "title"),
            description=_required(data, "description"),
            risk_level=RiskLevel.parse(data.get("riskLevel")).value,
            subcategory=data.get("subcategory") or "",
            impact=data.get("impact") or "",
            likelihood=data.get("likelihood") or "",
            threats=_list(data, "threats"),
            vulnerabilities=_list(data, "vulnerabilities"),
            assets=_list(data, "assets"),
            controls=_list(data, "controls"),
            mitigation_strategies=_list(data, "mitigationStrategies"),
            compliance_frameworks=_list(data, "complianceFrameworks"),
            tags=_list(data, "tags"),
            is_active=parse_bool(data.get("isActive"), "isActive", True),
        )


@dataclass
class UserAccount:
    """A platform user with a role and permission set"""
    username: str
    email: str
    password_hash: str
    first_name: str
    last_name: str
    role: str
    department: str
    status: str = "Active"
    permissions: List[str] = field(default_factory=list)
    is_active: bool = True
    phone_number: Optional[str] = None
    preferences: dict = field(default_factory=dict)


@dataclass
class AchievementBadge:
    """A training or compliance badge"""
    name: str
    description: str = ""
    category: str = "general"
    icon: str = ""
    points: int = 0
    criteria: str = ""

    @classmethod
    def from_payload(cls, data: dict) -> "AchievementBadge":
        return cls(
            name=_required(data, "name"),
            description=data.get("description") or "",
            category=data.get("category") or "general",
            icon=data.get("icon") or "",
            points=_int(data, "points", 0),
            criteria=data.get("criteria") or "",
        )


@dataclass
class EccProject:
    """An ECC implementation project run by a CISO"""
    ciso_user_id: int
    name: str
    organization: str = ""
    description: str = ""
    status: str = "planning"
    start_date: str = ""
    target_date: str = ""

    @classmethod
    def from_payload(cls, data: dict) -> "EccProject":
        return cls(
            ciso_user_id=_int(data, "cisoUserId", required=True),
            name=_required(data, "name"),
            organization=data.get("organization") or "",
            description=data.get("description") or "",
            status=data.get("status") or "planning",
            start_date=data.get("startDate") or "",
            target_date=data.get("targetDate") or "",
        )


@dataclass
class EccGapAssessment:
    """Result of a gap assessment against the ECC controls"""
    project_id: int
    overall_compliance_score: int
    assessed_by: int
    domain_scores: dict = field(default_factory=dict)
    control_assessments: str = ""
    high_risk_controls: str = ""
    recommendations: str = ""
    assessment_type: str = "comprehensive-gap-assessment"

    @classmethod
    def from_payload(cls, data: dict) -> "EccGapAssessment":
        domain_scores = data.get("domainScores") or {}
        if not isinstance(domain_scores, dict):
            raise ValidationError("domainScores must be an object")
        return cls(
            project_id=_int(data, "projectId", required=True),
            overall_compliance_score=_percent(data, "overallComplianceScore", 0),
            assessed_by=_int(data, "assessedBy", required=True),
            domain_scores=domain_scores,
            control_assessments=data.get("controlAssessments") or "",
            high_risk_controls=data.get("highRiskControls") or "",
            recommendations=data.get("recommendations") or "",
            assessment_type=data.get("assessmentType") or "comprehensive-gap-assessment",
        )


@dataclass
class EccRiskAssessment:
    """Risk rating for a single ECC control"""
    project_id: int
    control_id: str
    risk_level: str
    assessed_by: int
    gap_assessment_id: Optional[int] = None
    impact: str = ""
    likelihood: str = ""
    risk_score: int = 0
    mitigation_status: str = "identified"

    @classmethod
    def from_payload(cls, data: dict) -> "EccRiskAssessment":
        return cls(
            project_id=_int(data, "projectId", required=True),
            control_id=_required(data, "controlId"),
            risk_level=_required(data, "riskLevel").lower(),
            assessed_by=_int(data, "assessedBy", required=True),
            gap_assessment_id=_int(data, "gapAssessmentId"),
            impact=str(data.get("impact") or ""),
            likelihood=str(data.get("likelihood") or ""),
            risk_score=_int(data, "riskScore", 0),
            mitigation_status=data.get("mitigationStatus") or "identified",
        )


@dataclass
class EccRoadmapTask:
    """A remediation task on the ECC implementation roadmap"""
    project_id: int
    title: str
    description: str = ""
    control_id: str = ""
    priority: str = "medium"
    status: str = "todo"
    assigned_to: Optional[int] = None
    due_date: str = ""

    @classmethod
    def from_payload(cls, data: dict) -> "EccRoadmapTask":
        return cls(
            project_id=_int(data, "projectId", required=True),
            title=_required(data, "title"),
            description=data.get("description") or "",
            control_id=data.get("controlId") or "",
            priority=data.get("priority") or "medium",
            status=data.get("status") or "todo",
            assigned_to=_int(data, "assignedTo"),
            due_date=data.get("dueDate") or "",
        )


@dataclass
class EccTrainingModule:
    """Awareness training content"""
    title: str
    description: str = ""
    content: str = ""
    domain: str = ""
    duration_minutes: int = 30
    is_active: bool = True

    @classmethod
    def from_payload(cls, data: dict) -> "EccTrainingModule":
        return cls(
            title=_required(data, "title"),
            description=data.get("description") or "",
            content=data.get("content") or "",
            domain=data.get("domain") or "",
            duration_minutes=_int(data, "durationMinutes", 30),
            is_active=parse_bool(data.get("isActive"), "isActive", True),
        )


@dataclass
class EccUserTraining:
    """A user's progress through a training module"""
    project_id: int
    user_id: int
    module_id: int
    status: str = "not_started"
    progress: int = 0
    score: Optional[int] = None
    completed_at: Optional[str] = None

    @classmethod
    def from_payload(cls, data: dict) -> "EccUserTraining":
        return cls(
            project_id=_int(data, "projectId", required=True),
            user_id=_int(data, "userId", required=True),
            module_id=_int(data, "moduleId", required=True),
            status=data.get("status") or "not_started",
            progress=_percent(data, "progress", 0),
            score=_int(data, "score"),
            completed_at=data.get("completedAt"),
        )


# camelCase request keys accepted on partial updates
UPDATE_FIELDS = {
    "userId": "user_id",
    "vulnerabilityId": "vulnerability_id",
    "assessmentId": "assessment_id",
    "riskLevel": "risk_level",
    "mitigationStrategy": "mitigation_strategy",
    "responsibleParty": "responsible_party",
    "targetDate": "target_date",
    "mitigationStrategies": "mitigation_strategies",
    "complianceFrameworks": "compliance_frameworks",
    "isActive": "is_active",
    "firstName": "first_name",
    "lastName": "last_name",
    "phoneNumber": "phone_number",
    "cisoUserId": "ciso_user_id",
    "startDate": "start_date",
    "overallComplianceScore": "overall_compliance_score",
    "domainScores": "domain_scores",
    "controlAssessments": "control_assessments",
    "highRiskControls": "high_risk_controls",
    "assessedBy": "assessed_by",
    "assessmentType": "assessment_type",
    "gapAssessmentId": "gap_assessment_id",
    "controlId": "control_id",
    "riskScore": "risk_score",
    "mitigationStatus": "mitigation_status",
    "assignedTo": "assigned_to",
    "dueDate": "due_date",
    "durationMinutes": "duration_minutes",
    "projectId": "project_id",
    "moduleId": "module_id",
    "completedAt": "completed_at",
}


# Columns a partial update may change but not blank out
REQUIRED_ON_UPDATE = {
    RiskManagementPlan: ("user_id", "title", "description", "risk_level",
                         "mitigation_strategy", "responsible_party", "target_date", "status"),
    RiskRegisterEntry: ("category", "title", "description", "risk_level"),
    UserAccount: ("username", "email", "role"),
    EccProject: ("ciso_user_id", "name"),
    EccGapAssessment: ("project_id", "assessed_by"),
    EccRiskAssessment: ("project_id", "control_id", "risk_level", "assessed_by"),
    EccRoadmapTask: ("project_id", "title"),
    EccUserTraining: ("project_id", "user_id", "module_id"),
}

PERCENT_COLUMNS = ("score", "overall_compliance_score", "progress")
INT_COLUMNS = (
    "user_id", "vulnerability_id", "assessment_id", "ciso_user_id", "project_id",
    "assessed_by", "gap_assessment_id", "risk_score", "assigned_to", "module_id",
    "duration_minutes", "points",
)
LIST_COLUMNS = (
    "threats", "vulnerabilities", "assets", "controls", "mitigation_strategies",
    "compliance_frameworks", "tags", "permissions",
)
OBJECT_COLUMNS = ("domain_scores", "settings", "preferences")


def to_columns(data: dict, model=None, risk_levels=False) -> dict:
    """Map a partial camelCase payload onto snake_case column names.

    Values go through the same checks ``from_payload`` applies on create, so
    an update cannot store what a create would reject.
    """
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    columns = {}
    for key, value in data.items():
        columns[UPDATE_FIELDS.get(key, key)] = value

    required = REQUIRED_ON_UPDATE.get(model, ())
    for column in required:
        if column in columns:
            columns[column] = _required(columns, column)
    for column in INT_COLUMNS:
        if column in columns:
            columns[column] = _int(columns, column, required=column in required)
    for column in PERCENT_COLUMNS:
        if columns.get(column) is not None:
            columns[column] = _percent(columns, column)
    for column in LIST_COLUMNS:
        if column in columns:
            columns[column] = _list(columns, column)
    for column in OBJECT_COLUMNS:
        if column in columns:
            value = columns[column]
            if value is None:
                columns[column] = {}
            elif not isinstance(value, dict):
                raise ValidationError(f"{column} must be an object")
    if "is_active" in columns:
        columns["is_active"] = parse_bool(columns["is_active"], "isActive", True)

    if risk_levels and columns.get("risk_level"):
        columns["risk_level"] = RiskLevel.parse(columns["risk_level"]).value
    if model is RiskManagementPlan and "status" in columns:
        columns["status"] = PlanStatus.parse(columns["status"]).value
    return columns


def as_row(model) -> dict:
    """Dataclass instance to a column dict"""
    return asdict(model)
