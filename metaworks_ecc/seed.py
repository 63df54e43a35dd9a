"""Built-in data: common cyber risks and the initial user accounts"""

from .auth import hash_password, get_role_permissions
from .models import RiskRegisterEntry, UserAccount


COMMON_CYBER_RISKS = [
    RiskRegisterEntry(
        category="Data Security",
        subcategory="Data Breach",
        title="Unauthorized Access to Sensitive Data",
        description="Risk of unauthorized individuals gaining access to confidential customer data, financial records, or intellectual property through security vulnerabilities or insider threats.",
        risk_level="Critical",
        impact="Severe financial losses, regulatory fines, reputational damage, loss of customer trust, legal liability, and potential business closure.",
        likelihood="High",
        threats=["External hackers", "Malicious insiders", "Accidental disclosure", "Third-party breaches"],
        vulnerabilities=["Weak access controls", "Unencrypted data", "Insufficient monitoring", "Outdated security patches"],
        assets=["Customer databases", "Financial records", "Intellectual property", "Personal information"],
        controls=["Access control systems", "Data encryption", "Security monitoring", "Regular audits"],
        mitigation_strategies=["Multi-factor authentication", "Data loss prevention", "Employee training", "Incident response plan"],
        compliance_frameworks=["GDPR", "CCPA", "HIPAA", "PCI DSS", "ISO 27001"],
        tags=["data-breach", "confidentiality", "privacy", "compliance"],
    ),
    RiskRegisterEntry(
        category="Network Security",
        subcategory="Malware",
        title="Malware and Ransomware Attacks",
        description="Risk of malicious software infiltrating systems, corrupting data, stealing information, or encrypting files for ransom demands.",
        risk_level="Critical",
        impact="Business disruption, data loss, financial extortion, operational downtime, recovery costs, and potential permanent data loss.",
        likelihood="High",
        threats=["Ransomware groups", "Malware distributors", "Phishing campaigns", "Drive-by downloads"],
        vulnerabilities=["Unpatched software", "Weak email security", "Insufficient endpoint protection", "User awareness gaps"],
        assets=["Servers", "Workstations", "Network infrastructure", "Business applications", "Backup systems"],
        controls=["Antivirus software", "Email filtering", "Network segmentation", "Backup systems"],
        mitigation_strategies=["Regular patching", "Employee awareness training", "Endpoint detection and response", "Offline backups"],
        compliance_frameworks=["NIST Cybersecurity Framework", "ISO 27001", "CIS Controls"],
        tags=["malware", "ransomware", "endpoint-security", "business-continuity"],
    ),
    RiskRegisterEntry(
        category="Access Control",
        subcategory="Identity Management",
        title="Privilege Escalation and Unauthorized Access",
        description="Risk of users gaining unauthorized elevated privileges or accessing systems and data beyond their authorized scope.",
        risk_level="High",
        impact="Unauthorized data access, system compromise, compliance violations, internal fraud, and potential for widespread security breaches.",
        likelihood="Medium",
        threats=["Privilege abuse", "Account compromise", "Social engineering", "Insider threats"],
        vulnerabilities=["Excessive privileges", "Weak password policies", "Lack of access reviews", "Shared accounts"],
        assets=["User accounts", "Administrative systems", "Sensitive databases", "Critical applications"],
        controls=["Role-based access control", "Privileged access management", "Access reviews", "Account monitoring"],
        mitigation_strategies=["Principle of least privilege", "Regular access audits", "Multi-factor authentication", "Just-in-time access"],
        compliance_frameworks=["SOX", "ISO 27001", "NIST", "CIS Controls"],
        tags=["access-control", "privilege-escalation", "identity-management", "insider-threat"],
    ),
    RiskRegisterEntry(
        category="Cloud Security",
        subcategory="Configuration",
        title="Cloud Misconfiguration and Data Exposure",
        description="Risk of improperly configured cloud services exposing sensitive data, creating unauthorized access points, or violating security policies.",
        risk_level="High",
        impact="Data breaches, compliance violations, unexpected costs, service disruptions, and exposure of sensitive information to the public internet.",
        likelihood="High",
        threats=["Configuration errors", "Default settings", "Shared responsibility gaps", "Shadow IT"],
        vulnerabilities=["Public storage buckets", "Open databases", "Weak IAM policies", "Unencrypted communications"],
        assets=["Cloud storage", "Cloud databases", "Virtual machines", "Cloud applications", "API endpoints"],
        controls=["Cloud security posture management", "Configuration scanning", "IAM policies", "Encryption"],
        mitigation_strategies=["Security automation", "Regular configuration audits", "Cloud security training", "Governance policies"],
        compliance_frameworks=["Cloud Security Alliance", "NIST", "ISO 27017", "FedRAMP"],
        tags=["cloud-security", "misconfiguration", "data-exposure", "iam"],
    ),
    RiskRegisterEntry(
        category="Physical Security",
        subcategory="Facility Access",
        title="Unauthorized Physical Access to IT Infrastructure",
        description="Risk of unauthorized individuals gaining physical access to servers, network equipment, or workstations in office facilities or data centers.",
        risk_level="Medium",
        impact="Data theft, system tampering, service disruption, industrial espionage, and potential for installing malicious hardware or software.",
        likelihood="Low",
        threats=["Unauthorized visitors", "Former employees", "Social engineering", "Tailgating"],
        vulnerabilities=["Weak access controls", "Unmonitored areas", "Shared access codes", "Missing security cameras"],
        assets=["Server rooms", "Network closets", "Workstations", "Storage devices", "Network equipment"],
        controls=["Access card systems", "Security cameras", "Visitor management", "Security guards"],
        mitigation_strategies=["Multi-factor facility access", "Regular access reviews", "Employee security training", "Physical security audits"],
        compliance_frameworks=["ISO 27001", "SOC 2", "NIST"],
        tags=["physical-security", "facility-access", "data-center", "surveillance"],
    ),
    RiskRegisterEntry(
        category="Operational Security",
        subcategory="Business Continuity",
        title="System Outage and Service Disruption",
        description="Risk of critical business systems becoming unavailable due to hardware failures, software issues, natural disasters, or cyber attacks.",
        risk_level="High",
        impact="Revenue loss, customer dissatisfaction, operational disruption, SLA breaches, reputational damage, and potential regulatory penalties.",
        likelihood="Medium",
        threats=["Hardware failures", "Software bugs", "Cyber attacks", "Natural disasters", "Power outages"],
        vulnerabilities=["Single points of failure", "Inadequate backups", "Poor disaster recovery planning", "Insufficient redundancy"],
        assets=["Production systems", "Database servers", "Network infrastructure", "Applications", "Data centers"],
        controls=["Redundant systems", "Backup and recovery", "Monitoring and alerting", "Disaster recovery plans"],
        mitigation_strategies=["High availability architecture", "Regular backup testing", "Incident response procedures", "Service level monitoring"],
        compliance_frameworks=["ISO 22301", "NIST", "ITIL", "COBIT"],
        tags=["business-continuity", "disaster-recovery", "availability", "resilience"],
    ),
    RiskRegisterEntry(
        category="Third Party Risk",
        subcategory="Vendor Management",
        title="Third-Party Security Breach and Data Exposure",
        description="Risk of security incidents occurring through third-party vendors, suppliers, or service providers who have access to organizational data or systems.",
        risk_level="High",
        impact="Data breaches, compliance violations, reputational damage, financial losses, and potential liability for third-party security failures.",
        likelihood="Medium",
        threats=["Vendor security breaches", "Supply chain attacks", "Inadequate vendor controls", "Data sharing risks"],
        vulnerabilities=["Weak vendor assessments", "Insufficient monitoring", "Poor contract terms", "Limited visibility"],
        assets=["Shared data", "Integrated systems", "Vendor platforms", "Supply chain", "Customer information"],
        controls=["Vendor risk assessments", "Security requirements", "Contract terms", "Ongoing monitoring"],
        mitigation_strategies=["Due diligence processes", "Security questionnaires", "Regular audits", "Incident response coordination"],
        compliance_frameworks=["SOC 2", "ISO 27001", "NIST", "GDPR"],
        tags=["third-party-risk", "vendor-management", "supply-chain", "due-diligence"],
    ),
    RiskRegisterEntry(
        category="Compliance & Governance",
        subcategory="Regulatory Compliance",
        title="Regulatory Non-Compliance and Legal Violations",
        description="Risk of failing to meet regulatory requirements for data protection, financial reporting, industry standards, or other applicable laws and regulations.",
        risk_level="Critical",
        impact="Regulatory fines, legal penalties, business license revocation, reputational damage, increased scrutiny, and potential criminal liability.",
        likelihood="Medium",
        threats=["Regulatory changes", "Audit findings", "Compliance gaps", "Process failures"],
        vulnerabilities=["Outdated policies", "Insufficient training", "Poor documentation", "Lack of monitoring"],
        assets=["Compliance documentation", "Audit trails", "Policy frameworks", "Training records", "Monitoring systems"],
        controls=["Compliance management systems", "Regular audits", "Policy updates", "Training programs"],
        mitigation_strategies=["Continuous compliance monitoring", "Regular policy reviews", "Legal counsel consultation", "Compliance automation"],
        compliance_frameworks=["GDPR", "HIPAA", "SOX", "PCI DSS", "CCPA", "PIPEDA"],
        tags=["regulatory-compliance", "legal-risk", "audit", "governance"],
    ),
    RiskRegisterEntry(
        category="Mobile Security",
        subcategory="Device Management",
        title="Mobile Device Security Compromise",
        description="Risk of security breaches through compromised mobile devices accessing corporate networks, applications, or sensitive data.",
        risk_level="Medium",
        impact="Data leakage, unauthorized access, malware propagation, compliance violations, and potential compromise of corporate networks.",
        likelihood="Medium",
        threats=["Lost devices", "Malicious apps", "Unsecured Wi-Fi", "Device theft", "Jailbroken devices"],
        vulnerabilities=["Unmanaged devices", "Weak device policies", "Insufficient encryption", "Outdated mobile OS"],
        assets=["Mobile devices", "Corporate apps", "Email data", "VPN access", "Cloud services"],
        controls=["Mobile device management", "App whitelisting", "Device encryption", "Remote wipe capabilities"],
        mitigation_strategies=["BYOD policies", "Mobile security training", "App vetting", "Conditional access"],
        compliance_frameworks=["NIST", "ISO 27001", "ENISA"],
        tags=["mobile-security", "byod", "device-management", "data-leakage"],
    ),
    RiskRegisterEntry(
        category="Data Security",
        subcategory="Data Loss",
        title="Accidental Data Loss and Corruption",
        description="Risk of unintentional data loss, deletion, or corruption due to human error, system failures, or inadequate backup procedures.",
        risk_level="High",
        impact="Loss of critical business data, operational disruption, recovery costs, potential compliance violations, and customer impact.",
        likelihood="Medium",
        threats=["Human error", "System failures", "Corruption", "Accidental deletion", "Hardware failures"],
        vulnerabilities=["Insufficient backups", "Lack of version control", "Poor data management", "Inadequate testing"],
        assets=["Business databases", "Document repositories", "Email systems", "File servers", "Application data"],
        controls=["Automated backups", "Version control", "Data recovery procedures", "Access controls"],
        mitigation_strategies=["Regular backup testing", "Data retention policies", "Employee training", "Redundant storage"],
        compliance_frameworks=["ISO 27001", "NIST", "COBIT"],
        tags=["data-loss", "backup-recovery", "data-integrity", "human-error"],
    ),
]


DEFAULT_USERS = [
    {
        'username': 'admin',
        'email': 'admin@metaworks.com',
        'password': 'admin123',
        'first_name': 'System',
        'last_name': 'Administrator',
        'role': 'Super Admin',
        'department': 'Information Technology',
    },
    {
        'username': 'ciso',
        'email': 'ciso@metaworks.com',
        'password': 'ciso123',
        'first_name': 'Chief Information',
        'last_name': 'Security Officer',
        'role': 'CISO',
        'department': 'Cybersecurity',
    },
    {
        'username': 'itmanager',
        'email': 'itmanager@metaworks.com',
        'password': 'it123',
        'first_name': 'IT',
        'last_name': 'Manager',
        'role': 'IT Manager',
        'department': 'Information Technology',
    },
    {
        'username': 'analyst',
        'email': 'analyst@metaworks.com',
        'password': 'analyst123',
        'first_name': 'Security',
        'last_name': 'Analyst',
        'role': 'Security Analyst',
        'department': 'Cybersecurity',
    },
    {
        'username': 'auditor',
        'email': 'auditor@metaworks.com',
        'password': 'audit123',
        'first_name': 'Compliance',
        'last_name': 'Auditor',
        'role': 'Auditor',
        'department': 'Audit',
    },
]


def seed_risk_register(store):
    """Insert the common cyber risks. Returns the number added."""
    print("Seeding risk register with common cybersecurity risks...", flush=True)
    for risk in COMMON_CYBER_RISKS:
        store.create_risk_register_entry(risk)
        print(f"Added risk: {risk.title}", flush=True)
    print(f"✅ Seeded {len(COMMON_CYBER_RISKS)} risks to the register.", flush=True)
    return len(COMMON_CYBER_RISKS)


def initialize_default_users(store):
    """Create the built-in accounts when the users table is empty."""
    if store.count('users') > 0:
        return 0
    print("Initializing default users...", flush=True)
    for user in DEFAULT_USERS:
        store.create_user(UserAccount(
            username=user['username'],
            email=user['email'],
            password_hash=hash_password(user['password']),
            first_name=user['first_name'],
            last_name=user['last_name'],
            role=user['role'],
            department=user['department'],
            permissions=get_role_permissions(user['role']),
        ))
    print("✅ Default users initialized", flush=True)
    return len(DEFAULT_USERS)
