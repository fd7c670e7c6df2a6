# Models module
from audittrail.models.user import User
from audittrail.models.audit_log import AuditLog
