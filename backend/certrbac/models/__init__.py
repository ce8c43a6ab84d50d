from certrbac.models.user import User
from certrbac.models.certificate import Certificate, CertificateVerification
from certrbac.models.audit import AuditLog

__all__ = ["User", "Certificate", "CertificateVerification", "AuditLog"]
