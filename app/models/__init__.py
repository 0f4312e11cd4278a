from app.models.business_profile import BusinessProfile
from app.models.document_verification import LoanApplicationDocumentVerification
from app.models.documents import BusinessDocument, PersonalDocument
from app.models.loan_application import LoanApplication
from app.models.loan_application_audit_event import LoanApplicationAuditEvent
from app.models.user import User

__all__ = [
    "BusinessProfile",
    "BusinessDocument",
    "PersonalDocument",
    "LoanApplication",
    "LoanApplicationAuditEvent",
    "LoanApplicationDocumentVerification",
    "User",
]
