from app.core.models.student import Student
from app.core.models.group import Group
from app.core.models.enrollment import Enrollment
from app.core.models.tuition_charge import TuitionCharge
from app.core.models.payment import Payment, PaymentAllocation
from app.core.models.expense import Expense
from app.core.models.fee_audit_log import FeeAuditLog

__all__ = [
    "Student",
    "Group",
    "Enrollment",
    "TuitionCharge",
    "Payment",
    "PaymentAllocation",
    "Expense",
    "FeeAuditLog",
]
