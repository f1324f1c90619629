from enum import Enum


class DaysPattern(str, Enum):
    ODD = "ODD"  # Mon / Wed / Fri
    EVEN = "EVEN"  # Tue / Thu / Sat


class EnrollmentStatus(str, Enum):
    ACTIVE = "ACTIVE"
    PAUSED = "PAUSED"
    LEFT = "LEFT"


class TuitionChargeStatus(str, Enum):
    PENDING = "PENDING"
    PARTIALLY_PAID = "PARTIALLY_PAID"
    PAID = "PAID"


class PaymentMethod(str, Enum):
    CASH = "CASH"
    CARD = "CARD"
    BANK_TRANSFER = "BANK_TRANSFER"
    ONLINE = "ONLINE"


class PaymentStatus(str, Enum):
    COMPLETED = "COMPLETED"
