from app.core.models.class_model import SchoolClass
from app.core.models.attendance import Attendance
from app.core.models.fine import Fine, FinePayment, derive_fine_status

__all__ = [
    "Attendance",
    "Fine",
    "FinePayment",
    "SchoolClass",
    "derive_fine_status",
]
