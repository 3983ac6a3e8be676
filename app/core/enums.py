from enum import Enum


class UserRole(str, Enum):
    ADMIN = "admin"
    TEACHER = "teacher"
    STUDENT = "student"


class AttendanceStatus(str, Enum):
    PRESENT = "present"
    ABSENT = "absent"
    LEAVE = "leave"


class FineStatus(str, Enum):
    pending = "pending"
    partially_paid = "partially_paid"
    paid = "paid"


class PaymentMethod(str, Enum):
    cash = "cash"
    online = "online"
    cheque = "cheque"
