# clinicq/models.py
"""
Import every ORM module so `Base.metadata` knows all tables
(schema creation, Alembic autogenerate).
"""
from clinicq.modules.users.models import AuditLog, Staff, User, UserRole
from clinicq.modules.organizations.models import Department, Doctor, Organization, OrganizationType
from clinicq.modules.appointments.models import (
    Appointment,
    ApptStatus,
    Queue,
    QueueStatus,
    TokenCounter,
)

__all__ = [
    "AuditLog",
    "Staff",
    "User",
    "UserRole",
    "Department",
    "Doctor",
    "Organization",
    "OrganizationType",
    "Appointment",
    "ApptStatus",
    "Queue",
    "QueueStatus",
    "TokenCounter",
]
