from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z
from .auth import USER_STATUS_ACTIVE


class Employee(db.Model):
    """
    Personnel record, e.g. "EMP0001".

    An employee may be linked to at most one login account. When linked,
    role and status are kept in step with the account so a person who is
    put on leave here can no longer sign in.
    """
    __tablename__ = "employees"
    __table_args__ = (
        db.CheckConstraint(
            "role IN ('Director', 'Controller', 'Advisor', 'Agent')",
            name="ck_employees_role",
        ),
        db.CheckConstraint(
            "status IN ('Active', 'On leave', 'Inactive')",
            name="ck_employees_status",
        ),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    employee_code = db.Column(db.String(20), nullable=False, unique=True, index=True)
    user_id = db.Column(
        db.Integer,
        db.ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
        unique=True,
    )

    first_name = db.Column(db.String(100), nullable=False)
    last_name = db.Column(db.String(100), nullable=False)
    email = db.Column(db.String(255), nullable=False, unique=True)
    phone = db.Column(db.String(20), nullable=False)
    department = db.Column(db.String(100), nullable=True)

    role = db.Column(db.String(50), nullable=False, index=True)
    status = db.Column(db.String(20), nullable=False, default=USER_STATUS_ACTIVE, index=True)
    hiring_date = db.Column(db.Date, nullable=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    user = db.relationship("User", backref=db.backref("employee", uselist=False))

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    def __repr__(self) -> str:
        return f"<Employee {self.employee_code} role={self.role} status={self.status}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "employee_code": self.employee_code,
            "user_id": self.user_id,
            "username": self.user.username if self.user else None,
            "first_name": self.first_name,
            "last_name": self.last_name,
            "full_name": self.full_name,
            "email": self.email,
            "phone": self.phone,
            "department": self.department,
            "role": self.role,
            "status": self.status,
            "hiring_date": self.hiring_date.isoformat() if self.hiring_date else None,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
