from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


REPORT_PRIORITY_NORMAL = "Normal"
REPORT_PRIORITY_URGENT = "Urgent"
REPORT_PRIORITIES = ("Low", REPORT_PRIORITY_NORMAL, "High", REPORT_PRIORITY_URGENT)


class Report(db.Model):
    """
    Narrative report written by a controller or director.

    Author name and role are snapshotted so the report still reads
    correctly after the author's account changes or is removed.
    """
    __tablename__ = "reports"
    __table_args__ = (
        db.CheckConstraint(
            "priority IN ('Low', 'Normal', 'High', 'Urgent')",
            name="ck_reports_priority",
        ),
        db.Index("ix_reports_priority_read", "priority", "is_read"),
        db.Index("ix_reports_author_date", "author_user_id", "report_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    author_user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    author_employee_id = db.Column(
        db.Integer,
        db.ForeignKey("employees.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    author_name = db.Column(db.String(255), nullable=False)
    author_role = db.Column(db.String(50), nullable=False)

    department = db.Column(db.String(100), nullable=False, index=True)
    category = db.Column(db.String(100), nullable=False, index=True)
    title = db.Column(db.String(500), nullable=False)
    summary = db.Column(db.Text, nullable=False)
    full_content = db.Column(db.Text, nullable=True)
    priority = db.Column(db.String(20), nullable=False, default=REPORT_PRIORITY_NORMAL)

    is_read = db.Column(db.Boolean, nullable=False, default=False)

    report_date = db.Column(db.Date, nullable=False)
    report_time = db.Column(db.Time, nullable=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    def to_dict(self, include_content: bool = False) -> dict:
        data = {
            "id": self.id,
            "author_user_id": self.author_user_id,
            "author_employee_id": self.author_employee_id,
            "author_name": self.author_name,
            "author_role": self.author_role,
            "department": self.department,
            "category": self.category,
            "title": self.title,
            "summary": self.summary,
            "priority": self.priority,
            "is_read": self.is_read,
            "report_date": self.report_date.isoformat() if self.report_date else None,
            "report_time": self.report_time.strftime("%H:%M:%S") if self.report_time else None,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
        if include_content:
            data["full_content"] = self.full_content
        return data
