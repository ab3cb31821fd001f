"""
Capability definitions and the static role -> capability map.

WHY: Role checks happen once, at the API edge. Services receive an
already-authorized Actor and never inspect raw role strings for access
decisions.
"""
from __future__ import annotations

from dataclasses import dataclass

from .models.auth import ROLE_ADVISOR, ROLE_AGENT, ROLE_CONTROLLER, ROLE_DIRECTOR


# Each permission is defined as: (code, description)
PERMISSION_DEFINITIONS = [
    ("VIEW_CATALOG", "View articles, prices and stock levels"),
    ("MANAGE_CATALOG", "Create and edit articles"),
    ("ADJUST_STOCK", "Manually set, add or subtract article stock"),
    ("DELETE_ARTICLE", "Deactivate or delete articles"),
    ("MANAGE_CLIENTS", "Create, edit and delete clients"),
    ("CREATE_SALE", "Create draft sales"),
    ("EDIT_SALE", "Add and remove items on draft sales"),
    ("VALIDATE_SALE", "Validate draft sales"),
    ("COMPLETE_SALE", "Complete validated sales"),
    ("CANCEL_SALE", "Cancel or delete draft sales"),
    ("VIEW_ALL_SALES", "See sales created by other users"),
    ("REVIEW_FLAGS", "Review and resolve anomaly flags"),
    ("RUN_ANOMALY_SCAN", "Run the anomaly scan over an advisor's sales"),
    ("MANAGE_INVOICES", "Issue invoices and record payments"),
    ("MANAGE_WAREHOUSE", "Create and process warehouse purchase orders"),
    ("MANAGE_USERS", "Create and manage staff accounts"),
    ("MANAGE_EMPLOYEES", "View, create and edit personnel records"),
    ("DELETE_EMPLOYEE", "Remove personnel records"),
    ("WRITE_REPORTS", "Write and read narrative reports"),
    ("VIEW_ALL_REPORTS", "Read reports written by other staff"),
    ("VIEW_SALES_ANALYTICS", "See revenue, top clients and advisor performance"),
]

ALL_PERMISSIONS = frozenset(code for code, _ in PERMISSION_DEFINITIONS)

_EVERYONE = {
    "VIEW_CATALOG",
    "MANAGE_CLIENTS",
    "CREATE_SALE",
    "EDIT_SALE",
    "CANCEL_SALE",
}

DEFAULT_ROLE_PERMISSIONS: dict[str, frozenset[str]] = {
    ROLE_DIRECTOR: ALL_PERMISSIONS,
    ROLE_CONTROLLER: frozenset(_EVERYONE | {
        "MANAGE_CATALOG",
        "ADJUST_STOCK",
        "VALIDATE_SALE",
        "COMPLETE_SALE",
        "VIEW_ALL_SALES",
        "REVIEW_FLAGS",
        "RUN_ANOMALY_SCAN",
        "MANAGE_INVOICES",
        "MANAGE_WAREHOUSE",
        "MANAGE_EMPLOYEES",
        "WRITE_REPORTS",
        "VIEW_SALES_ANALYTICS",
    }),
    ROLE_AGENT: frozenset(_EVERYONE | {
        "VALIDATE_SALE",
        "COMPLETE_SALE",
        "VIEW_ALL_SALES",
        "MANAGE_INVOICES",
        "VIEW_SALES_ANALYTICS",
    }),
    ROLE_ADVISOR: frozenset(_EVERYONE),
}


def get_role_permissions(role: str) -> frozenset[str]:
    return DEFAULT_ROLE_PERMISSIONS.get(role, frozenset())


def role_has_permission(role: str, permission_code: str) -> bool:
    return permission_code in get_role_permissions(role)


@dataclass(frozen=True)
class Actor:
    """Authenticated identity attached to every lifecycle operation."""
    user_id: int
    role: str

    def can(self, permission_code: str) -> bool:
        return role_has_permission(self.role, permission_code)

    @classmethod
    def for_user(cls, user) -> "Actor":
        return cls(user_id=user.id, role=user.role)
