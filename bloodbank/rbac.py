"""
Role-Based Access Control – the role store and the authorization gate.
"""

from typing import Optional

from bloodbank.config import ROLES, USER_ROLES
from bloodbank.errors import Forbidden
from bloodbank.store import SERVER_TIMESTAMP, DocumentAlreadyExists


def get_role(store, uid: str) -> Optional[str]:
    """Return the caller's role, or None when no usable role record exists."""
    doc = store.get(USER_ROLES, uid)
    if not doc:
        return None

    role = str(doc.get("role", "")).strip().lower()
    if role not in ROLES:
        print(f"[WARN] Ignoring unsupported role '{doc.get('role')}' for {uid}")
        return None
    return role


def set_role(store, uid: str, role: str) -> None:
    """Overwrite the caller's role record (last write wins)."""
    if role not in ROLES:
        raise ValueError(f"Unsupported role '{role}'")
    store.set(USER_ROLES, uid, {"role": role, "updatedAt": SERVER_TIMESTAMP})


def authorize(role: Optional[str], required: str) -> None:
    """Raise Forbidden unless *role* is exactly *required*. No I/O."""
    if role is None or role != required:
        raise Forbidden(f"This action requires the '{required}' role")


def ensure_role(store, uid: str, role: str) -> str:
    """Give *uid* *role* unless it already holds a usable role; return the role in effect."""
    if role not in ROLES:
        raise ValueError(f"Unsupported role '{role}'")
    try:
        store.batch().create(USER_ROLES, uid, {"role": role, "updatedAt": SERVER_TIMESTAMP}).commit()
        return role
    except DocumentAlreadyExists:
        existing = get_role(store, uid)
        if existing is not None:
            return existing
    # An unusable record grants nothing; replace it.
    set_role(store, uid, role)
    return role
