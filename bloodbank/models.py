"""
Domain dataclasses and the request-body schemas validated at the API boundary.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from bloodbank.config import BLOOD_TYPES, LEDGER_STATUSES
from bloodbank.errors import InvalidInput


@dataclass
class CallerIdentity:
    """The verified caller of a request."""
    uid: str
    role_claim: Optional[str] = None   # informational; rbac reads the role store
    claims: Dict[str, Any] = field(default_factory=dict)


# ── Field helpers ────────────────────────────────────────────────────

def _require_body(data) -> Dict[str, Any]:
    if not isinstance(data, dict):
        raise InvalidInput("Request body must be a JSON object")
    return data


def _require_str(data: Dict[str, Any], name: str) -> str:
    value = data.get(name)
    if not isinstance(value, str) or not value.strip():
        raise InvalidInput(f"{name} is required")
    return value.strip()


def _require_blood_type(data: Dict[str, Any]) -> str:
    value = _require_str(data, "bloodType").upper()
    if value not in BLOOD_TYPES:
        raise InvalidInput(f"bloodType must be one of {', '.join(sorted(BLOOD_TYPES))}")
    return value


# ── Request bodies ───────────────────────────────────────────────────

@dataclass
class BloodRequestInput:
    hospital_name: str
    blood_type: str
    units_needed: int
    is_urgent: bool

    @classmethod
    def from_json(cls, data) -> "BloodRequestInput":
        data = _require_body(data)
        hospital_name = _require_str(data, "hospitalName")
        blood_type = _require_blood_type(data)

        units = data.get("unitsNeeded")
        if isinstance(units, float) and units.is_integer():
            units = int(units)
        # bool is an int subclass; true/false is not a quantity
        if isinstance(units, bool) or not isinstance(units, int) or units < 0:
            raise InvalidInput("unitsNeeded must be a non-negative number")

        is_urgent = data.get("isUrgent")
        if not isinstance(is_urgent, bool):
            raise InvalidInput("isUrgent must be true or false")

        return cls(hospital_name, blood_type, units, is_urgent)

    def to_document(self) -> Dict[str, Any]:
        return {
            "hospitalName": self.hospital_name,
            "bloodType": self.blood_type,
            "unitsNeeded": self.units_needed,
            "isUrgent": self.is_urgent,
        }


@dataclass
class DonationInput:
    blood_unit_id: str
    donor_uid: str
    blood_type: str
    location: str

    @classmethod
    def from_json(cls, data) -> "DonationInput":
        data = _require_body(data)
        return cls(
            blood_unit_id=_require_str(data, "bloodUnitID"),
            donor_uid=_require_str(data, "donorUID"),
            blood_type=_require_blood_type(data),
            location=_require_str(data, "location"),
        )


@dataclass
class StatusUpdateInput:
    blood_unit_id: str
    new_status: str
    location: str

    @classmethod
    def from_json(cls, data) -> "StatusUpdateInput":
        data = _require_body(data)
        blood_unit_id = _require_str(data, "bloodUnitID")
        new_status = _require_str(data, "newStatus")
        if new_status not in LEDGER_STATUSES:
            raise InvalidInput(f"newStatus must be one of {', '.join(LEDGER_STATUSES)}")
        return cls(blood_unit_id, new_status, _require_str(data, "location"))
