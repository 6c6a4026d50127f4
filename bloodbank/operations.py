"""
Write operations behind the staff and self-service endpoints.

Callers reach these functions only after the token has been verified and,
for staff operations, after ``rbac.authorize`` succeeded. Inputs arrive
already validated (see ``bloodbank.models``).
"""

from typing import Any, Dict, List

from bloodbank.config import (
    BLOOD_REQUESTS,
    LEDGER,
    ROLE_REGULAR_USER,
    STATUS_VERIFIED,
    donation_history_path,
)
from bloodbank.errors import DuplicateUnit, InvalidInput, UnknownOwner, UnknownUnit
from bloodbank.models import BloodRequestInput, CallerIdentity, DonationInput, StatusUpdateInput
from bloodbank.rbac import ensure_role
from bloodbank.store import (
    SERVER_TIMESTAMP,
    ArrayAppend,
    DocumentAlreadyExists,
    DocumentNotFound,
)


# ── Roles ────────────────────────────────────────────────────────────

def assign_default_role(store, identity, uid: str) -> str:
    """Give *uid* the regular_user role unless it already has one.

    The role in effect is also written to the user's identity claims.
    Safe to repeat.
    """
    role = ensure_role(store, uid, ROLE_REGULAR_USER)
    identity.set_claims(uid, {"role": role})
    print(f"[auth] Role for {uid}: {role}")
    return role


# ── Blood requests ───────────────────────────────────────────────────

def create_blood_request(store, caller: CallerIdentity, req: BloodRequestInput) -> str:
    doc = req.to_document()
    doc["requestedBy"] = caller.uid
    doc["createdAt"] = SERVER_TIMESTAMP
    request_id = store.add(BLOOD_REQUESTS, doc)
    print(f"[requests] {caller.uid} created request {request_id} "
          f"({req.units_needed} x {req.blood_type}, urgent={req.is_urgent})")
    return request_id


def delete_blood_request(store, caller: CallerIdentity, request_id) -> None:
    """Delete a request. Deleting an id that does not exist is not an error."""
    if not isinstance(request_id, str) or not request_id.strip():
        raise InvalidInput("Request ID is required")
    store.delete(BLOOD_REQUESTS, request_id.strip())
    print(f"[requests] {caller.uid} deleted request {request_id.strip()}")


# ── Ledger ───────────────────────────────────────────────────────────

def register_donation(store, identity, caller: CallerIdentity, donation: DonationInput) -> None:
    """Create the ledger entry and the donor's private copy in one batch."""
    if not identity.user_exists(donation.donor_uid):
        raise UnknownOwner(f"Donor {donation.donor_uid} does not exist")

    ledger_entry = {
        "bloodUnitID": donation.blood_unit_id,
        "donorUID": donation.donor_uid,
        "bloodType": donation.blood_type,
        "currentStatus": STATUS_VERIFIED,
        "currentLocation": donation.location,
        "createdAt": SERVER_TIMESTAMP,
        "lastUpdated": SERVER_TIMESTAMP,
        "history": [{
            "status": STATUS_VERIFIED,
            "location": donation.location,
            "timestamp": SERVER_TIMESTAMP,
            "updatedBy": caller.uid,
        }],
    }
    history_entry = {
        "bloodUnitID": donation.blood_unit_id,
        "bloodType": donation.blood_type,
        "location": donation.location,
        "status": STATUS_VERIFIED,
        "donatedAt": SERVER_TIMESTAMP,
    }

    batch = store.batch()
    batch.create(LEDGER, donation.blood_unit_id, ledger_entry)
    batch.set(donation_history_path(donation.donor_uid), donation.blood_unit_id, history_entry)
    try:
        batch.commit()
    except DocumentAlreadyExists:
        raise DuplicateUnit(f"Blood unit {donation.blood_unit_id} is already registered")

    print(f"[ledger] {caller.uid} registered unit {donation.blood_unit_id} "
          f"for donor {donation.donor_uid}")


def update_unit_status(store, caller: CallerIdentity, upd: StatusUpdateInput) -> None:
    """Append a history entry and move the current status/location forward."""
    entry = {
        "status": upd.new_status,
        "location": upd.location,
        "timestamp": SERVER_TIMESTAMP,
        "updatedBy": caller.uid,
    }
    try:
        store.update(LEDGER, upd.blood_unit_id, {
            "currentStatus": upd.new_status,
            "currentLocation": upd.location,
            "lastUpdated": SERVER_TIMESTAMP,
            "history": ArrayAppend(entry),
        })
    except DocumentNotFound:
        raise UnknownUnit(f"Blood unit {upd.blood_unit_id} is not registered")

    print(f"[ledger] {caller.uid} moved unit {upd.blood_unit_id} to '{upd.new_status}'")


# ── Reads ────────────────────────────────────────────────────────────

def get_ledger_entry(store, unit_id: str) -> Dict[str, Any]:
    entry = store.get(LEDGER, unit_id)
    if entry is None:
        raise UnknownUnit(f"Blood unit {unit_id} is not registered")
    return entry


def list_donation_history(store, caller: CallerIdentity) -> List[Dict[str, Any]]:
    return [
        dict(data, id=doc_id)
        for doc_id, data in store.list(donation_history_path(caller.uid))
    ]
