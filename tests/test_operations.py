"""
Unit tests for the write operations, run against the SQLite-backed store.
"""

from concurrent.futures import ThreadPoolExecutor

import pytest

from bloodbank import operations
from bloodbank.config import (
    BLOOD_REQUESTS,
    LEDGER,
    ROLE_MEDICAL_STAFF,
    ROLE_REGULAR_USER,
    USER_ROLES,
    donation_history_path,
)
from bloodbank.database import create_schema, make_engine
from bloodbank.errors import DuplicateUnit, InvalidInput, UnknownOwner, UnknownUnit
from bloodbank.identity import JwtIdentityProvider
from bloodbank.models import BloodRequestInput, CallerIdentity, DonationInput, StatusUpdateInput
from bloodbank.rbac import get_role, set_role
from bloodbank.store import SqlDocumentStore

STAFF = CallerIdentity(uid="staff-1", role_claim=ROLE_MEDICAL_STAFF)


def _donation(unit="UNIT-1", donor="donor-1"):
    return DonationInput(blood_unit_id=unit, donor_uid=donor, blood_type="O-", location="Ward 3")


# ── Tests: assign_default_role ───────────────────────────────────────

def test_assign_default_role_is_idempotent(store, identity):
    identity.create_user("u1")
    assert operations.assign_default_role(store, identity, "u1") == ROLE_REGULAR_USER
    assert operations.assign_default_role(store, identity, "u1") == ROLE_REGULAR_USER

    records = [doc_id for doc_id, _ in store.list(USER_ROLES)]
    assert records == ["u1"]
    assert get_role(store, "u1") == ROLE_REGULAR_USER
    assert identity.get_claims("u1") == {"role": ROLE_REGULAR_USER}


def test_assign_default_role_never_downgrades(store, identity):
    identity.create_user("u1")
    set_role(store, "u1", ROLE_MEDICAL_STAFF)
    assert operations.assign_default_role(store, identity, "u1") == ROLE_MEDICAL_STAFF
    assert get_role(store, "u1") == ROLE_MEDICAL_STAFF


# ── Tests: blood requests ────────────────────────────────────────────

def test_create_blood_request(store):
    req = BloodRequestInput("St. Mary", "O-", 3, True)
    request_id = operations.create_blood_request(store, STAFF, req)
    doc = store.get(BLOOD_REQUESTS, request_id)
    assert doc["unitsNeeded"] == 3
    assert doc["requestedBy"] == "staff-1"
    assert isinstance(doc["createdAt"], str)


def test_delete_blood_request(store):
    request_id = operations.create_blood_request(store, STAFF, BloodRequestInput("H", "A+", 1, False))
    operations.delete_blood_request(store, STAFF, request_id)
    assert store.get(BLOOD_REQUESTS, request_id) is None


def test_delete_unknown_request_succeeds(store):
    operations.delete_blood_request(store, STAFF, "does-not-exist")


@pytest.mark.parametrize("request_id", [None, "", "   "])
def test_delete_requires_id(store, request_id):
    with pytest.raises(InvalidInput, match="Request ID is required"):
        operations.delete_blood_request(store, STAFF, request_id)


# ── Tests: register_donation ─────────────────────────────────────────

def test_register_donation_writes_ledger_and_mirror(store, identity):
    identity.create_user("donor-1")
    operations.register_donation(store, identity, STAFF, _donation())

    entry = store.get(LEDGER, "UNIT-1")
    assert entry["currentStatus"] == "Verified"
    assert entry["donorUID"] == "donor-1"
    assert len(entry["history"]) == 1
    assert entry["history"][0]["status"] == "Verified"
    assert entry["history"][0]["location"] == "Ward 3"

    mirror = store.get(donation_history_path("donor-1"), "UNIT-1")
    assert mirror["status"] == "Verified"
    assert mirror["donatedAt"] == entry["createdAt"]


def test_register_donation_unknown_owner(store, identity):
    with pytest.raises(UnknownOwner):
        operations.register_donation(store, identity, STAFF, _donation(donor="ghost"))
    assert store.get(LEDGER, "UNIT-1") is None
    assert store.list(donation_history_path("ghost")) == []


def test_register_donation_duplicate_unit(store, identity):
    identity.create_user("donor-1")
    identity.create_user("donor-2")
    operations.register_donation(store, identity, STAFF, _donation())
    operations.update_unit_status(store, STAFF, StatusUpdateInput("UNIT-1", "In Storage", "Fridge A"))

    with pytest.raises(DuplicateUnit):
        operations.register_donation(store, identity, STAFF, _donation(donor="donor-2"))

    entry = store.get(LEDGER, "UNIT-1")
    assert entry["donorUID"] == "donor-1"
    assert len(entry["history"]) == 2
    assert store.list(donation_history_path("donor-2")) == []


def test_register_donation_is_atomic_under_fault(store, identity, monkeypatch):
    identity.create_user("donor-1")

    def failing_set(self, *args, **kwargs):
        raise RuntimeError("disk on fire")

    monkeypatch.setattr(SqlDocumentStore, "_apply_set", failing_set)
    with pytest.raises(RuntimeError):
        operations.register_donation(store, identity, STAFF, _donation())
    monkeypatch.undo()

    assert store.get(LEDGER, "UNIT-1") is None
    assert store.get(donation_history_path("donor-1"), "UNIT-1") is None


# ── Tests: update_unit_status ────────────────────────────────────────

def test_update_status_appends_history(store, identity):
    identity.create_user("donor-1")
    operations.register_donation(store, identity, STAFF, _donation())
    operations.update_unit_status(store, STAFF, StatusUpdateInput("UNIT-1", "In Transit", "Van 2"))
    operations.update_unit_status(store, STAFF, StatusUpdateInput("UNIT-1", "Delivered", "City Hospital"))

    entry = store.get(LEDGER, "UNIT-1")
    assert entry["currentStatus"] == "Delivered"
    assert entry["currentLocation"] == "City Hospital"
    assert [h["status"] for h in entry["history"]] == ["Verified", "In Transit", "Delivered"]


def test_update_status_unknown_unit(store):
    with pytest.raises(UnknownUnit):
        operations.update_unit_status(store, STAFF, StatusUpdateInput("GHOST", "Delivered", "x"))
    assert store.get(LEDGER, "GHOST") is None


def test_concurrent_status_updates_keep_every_entry(tmp_path):
    engine = make_engine(f"sqlite:///{tmp_path / 'ledger.db'}")
    create_schema(engine)
    store = SqlDocumentStore(engine)
    identity = JwtIdentityProvider(engine, secret_key="unused-secret-key-with-enough-bytes-000")
    identity.create_user("donor-1")
    operations.register_donation(store, identity, STAFF, _donation())

    n = 16
    updates = [StatusUpdateInput("UNIT-1", "In Transit", f"Checkpoint {i}") for i in range(n)]
    with ThreadPoolExecutor(max_workers=8) as pool:
        list(pool.map(lambda u: operations.update_unit_status(store, STAFF, u), updates))

    history = store.get(LEDGER, "UNIT-1")["history"]
    assert len(history) == n + 1
    assert history[0]["status"] == "Verified"
    assert sorted(h["location"] for h in history[1:]) == sorted(u.location for u in updates)
    engine.dispose()


# ── Tests: reads ─────────────────────────────────────────────────────

def test_get_ledger_entry_unknown(store):
    with pytest.raises(UnknownUnit):
        operations.get_ledger_entry(store, "GHOST")


def test_list_donation_history_only_own_entries(store, identity):
    identity.create_user("donor-1")
    identity.create_user("donor-2")
    operations.register_donation(store, identity, STAFF, _donation("U1", "donor-1"))
    operations.register_donation(store, identity, STAFF, _donation("U2", "donor-2"))

    donor = CallerIdentity(uid="donor-1")
    history = operations.list_donation_history(store, donor)
    assert [h["id"] for h in history] == ["U1"]
    assert history[0]["bloodUnitID"] == "U1"
