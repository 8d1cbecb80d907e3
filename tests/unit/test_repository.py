"""Tests for auditrack.core.repository: Findings / Actions CRUD."""

from dataclasses import replace
from datetime import date
from pathlib import Path

import pytest

from auditrack.core.db import open_db
from auditrack.core.errors import ActionNotFound, FindingNotFound, RecordInvalid
from auditrack.core.models import Finding, Status
from auditrack.core.repository import (
    create_action,
    create_finding,
    delete_action,
    delete_finding,
    get_action,
    get_finding,
    list_actions,
    list_finding_ids,
    list_findings,
    update_action,
    update_finding,
)


@pytest.fixture()
def conn(tmp_path: Path):
    c = open_db(tmp_path / "test.db")
    yield c
    c.close()


# ── Findings ────────────────────────────────────────────────
class TestCreateFinding:
    def test_creates_open(self, conn) -> None:
        f = create_finding(conn, name="Weak password policy")
        assert f.status == Status.OPEN.value
        assert f.name == "Weak password policy"
        assert isinstance(f, Finding)

    def test_default_ref(self, conn) -> None:
        f = create_finding(conn, name="A")
        assert f.finding_ref == f"FND-{f.id:03d}"

    def test_explicit_ref_and_fields(self, conn) -> None:
        f = create_finding(
            conn, name="B", finding_ref="AUD-24-7", audit_name="IT General Controls",
            audit_year="2024", risk_level="High", financial_impact=12500.0,
        )
        assert f.finding_ref == "AUD-24-7"
        assert f.audit_name == "IT General Controls"
        assert f.financial_impact == 12500.0

    def test_timestamps_are_set(self, conn) -> None:
        f = create_finding(conn, name="X")
        assert f.created_utc and f.updated_utc

    def test_rejects_overdue(self, conn) -> None:
        with pytest.raises(RecordInvalid):
            create_finding(conn, name="X", status="Overdue")

    def test_rejects_unsafe_ref(self, conn) -> None:
        with pytest.raises(ValueError, match="invalid characters"):
            create_finding(conn, name="X", finding_ref="'; DROP TABLE findings;--")

    def test_rejects_blank_name(self, conn) -> None:
        with pytest.raises(ValueError, match="must not be empty"):
            create_finding(conn, name="   ")


class TestGetAndListFindings:
    def test_get_missing_raises(self, conn) -> None:
        with pytest.raises(FindingNotFound):
            get_finding(conn, 404)

    def test_list_ordered_by_id(self, conn) -> None:
        ids = [create_finding(conn, name=n).id for n in ("a", "b", "c")]
        assert [f.id for f in list_findings(conn)] == ids
        assert list_finding_ids(conn) == ids

    def test_list_filtered_by_status(self, conn) -> None:
        a = create_finding(conn, name="a")
        b = create_finding(conn, name="b")
        update_finding(conn, replace(b, status="Closed"))
        assert [f.id for f in list_findings(conn, status="closed")] == [b.id]
        assert [f.id for f in list_findings(conn, status=Status.OPEN)] == [a.id]


class TestUpdateFinding:
    def test_full_record_update(self, conn) -> None:
        f = create_finding(conn, name="a", risk_level="Low")
        out = update_finding(conn, replace(f, status="Completed", risk_level="High"))
        assert out.status == "Completed"
        assert out.risk_level == "High"
        assert out.created_utc == f.created_utc

    def test_status_is_canonicalised(self, conn) -> None:
        f = create_finding(conn, name="a")
        assert update_finding(conn, replace(f, status=" risk accepted")).status == "Risk Accepted"

    def test_never_overdue(self, conn) -> None:
        f = create_finding(conn, name="a")
        with pytest.raises(RecordInvalid, match="Overdue"):
            update_finding(conn, replace(f, status="Overdue"))
        assert get_finding(conn, f.id).status == "Open"

    def test_unknown_status(self, conn) -> None:
        f = create_finding(conn, name="a")
        with pytest.raises(RecordInvalid):
            update_finding(conn, replace(f, status="In Progress"))

    def test_missing(self, conn) -> None:
        f = create_finding(conn, name="a")
        with pytest.raises(FindingNotFound):
            update_finding(conn, replace(f, id=999))


class TestDeleteFinding:
    def test_cascades_to_actions(self, conn) -> None:
        f = create_finding(conn, name="a")
        a = create_action(conn, finding_id=f.id, due_date=date(2024, 1, 1))
        delete_finding(conn, f.id)
        with pytest.raises(ActionNotFound):
            get_action(conn, a.id)

    def test_missing(self, conn) -> None:
        with pytest.raises(FindingNotFound):
            delete_finding(conn, 1)


# ── Actions ─────────────────────────────────────────────────
class TestActions:
    def test_create_and_get(self, conn) -> None:
        f = create_finding(conn, name="a")
        a = create_action(
            conn, finding_id=f.id, due_date=date(2024, 3, 31), action_ref="ACT-1",
            description="Rotate keys", responsible="Ops", responsible_email="ops@example.com",
        )
        got = get_action(conn, a.id)
        assert got == a
        assert got.due_date == date(2024, 3, 31)
        assert got.status == "Open"
        assert got.label == "ACT-1"

    def test_create_without_due_date(self, conn) -> None:
        f = create_finding(conn, name="a")
        assert create_action(conn, finding_id=f.id, due_date=None).due_date is None

    def test_create_under_missing_finding(self, conn) -> None:
        with pytest.raises(FindingNotFound):
            create_action(conn, finding_id=42, due_date=None)

    def test_create_rejects_unknown_status(self, conn) -> None:
        f = create_finding(conn, name="a")
        with pytest.raises(RecordInvalid):
            create_action(conn, finding_id=f.id, due_date=None, status="Pending")

    def test_list_scoped_to_finding(self, conn) -> None:
        f1 = create_finding(conn, name="a")
        f2 = create_finding(conn, name="b")
        a1 = create_action(conn, finding_id=f1.id, due_date=None)
        a2 = create_action(conn, finding_id=f2.id, due_date=None)
        assert [a.id for a in list_actions(conn, f1.id)] == [a1.id]
        assert [a.id for a in list_actions(conn)] == [a1.id, a2.id]

    def test_full_record_update(self, conn) -> None:
        f = create_finding(conn, name="a")
        a = create_action(conn, finding_id=f.id, due_date=date(2024, 1, 1), description="d")
        out = update_action(conn, replace(a, status="Overdue"))
        assert out.status == "Overdue"
        assert out.description == "d"
        assert out.due_date == date(2024, 1, 1)

    def test_update_missing(self, conn) -> None:
        f = create_finding(conn, name="a")
        a = create_action(conn, finding_id=f.id, due_date=None)
        with pytest.raises(ActionNotFound):
            update_action(conn, replace(a, id=a.id + 100))

    def test_delete_returns_removed(self, conn) -> None:
        f = create_finding(conn, name="a")
        a = create_action(conn, finding_id=f.id, due_date=None)
        assert delete_action(conn, a.id).id == a.id
        assert list_actions(conn, f.id) == []

    def test_delete_missing(self, conn) -> None:
        with pytest.raises(ActionNotFound):
            delete_action(conn, 1)
