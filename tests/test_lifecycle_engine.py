from __future__ import annotations

import dataclasses
from datetime import date

import pytest

from gatepass.domain.models import (
    STATUS_APPROVED,
    STATUS_PENDING_ADVISOR,
    STATUS_PENDING_HOD,
    STATUS_REJECTED,
    STATUS_USED,
    TOKEN_BEARING_STATUSES,
)
from gatepass.errors import (
    AlreadyUsedError,
    ForbiddenError,
    InputValidationError,
    InvalidStateError,
    NotFoundError,
)
from gatepass.directory.models import DirectoryConfig
from gatepass.directory.service import StaticDirectory
from gatepass.lifecycle.engine import RequestLifecycleEngine
from gatepass.lifecycle.issuer import CredentialIssuer

_ORDER = [STATUS_PENDING_ADVISOR, STATUS_PENDING_HOD, STATUS_APPROVED, STATUS_USED]


def _assert_credential_invariant(request) -> None:
    assert (request.qr_token is not None) == (request.status in TOKEN_BEARING_STATUSES)
    assert request.qr_used == (request.status == STATUS_USED)


def _approved(engine, requester, content):
    created = engine.create_request(requester, content)
    engine.advisor_decide(created.id, "ca-cse-3a", "approve")
    return engine.hod_decide(created.id, "hod-cse", "approve")


def test_create_request_starts_pending_advisor(engine, store, requester, content):
    created = engine.create_request(requester, content)

    assert created.status == STATUS_PENDING_ADVISOR
    assert created.advisor_id == "ca-cse-3a"
    assert created.hod_id == "hod-cse"
    assert created.advisor_status == "pending"
    assert created.hod_status == "pending"
    assert created.qr_token is None
    assert created.qr_used is False
    assert store.get_request(created.id) == created
    _assert_credential_invariant(created)


def test_advisor_approve_without_remarks_forwards_to_hod(engine, store, requester, content):
    created = engine.create_request(requester, content)

    updated = engine.advisor_decide(created.id, "ca-cse-3a", "approve")

    assert updated.status == STATUS_PENDING_HOD
    assert updated.advisor_status == "approved"
    assert updated.advisor_remarks == "Approved"
    assert updated.advisor_action_at is not None
    assert store.get_request(created.id) == updated


def test_hod_approve_issues_token(engine, store, requester, content):
    approved = _approved(engine, requester, content)

    assert approved.status == STATUS_APPROVED
    assert approved.hod_status == "approved"
    assert approved.hod_remarks == "Approved"
    assert approved.qr_token
    assert approved.qr_used is False
    assert store.get_request(approved.id).qr_token == approved.qr_token
    _assert_credential_invariant(approved)


def test_tokens_are_unique_across_requests(engine, requester, content):
    first = _approved(engine, requester, content)
    second = _approved(engine, requester, content)
    assert first.qr_token != second.qr_token


def test_redeem_marks_used_and_logs_scan(engine, store, requester, content):
    approved = _approved(engine, requester, content)

    result = engine.redeem(approved.qr_token, "sec-main")

    stored = store.get_request(approved.id)
    assert stored.status == STATUS_USED
    assert stored.qr_used is True
    assert stored.used_by == "sec-main"
    assert stored.used_at == result.used_at
    _assert_credential_invariant(stored)

    logs = store.list_scan_logs("sec-main")
    assert len(logs) == 1
    assert logs[0].request_id == approved.id
    assert logs[0].student_name == "Anand Raj"
    assert logs[0].scanned_by_name == "Rajan Kumar"

    payload = result.to_dict()
    assert payload["student"]["name"] == "Anand Raj"
    assert payload["student"]["department"] == "CSE"
    assert approved.qr_token not in str(payload)


def test_second_redeem_reports_already_used(engine, store, requester, content):
    approved = _approved(engine, requester, content)
    first = engine.redeem(approved.qr_token, "sec-main")

    with pytest.raises(AlreadyUsedError) as excinfo:
        engine.redeem(approved.qr_token, "sec-main")

    assert excinfo.value.used_at == first.used_at
    assert store.get_request(approved.id).used_at == first.used_at
    assert len(store.list_scan_logs()) == 1


def test_wrong_advisor_is_forbidden(engine, store, requester, content):
    created = engine.create_request(requester, content)

    with pytest.raises(ForbiddenError):
        engine.advisor_decide(created.id, "ca-cse-3b", "approve")

    assert store.get_request(created.id).status == STATUS_PENDING_ADVISOR


@pytest.mark.parametrize("actor_id", ["hod-cse", "sec-main", "stu-1", "nobody"])
def test_non_advisor_roles_cannot_decide_advisor_stage(engine, requester, content, actor_id):
    created = engine.create_request(requester, content)
    with pytest.raises(ForbiddenError):
        engine.advisor_decide(created.id, actor_id, "approve")


def test_wrong_hod_is_forbidden(engine, store, requester, content):
    created = engine.create_request(requester, content)
    engine.advisor_decide(created.id, "ca-cse-3a", "approve")
    with pytest.raises(ForbiddenError):
        engine.hod_decide(created.id, "ca-cse-3a", "approve")
    assert store.get_request(created.id).status == STATUS_PENDING_HOD


def test_reject_with_short_remarks_is_validation_error(engine, store, requester, content):
    created = engine.create_request(requester, content)

    with pytest.raises(InputValidationError):
        engine.advisor_decide(created.id, "ca-cse-3a", "reject", "no")

    assert store.get_request(created.id) == created


def test_hod_reject_requires_remarks(engine, store, requester, content):
    created = engine.create_request(requester, content)
    engine.advisor_decide(created.id, "ca-cse-3a", "approve")
    before = store.get_request(created.id)

    with pytest.raises(InputValidationError):
        engine.hod_decide(created.id, "hod-cse", "reject", None)

    assert store.get_request(created.id) == before


def test_advisor_reject_is_terminal(engine, store, requester, content):
    created = engine.create_request(requester, content)

    rejected = engine.advisor_decide(created.id, "ca-cse-3a", "reject", "Exams next week")

    assert rejected.status == STATUS_REJECTED
    assert rejected.advisor_status == "rejected"
    assert rejected.advisor_remarks == "Exams next week"
    assert rejected.hod_status == "pending"
    _assert_credential_invariant(rejected)
    with pytest.raises(InvalidStateError):
        engine.hod_decide(created.id, "hod-cse", "approve")


def test_hod_reject_is_terminal(engine, store, requester, content):
    created = engine.create_request(requester, content)
    engine.advisor_decide(created.id, "ca-cse-3a", "approve")

    rejected = engine.hod_decide(created.id, "hod-cse", "reject", "Insufficient reason")

    assert rejected.status == STATUS_REJECTED
    assert rejected.hod_remarks == "Insufficient reason"
    assert rejected.qr_token is None


@pytest.mark.parametrize("second", ["approve", "reject"])
def test_advisor_stage_is_write_once(engine, store, requester, content, second):
    created = engine.create_request(requester, content)
    engine.advisor_decide(created.id, "ca-cse-3a", "approve", "Go ahead")
    before = store.get_request(created.id)

    with pytest.raises(InvalidStateError) as excinfo:
        engine.advisor_decide(created.id, "ca-cse-3a", second, "Changed my mind")

    assert excinfo.value.status == STATUS_PENDING_HOD
    assert store.get_request(created.id) == before


def test_hod_approve_twice_does_not_reissue(engine, store, requester, content):
    approved = _approved(engine, requester, content)

    with pytest.raises(InvalidStateError):
        engine.hod_decide(approved.id, "hod-cse", "approve")

    assert store.get_request(approved.id).qr_token == approved.qr_token


def test_hod_cannot_act_before_advisor(engine, requester, content):
    created = engine.create_request(requester, content)
    with pytest.raises(InvalidStateError):
        engine.hod_decide(created.id, "hod-cse", "approve")


def test_unknown_request_is_not_found(engine):
    with pytest.raises(NotFoundError):
        engine.advisor_decide("missing", "ca-cse-3a", "approve")


def test_unknown_token_is_not_found(engine):
    with pytest.raises(NotFoundError):
        engine.redeem("not-a-token", "sec-main")


def test_blank_token_is_validation_error(engine):
    with pytest.raises(InputValidationError):
        engine.redeem("  ", "sec-main")


def test_only_security_can_redeem(engine, requester, content):
    approved = _approved(engine, requester, content)
    with pytest.raises(ForbiddenError):
        engine.redeem(approved.qr_token, "stu-1")


def test_unassigned_request_stays_pending(engine, directory, content):
    requester = directory.requester_snapshot("stu-2")
    created = engine.create_request(requester, content)

    assert created.advisor_id is None
    assert created.hod_id is None
    for advisor in ("ca-cse-3a", "ca-cse-3b"):
        with pytest.raises(ForbiddenError):
            engine.advisor_decide(created.id, advisor, "approve")
    assert engine.list_requests("student", "stu-2")[0].status == STATUS_PENDING_ADVISOR


def test_request_without_hod_stays_pending_hod(store, clock, directory_data, content):
    directory_data["members"] = [m for m in directory_data["members"] if m["role"] != "hod"]
    directory_data["members"].append(
        {
            "id": "hod-mech",
            "name": "Dr. Lakshmi Iyer",
            "role": "hod",
            "handles": {"department": "MECH"},
        }
    )
    directory = StaticDirectory(DirectoryConfig.model_validate(directory_data))
    engine = RequestLifecycleEngine(store, directory, clock=clock)
    created = engine.create_request(directory.requester_snapshot("stu-1"), content)

    assert created.advisor_id == "ca-cse-3a"
    assert created.hod_id is None
    forwarded = engine.advisor_decide(created.id, "ca-cse-3a", "approve")
    assert forwarded.status == STATUS_PENDING_HOD

    for hod in ("hod-mech", "hod-cse"):
        with pytest.raises(ForbiddenError):
            engine.hod_decide(created.id, hod, "approve")
    assert engine.list_requests("hod", "hod-mech") == []
    stored = store.get_request(created.id)
    assert stored.status == STATUS_PENDING_HOD
    assert stored.hod_status == "pending"
    assert stored.qr_token is None


def test_create_request_requires_student_role(engine, requester, content):
    impostor = dataclasses.replace(requester, id="ca-cse-3a")
    with pytest.raises(ForbiddenError):
        engine.create_request(impostor, content)


@pytest.mark.parametrize(
    "changes",
    [
        {"reason": "too short"},
        {"destination": "   "},
        {"exit_date": date(2026, 3, 5), "expected_return_date": date(2026, 3, 4)},
    ],
)
def test_create_request_validates_content(engine, store, requester, content, changes):
    with pytest.raises(InputValidationError):
        engine.create_request(requester, dataclasses.replace(content, **changes))
    assert store.query_requests({"requester_id": requester.id}) == []


def test_create_request_requires_contact_number(engine, requester, content):
    with pytest.raises(InputValidationError, match="contact_number"):
        engine.create_request(dataclasses.replace(requester, contact_number=""), content)


def test_status_sequence_is_monotonic(engine, store, requester, content):
    created = engine.create_request(requester, content)
    seen = [store.get_request(created.id).status]
    engine.advisor_decide(created.id, "ca-cse-3a", "approve")
    seen.append(store.get_request(created.id).status)
    approved = engine.hod_decide(created.id, "hod-cse", "approve")
    seen.append(store.get_request(created.id).status)
    engine.redeem(approved.qr_token, "sec-north")
    seen.append(store.get_request(created.id).status)

    assert seen == _ORDER


def test_redeem_before_approval_is_invalid_state(engine, store, requester, content):
    created = engine.create_request(requester, content)
    store.conditional_update(created.id, {}, {"qr_token": "forged"})

    with pytest.raises(InvalidStateError) as excinfo:
        engine.redeem("forged", "sec-main")

    assert excinfo.value.status == STATUS_PENDING_ADVISOR
    assert store.list_scan_logs() == []


def test_listings_show_only_awaiting_stage(engine, requester, content):
    first = engine.create_request(requester, content)
    second = engine.create_request(requester, content)
    engine.advisor_decide(second.id, "ca-cse-3a", "approve")

    advisor_ids = [r.id for r in engine.list_requests("advisor", "ca-cse-3a")]
    hod_ids = [r.id for r in engine.list_requests("hod", "hod-cse")]
    student_ids = [r.id for r in engine.list_requests("student", "stu-1")]

    assert advisor_ids == [first.id]
    assert hod_ids == [second.id]
    assert student_ids == [second.id, first.id]
    assert engine.list_requests("advisor", "ca-cse-3b") == []


def test_listing_role_must_match_actor(engine):
    with pytest.raises(ForbiddenError):
        engine.list_requests("hod", "ca-cse-3a")
    with pytest.raises(ForbiddenError):
        engine.list_requests("security", "sec-main")


def test_scan_history_is_per_scanner_and_capped(store, directory, clock, requester, content):
    engine = RequestLifecycleEngine(store, directory, clock=clock, scan_history_limit=2)
    tokens = [_approved(engine, requester, content).qr_token for _ in range(3)]
    for token in tokens:
        engine.redeem(token, "sec-main")

    history = engine.scan_history("sec-main", limit=10)

    assert len(history) == 2
    assert history[0].scan_time > history[1].scan_time
    assert engine.scan_history("sec-north") == []
    with pytest.raises(ForbiddenError):
        engine.scan_history("stu-1")


def test_custom_token_factory(store, directory, clock, requester, content):
    engine = RequestLifecycleEngine(
        store, directory, clock=clock, issuer=CredentialIssuer(lambda: "fixed-token")
    )
    approved = _approved(engine, requester, content)
    assert approved.qr_token == "fixed-token"
    assert store.find_by_token("fixed-token").id == approved.id


def test_timestamps_come_from_clock(engine, requester, content, clock):
    created = engine.create_request(requester, content)
    updated = engine.advisor_decide(created.id, "ca-cse-3a", "approve")
    assert updated.advisor_action_at > created.created_at
    assert updated.advisor_action_at < clock.current
