"""Leave workflow test suite — submission, two-stage review, cancellation,
bulk review, department scoping, conflict warnings, balances and API endpoints.

Tests run against SQLite via the shared conftest.py fixtures.
"""

from __future__ import annotations

import uuid
from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy import func, select, update
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from hrflow.accrual.service import AccrualEngine
from hrflow.common.audit import AuditRecorder
from hrflow.common.constants import LeaveStatus, LeaveType, UserRole
from hrflow.common.exceptions import (
    AuthorizationError,
    ConflictError,
    InvalidStateError,
    InvalidTransitionError,
    NotFoundException,
    ValidationException,
)
from hrflow.holidays.service import HolidayRegistry
from hrflow.leave.models import LeaveRequest
from hrflow.leave.schemas import LeaveRequestOut
from hrflow.workflow.engine import WorkflowEngine, build_workflow_engine
from hrflow.workflow.ledger import RequestLedger
from tests.conftest import (
    RecordingDispatcher,
    actor_for,
    auth_headers,
    seed_department,
    seed_employee,
)

# Mon 2024-06-03 → Fri 2024-06-07
WEEK_START = date(2024, 6, 3)
WEEK_END = date(2024, 6, 7)


async def _submit(workflow: WorkflowEngine, actor, start=WEEK_START, end=WEEK_END, **kwargs):
    kwargs.setdefault("leave_type", LeaveType.annual)
    kwargs.setdefault("reason", "Family trip")
    return await workflow.submit_leave(actor, start=start, end=end, **kwargs)


async def _count_leaves(db: AsyncSession) -> int:
    return (await db.execute(select(func.count()).select_from(LeaveRequest))).scalar_one()


# ═════════════════════════════════════════════════════════════════════
# 1. Submission
# ═════════════════════════════════════════════════════════════════════


class TestSubmitLeave:

    async def test_submit_counts_business_days(self, db, workflow, staff):
        """A Mon–Fri request is five days, pending, with an audit entry."""
        submission = await _submit(workflow, staff["employee"])
        leave = submission.request

        assert leave.status == LeaveStatus.pending
        assert leave.total_days == 5
        assert leave.employee_id == staff["employee"].id
        assert submission.conflict_warning is None

        entries = await AuditRecorder(db).entries_for(leave.id)
        assert [e.action for e in entries] == ["apply_leave"]
        assert entries[0].details == "Applied for 5 days of annual."

    async def test_weekend_only_rejected(self, db, workflow, staff):
        with pytest.raises(ValidationException) as exc_info:
            await _submit(workflow, staff["employee"], start=date(2024, 6, 8), end=date(2024, 6, 9))
        assert "dates" in exc_info.value.errors
        assert await _count_leaves(db) == 0

    async def test_holidays_excluded_from_count(self, db, workflow, staff):
        await HolidayRegistry(db).add_holiday(
            actor_id=staff["admin"].id, name="Founders Day", date=date(2024, 6, 5),
        )
        await db.commit()

        submission = await _submit(workflow, staff["employee"])
        assert submission.request.total_days == 4

    async def test_end_before_start_rejected(self, workflow, staff):
        with pytest.raises(ValidationException) as exc_info:
            await _submit(workflow, staff["employee"], start=WEEK_END, end=WEEK_START)
        assert "end_date" in exc_info.value.errors

    async def test_blank_reason_rejected(self, workflow, staff):
        with pytest.raises(ValidationException) as exc_info:
            await _submit(workflow, staff["employee"], reason="   ")
        assert "reason" in exc_info.value.errors

    async def test_overlapping_request_rejected(self, db, workflow, staff):
        """A second request touching any day of a live one is refused; nothing is written."""
        await _submit(workflow, staff["employee"])

        with pytest.raises(ConflictError):
            await _submit(workflow, staff["employee"], start=date(2024, 6, 7), end=date(2024, 6, 11))

        assert await _count_leaves(db) == 1

    async def test_rejected_request_frees_the_dates(self, db, workflow, staff):
        first = await _submit(workflow, staff["employee"])
        await workflow.review_leave(staff["admin"], first.request.id, LeaveStatus.rejected, "No cover")

        second = await _submit(workflow, staff["employee"])
        assert second.request.status == LeaveStatus.pending
        assert await _count_leaves(db) == 2

    async def test_later_holiday_does_not_change_total(self, db, workflow, staff):
        submission = await _submit(workflow, staff["employee"])
        leave_id = submission.request.id

        await HolidayRegistry(db).add_holiday(
            actor_id=staff["admin"].id, name="Late Holiday", date=date(2024, 6, 4),
        )
        await db.commit()

        leave = await RequestLedger(db).get_leave(leave_id, refresh=True)
        assert leave.total_days == 5

    async def test_department_conflict_warning(self, db, workflow, department, staff):
        """Employee + manager + colleague: one colleague away is 1/3 > 30%."""
        colleague = await seed_employee(db, department=department, first_name="Ravi")
        await _submit(workflow, actor_for(colleague, department))

        submission = await _submit(workflow, staff["employee"], start=date(2024, 6, 6), end=date(2024, 6, 10))

        assert submission.conflict_warning == (
            "Warning: More than 30% of your department (Engineering) "
            "is likely to be away during this period."
        )
        entries = await AuditRecorder(db).entries_for(submission.request.id)
        assert submission.conflict_warning in entries[0].details

    async def test_no_department_skips_conflict_check(self, workflow, staff):
        submission = await _submit(workflow, staff["admin"])
        assert submission.conflict_warning is None
        assert submission.request.total_days == 5


# ═════════════════════════════════════════════════════════════════════
# 2. Review
# ═════════════════════════════════════════════════════════════════════


class TestReviewLeave:

    async def test_two_stage_approval(self, db, workflow, staff, recorder):
        """Manager approval forwards to HR; admin approval finalises and notifies."""
        leave_id = (await _submit(workflow, staff["employee"])).request.id

        forwarded = await workflow.review_leave(staff["manager"], leave_id, LeaveStatus.approved, "OK from me")
        assert forwarded.status == LeaveStatus.pending_hr
        assert forwarded.reviewed_by == staff["manager"].id
        assert recorder.events == []

        approved = await workflow.review_leave(staff["admin"], leave_id, LeaveStatus.approved, "Enjoy")
        assert approved.status == LeaveStatus.approved
        assert approved.reviewed_by == staff["admin"].id
        assert approved.review_comment == "Enjoy"

        assert len(recorder.events) == 1
        event = recorder.events[0]
        assert event.recipient_id == staff["employee"].id
        assert event.payload() == {
            "request_id": str(leave_id),
            "status": "approved",
            "message": "Your leave request for annual has been approved.",
        }

        actions = [e.action for e in await AuditRecorder(db).entries_for(leave_id)]
        assert actions == ["apply_leave", "review_leave:pending_hr", "review_leave:approved"]

    async def test_final_approval_debits_balance(self, db, workflow, staff):
        leave_id = (await _submit(workflow, staff["employee"])).request.id
        await workflow.review_leave(staff["admin"], leave_id, LeaveStatus.approved)

        balance = await AccrualEngine(db).balance_for(staff["employee"].id)
        assert balance.el == Decimal("10")
        assert balance.last_leave_date == WEEK_END

    async def test_manager_rejection_is_final(self, workflow, staff, recorder):
        leave_id = (await _submit(workflow, staff["employee"])).request.id
        rejected = await workflow.review_leave(staff["manager"], leave_id, LeaveStatus.rejected, "Busy week")

        assert rejected.status == LeaveStatus.rejected
        assert recorder.events[0].title == "Leave Request Rejected"

        with pytest.raises(InvalidTransitionError):
            await workflow.review_leave(staff["admin"], leave_id, LeaveStatus.approved)

    async def test_manager_cannot_finalise(self, workflow, staff):
        leave_id = (await _submit(workflow, staff["employee"])).request.id
        await workflow.review_leave(staff["manager"], leave_id, LeaveStatus.approved)

        with pytest.raises(InvalidTransitionError):
            await workflow.review_leave(staff["manager"], leave_id, LeaveStatus.approved)

    async def test_manager_of_other_department_forbidden(self, db, workflow, staff):
        leave_id = (await _submit(workflow, staff["employee"])).request.id
        sales = await seed_department(db, name="Sales", code="SAL")
        other = actor_for(await seed_employee(db, role=UserRole.manager, department=sales), sales)

        with pytest.raises(AuthorizationError):
            await workflow.review_leave(other, leave_id, LeaveStatus.approved)

    @pytest.mark.parametrize("role", ["employee", "finance"])
    async def test_non_reviewers_forbidden(self, workflow, staff, role):
        leave_id = (await _submit(workflow, staff["employee"])).request.id
        with pytest.raises(AuthorizationError):
            await workflow.review_leave(staff[role], leave_id, LeaveStatus.approved)

    async def test_unknown_request(self, workflow, staff):
        with pytest.raises(NotFoundException):
            await workflow.review_leave(staff["admin"], uuid.uuid4(), LeaveStatus.approved)

    async def test_failing_notifier_keeps_approval(self, db, staff):
        broken = RecordingDispatcher(fail=True)
        engine = build_workflow_engine(db, broken)
        leave_id = (await _submit(engine, staff["employee"])).request.id

        approved = await engine.review_leave(staff["admin"], leave_id, LeaveStatus.approved)

        assert approved.status == LeaveStatus.approved
        assert len(broken.events) == 1
        stored = await RequestLedger(db).get_leave(leave_id, refresh=True)
        assert stored.status == LeaveStatus.approved


# ═════════════════════════════════════════════════════════════════════
# 3. Bulk review
# ═════════════════════════════════════════════════════════════════════


class TestBulkReview:

    async def test_mixed_outcomes(self, db, workflow, staff):
        first = (await _submit(workflow, staff["employee"])).request.id
        second = (await _submit(workflow, staff["manager"], start=date(2024, 7, 1), end=date(2024, 7, 2))).request.id
        missing = uuid.uuid4()

        result = await workflow.bulk_review_leave(
            staff["admin"], [first, missing, second, first], LeaveStatus.approved, "Bulk",
        )

        assert sorted(r.id for r in result.reviewed) == sorted([first, second])
        assert [(f.request_id, f.error) for f in result.failed] == [(missing, "not-found")]

    async def test_one_failure_does_not_undo_others(self, workflow, staff):
        done = (await _submit(workflow, staff["employee"])).request.id
        await workflow.review_leave(staff["admin"], done, LeaveStatus.rejected)
        fresh = (await _submit(workflow, staff["employee"], start=date(2024, 8, 5), end=date(2024, 8, 6))).request.id

        result = await workflow.bulk_review_leave(staff["admin"], [done, fresh], LeaveStatus.approved)

        assert [r.id for r in result.reviewed] == [fresh]
        assert result.failed[0].request_id == done
        assert result.failed[0].error == "invalid-transition"

    async def test_storage_failure_reported_per_id(self, workflow, staff, monkeypatch):
        first = (await _submit(workflow, staff["employee"])).request.id
        second = (await _submit(workflow, staff["manager"], start=date(2024, 7, 1), end=date(2024, 7, 2))).request.id
        transition = workflow.ledger.transition_leave

        async def _flaky(request_id, **kwargs):
            if request_id == second:
                raise OperationalError("UPDATE leave_requests", {}, Exception("connection reset"))
            return await transition(request_id, **kwargs)

        monkeypatch.setattr(workflow.ledger, "transition_leave", _flaky)

        result = await workflow.bulk_review_leave(staff["admin"], [first, second], LeaveStatus.approved)

        assert [(f.request_id, f.error) for f in result.failed] == [(second, "internal-error")]
        out = [LeaveRequestOut.model_validate(r) for r in result.reviewed]
        assert [(o.id, o.status) for o in out] == [(first, LeaveStatus.approved)]
        assert out[0].employee.id == staff["employee"].id

    async def test_lost_race_keeps_earlier_results_readable(self, db, workflow, staff, monkeypatch):
        first = (await _submit(workflow, staff["employee"])).request.id
        second = (await _submit(workflow, staff["manager"], start=date(2024, 7, 1), end=date(2024, 7, 2))).request.id
        transition = workflow.ledger.transition_leave

        async def _raced(request_id, **kwargs):
            if request_id == second:
                # Another reviewer rejects it between our read and our write
                await db.execute(
                    update(LeaveRequest)
                    .where(LeaveRequest.id == second)
                    .values(status=LeaveStatus.rejected)
                )
            return await transition(request_id, **kwargs)

        monkeypatch.setattr(workflow.ledger, "transition_leave", _raced)

        result = await workflow.bulk_review_leave(staff["admin"], [first, second], LeaveStatus.approved)

        assert [(f.request_id, f.error) for f in result.failed] == [(second, "invalid-state")]
        out = [LeaveRequestOut.model_validate(r) for r in result.reviewed]
        assert [o.status for o in out] == [LeaveStatus.approved]

    async def test_empty_list_rejected(self, workflow, staff):
        with pytest.raises(ValidationException):
            await workflow.bulk_review_leave(staff["admin"], [], LeaveStatus.approved)

    async def test_non_terminal_target_rejected(self, workflow, staff):
        with pytest.raises(ValidationException):
            await workflow.bulk_review_leave(staff["admin"], [uuid.uuid4()], LeaveStatus.pending_hr)

    async def test_employee_cannot_bulk_review(self, workflow, staff):
        with pytest.raises(AuthorizationError):
            await workflow.bulk_review_leave(staff["employee"], [uuid.uuid4()], LeaveStatus.approved)


# ═════════════════════════════════════════════════════════════════════
# 4. Cancellation
# ═════════════════════════════════════════════════════════════════════


class TestCancelLeave:

    async def test_cancel_pending(self, db, workflow, staff):
        leave_id = (await _submit(workflow, staff["employee"])).request.id
        await workflow.cancel_leave(staff["employee"], leave_id)

        assert await _count_leaves(db) == 0
        actions = [e.action for e in await AuditRecorder(db).entries_for(leave_id)]
        assert actions == ["apply_leave", "cancel_leave"]

    async def test_cannot_cancel_someone_elses(self, workflow, staff):
        leave_id = (await _submit(workflow, staff["employee"])).request.id
        with pytest.raises(AuthorizationError):
            await workflow.cancel_leave(staff["manager"], leave_id)

    async def test_cannot_cancel_after_manager_approval(self, db, workflow, staff):
        leave_id = (await _submit(workflow, staff["employee"])).request.id
        await workflow.review_leave(staff["manager"], leave_id, LeaveStatus.approved)

        with pytest.raises(InvalidStateError):
            await workflow.cancel_leave(staff["employee"], leave_id)
        assert await _count_leaves(db) == 1


# ═════════════════════════════════════════════════════════════════════
# 5. Listings and stats
# ═════════════════════════════════════════════════════════════════════


class TestLeaveListings:

    async def test_pending_queues(self, db, workflow, staff):
        mine = (await _submit(workflow, staff["employee"])).request.id
        sales = await seed_department(db, name="Sales", code="SAL")
        outsider = actor_for(await seed_employee(db, department=sales), sales)
        theirs = (await _submit(workflow, outsider)).request.id
        forwarded = (await _submit(workflow, staff["employee"], start=date(2024, 9, 2), end=date(2024, 9, 3))).request.id
        await workflow.review_leave(staff["manager"], forwarded, LeaveStatus.approved)

        manager_queue = {r.id for r in await workflow.pending_leaves(staff["manager"])}
        admin_queue = {r.id for r in await workflow.pending_leaves(staff["admin"])}

        assert manager_queue == {mine}
        assert admin_queue == {mine, theirs, forwarded}

    async def test_employee_has_no_queue(self, workflow, staff):
        with pytest.raises(AuthorizationError):
            await workflow.pending_leaves(staff["employee"])

    async def test_my_leaves(self, workflow, staff):
        await _submit(workflow, staff["employee"])
        await _submit(workflow, staff["manager"])
        mine = await workflow.my_leaves(staff["employee"])
        assert [r.employee_id for r in mine] == [staff["employee"].id]

    async def test_stats(self, workflow, staff):
        first = (await _submit(workflow, staff["employee"])).request.id
        await _submit(workflow, staff["employee"], start=date(2024, 7, 1), end=date(2024, 7, 1), leave_type=LeaveType.sick)
        await workflow.review_leave(staff["admin"], first, LeaveStatus.rejected)

        stats = await workflow.leave_stats(staff["admin"])
        assert stats.total == 2
        assert stats.by_status["rejected"] == 1
        assert stats.by_status["pending"] == 1
        assert stats.by_type["sick"] == 1
        assert stats.by_type["unpaid"] == 0

    async def test_manager_listing_is_department_scoped(self, db, workflow, staff):
        await _submit(workflow, staff["employee"])
        sales = await seed_department(db, name="Sales", code="SAL")
        outsider = actor_for(await seed_employee(db, department=sales), sales)
        await _submit(workflow, outsider)

        rows, total = await workflow.all_leaves(staff["manager"], offset=0, limit=20)
        assert total == 1
        assert rows[0].employee_id == staff["employee"].id

        rows, total = await workflow.all_leaves(staff["admin"], offset=0, limit=20)
        assert total == 2


# ═════════════════════════════════════════════════════════════════════
# 6. API endpoints
# ═════════════════════════════════════════════════════════════════════


class TestLeaveAPI:

    async def test_apply_and_review_over_http(self, client, staff, recorder):
        resp = await client.post(
            "/api/v1/leave/apply",
            json={
                "leave_type": "annual",
                "start_date": "2024-06-03",
                "end_date": "2024-06-07",
                "reason": "Family trip",
            },
            headers=auth_headers(staff["employee"]),
        )
        assert resp.status_code == 201, resp.text
        body = resp.json()
        assert body["leave"]["total_days"] == 5
        assert body["leave"]["status"] == "pending"
        assert body["leave"]["employee"]["department_name"] == "Engineering"
        leave_id = body["leave"]["id"]

        resp = await client.put(
            f"/api/v1/leave/{leave_id}/review",
            json={"status": "approved", "review_comment": "Fine"},
            headers=auth_headers(staff["manager"]),
        )
        assert resp.status_code == 200, resp.text
        assert resp.json()["status"] == "pending_hr"

        resp = await client.put(
            f"/api/v1/leave/{leave_id}/review",
            json={"status": "approved"},
            headers=auth_headers(staff["admin"]),
        )
        assert resp.status_code == 200, resp.text
        assert resp.json()["status"] == "approved"
        assert [e.status for e in recorder.events] == ["approved"]

        resp = await client.get("/api/v1/notifications/", headers=auth_headers(staff["employee"]))
        assert resp.status_code == 200
        notes = resp.json()["data"]
        assert len(notes) == 1
        assert notes[0]["status"] == "approved"
        assert notes[0]["entity_id"] == leave_id

    async def test_overlap_is_409_problem(self, client, staff):
        payload = {
            "leave_type": "sick",
            "start_date": "2024-06-03",
            "end_date": "2024-06-04",
            "reason": "Flu",
        }
        headers = auth_headers(staff["employee"])
        assert (await client.post("/api/v1/leave/apply", json=payload, headers=headers)).status_code == 201

        resp = await client.post("/api/v1/leave/apply", json=payload, headers=headers)
        assert resp.status_code == 409
        assert resp.headers["content-type"].startswith("application/problem+json")
        assert resp.json()["type"].endswith("/conflict")

    async def test_reversed_dates_422(self, client, staff):
        resp = await client.post(
            "/api/v1/leave/apply",
            json={"leave_type": "annual", "start_date": "2024-06-07", "end_date": "2024-06-03", "reason": "x"},
            headers=auth_headers(staff["employee"]),
        )
        assert resp.status_code == 422

    async def test_employee_cannot_see_pending_queue(self, client, staff):
        resp = await client.get("/api/v1/leave/pending", headers=auth_headers(staff["employee"]))
        assert resp.status_code == 403

    async def test_missing_token_401(self, client):
        resp = await client.get("/api/v1/leave/my-leaves")
        assert resp.status_code == 401

    async def test_bulk_review_endpoint(self, client, workflow, staff):
        leave_id = (await _submit(workflow, staff["employee"])).request.id
        missing = uuid.uuid4()

        resp = await client.put(
            "/api/v1/leave/bulk-review",
            json={"request_ids": [str(leave_id), str(missing)], "status": "rejected"},
            headers=auth_headers(staff["admin"]),
        )
        assert resp.status_code == 200, resp.text
        body = resp.json()
        assert [r["id"] for r in body["reviewed"]] == [str(leave_id)]
        assert body["failed"][0]["request_id"] == str(missing)

    async def test_cancel_endpoint(self, client, workflow, staff):
        leave_id = (await _submit(workflow, staff["employee"])).request.id
        resp = await client.delete(f"/api/v1/leave/{leave_id}", headers=auth_headers(staff["employee"]))
        assert resp.status_code == 200
        assert resp.json() == {"message": "Leave cancelled successfully"}

    async def test_balances_endpoint(self, client, staff):
        resp = await client.get("/api/v1/leave/balances", headers=auth_headers(staff["employee"]))
        assert resp.status_code == 200
        assert float(resp.json()["el"]) == 15.0
