"""Role dispatch tables — leave and reimbursement review rules."""

from __future__ import annotations

import pytest

from hrflow.common.constants import LeaveStatus, ReimbursementStatus, UserRole
from hrflow.common.exceptions import (
    AuthorizationError,
    InvalidStateError,
    InvalidTransitionError,
)
from hrflow.workflow.roles import (
    CLAIM_REVIEW_STAGES,
    DEPARTMENT_SCOPED,
    LEAVE_REVIEW_RULES,
    PENDING_CLAIM_SCOPE,
    PENDING_LEAVE_SCOPE,
    can_review_claims,
    can_review_leave,
    resolve_claim_stage,
    resolve_leave_transition,
)


class TestTablesCoverEveryRole:

    @pytest.mark.parametrize(
        "table",
        [LEAVE_REVIEW_RULES, PENDING_LEAVE_SCOPE, CLAIM_REVIEW_STAGES, PENDING_CLAIM_SCOPE, DEPARTMENT_SCOPED],
    )
    def test_every_role_present(self, table):
        assert set(table) == set(UserRole)

    def test_only_managers_are_department_scoped(self):
        assert [r for r, scoped in DEPARTMENT_SCOPED.items() if scoped] == [UserRole.manager]


# ═════════════════════════════════════════════════════════════════════
# Leave
# ═════════════════════════════════════════════════════════════════════


class TestLeaveTransitions:

    def test_manager_approval_forwards_to_hr(self):
        assert resolve_leave_transition(
            UserRole.manager, LeaveStatus.pending, LeaveStatus.approved,
        ) == LeaveStatus.pending_hr

    def test_admin_approval_is_final(self):
        for current in (LeaveStatus.pending, LeaveStatus.pending_hr):
            assert resolve_leave_transition(
                UserRole.admin, current, LeaveStatus.approved,
            ) == LeaveStatus.approved

    def test_manager_may_reject_pending_hr(self):
        assert resolve_leave_transition(
            UserRole.manager, LeaveStatus.pending_hr, LeaveStatus.rejected,
        ) == LeaveStatus.rejected

    def test_manager_cannot_approve_pending_hr(self):
        with pytest.raises(InvalidTransitionError):
            resolve_leave_transition(UserRole.manager, LeaveStatus.pending_hr, LeaveStatus.approved)

    @pytest.mark.parametrize("current", [LeaveStatus.approved, LeaveStatus.rejected])
    def test_terminal_states_are_final(self, current):
        with pytest.raises(InvalidTransitionError):
            resolve_leave_transition(UserRole.admin, current, LeaveStatus.rejected)

    def test_pending_is_not_a_review_target(self):
        with pytest.raises(InvalidTransitionError):
            resolve_leave_transition(UserRole.admin, LeaveStatus.pending_hr, LeaveStatus.pending)

    @pytest.mark.parametrize("role", [UserRole.employee, UserRole.finance])
    def test_non_reviewers(self, role):
        assert not can_review_leave(role)
        with pytest.raises(AuthorizationError):
            resolve_leave_transition(role, LeaveStatus.pending, LeaveStatus.approved)

    def test_pending_queue_scope(self):
        assert PENDING_LEAVE_SCOPE[UserRole.manager] == (LeaveStatus.pending,)
        assert set(PENDING_LEAVE_SCOPE[UserRole.admin]) == {LeaveStatus.pending, LeaveStatus.pending_hr}


# ═════════════════════════════════════════════════════════════════════
# Reimbursements
# ═════════════════════════════════════════════════════════════════════


class TestClaimStages:

    def test_manager_approval_moves_to_finance(self):
        assert resolve_claim_stage(
            UserRole.manager, ReimbursementStatus.pending_manager, True,
        ) == ("manager_approval", ReimbursementStatus.pending_finance)

    def test_finance_approval_is_final(self):
        assert resolve_claim_stage(
            UserRole.finance, ReimbursementStatus.pending_finance, True,
        ) == ("finance_approval", ReimbursementStatus.approved)

    def test_rejection_at_either_stage(self):
        assert resolve_claim_stage(
            UserRole.admin, ReimbursementStatus.pending_manager, False,
        ) == ("manager_approval", ReimbursementStatus.rejected)
        assert resolve_claim_stage(
            UserRole.admin, ReimbursementStatus.pending_finance, False,
        ) == ("finance_approval", ReimbursementStatus.rejected)

    def test_finance_cannot_act_at_manager_stage(self):
        with pytest.raises(InvalidStateError):
            resolve_claim_stage(UserRole.finance, ReimbursementStatus.pending_manager, True)

    def test_draft_is_not_reviewable(self):
        with pytest.raises(InvalidStateError):
            resolve_claim_stage(UserRole.admin, ReimbursementStatus.draft, True)

    def test_employee_never_reviews(self):
        assert not can_review_claims(UserRole.employee)
        with pytest.raises(AuthorizationError):
            resolve_claim_stage(UserRole.employee, ReimbursementStatus.pending_manager, True)
