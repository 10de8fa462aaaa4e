"""Role dispatch tables for the leave and reimbursement workflows.

Every table is keyed by ``UserRole`` and must list every role; a new role
added to the enum without a row here fails at import time.
"""

from __future__ import annotations

from typing import Any, Mapping, Optional

from hrflow.common.constants import LeaveStatus, ReimbursementStatus, UserRole
from hrflow.common.exceptions import (
    AuthorizationError,
    InvalidStateError,
    InvalidTransitionError,
)

# target status → (statuses it may be reached from, resulting status)
LeaveRule = Mapping[LeaveStatus, tuple[frozenset[LeaveStatus], LeaveStatus]]

_REVIEWABLE = frozenset({LeaveStatus.pending, LeaveStatus.pending_hr})


# ── Leave review ────────────────────────────────────────────────────

LEAVE_REVIEW_RULES: dict[UserRole, Optional[LeaveRule]] = {
    UserRole.employee: None,
    UserRole.finance: None,
    # Manager approval is the first stage only; HR (admin) finalises
    UserRole.manager: {
        LeaveStatus.approved: (frozenset({LeaveStatus.pending}), LeaveStatus.pending_hr),
        LeaveStatus.rejected: (_REVIEWABLE, LeaveStatus.rejected),
    },
    UserRole.admin: {
        LeaveStatus.approved: (_REVIEWABLE, LeaveStatus.approved),
        LeaveStatus.rejected: (_REVIEWABLE, LeaveStatus.rejected),
    },
}

# Which statuses show up in a reviewer's pending queue
PENDING_LEAVE_SCOPE: dict[UserRole, tuple[LeaveStatus, ...]] = {
    UserRole.employee: (),
    UserRole.finance: (),
    UserRole.manager: (LeaveStatus.pending,),
    UserRole.admin: (LeaveStatus.pending, LeaveStatus.pending_hr),
}


# ── Reimbursement review ────────────────────────────────────────────

# Stages each role may act on
CLAIM_REVIEW_STAGES: dict[UserRole, frozenset[ReimbursementStatus]] = {
    UserRole.employee: frozenset(),
    UserRole.manager: frozenset({ReimbursementStatus.pending_manager}),
    UserRole.finance: frozenset({ReimbursementStatus.pending_finance}),
    UserRole.admin: frozenset({
        ReimbursementStatus.pending_manager,
        ReimbursementStatus.pending_finance,
    }),
}

# stage → (approval field written, status on approve)
CLAIM_STAGE_OUTCOMES: dict[ReimbursementStatus, tuple[str, ReimbursementStatus]] = {
    ReimbursementStatus.pending_manager: ("manager_approval", ReimbursementStatus.pending_finance),
    ReimbursementStatus.pending_finance: ("finance_approval", ReimbursementStatus.approved),
}

PENDING_CLAIM_SCOPE: dict[UserRole, tuple[ReimbursementStatus, ...]] = {
    role: tuple(sorted(stages, key=lambda s: s.value))
    for role, stages in CLAIM_REVIEW_STAGES.items()
}


# ── Department scoping / listing ────────────────────────────────────

DEPARTMENT_SCOPED: dict[UserRole, bool] = {
    UserRole.employee: False,
    UserRole.manager: True,
    UserRole.finance: False,
    UserRole.admin: False,
}


def _check_exhaustive(name: str, table: Mapping[UserRole, Any]) -> None:
    missing = set(UserRole) - set(table)
    if missing:
        raise RuntimeError(
            f"{name} has no entry for role(s): "
            f"{', '.join(sorted(r.value for r in missing))}"
        )


for _name, _table in (
    ("LEAVE_REVIEW_RULES", LEAVE_REVIEW_RULES),
    ("PENDING_LEAVE_SCOPE", PENDING_LEAVE_SCOPE),
    ("CLAIM_REVIEW_STAGES", CLAIM_REVIEW_STAGES),
    ("DEPARTMENT_SCOPED", DEPARTMENT_SCOPED),
):
    _check_exhaustive(_name, _table)

if set(CLAIM_STAGE_OUTCOMES) != set().union(*CLAIM_REVIEW_STAGES.values()):
    raise RuntimeError("CLAIM_STAGE_OUTCOMES must cover every reviewable claim stage")


# ── Resolvers ───────────────────────────────────────────────────────

def can_review_leave(role: UserRole) -> bool:
    return LEAVE_REVIEW_RULES[role] is not None


def resolve_leave_transition(
    role: UserRole,
    current: LeaveStatus,
    target: LeaveStatus,
) -> LeaveStatus:
    """Return the status a review by ``role`` moves a request to.

    Raises:
        AuthorizationError: the role never reviews leave.
        InvalidTransitionError: the (current, target) pair is not allowed.
    """
    rules = LEAVE_REVIEW_RULES[role]
    if rules is None:
        raise AuthorizationError("Only managers and HR admins can review leave requests.")

    rule = rules.get(target)
    if rule is None or current not in rule[0]:
        raise InvalidTransitionError("LeaveRequest", current, target, role)
    return rule[1]


def can_review_claims(role: UserRole) -> bool:
    return bool(CLAIM_REVIEW_STAGES[role])


def resolve_claim_stage(
    role: UserRole,
    current: ReimbursementStatus,
    approved: bool,
) -> tuple[str, ReimbursementStatus]:
    """Return (approval field, next status) for a review at the current stage.

    Raises:
        AuthorizationError: the role never reviews claims.
        InvalidStateError: the claim is not at a stage this role acts on.
    """
    stages = CLAIM_REVIEW_STAGES[role]
    if not stages:
        raise AuthorizationError(
            "Only managers, finance and HR admins can review reimbursements."
        )
    if current not in stages:
        raise InvalidStateError(
            "ReimbursementClaim",
            current,
            f"Role '{role.value}' cannot review a claim that is '{current.value}'.",
        )
    field, on_approve = CLAIM_STAGE_OUTCOMES[current]
    return field, (on_approve if approved else ReimbursementStatus.rejected)
