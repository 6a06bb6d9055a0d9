"""
Paper review lifecycle.

    draft ──submit──► pending_lecturer ──► pending_hod_and_coordinator ──► pending_hod ─────────┐
      │                 (supervisor)          │  (HOD and coordinator,     pending_coordinator ─┤
      │                                       │   either order)                                 ▼
      └──submit (no supervisor)──► pending ───┴──────────────────────────────► approved_for_library
                                   (librarian)                                     (librarian)
                                        │                                               │
                                        └───────────────────► approved ◄────────────────┘

Any pending stage may end in `revision` (author resubmits, back to the first stage) or `rejected`.
A librarian may decide any pending stage; a librarian approval is always final.
"""
from __future__ import annotations

DRAFT = "draft"
PENDING = "pending"
PENDING_LECTURER = "pending_lecturer"
PENDING_COORDINATOR = "pending_coordinator"
PENDING_HOD = "pending_hod"
PENDING_HOD_AND_COORDINATOR = "pending_hod_and_coordinator"
APPROVED_FOR_LIBRARY = "approved_for_library"
APPROVED = "approved"
REVISION = "revision"
REJECTED = "rejected"

STATUSES = (
    DRAFT,
    PENDING,
    PENDING_LECTURER,
    PENDING_COORDINATOR,
    PENDING_HOD,
    PENDING_HOD_AND_COORDINATOR,
    APPROVED_FOR_LIBRARY,
    APPROVED,
    REVISION,
    REJECTED,
)

DECISIONS = ("approve", "revision", "reject")

# Stage -> roles that decide it in the normal flow.
STAGE_ROLES: dict[str, frozenset[str]] = {
    PENDING_LECTURER: frozenset({"lecturer"}),
    PENDING_HOD_AND_COORDINATOR: frozenset({"hod", "project_coordinator"}),
    PENDING_HOD: frozenset({"hod"}),
    PENDING_COORDINATOR: frozenset({"project_coordinator"}),
    APPROVED_FOR_LIBRARY: frozenset({"librarian"}),
    PENDING: frozenset({"librarian"}),
}

PENDING_STATUSES = frozenset(STAGE_ROLES)

STAGE_LABELS = {
    PENDING_LECTURER: "lecturer review",
    PENDING_HOD_AND_COORDINATOR: "HOD and project coordinator review",
    PENDING_HOD: "HOD review",
    PENDING_COORDINATOR: "project coordinator review",
    APPROVED_FOR_LIBRARY: "library approval",
    PENDING: "library review",
}

# (stage, deciding role) -> status after an approval
APPROVE_TRANSITIONS: dict[tuple[str, str], str] = {
    (PENDING_LECTURER, "lecturer"): PENDING_HOD_AND_COORDINATOR,
    (PENDING_HOD_AND_COORDINATOR, "hod"): PENDING_COORDINATOR,
    (PENDING_HOD_AND_COORDINATOR, "project_coordinator"): PENDING_HOD,
    (PENDING_HOD, "hod"): APPROVED_FOR_LIBRARY,
    (PENDING_COORDINATOR, "project_coordinator"): APPROVED_FOR_LIBRARY,
    (APPROVED_FOR_LIBRARY, "librarian"): APPROVED,
    (PENDING, "librarian"): APPROVED,
}


class WorkflowError(Exception):
    pass


class InvalidTransition(WorkflowError):
    """The paper is not in a state that allows the requested step."""


class NotEntitled(WorkflowError):
    """The actor may not decide the paper's current stage."""


def is_pending(status: str) -> bool:
    return status in PENDING_STATUSES


def first_stage(has_supervisor: bool) -> str:
    return PENDING_LECTURER if has_supervisor else PENDING


def stages_for_role(role: str) -> tuple[str, ...]:
    """Stages that appear in a reviewer's queue (librarian overrides are not queued)."""
    return tuple(stage for stage, roles in STAGE_ROLES.items() if role in roles)


def can_decide(stage: str, role: str, *, is_supervisor: bool = False) -> bool:
    if not is_pending(stage):
        return False
    if role == "librarian":
        return True
    if role not in STAGE_ROLES[stage]:
        return False
    if stage == PENDING_LECTURER:
        return is_supervisor
    return True


def next_status(stage: str, decision: str, role: str, *, is_supervisor: bool = False) -> str:
    if decision not in DECISIONS:
        raise InvalidTransition(f"Unknown decision {decision!r}")
    if not is_pending(stage):
        raise InvalidTransition(f"Paper is not awaiting review (status: {stage})")
    if not can_decide(stage, role, is_supervisor=is_supervisor):
        raise NotEntitled(f"Role {role!r} cannot decide a paper in {STAGE_LABELS[stage]}")

    if decision == "revision":
        return REVISION
    if decision == "reject":
        return REJECTED
    if role == "librarian":
        return APPROVED
    return APPROVE_TRANSITIONS[(stage, role)]


def can_submit(status: str) -> bool:
    return status == DRAFT


def can_resubmit(status: str) -> bool:
    return status == REVISION
