"""
Application state machine
-------------------------
Owns the step gate and the application status. `status` is never assigned
anywhere else: it is recomputed by derive_status() after every change to the
completion flags or the entity type.

Status values are the StepId values of the entity plan plus the two terminal
states `completed` and `rejected`.
"""
from __future__ import annotations

from typing import Dict, List, Optional, Union

from app.core.decisions import Decision, DecisionResult
from app.core.errors import (
    AlreadyCompletedError,
    BlockedTransitionError,
    ImmutableAfterProgressError,
    StepOrderError,
    TerminalStateError,
    ValidationError,
)
from app.core.steps import (
    COMPLETED,
    REJECTED,
    TERMINAL_STATUSES,
    CompanySubType,
    EntityType,
    StepId,
    allowed_sub_types,
    coerce_entity_type,
    step_label,
    steps_for,
)
from app.utils.time import now_iso


def is_terminal(app) -> bool:
    return app.status in TERMINAL_STATUSES


def ensure_not_terminal(app) -> None:
    if is_terminal(app):
        raise TerminalStateError(
            f"Application is already {app.status}",
            {"applicationId": app.id, "status": app.status},
        )


def _done(app, step: StepId) -> bool:
    return bool(app.completedSteps.get(step.value, False))


def next_step(app) -> Optional[StepId]:
    for step in steps_for(app.entityType):
        if not _done(app, step):
            return step
    return None


def can_enter(app, step: Union[StepId, str]) -> bool:
    try:
        step = StepId(step)
    except ValueError:
        return False
    plan = steps_for(app.entityType)
    if step not in plan:
        return False
    for prior in plan[:plan.index(step)]:
        if not _done(app, prior):
            return False
    return True


def require_enterable(app, step: Union[StepId, str]) -> None:
    ensure_not_terminal(app)
    if can_enter(app, step):
        return
    step = StepId(step)
    if step not in steps_for(app.entityType):
        raise StepOrderError(
            f"{step_label(step)} is not part of the {app.entityType} onboarding flow",
            {"step": step.value, "entityType": app.entityType},
        )
    pending = next_step(app)
    raise StepOrderError(
        f"Please complete {step_label(pending)} before {step_label(step)}",
        {"step": step.value, "pendingStep": pending.value if pending else None},
    )


def require_open(app, step: Union[StepId, str]) -> None:
    """Gate for operations that change a step's data: enterable and not yet complete."""
    require_enterable(app, step)
    step = StepId(step)
    if _done(app, step):
        raise AlreadyCompletedError(
            f"{step_label(step)} is already completed",
            {"step": step.value},
        )


def derive_status(app) -> str:
    """Pure: terminal status sticks, otherwise the first incomplete plan step."""
    if is_terminal(app):
        return app.status
    nxt = next_step(app)
    return nxt.value if nxt is not None else COMPLETED


def _outcome(outcome: Union[Decision, DecisionResult, str]) -> DecisionResult:
    if isinstance(outcome, DecisionResult):
        return outcome
    return DecisionResult(decision=Decision(outcome))


def ensure_not_blocked(outcome: Union[Decision, DecisionResult, str], **details) -> DecisionResult:
    """Refuse to act on a block outcome. Returns the outcome otherwise."""
    result = _outcome(outcome)
    if result.blocked:
        raise BlockedTransitionError(
            result.reason or "Verification was blocked",
            {**details, "warnings": list(result.warnings), "score": result.score},
        )
    return result


def mark_complete(app, step: Union[StepId, str], outcome: Union[Decision, DecisionResult, str] = Decision.APPROVE) -> str:
    """
    Record a step as complete on an approve/flag outcome and recompute status.
    A block outcome raises BlockedTransitionError and leaves the flag untouched.
    Returns the new status.
    """
    ensure_not_terminal(app)
    step = StepId(step)
    if step not in steps_for(app.entityType):
        raise ValidationError(
            f"{step_label(step)} is not part of the {app.entityType} onboarding flow",
            {"step": step.value, "entityType": app.entityType},
        )
    ensure_not_blocked(outcome, step=step.value)
    app.completedSteps[step.value] = True
    app.status = derive_status(app)
    if app.status == COMPLETED and not app.completedAt:
        app.completedAt = now_iso()
    return app.status


def change_entity_type(app, new_type: Union[EntityType, str], sub_type: Optional[str] = None) -> str:
    ensure_not_terminal(app)
    et = coerce_entity_type(new_type)
    if any(app.completedSteps.values()):
        raise ImmutableAfterProgressError(
            "Entity type cannot be changed after a step has been completed",
            {"completedSteps": [k for k, v in app.completedSteps.items() if v]},
        )
    allowed = allowed_sub_types(et)
    resolved = None
    if sub_type and allowed:
        try:
            resolved = CompanySubType(str(sub_type).strip().lower())
        except ValueError:
            raise ValidationError(
                f"Invalid company sub type: {sub_type}",
                {"allowed": [s.value for s in allowed]},
            )
    app.entityType = et.value
    app.companySubType = resolved.value if resolved else None
    app.status = derive_status(app)
    return app.status


def reject(app, reason: str) -> str:
    ensure_not_terminal(app)
    app.status = REJECTED
    app.rejectedAt = now_iso()
    app.rejectionReason = (reason or "").strip() or None
    return app.status


def step_overview(app) -> Dict:
    plan = steps_for(app.entityType)
    current = next_step(app)
    steps: List[Dict] = []
    for i, step in enumerate(plan):
        steps.append({
            "id": step.value,
            "name": step_label(step),
            "order": i + 1,
            "completed": _done(app, step),
            "current": current == step and not is_terminal(app),
            "locked": not can_enter(app, step),
        })
    done = sum(1 for s in steps if s["completed"])
    return {
        "entityType": app.entityType,
        "companySubType": app.companySubType,
        "status": app.status,
        "currentStep": current.value if current else None,
        "steps": steps,
        "progress": {
            "completed": done,
            "total": len(plan),
            "percentage": round(done * 100 / len(plan)) if plan else 0,
        },
    }
