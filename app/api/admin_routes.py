from fastapi import APIRouter, Depends
from starlette.concurrency import run_in_threadpool

from app.api.auth import require_admin
from app.api.routes import ok
from app.api.schemas import RejectRequest
from app.core import orchestrator
from app.core.state_machine import step_overview
from app.providers.sandbox_client import get_sandbox_client
import app.observability.metrics as metrics

router = APIRouter(prefix="/admin", tags=["admin"])


@router.get("/applications/{application_id}")
def get_application_snapshot(application_id: str, _=Depends(require_admin)):
    """Compact application snapshot for the review desk, with every cross-validation record."""
    app = orchestrator.get_application(application_id)
    return ok({
        "applicationId": app.id,
        "entityType": app.entityType,
        "companySubType": app.companySubType,
        "status": app.status,
        "steps": step_overview(app),
        "crossValidation": orchestrator.cross_validation_audit(app),
        "bankFlaggedForReview": bool(app.bank and app.bank.flaggedForReview),
        "partnersCount": len(app.partners),
        "directorsCount": len(app.company.directors) if app.company else 0,
        "createdAt": app.createdAt,
        "updatedAt": app.updatedAt,
        "rejectionReason": app.rejectionReason,
        "version": app.version,
    })


@router.post("/applications/{application_id}/reject")
def reject_application(application_id: str, body: RejectRequest, _=Depends(require_admin)):
    app = orchestrator.reject_application(application_id, body.reason)
    return ok({"applicationId": app.id, "status": app.status, "rejectedAt": app.rejectedAt})


@router.get("/metrics")
def get_metrics(_=Depends(require_admin)):
    """Observability snapshot backed by Redis counters."""
    return metrics.get_decision_snapshot()


@router.get("/provider/token-status")
def provider_token_status(_=Depends(require_admin)):
    return get_sandbox_client().token_status()


@router.post("/provider/token-refresh")
async def provider_token_refresh(_=Depends(require_admin)):
    client = get_sandbox_client()
    await run_in_threadpool(client.force_refresh)
    return client.token_status()
