import time
from typing import Optional

import httpx

from app.observability.logging import log
from app.review.payloads import build_review_payload
from app.settings import settings
from app.store.application_repo import load_application


def send_review_notification(application_id: str, context: str, subject_id: Optional[str] = None) -> bool:
    """
    POST a manual-review notification for a flagged decision.
    Raises on non-2xx or transport failure so the RQ job is retried.
    """
    if not settings.REVIEW_WEBHOOK_URL:
        raise RuntimeError("REVIEW_WEBHOOK_URL is not set")

    app = load_application(application_id)
    payload = build_review_payload(app, context, subject_id)

    start = time.time()
    log(
        event="review_send_attempt",
        applicationId=application_id,
        context=context,
        subjectId=subject_id or "",
        timeoutSec=int(settings.REVIEW_WEBHOOK_TIMEOUT_SEC),
    )
    try:
        with httpx.Client(timeout=settings.REVIEW_WEBHOOK_TIMEOUT_SEC) as client:
            resp = client.post(settings.REVIEW_WEBHOOK_URL, json=payload)
    except httpx.HTTPError as e:
        log(
            event="review_send_exception",
            applicationId=application_id,
            elapsedMs=int((time.time() - start) * 1000),
            errorType=type(e).__name__,
            error=str(e)[:500],
        )
        raise

    elapsed_ms = int((time.time() - start) * 1000)
    if 200 <= resp.status_code < 300:
        log(event="review_send_success", applicationId=application_id,
            statusCode=int(resp.status_code), elapsedMs=elapsed_ms)
        return True

    log(
        event="review_send_failed",
        applicationId=application_id,
        statusCode=int(resp.status_code),
        elapsedMs=elapsed_ms,
        responseText=(resp.text or "")[:500],
    )
    raise RuntimeError(f"Review notification failed: {resp.status_code} {resp.text}")
