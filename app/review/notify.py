from typing import Optional

from redis.exceptions import RedisError

from app.core.decisions import Decision, DecisionResult
from app.observability import metrics
from app.observability.logging import log
from app.settings import settings


def enqueue_review(application_id: str, context: str, subject_id: Optional[str] = None) -> Optional[str]:
    """Queue a manual-review notification. Returns the RQ job id, or None when disabled."""
    if not settings.REVIEW_WEBHOOK_URL:
        return None

    # Lazy imports to keep rq out of the request import graph
    from app.queue.jobs import review_notification_job
    from app.queue.rq_conn import get_queue, review_retry_policy

    try:
        q = get_queue()
        job = q.enqueue(review_notification_job, application_id, context, subject_id, retry=review_retry_policy())
    except RedisError as e:
        # The decision is already persisted; the review queue can be rebuilt from the audit view
        log(event="review_enqueue_failed", applicationId=application_id, context=context, error=str(e)[:300])
        return None
    job_id = getattr(job, "id", "") or ""
    log(event="review_enqueued", applicationId=application_id, context=context,
        subjectId=subject_id or "", rq_job_id=job_id)
    return job_id


def publish_decision(application_id: str, context: str, result: DecisionResult,
                     subject_id: Optional[str] = None) -> None:
    """Count the outcome and, for flags, ask a human to look at it."""
    log(
        event="verification_decision",
        applicationId=application_id,
        context=context,
        subjectId=subject_id or "",
        decision=result.decision.value,
        score=result.score,
        warnings=list(result.warnings),
    )
    try:
        metrics.record_decision(context, result.decision.value)
    except RedisError as e:
        log(event="metrics_write_failed", error=str(e)[:200])
    if result.decision == Decision.FLAG:
        enqueue_review(application_id, context, subject_id)
