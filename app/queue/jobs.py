from typing import Optional

from app.observability.logging import log
from app.review.client import send_review_notification


def review_notification_job(application_id: str, context: str, subject_id: Optional[str] = None):
    """
    Background job delivering one manual-review notification.
    Failures propagate so RQ applies the retry policy set at enqueue time.
    """
    try:
        log(event="review_job_start", applicationId=application_id, context=context)
        return send_review_notification(application_id, context, subject_id)
    except Exception as e:
        log(event="review_job_exception", applicationId=application_id, context=context, error=str(e))
        raise
