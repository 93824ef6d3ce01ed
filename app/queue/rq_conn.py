from redis import Redis
from rq import Queue, Retry
from app.settings import settings


def get_queue() -> Queue:
    conn = Redis.from_url(settings.REDIS_URL)
    return Queue(settings.RQ_QUEUE_NAME, connection=conn)


def review_retry_policy() -> Retry:
    # 10s, 30s, 60s, 120s, 300s
    intervals = [10, 30, 60, 120, 300][: max(1, int(settings.REVIEW_MAX_RETRIES))]
    return Retry(max=len(intervals), interval=intervals)
