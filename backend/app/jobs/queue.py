from __future__ import annotations

from redis import Redis
from rq import Queue
from rq.job import Job

from app.config.settings import settings
from app.jobs.rank_refresh import run_rank_refresh
from app.jobs.universe_sync import run_universe_sync


def get_redis_connection() -> Redis:
    return Redis.from_url(settings.redis_url)


def get_queue(name: str | None = None) -> Queue:
    queue_name = name or settings.rank_queue_name
    return Queue(name=queue_name, connection=get_redis_connection())


def enqueue_rank_refresh(market: str) -> Job:
    queue = get_queue()
    return queue.enqueue(run_rank_refresh, market=market, job_timeout=15 * 60)


def enqueue_universe_sync(markets: list[str] | None = None) -> Job:
    queue = get_queue(settings.universe_queue_name)
    return queue.enqueue(run_universe_sync, markets=markets, job_timeout=30 * 60)
