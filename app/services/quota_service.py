"""Daily sentence quota and short-term request rate.

The daily quota is recomputed from ``generation_sessions`` on every check
rather than kept in a counter. The read and the later session insert are not
atomic, so two concurrent requests from one user can both pass and jointly go
over the limit by up to one batch. The per-minute Redis counter narrows
that window but does not close it.
"""
import logging
import uuid
from datetime import datetime, timedelta, timezone
from zoneinfo import ZoneInfo

from redis.asyncio import Redis
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.core.exceptions import QuotaExceededError, RateLimitExceededError
from app.models.generation_session import GenerationSession
from app.models.user import User
from app.schemas.generation import GenerationUsageResponse

logger = logging.getLogger(__name__)


def get_quota_window(now: datetime | None = None) -> tuple[datetime, datetime]:
    """Return the current quota day as ``[start, end)`` in UTC.

    The day boundary is midnight in ``GENERATION_QUOTA_TIMEZONE``.
    """
    tz = ZoneInfo(settings.GENERATION_QUOTA_TIMEZONE)
    local_now = (now or datetime.now(timezone.utc)).astimezone(tz)
    local_start = local_now.replace(hour=0, minute=0, second=0, microsecond=0)
    local_end = local_start + timedelta(days=1)
    return local_start.astimezone(timezone.utc), local_end.astimezone(timezone.utc)


async def count_sentences_used_today(
    db: AsyncSession, user_id: uuid.UUID, now: datetime | None = None,
) -> int:
    window_start, window_end = get_quota_window(now)
    result = await db.execute(
        select(func.coalesce(func.sum(GenerationSession.input_count), 0))
        .where(
            GenerationSession.user_id == user_id,
            GenerationSession.created_at >= window_start,
            GenerationSession.created_at < window_end,
        )
    )
    return int(result.scalar_one())


async def check_daily_quota(db: AsyncSession, user: User, input_count: int) -> None:
    limit = settings.GENERATION_DAILY_SENTENCE_LIMIT
    used = await count_sentences_used_today(db, user.id)
    if used + input_count > limit:
        logger.info(
            "Daily quota rejected user=%s used=%d requested=%d limit=%d",
            user.id, used, input_count, limit,
        )
        raise QuotaExceededError(
            f"Daily limit reached ({limit} sentences/day). "
            f"{max(limit - used, 0)} sentences left today."
        )


async def check_rate_limit(redis: Redis, user: User) -> None:
    key = f"ai:ratelimit:generation:{user.id}"
    limit = settings.AI_RATE_LIMIT_PER_MINUTE

    current = await redis.get(key)
    if current is not None and int(current) >= limit:
        logger.info("Rate limit rejected user=%s", user.id)
        raise RateLimitExceededError()

    pipe = redis.pipeline()
    pipe.incr(key)
    pipe.expire(key, 60)
    await pipe.execute()


async def get_quota_usage(db: AsyncSession, user: User) -> GenerationUsageResponse:
    window_start, window_end = get_quota_window()
    used = await count_sentences_used_today(db, user.id)
    limit = settings.GENERATION_DAILY_SENTENCE_LIMIT
    return GenerationUsageResponse(
        sentences_used=used,
        daily_limit=limit,
        remaining=max(limit - used, 0),
        window_start=window_start,
        window_end=window_end,
    )
