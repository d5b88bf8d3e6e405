"""Fixed-window request limiter backed by Redis counters."""
import logging

from fastapi import Depends
from redis.exceptions import RedisError

from coursewallet.config import settings
from coursewallet.core.deps import get_current_user
from coursewallet.core.errors import ErrorKind, ServiceError
from coursewallet.core.redis import get_redis
from coursewallet.models.user import User

logger = logging.getLogger(__name__)


async def hit(key: str, limit: int, window_seconds: int) -> bool:
    """Count one request against `key`. Returns False once the window is exhausted."""
    redis = await get_redis()
    # the window TTL is set in the same MULTI as the first INCR
    _, count = await (
        redis.pipeline(transaction=True)
        .set(key, 0, ex=window_seconds, nx=True)
        .incr(key)
        .execute()
    )
    return count <= limit


async def wallet_rate_limit(user: User = Depends(get_current_user)) -> None:
    key = f"ratelimit:wallet:{user.id}"
    try:
        allowed = await hit(key, settings.WALLET_RATE_LIMIT, settings.WALLET_RATE_WINDOW_SECONDS)
    except RedisError as e:
        # fail open
        logger.warning("Rate limiter unavailable: %s", e)
        return
    if not allowed:
        raise ServiceError(ErrorKind.rate_limited, "Too many wallet requests, please try again later")
