import redis
from functools import lru_cache
from ..core.config import get_settings


class RedisService:

    def __init__(self, host: str, port: int, db: int = 0):

        self.redis = redis.Redis(
            host=host,
            port=port,
            db=db,
            decode_responses=True
        )


@lru_cache
def get_redis_service() -> RedisService:
    settings = get_settings()
    return RedisService(settings.REDIS_HOST, settings.REDIS_PORT, settings.REDIS_DB)
