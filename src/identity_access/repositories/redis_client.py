import redis.asyncio as redis

from identity_access.configs.settings import Settings, get_settings
from identity_access.configs.logging_config import get_logger

log = get_logger(__name__)


class RedisClient:
    """
    Lazily connected Redis wrapper shared by the verification code store.
    """

    client: redis.Redis = None

    async def connect(self, settings: Settings | None = None) -> redis.Redis:
        settings = settings or get_settings()
        try:
            log.info("redis.connect start")
            self.client = redis.from_url(settings.redis_url, decode_responses=True)
            await self.client.ping()
            log.info("redis.connect ok")
        except Exception as e:
            log.error("redis.connect failed error=%s", e)
            raise
        return self.client

    async def close(self) -> None:
        if self.client:
            await self.client.aclose()
            self.client = None


redis_client = RedisClient()
