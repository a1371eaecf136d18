import redis.asyncio as aioredis
from redis.asyncio import Redis
from redis.asyncio.client import PubSub
from typing import Optional, Any, AsyncIterator, Dict
import json

from app.core.config import settings
from app.core.logging_config import logger


class RedisClient:
    """Redis client used to fan out notifications between workers and API processes"""

    def __init__(self):
        self.redis: Optional[Redis] = None

    async def connect(self):
        """Connect to Redis"""
        try:
            self.redis = aioredis.from_url(
                settings.REDIS_URL,
                encoding="utf-8",
                decode_responses=True
            )
            await self.redis.ping()
            logger.info("Redis connected successfully")
        except Exception as e:
            logger.error(f"Redis connection error: {e}")
            raise

    async def disconnect(self):
        """Disconnect from Redis"""
        if self.redis:
            await self.redis.close()
            self.redis = None
        logger.info("Redis disconnected")

    async def publish(self, channel: str, payload: Dict[str, Any]) -> bool:
        """Publish a JSON payload to a channel"""
        try:
            if self.redis is None:
                await self.connect()
            await self.redis.publish(channel, json.dumps(payload, default=str))
            return True
        except Exception as e:
            logger.error(f"Redis PUBLISH error: {e}")
            return False

    async def subscribe(self, channel: str) -> AsyncIterator[Dict[str, Any]]:
        """Yield decoded JSON messages published on a channel"""
        if self.redis is None:
            await self.connect()
        pubsub: PubSub = self.redis.pubsub()
        await pubsub.subscribe(channel)
        try:
            async for message in pubsub.listen():
                if message.get("type") != "message":
                    continue
                try:
                    yield json.loads(message["data"])
                except (TypeError, json.JSONDecodeError):
                    logger.warning(f"Ignoring malformed message on {channel}")
        finally:
            await pubsub.unsubscribe(channel)
            await pubsub.close()


# Global Redis client instance
redis_client = RedisClient()
