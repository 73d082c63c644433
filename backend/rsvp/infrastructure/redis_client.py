"""
Redis client for the Redis membership store.
Separated from business logic for clean architecture.
"""

import os
from typing import Optional

import redis.asyncio as redis

from rsvp.core.config import get_settings

LUA_DIR = os.path.join(os.path.dirname(__file__), "lua")


class RedisClient:
    """Singleton async Redis client with connection pooling."""

    _instance: Optional[redis.Redis] = None

    @classmethod
    def get_client(cls) -> redis.Redis:
        """Get or create Redis client instance."""
        if cls._instance is None:
            settings = get_settings()
            cls._instance = redis.from_url(
                settings.REDIS_URL,
                encoding="utf-8",
                decode_responses=True,
                socket_connect_timeout=5,
                socket_timeout=5,
                health_check_interval=30,
            )
        return cls._instance


def get_redis() -> redis.Redis:
    """Get Redis client instance."""
    return RedisClient.get_client()


def load_script(name: str) -> str:
    """Read a Lua script shipped in infrastructure/lua."""
    with open(os.path.join(LUA_DIR, f"{name}.lua"), "r") as f:
        return f.read()
