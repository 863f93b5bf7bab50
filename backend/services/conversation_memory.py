"""Conversation memory for multi-turn chat, backed by Redis."""
import json
import logging
from datetime import datetime, timezone
from typing import List, Optional

import redis.asyncio as redis
from redis.exceptions import RedisError

from models.conversation import ChatMessage, ConversationTurn, USER_ROLE, ASSISTANT_ROLE
from config import (
    REDIS_URL,
    MEMORY_TTL_SECONDS,
    MEMORY_WINDOW_SIZE,
    MEMORY_MAX_KEYS,
    MEMORY_KEY_PREFIX,
)

logger = logging.getLogger(__name__)


class ConversationMemory:
    """
    Per-user bounded message window with sliding TTL expiry.

    Each user owns one Redis list at ``chat:{user_id}`` holding the most
    recent ``window_size`` raw messages (both roles) as JSON. Every write
    trims the list from the oldest end and resets the key's TTL, so an
    inactive user's memory is wiped while an active user's persists.
    """

    def __init__(
        self,
        client: Optional[redis.Redis] = None,
        window_size: int = MEMORY_WINDOW_SIZE,
        ttl_seconds: int = MEMORY_TTL_SECONDS,
        max_keys: int = MEMORY_MAX_KEYS,
        key_prefix: str = MEMORY_KEY_PREFIX
    ):
        """
        Initialize the memory store.

        Args:
            client: Async Redis client (defaults to one built from REDIS_URL)
            window_size: Maximum raw messages kept per user
            ttl_seconds: Sliding expiry applied on every write
            max_keys: Advisory ceiling on tracked users
            key_prefix: Namespace for user keys
        """
        self.client = client or redis.from_url(REDIS_URL, decode_responses=True)
        self.window_size = window_size
        self.ttl_seconds = ttl_seconds
        self.max_keys = max_keys
        self.key_prefix = key_prefix
        logger.info(
            f"ConversationMemory initialized: window={window_size}, "
            f"ttl={ttl_seconds}s, max_keys={max_keys}"
        )

    def _key(self, user_id: str) -> str:
        return f"{self.key_prefix}{user_id}"

    async def load_window(self, user_id: str) -> List[ChatMessage]:
        """
        Get the user's recent messages in chronological order.

        If the store is unreachable the window degrades to empty so the
        conversation continues without memory.

        Args:
            user_id: Slack user id

        Returns:
            List of ChatMessage, oldest first, at most ``window_size`` long
        """
        try:
            raw_entries = await self.client.lrange(self._key(user_id), -self.window_size, -1)
        except (RedisError, OSError) as e:
            logger.error(f"Error loading memory for user {user_id}, continuing without it: {e}")
            return []

        messages = []
        for raw in raw_entries:
            try:
                messages.append(ChatMessage.from_dict(json.loads(raw)))
            except (ValueError, KeyError, TypeError) as e:
                logger.warning(f"Skipping unreadable memory entry for user {user_id}: {e}")

        logger.debug(f"Loaded {len(messages)} messages for user {user_id}")
        return messages

    async def append(self, user_id: str, input_text: str, output_text: str, channel_kind: str = "unknown") -> ConversationTurn:
        """
        Add a human/assistant pair to the user's window.

        The oldest entries are evicted first once the window exceeds its
        capacity, and the whole window's TTL is reset.

        Args:
            user_id: Slack user id
            input_text: What the user said
            output_text: What the bot replied
            channel_kind: Slack channel type the exchange happened in

        Returns:
            The ConversationTurn that was written
        """
        now = datetime.now(timezone.utc)
        turn = ConversationTurn(
            user_id=user_id,
            channel_kind=channel_kind,
            input_text=input_text,
            output_text=output_text,
            timestamp_created=now,
        )
        entries = [
            json.dumps(ChatMessage(role=USER_ROLE, content=input_text, timestamp=now).to_dict()),
            json.dumps(ChatMessage(role=ASSISTANT_ROLE, content=output_text, timestamp=now).to_dict()),
        ]

        key = self._key(user_id)
        try:
            async with self.client.pipeline(transaction=True) as pipe:
                pipe.rpush(key, *entries)
                pipe.ltrim(key, -self.window_size, -1)
                pipe.expire(key, self.ttl_seconds)
                await pipe.execute()
        except (RedisError, OSError) as e:
            logger.error(f"Error saving memory for user {user_id}: {e}")
            return turn

        logger.info(f"Saved exchange to memory for user {user_id}")
        return turn

    async def touch_expiry(self, user_id: str) -> None:
        """Reset the TTL countdown for the user's window."""
        try:
            await self.client.expire(self._key(user_id), self.ttl_seconds)
        except (RedisError, OSError) as e:
            logger.warning(f"Error refreshing memory TTL for user {user_id}: {e}")

    async def tracked_users(self) -> int:
        """Count the users that currently have a window."""
        count = 0
        async for _ in self.client.scan_iter(match=f"{self.key_prefix}*", count=500):
            count += 1
        return count

    async def check_capacity(self) -> Optional[int]:
        """
        Log a warning when tracked users exceed the advisory maximum.

        Returns:
            Number of tracked users, or None if the store is unreachable
        """
        try:
            count = await self.tracked_users()
        except (RedisError, OSError) as e:
            logger.warning(f"Could not count memory keys: {e}")
            return None

        if count > self.max_keys:
            logger.warning(f"Conversation memory tracks {count} users, above the advisory maximum of {self.max_keys}")
        else:
            logger.info(f"Conversation memory tracks {count} users")
        return count

    async def close(self) -> None:
        await self.client.aclose()
