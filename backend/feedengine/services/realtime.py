"""
Real-time egress: fire-and-forget events for the websocket tier via Redis pub/sub.
"""
import asyncio
import json
from typing import Any, Optional

import structlog
from redis.asyncio import Redis
from redis.exceptions import RedisError

from feedengine.models.domain import RoleWeight

logger = structlog.get_logger(__name__)

ROLES_CHANNEL = "events:roles"


class RealtimePublisher:
    """Publishes user-facing events. Never raises."""

    def __init__(self, client: Optional[Redis], timeout: float = 2.0):
        self.client = client
        self.timeout = timeout

    async def publish(self, channel: str, payload: dict[str, Any]) -> bool:
        """
        Publish an event.

        Returns:
            True if the message was handed to the broker
        """
        if self.client is None:
            return False

        try:
            message = json.dumps(payload, default=str)
            await asyncio.wait_for(self.client.publish(channel, message), self.timeout)
        except (RedisError, OSError, asyncio.TimeoutError, TypeError, ValueError) as e:
            logger.error("Failed to publish realtime event", channel=channel, error=str(e))
            return False

        logger.debug("Published realtime event", channel=channel, type=payload.get("type"))
        return True

    async def send_roles_updated(self, user_id: str, roles: list[RoleWeight]) -> bool:
        return await self.publish(
            ROLES_CHANNEL,
            {
                "userId": user_id,
                "type": "roles_updated",
                "data": {"roles": [r.model_dump() for r in roles]},
            },
        )
