import aio_pika
import json
import uuid
from typing import Dict, Any, Optional

INVALIDATION_QUEUE = "feed_invalidation"


class RabbitMQService:
    """Publishes post mutation events for the feed invalidation worker"""

    def __init__(self, url: str):
        self.url = url
        self.connection: Optional[aio_pika.abc.AbstractRobustConnection] = None
        self.channel: Optional[aio_pika.abc.AbstractChannel] = None

    async def connect(self):
        """Connect to RabbitMQ and declare the invalidation queue"""
        self.connection = await aio_pika.connect_robust(self.url)
        self.channel = await self.connection.channel()
        await self.channel.declare_queue(
            INVALIDATION_QUEUE,
            durable=True,
            arguments={"x-message-ttl": 300000}  # stale after the feed cache TTL anyway
        )

    async def publish_post_mutation(self, author_id: int, post_id: int, action: str):
        if not self.channel:
            await self.connect()

        body: Dict[str, Any] = {
            "author_id": author_id,
            "post_id": post_id,
            "action": action,
        }
        message = aio_pika.Message(
            body=json.dumps(body).encode(),
            delivery_mode=aio_pika.DeliveryMode.PERSISTENT,
            message_id=str(uuid.uuid4()),
            type="post.mutated",
            headers={"author_id": str(author_id)}
        )
        await self.channel.default_exchange.publish(message, routing_key=INVALIDATION_QUEUE)

    async def close(self):
        """Close RabbitMQ connection"""
        if self.connection:
            await self.connection.close()
