import logging
from typing import Optional
from .feed_service import FeedService
from .rabbitmq_service import RabbitMQService

logger = logging.getLogger(__name__)


class InvalidationDispatcher:
    """
    Post mutation hook handed to PostService.

    With a publisher the invalidation is queued for the worker and the request
    returns immediately; otherwise it is awaited inline.
    """

    def __init__(self, feed_service: FeedService, publisher: Optional[RabbitMQService] = None):
        self.feed_service = feed_service
        self.publisher = publisher

    async def __call__(self, author_id: int, post_id: int, action: str):
        if self.publisher is not None:
            try:
                await self.publisher.publish_post_mutation(author_id, post_id, action)
                return
            except Exception as e:
                logger.warning(f"Could not queue feed invalidation for user {author_id}, running inline: {e}")

        await self.feed_service.invalidate_feed_cache(author_id)
