import asyncio
import aio_pika
import json
import logging
from contextlib import nullcontext
from typing import Optional
from sqlalchemy.ext.asyncio import async_sessionmaker
from ..services.cache_service import CacheService
from ..services.feed_service import FeedCacheConfig, FeedComposer, FeedService, InvalidationResult
from ..services.follow_service import FollowService
from ..services.metrics_service import MetricsService
from ..services.post_service import PostStore
from ..services.rabbitmq_service import INVALIDATION_QUEUE

logger = logging.getLogger(__name__)


class InvalidationWorker:
    """Consumes post mutation events and drops the affected cached feed pages"""

    def __init__(self, worker_id: int, rabbitmq_url: str, session_maker: async_sessionmaker,
                 cache: CacheService, config: FeedCacheConfig = FeedCacheConfig(),
                 metrics: Optional[MetricsService] = None):
        self.worker_id = worker_id
        self.rabbitmq_url = rabbitmq_url
        self.session_maker = session_maker
        self.cache = cache
        self.config = config
        self.metrics = metrics
        self.connection: Optional[aio_pika.abc.AbstractRobustConnection] = None
        self.channel: Optional[aio_pika.abc.AbstractChannel] = None
        self.queue: Optional[aio_pika.abc.AbstractQueue] = None
        self.consumer_tag: Optional[str] = None
        self.running = False

    async def start(self):
        """Start consuming and block until stop() is called"""
        self.running = True
        logger.info(f"Starting invalidation worker {self.worker_id}...")

        try:
            self.connection = await aio_pika.connect_robust(self.rabbitmq_url)
            self.channel = await self.connection.channel()
            await self.channel.set_qos(prefetch_count=20)

            self.queue = await self.channel.declare_queue(
                INVALIDATION_QUEUE,
                durable=True,
                arguments={"x-message-ttl": 300000}
            )
            self.consumer_tag = await self.queue.consume(self.process_message)

            logger.info(f"Invalidation worker {self.worker_id} started successfully")

            while self.running:
                await asyncio.sleep(1)

        except Exception as e:
            logger.error(f"Invalidation worker {self.worker_id} error: {e}")
            raise
        finally:
            await self.cleanup()

    async def process_message(self, message: aio_pika.abc.AbstractIncomingMessage):
        async with message.process():
            try:
                data = json.loads(message.body.decode())
                author_id = int(data["author_id"])
            except (ValueError, KeyError, TypeError) as e:
                # Acked and dropped, redelivery would fail the same way
                logger.error(f"Worker {self.worker_id} discarding malformed message {message.message_id}: {e}")
                return

            result = await self.handle(author_id)
            logger.info(
                f"Worker {self.worker_id} invalidated {result.keys_deleted} pages "
                f"after post {data.get('post_id')} was {data.get('action')}"
            )

    async def handle(self, author_id: int) -> InvalidationResult:
        timer = nullcontext()
        if self.metrics is not None:
            timer = self.metrics.timer("feed.invalidation.worker", tags={"worker": self.worker_id})
        with timer:
            async with self.session_maker() as db:
                composer = FeedComposer(FollowService(db), PostStore(self.session_maker))
                feed_service = FeedService(composer, self.cache, self.config, self.metrics)
                return await feed_service.invalidate_feed_cache(author_id)

    async def stop(self):
        """Stop the worker gracefully"""
        logger.info(f"Stopping invalidation worker {self.worker_id}...")
        self.running = False

    async def cleanup(self):
        """Clean up resources"""
        if self.queue and self.consumer_tag:
            await self.queue.cancel(self.consumer_tag)
            self.consumer_tag = None
        self.queue = None
        if self.channel:
            await self.channel.close()
            self.channel = None
        if self.connection:
            await self.connection.close()
            self.connection = None
