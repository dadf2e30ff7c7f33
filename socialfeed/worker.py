#!/usr/bin/env python
"""
Feed invalidation worker runner.
Usage: python -m socialfeed.worker [worker_id]
"""
import asyncio
import logging
import signal
import sys
from common.config import get_settings
from common.database import async_session_maker, engine
from .services.cache_service import CacheService
from .services.feed_service import FeedCacheConfig
from .services.metrics_service import MetricsService
from .workers.invalidation_worker import InvalidationWorker

settings = get_settings()

logging.basicConfig(
    level=settings.log_level,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


async def main():
    worker_id = int(sys.argv[1]) if len(sys.argv) > 1 else 0

    cache = CacheService(settings.redis_url)
    await cache.initialize()

    worker = InvalidationWorker(
        worker_id,
        settings.rabbitmq_url,
        async_session_maker,
        cache,
        FeedCacheConfig(
            ttl_seconds=settings.feed_cache_ttl,
            key_prefix=settings.feed_cache_prefix,
            invalidation_concurrency=settings.feed_invalidation_concurrency
        ),
        MetricsService(settings.statsd_host, settings.statsd_port)
    )

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, lambda s=sig: asyncio.create_task(shutdown(s, worker)))

    try:
        await worker.start()
    except Exception as e:
        logger.error(f"Worker {worker_id} failed: {e}")
        sys.exit(1)
    finally:
        await cache.close()
        await engine.dispose()


async def shutdown(sig, worker):
    """Graceful shutdown handler"""
    logger.info(f"Received exit signal {sig.name}...")
    await worker.stop()


if __name__ == "__main__":
    asyncio.run(main())
