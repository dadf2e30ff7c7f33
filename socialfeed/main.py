from fastapi import FastAPI, Request
from contextlib import asynccontextmanager
import logging
from common.config import get_settings
from common.database import engine, Base
from common import models  # noqa: F401  registers tables on Base.metadata
from .api import users, posts, comments, follows, feed
from .services.cache_service import CacheService
from .services.feed_service import FeedCacheConfig
from .services.metrics_service import MetricsService
from .services.rabbitmq_service import RabbitMQService

settings = get_settings()

logging.basicConfig(
    level=settings.log_level,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    cache_service = CacheService(settings.redis_url)
    await cache_service.initialize()
    app.state.cache_service = cache_service
    app.state.feed_cache_config = FeedCacheConfig(
        ttl_seconds=settings.feed_cache_ttl,
        key_prefix=settings.feed_cache_prefix,
        invalidation_concurrency=settings.feed_invalidation_concurrency
    )
    app.state.metrics = MetricsService(settings.statsd_host, settings.statsd_port)

    publisher = None
    if settings.invalidation_mode == "queue":
        publisher = RabbitMQService(settings.rabbitmq_url)
        await publisher.connect()
    app.state.publisher = publisher
    logger.info(f"Feed cache ready (ttl={settings.feed_cache_ttl}s, invalidation={settings.invalidation_mode})")

    yield

    # Shutdown
    if publisher:
        await publisher.close()
    await cache_service.close()
    await engine.dispose()


app = FastAPI(
    title=settings.app_name,
    description="Social feed API with a Redis page cache and follower fan-out invalidation",
    version="1.0.0",
    lifespan=lifespan
)

app.include_router(users.router, prefix="/api/users", tags=["users"])
app.include_router(posts.router, prefix="/api/posts", tags=["posts"])
app.include_router(comments.router, prefix="/api", tags=["comments"])
app.include_router(follows.router, prefix="/api/follows", tags=["follows"])
app.include_router(feed.router, prefix="/api/feed", tags=["feed"])


@app.get("/")
async def root():
    return {"message": settings.app_name, "feed_cache_ttl": settings.feed_cache_ttl}


@app.get("/cache/stats")
async def cache_stats(request: Request):
    """Get cache statistics"""
    cache_service = getattr(request.app.state, "cache_service", None)
    if cache_service:
        return await cache_service.get_stats(settings.feed_cache_prefix)
    return {"error": "Cache not initialized"}
