import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI

from badgelife import __version__
from badgelife.config import Settings
from badgelife.events.bus import EventBus
from badgelife.events.tracker import TaskStatusTracker
from badgelife.routers import embeddings, health, identify
from badgelife.services.api_logger import ApiCallLogger
from badgelife.services.cascade import IdentificationCascade
from badgelife.services.catalog import BadgeCatalog, create_supabase_client
from badgelife.services.embedder import OpenAIEmbedder
from badgelife.services.embedding_indexer import EmbeddingIndexer
from badgelife.services.embedding_matcher import EmbeddingMatcher
from badgelife.services.storage import TempImageStorage
from badgelife.services.vector_store import QdrantBadgeStore
from badgelife.services.vision_analyzer import VisionAnalyzer
from badgelife.services.vlm_runner import VLMRunner
from badgelife.services.web_search import ReverseImageSearch

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Create shared service instances during startup and ensure they are
    closed gracefully on shutdown. Routers reach them through app.state.
    """
    settings = Settings.from_env()
    event_bus = EventBus.from_settings(settings)
    status_tracker = TaskStatusTracker.from_settings(settings)
    api_logger = ApiCallLogger(event_bus)

    catalog = None
    storage = None
    if settings.supabase_url and settings.supabase_key:
        supabase = create_supabase_client(settings)
        catalog = BadgeCatalog(supabase)
        storage = TempImageStorage(supabase, settings.temp_bucket)
    else:
        logger.warning("Supabase not configured: keyword fallback, reverse image search and indexing disabled")

    vlm_runner = VLMRunner.from_settings(settings, api_logger)
    embedder = OpenAIEmbedder.from_settings(settings, api_logger)
    vector_store = QdrantBadgeStore.from_settings(settings)
    web_search = ReverseImageSearch.from_settings(settings, storage=storage, api_logger=api_logger)
    matcher = EmbeddingMatcher(
        embedder=embedder,
        vlm=vlm_runner,
        store=vector_store,
        settings=settings,
        catalog=catalog,
    )
    cascade = IdentificationCascade(
        settings=settings,
        matcher=matcher,
        web_search=web_search,
        vision=VisionAnalyzer(vlm_runner),
        tracker=status_tracker,
        api_logger=api_logger,
    )

    app.state.settings = settings
    app.state.event_bus = event_bus
    app.state.status_tracker = status_tracker
    app.state.vlm = vlm_runner
    app.state.embedder = embedder
    app.state.vector_store = vector_store
    app.state.web_search = web_search
    app.state.catalog = catalog
    app.state.cascade = cascade
    app.state.indexer = (
        EmbeddingIndexer(catalog=catalog, store=vector_store, embedder=embedder) if catalog is not None else None
    )

    try:
        yield
    finally:
        await vlm_runner.close()
        await embedder.close()
        await web_search.close()
        vector_store.close()
        await event_bus.close()
        await status_tracker.close()


app = FastAPI(
    title="MyBadgeLife badge identification",
    version=__version__,
    lifespan=lifespan,
)


# Router registration -------------------------------------------------------
app.include_router(health.router)
app.include_router(identify.router, prefix="/identify", tags=["identify"])
app.include_router(embeddings.router, prefix="/embeddings", tags=["embeddings"])
