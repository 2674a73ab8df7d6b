"""Post topics service.

Entry point used by the HTTP layer and the CLI. ``analyze`` goes through the
single-flight coordinator, so concurrent requests for one post share a
single provider cascade and a single write.
"""

import asyncio
import time
from collections import defaultdict
from typing import Iterable, List, Optional, Union

from sqlalchemy.ext.asyncio import async_sessionmaker

from posttopics.core.db import get_session_factory
from posttopics.core.logging import get_logger
from posttopics.core.settings import Settings, get_settings
from .comments import CommentCache, CommentSourceResolver, RedisCommentCache
from .errors import PersistenceError
from .models import (
    AnalysisResult,
    CommentRecord,
    ExtractionMethod,
    ReconcileReport,
    Topic,
    TopicStats,
)
from .orchestrator import TieredTopicExtractor
from .providers import build_providers
from .reconciler import TopicReconciler
from .singleflight import SingleFlight
from .store import TopicStore

logger = get_logger(__name__)

NO_COMMENTS_ERROR = "No comments found to analyze"
HIGH_CONFIDENCE_THRESHOLD = 0.6


def _elapsed_ms(start_time: float) -> int:
    return int((time.time() - start_time) * 1000)


class PostTopicsService:
    """Analyzes, stores and serves the topic set of each post."""

    def __init__(
        self,
        resolver: CommentSourceResolver,
        extractor: TieredTopicExtractor,
        store: TopicStore,
        reconciler: Optional[TopicReconciler] = None,
        coordinator: Optional[SingleFlight] = None,
        max_concurrent: int = 8
    ):
        self.resolver = resolver
        self.extractor = extractor
        self.store = store
        self.reconciler = reconciler or TopicReconciler(store.session_factory)
        self.coordinator = coordinator or SingleFlight()
        self.semaphore = asyncio.Semaphore(max_concurrent)
        self._closers = []

    async def analyze(self, post_id: str, force: bool = False) -> AnalysisResult:
        """
        Extract and store topics for a post from its stored comments.

        Returns the cached set when one exists, unless ``force`` is set.
        Never raises; failures come back as unsuccessful results.

        Args:
            post_id: Post identifier
            force: Re-analyze even if topics are already stored

        Returns:
            AnalysisResult shared by every concurrent caller for the post
        """
        return await self.coordinator.run_exclusive(post_id, lambda: self._analyze(post_id, force))

    async def analyze_comments(
        self,
        post_id: str,
        comments: Iterable[Union[str, dict, CommentRecord]]
    ) -> AnalysisResult:
        """
        Extract and store topics for a post from caller-supplied comments.

        Always replaces the stored set.
        """
        texts = [self._comment_text(comment) for comment in comments]
        return await self.coordinator.run_exclusive(post_id, lambda: self._extract_and_store(post_id, texts))

    async def _analyze(self, post_id: str, force: bool) -> AnalysisResult:
        start_time = time.time()
        try:
            if not force:
                existing = await self.store.read(post_id)
                if existing:
                    return AnalysisResult(
                        success=True,
                        topic_count=len(existing),
                        processing_time_ms=_elapsed_ms(start_time),
                        method=ExtractionMethod.CACHED.value,
                    )

            comments = await self.resolver.resolve(post_id)
            if not comments:
                logger.warning(f"No comments found for post {post_id}")
                return AnalysisResult(
                    success=False,
                    topic_count=0,
                    processing_time_ms=_elapsed_ms(start_time),
                    method=ExtractionMethod.NO_COMMENTS.value,
                    error=NO_COMMENTS_ERROR,
                )
        except Exception as e:
            logger.error(f"Topic analysis failed for post {post_id}: {e}")
            return AnalysisResult(
                success=False,
                processing_time_ms=_elapsed_ms(start_time),
                method=ExtractionMethod.ERROR.value,
                error=str(e),
            )

        return await self._extract_and_store(post_id, [comment.text for comment in comments], start_time)

    async def _extract_and_store(
        self,
        post_id: str,
        texts: List[str],
        start_time: Optional[float] = None
    ) -> AnalysisResult:
        start_time = start_time or time.time()

        try:
            if not any(isinstance(text, str) and text.strip() for text in texts):
                return AnalysisResult(
                    success=False,
                    processing_time_ms=_elapsed_ms(start_time),
                    method=ExtractionMethod.NO_COMMENTS.value,
                    error=NO_COMMENTS_ERROR,
                )

            async with self.semaphore:
                outcome = await self.extractor.extract(texts)
                await self.store.replace(post_id, outcome.topics)
        except PersistenceError as e:
            logger.error(f"Topic persistence failed for post {post_id}: {e}")
            return AnalysisResult(
                success=False,
                processing_time_ms=_elapsed_ms(start_time),
                method=ExtractionMethod.ERROR.value,
                error=str(e),
            )
        except Exception as e:
            logger.error(f"Topic analysis failed for post {post_id}: {e}")
            return AnalysisResult(
                success=False,
                processing_time_ms=_elapsed_ms(start_time),
                method=ExtractionMethod.ERROR.value,
                error=str(e),
            )

        logger.info(
            f"Analyzed post {post_id}: {len(outcome.topics)} topics via {outcome.method.value}"
        )
        return AnalysisResult(
            success=True,
            topic_count=len(outcome.topics),
            processing_time_ms=_elapsed_ms(start_time),
            method=outcome.method.value,
        )

    @staticmethod
    def _comment_text(comment: Union[str, dict, CommentRecord]) -> str:
        if isinstance(comment, CommentRecord):
            return comment.text
        if isinstance(comment, dict):
            comment = comment.get("text")
        # Non-text entries count as blank comments
        return comment if isinstance(comment, str) else ""

    async def get_topics(self, post_id: str) -> List[Topic]:
        """Stored topics of a post, most relevant first."""
        return await self.store.read(post_id)

    async def get_key_topics(self, post_id: str) -> List[str]:
        """Keywords of the most relevant stored topic."""
        topics = await self.store.read(post_id)
        if not topics:
            return []
        return list(topics[0].keywords)

    async def get_stats(self, post_id: str) -> TopicStats:
        """Aggregate statistics over the stored topic set of a post."""
        topics = await self.store.read(post_id)
        if not topics:
            return TopicStats()

        keyword_weights = defaultdict(float)
        for topic in topics:
            for keyword in topic.keywords:
                keyword_weights[keyword] += topic.relevance_score
        top_keywords = sorted(keyword_weights, key=keyword_weights.get, reverse=True)[:10]

        languages = []
        for topic in topics:
            if topic.detected_language and topic.detected_language not in languages:
                languages.append(topic.detected_language)

        return TopicStats(
            total_topics=len(topics),
            high_confidence_topics=sum(1 for t in topics if t.confidence_score > HIGH_CONFIDENCE_THRESHOLD),
            average_relevance=round(sum(t.relevance_score for t in topics) / len(topics), 3),
            average_confidence=round(sum(t.confidence_score for t in topics) / len(topics), 3),
            top_keywords=top_keywords,
            languages_detected=languages,
            topics=topics,
        )

    async def delete_topics(self, post_id: str) -> int:
        """Delete the stored topic set of a post."""
        return await self.store.delete(post_id)

    async def cleanup_duplicates(self) -> ReconcileReport:
        """Run the duplicate topic set reconciler."""
        return await self.reconciler.reconcile()

    async def aclose(self) -> None:
        """Release HTTP clients and cache connections owned by the service."""
        for close in self._closers:
            await close()
        self._closers = []


def create_service(
    settings: Optional[Settings] = None,
    session_factory: Optional[async_sessionmaker] = None,
    cache: Optional[CommentCache] = None
) -> PostTopicsService:
    """
    Build a fully wired service from settings.

    Args:
        settings: Application settings (cached settings if None)
        session_factory: Session maker (application engine if None)
        cache: Comment cache (Redis at ``settings.redis_url`` if None)

    Returns:
        PostTopicsService ready to use; call ``aclose`` on shutdown
    """
    settings = settings or get_settings()
    session_factory = session_factory or get_session_factory()

    closers = []
    if cache is None:
        cache = RedisCommentCache(settings.redis_url)
        closers.append(cache.aclose)

    primary, secondary, tertiary = build_providers(settings)
    closers.extend([primary.aclose, secondary.aclose])

    store = TopicStore(session_factory)
    service = PostTopicsService(
        resolver=CommentSourceResolver(session_factory, cache=cache, legacy_limit=settings.legacy_comment_limit),
        extractor=TieredTopicExtractor(primary, secondary, tertiary, settings=settings),
        store=store,
        reconciler=TopicReconciler(session_factory),
        max_concurrent=settings.max_concurrent_analyses,
    )
    service._closers = closers
    return service
