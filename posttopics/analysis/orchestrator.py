"""Tiered topic extraction.

Drives the provider cascade for one batch of comments as an explicit state
machine. Every path ends in a named terminal state:

1. insufficient-data: fewer than ``min_valid_comments`` valid comments
2. primary: primary provider succeeded, possibly after shrinking the batch
3. secondary-fallback: primary exhausted, secondary returned topics
4. basic-fallback: both remote tiers failed, local keyword topic

The extractor never raises on provider failures and always returns at
least one topic.
"""

import asyncio
import time
from typing import List, Optional

from posttopics.core.logging import get_logger
from posttopics.core.settings import Settings, get_settings
from posttopics.core.utils import frequent_keywords, select_valid_comments
from .errors import ProviderAuthFailure
from .models import ExtractionMethod, ExtractionOutcome, SentimentDistribution, Topic
from .providers import BasicTopicProvider, TopicProvider

logger = get_logger(__name__)


def rank_topics(topics: List[Topic], limit: int) -> List[Topic]:
    """
    Order topics by relevance + confidence and keep the best ``limit``.

    The sort is stable, so equal scores keep provider order.
    """
    ranked = sorted(topics, key=lambda topic: topic.combined_score, reverse=True)
    return ranked[:limit]


def insufficient_data_topic(comments: List[str]) -> Topic:
    """Minimal low-confidence topic for posts with too few comments."""
    return Topic(
        label="General interaction",
        description="Not enough comments to identify specific topics.",
        keywords=frequent_keywords(comments),
        relevance_score=0.1,
        confidence_score=0.1,
        comment_count=len(comments),
        sentiment_distribution=SentimentDistribution(),
        extraction_method=ExtractionMethod.INSUFFICIENT_DATA.value,
    )


class TieredTopicExtractor:
    """Primary → secondary → basic topic extraction with adaptive batching."""

    def __init__(
        self,
        primary: TopicProvider,
        secondary: TopicProvider,
        tertiary: Optional[TopicProvider] = None,
        settings: Optional[Settings] = None,
        **overrides
    ):
        """
        Initialize the extractor.

        Args:
            primary: Provider tried first, with batch shrinking
            secondary: Provider tried once when the primary is exhausted
            tertiary: Local provider that cannot fail (BasicTopicProvider if None)
            settings: Source of tuning values (cached settings if None)
            **overrides: Per-instance replacements for any tuning value below
        """
        settings = settings or get_settings()
        self.primary = primary
        self.secondary = secondary
        self.tertiary = tertiary or BasicTopicProvider()

        self.primary_timeout = overrides.get("primary_timeout", settings.primary_timeout_seconds)
        self.max_attempts = overrides.get("max_attempts", settings.primary_max_attempts)
        self.max_batch_size = overrides.get("max_batch_size", settings.max_batch_size)
        self.min_batch_size = overrides.get("min_batch_size", settings.min_batch_size)
        self.max_valid_comments = overrides.get("max_valid_comments", settings.max_valid_comments)
        self.min_valid_comments = overrides.get("min_valid_comments", settings.min_valid_comments)
        self.max_topics = overrides.get("max_topics", settings.max_topics)

    async def extract(self, comments: List[str]) -> ExtractionOutcome:
        """
        Run the cascade over raw comments.

        Args:
            comments: Raw, unfiltered comment strings

        Returns:
            ExtractionOutcome with the terminal method and ranked topics
        """
        start_time = time.time()
        valid = select_valid_comments(comments, limit=self.max_valid_comments)

        if len(valid) < self.min_valid_comments:
            logger.info(f"Only {len(valid)} valid comments, skipping providers")
            return ExtractionOutcome(
                method=ExtractionMethod.INSUFFICIENT_DATA,
                topics=[insufficient_data_topic(valid)],
                valid_comment_count=len(valid),
            )

        errors: List[str] = []
        batch_sizes: List[int] = []

        topics = await self._run_primary(valid, batch_sizes, errors)
        method = ExtractionMethod.PRIMARY

        if not topics:
            topics = await self._run_secondary(valid[:self.max_batch_size], errors)
            method = ExtractionMethod.SECONDARY

        if not topics:
            topics = await self._run_tertiary(valid, errors)
            method = ExtractionMethod.BASIC

        ranked = [topic.with_method(method) for topic in rank_topics(topics, self.max_topics)]

        logger.info(
            f"Topic extraction finished in {time.time() - start_time:.2f}s: "
            f"method={method.value}, topics={len(ranked)}, valid_comments={len(valid)}"
        )
        return ExtractionOutcome(
            method=method,
            topics=ranked,
            valid_comment_count=len(valid),
            batch_sizes=batch_sizes,
            errors=errors,
        )

    async def _run_primary(self, valid: List[str], batch_sizes: List[int], errors: List[str]) -> List[Topic]:
        batch_size = min(len(valid), self.max_batch_size)

        for attempt in range(1, self.max_attempts + 1):
            batch_sizes.append(batch_size)
            try:
                topics = await asyncio.wait_for(
                    self.primary.extract(valid[:batch_size]),
                    timeout=self.primary_timeout,
                )
            except ProviderAuthFailure as e:
                logger.warning(f"Primary provider rejected credentials, falling back: {e}")
                errors.append(str(e))
                return []
            except asyncio.TimeoutError:
                errors.append(f"primary timed out after {self.primary_timeout}s (batch={batch_size})")
            except Exception as e:
                errors.append(f"primary failed (batch={batch_size}): {e}")
            else:
                if not topics:
                    logger.info("Primary provider found no topics, falling back")
                    errors.append("primary returned no topics")
                return topics

            logger.warning(
                f"Primary topics batch failed (batch_size={batch_size}, "
                f"attempt={attempt}/{self.max_attempts}): {errors[-1]}"
            )
            batch_size = max(self.min_batch_size, batch_size // 2)

        return []

    async def _run_secondary(self, batch: List[str], errors: List[str]) -> List[Topic]:
        try:
            topics = await self.secondary.extract(batch)
        except Exception as e:
            logger.warning(f"Secondary provider failed, using basic fallback: {e}")
            errors.append(f"secondary failed: {e}")
            return []

        if not topics:
            logger.info("Secondary provider found no topics, using basic fallback")
            errors.append("secondary returned no topics")
        return topics

    async def _run_tertiary(self, valid: List[str], errors: List[str]) -> List[Topic]:
        try:
            topics = await self.tertiary.extract(valid)
        except Exception as e:
            logger.error(f"Basic provider failed: {e}")
            errors.append(f"basic failed: {e}")
            topics = []
        return topics or [BasicTopicProvider().build_topic(valid)]
