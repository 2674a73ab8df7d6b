"""Comment source resolution.

Comments for a post can live in three places, checked in order:

1. the short-lived cache under ``comments:<post_id>``
2. the structured ``post_metrics.comments_analysis`` column
3. the legacy ``comments`` table (capped rows)

The first tier with comments wins. A tier that errors is logged and
skipped; finding nothing anywhere is a normal outcome.
"""

import json
from typing import Any, List, Optional, Protocol

import redis.asyncio as redis
from sqlalchemy.ext.asyncio import async_sessionmaker

from posttopics.core.logging import get_logger
from posttopics.core.repositories import get_comments_analysis, get_legacy_comments
from .models import CommentRecord

logger = get_logger(__name__)

CACHE_KEY_PREFIX = "comments:"


def cache_key(post_id: str) -> str:
    return f"{CACHE_KEY_PREFIX}{post_id}"


class CommentCache(Protocol):
    """Anything with an async ``get`` returning the cached payload or None."""

    async def get(self, key: str) -> Any:
        ...


class RedisCommentCache:
    """Comment cache backed by Redis."""

    def __init__(self, redis_url: str = None, client: Optional[redis.Redis] = None):
        self.client = client or redis.from_url(redis_url, decode_responses=True)

    async def get(self, key: str) -> Optional[str]:
        return await self.client.get(key)

    async def aclose(self) -> None:
        await self.client.aclose()


def _sentiment_label(sentiment: Any) -> Optional[str]:
    if isinstance(sentiment, dict):
        sentiment = sentiment.get("label")
    if sentiment is None:
        return None
    return str(sentiment)


def comments_from_payload(payload: Any) -> List[CommentRecord]:
    """
    Read ``{"comments": [{"text", "sentiment"}]}`` payloads.

    Accepts the payload as a dict or a JSON string; anything else yields no
    comments. Sentiment may be a label or ``{"label": ...}``.
    """
    if isinstance(payload, (str, bytes)):
        try:
            payload = json.loads(payload)
        except ValueError:
            logger.warning("Ignoring comments payload that is not valid JSON")
            return []

    if not isinstance(payload, dict):
        return []
    comments = payload.get("comments")
    if not isinstance(comments, list):
        return []

    records = []
    skipped = 0
    for comment in comments:
        if not isinstance(comment, dict):
            continue
        text = comment.get("text") or ""
        if not isinstance(text, str):
            skipped += 1
            continue
        records.append(CommentRecord(
            text=text,
            sentiment=_sentiment_label(comment.get("sentiment")),
        ))
    if skipped:
        logger.warning(f"Skipped {skipped} comments with non-text content")
    return records


class CommentSourceResolver:
    """Finds the raw comments of a post across the storage tiers."""

    def __init__(
        self,
        session_factory: async_sessionmaker,
        cache: Optional[CommentCache] = None,
        legacy_limit: int = 1000
    ):
        self.session_factory = session_factory
        self.cache = cache
        self.legacy_limit = legacy_limit

    async def resolve(self, post_id: str) -> List[CommentRecord]:
        """
        Get the comments of a post from the first tier that has any.

        Args:
            post_id: Post identifier

        Returns:
            Comment records, or an empty list when no tier has data
        """
        for tier, lookup in (
            ("cache", self._from_cache),
            ("post_metrics", self._from_post_metrics),
            ("legacy", self._from_legacy_table),
        ):
            try:
                comments = await lookup(post_id)
            except Exception as e:
                logger.error(f"Comment lookup in {tier} failed for post {post_id}: {e}")
                continue

            if comments:
                logger.debug(f"Resolved {len(comments)} comments for post {post_id} from {tier}")
                return comments

        logger.info(f"No comments found for post {post_id}")
        return []

    async def _from_cache(self, post_id: str) -> List[CommentRecord]:
        if self.cache is None:
            return []
        payload = await self.cache.get(cache_key(post_id))
        if payload is None:
            return []
        return comments_from_payload(payload)

    async def _from_post_metrics(self, post_id: str) -> List[CommentRecord]:
        async with self.session_factory() as session:
            payload = await get_comments_analysis(session, post_id)
        if payload is None:
            return []
        return comments_from_payload(payload)

    async def _from_legacy_table(self, post_id: str) -> List[CommentRecord]:
        async with self.session_factory() as session:
            rows = await get_legacy_comments(session, post_id, limit=self.legacy_limit)
        return [CommentRecord(text=text or "", sentiment=sentiment) for text, sentiment in rows]
