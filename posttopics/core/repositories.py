"""Repository layer for database operations.

Provides async reads over the comment stores and the transactional
replace / cleanup primitives that keep a single topic set per post.
"""

from datetime import datetime, timezone
from typing import List, Optional, Tuple, Dict, Any

from sqlalchemy import select, func, delete
from sqlalchemy.ext.asyncio import AsyncSession

from posttopics.core.models import PostMetrics, Comment, PostTopic
from posttopics.core.logging import get_logger

logger = get_logger(__name__)


async def get_comments_analysis(session: AsyncSession, post_id: str) -> Optional[Dict[str, Any]]:
    """
    Get the structured comments payload stored for a post.

    Args:
        session: Database session
        post_id: Post identifier

    Returns:
        The ``comments_analysis`` JSON of the first matching row, or None
    """
    stmt = (
        select(PostMetrics.comments_analysis)
        .where(PostMetrics.post_id == post_id)
        .where(PostMetrics.comments_analysis.isnot(None))
        .order_by(PostMetrics.created_at.desc())
        .limit(1)
    )
    result = await session.execute(stmt)
    return result.scalar_one_or_none()


async def get_legacy_comments(
    session: AsyncSession,
    post_id: str,
    limit: int = 1000
) -> List[Tuple[str, Optional[str]]]:
    """
    Get (text, sentiment) rows from the legacy comments table.

    Args:
        session: Database session
        post_id: Post identifier
        limit: Maximum rows to return

    Returns:
        List of (text, sentiment) tuples
    """
    stmt = (
        select(Comment.text, Comment.sentiment)
        .where(Comment.post_id == post_id)
        .order_by(Comment.id)
        .limit(limit)
    )
    result = await session.execute(stmt)
    rows = [(row[0], row[1]) for row in result.fetchall()]

    logger.debug(f"Retrieved {len(rows)} legacy comments for post {post_id}")
    return rows


async def get_post_topics(session: AsyncSession, post_id: str) -> List[PostTopic]:
    """
    Get stored topics for a post ordered by relevance.

    Args:
        session: Database session
        post_id: Post identifier

    Returns:
        List of PostTopic rows, most relevant first
    """
    stmt = (
        select(PostTopic)
        .where(PostTopic.post_id == post_id)
        .order_by(PostTopic.relevance_score.desc(), PostTopic.id)
    )
    result = await session.execute(stmt)
    return list(result.scalars().all())


async def replace_post_topics(
    session: AsyncSession,
    post_id: str,
    records: List[Dict[str, Any]],
    created_at: Optional[datetime] = None
) -> int:
    """
    Replace the topic set of a post in a single transaction.

    Deletes every existing row for ``post_id`` and inserts ``records``, all
    stamped with the same ``created_at``. Rolls back on any failure.

    Args:
        session: Database session
        post_id: Post identifier
        records: Column values for each topic row (without post_id/created_at)
        created_at: Timestamp shared by the new set (defaults to now)

    Returns:
        Number of previous rows removed
    """
    if created_at is None:
        created_at = datetime.now(timezone.utc)

    try:
        result = await session.execute(delete(PostTopic).where(PostTopic.post_id == post_id))
        removed = result.rowcount or 0

        if removed > 1:
            logger.debug(f"Replacing {removed} previous topic rows for post {post_id}")

        session.add_all([
            PostTopic(post_id=post_id, created_at=created_at, **record)
            for record in records
        ])
        await session.commit()

    except Exception as e:
        await session.rollback()
        logger.error(f"Failed to replace topics for post {post_id}: {e}")
        raise

    logger.info(f"Stored {len(records)} topics for post {post_id} (replaced {removed})")
    return removed


async def delete_post_topics(session: AsyncSession, post_id: str) -> int:
    """
    Delete all topics stored for a post.

    Returns:
        Number of deleted rows
    """
    try:
        result = await session.execute(delete(PostTopic).where(PostTopic.post_id == post_id))
        await session.commit()
    except Exception:
        await session.rollback()
        raise

    deleted = result.rowcount or 0
    logger.info(f"Deleted {deleted} topics for post {post_id}")
    return deleted


async def count_topic_posts(session: AsyncSession) -> int:
    """Count distinct posts that have stored topics."""
    stmt = select(func.count(func.distinct(PostTopic.post_id)))
    result = await session.execute(stmt)
    return result.scalar_one()


async def find_duplicate_topic_posts(session: AsyncSession) -> List[str]:
    """
    Find posts holding more than one topic set.

    A set is the group of rows sharing one ``created_at``.

    Returns:
        Post ids with more than one distinct ``created_at``
    """
    stmt = (
        select(PostTopic.post_id)
        .group_by(PostTopic.post_id)
        .having(func.count(func.distinct(PostTopic.created_at)) > 1)
        .order_by(PostTopic.post_id)
    )
    result = await session.execute(stmt)
    return [row[0] for row in result.fetchall()]


async def delete_stale_topic_sets(session: AsyncSession, post_id: str) -> int:
    """
    Keep only the newest topic set of a post.

    Runs as one DELETE whose cutoff is computed inside the statement, so it
    cannot remove a set inserted after the cutoff was read.

    Returns:
        Number of deleted rows
    """
    newest = (
        select(func.max(PostTopic.created_at))
        .where(PostTopic.post_id == post_id)
        .scalar_subquery()
    )
    stmt = (
        delete(PostTopic)
        .where(PostTopic.post_id == post_id)
        .where(PostTopic.created_at < newest)
    )

    try:
        result = await session.execute(stmt)
        await session.commit()
    except Exception:
        await session.rollback()
        raise

    deleted = result.rowcount or 0
    if deleted:
        logger.warning(f"Removed {deleted} stale topic rows for post {post_id}")
    return deleted
