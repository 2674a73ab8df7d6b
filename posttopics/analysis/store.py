"""Topic set persistence with a single active set per post."""

from typing import List

from sqlalchemy.ext.asyncio import async_sessionmaker

from posttopics.core.logging import get_logger
from posttopics.core.repositories import delete_post_topics, get_post_topics, replace_post_topics
from .errors import PersistenceError
from .models import Topic

logger = get_logger(__name__)


class TopicStore:
    """Reads and atomically replaces the topic set of a post."""

    def __init__(self, session_factory: async_sessionmaker):
        self.session_factory = session_factory

    async def replace(self, post_id: str, topics: List[Topic]) -> None:
        """
        Replace the stored topic set of ``post_id`` with ``topics``.

        Delete and insert run in one transaction.

        Raises:
            PersistenceError: if the write failed (nothing is changed)
        """
        records = [topic.to_record() for topic in topics]
        try:
            async with self.session_factory() as session:
                await replace_post_topics(session, post_id, records)
        except Exception as e:
            raise PersistenceError(f"Could not store topics for post {post_id}: {e}") from e

    async def read(self, post_id: str) -> List[Topic]:
        """Topics of ``post_id`` ordered by relevance, most relevant first."""
        async with self.session_factory() as session:
            rows = await get_post_topics(session, post_id)
        return [Topic.from_record(row) for row in rows]

    async def delete(self, post_id: str) -> int:
        """Remove the topic set of ``post_id``; returns deleted row count."""
        try:
            async with self.session_factory() as session:
                return await delete_post_topics(session, post_id)
        except Exception as e:
            raise PersistenceError(f"Could not delete topics for post {post_id}: {e}") from e
