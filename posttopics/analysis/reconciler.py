"""Out-of-band repair of duplicate topic sets.

Concurrent writers can leave more than one topic set for a post. The
reconciler finds posts whose rows carry more than one ``created_at`` and
keeps only the newest group. Each post is cleaned in its own transaction,
so a failure on one post does not stop the batch.
"""

import time

from sqlalchemy.ext.asyncio import async_sessionmaker

from posttopics.core.logging import get_logger
from posttopics.core.repositories import (
    count_topic_posts,
    delete_stale_topic_sets,
    find_duplicate_topic_posts,
)
from .models import ReconcileReport

logger = get_logger(__name__)


class TopicReconciler:
    """Batch job that enforces one topic set per post."""

    def __init__(self, session_factory: async_sessionmaker):
        self.session_factory = session_factory

    async def reconcile(self) -> ReconcileReport:
        """
        Delete every topic set older than the newest one, per post.

        Idempotent: with no new writes, a second run deletes nothing.

        Returns:
            ReconcileReport with counts and per-post errors
        """
        start_time = time.time()
        report = ReconcileReport()

        try:
            async with self.session_factory() as session:
                report.total_posts = await count_topic_posts(session)
                duplicate_posts = await find_duplicate_topic_posts(session)
        except Exception as e:
            logger.error(f"Could not look up duplicate topic sets: {e}")
            report.errors.append(f"Error finding duplicates: {e}")
            return report

        report.duplicate_posts = len(duplicate_posts)
        if not duplicate_posts:
            logger.info(f"Topic reconcile: no duplicates across {report.total_posts} posts")
            return report

        for post_id in duplicate_posts:
            try:
                async with self.session_factory() as session:
                    deleted = await delete_stale_topic_sets(session, post_id)
            except Exception as e:
                logger.error(f"Error deleting duplicate topics for post {post_id}: {e}")
                report.errors.append(f"Error deleting duplicates for {post_id}: {e}")
                continue

            if deleted:
                report.cleaned_posts += 1
                report.deleted_records += deleted

        logger.info(
            f"Topic reconcile finished in {time.time() - start_time:.2f}s: "
            f"{report.cleaned_posts}/{report.duplicate_posts} posts cleaned, "
            f"{report.deleted_records} rows deleted, {len(report.errors)} errors"
        )
        return report
