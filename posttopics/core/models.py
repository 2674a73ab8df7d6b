"""Database models for PostTopics."""
from sqlalchemy import (
    String, DateTime, Text, Integer, BigInteger, JSON, Index, Float
)
from sqlalchemy.orm import mapped_column
from sqlalchemy.sql import func

from .db import Base


class PostMetrics(Base):
    """Per-post metrics with the structured comment analysis payload."""
    __tablename__ = "post_metrics"

    id = mapped_column(BigInteger().with_variant(Integer, "sqlite"), primary_key=True)
    post_id = mapped_column(String(128), nullable=False, index=True)
    comments_analysis = mapped_column(JSON(none_as_null=True), nullable=True)  # {"comments": [{"text", "sentiment"}]}
    created_at = mapped_column(DateTime(timezone=True), server_default=func.now(), index=True)


class Comment(Base):
    """Legacy flat comments table."""
    __tablename__ = "comments"

    id = mapped_column(BigInteger().with_variant(Integer, "sqlite"), primary_key=True)
    post_id = mapped_column(String(128), nullable=False, index=True)
    text = mapped_column(Text, nullable=False)
    sentiment = mapped_column(String(32), nullable=True)  # positive|neutral|negative
    created_at = mapped_column(DateTime(timezone=True), server_default=func.now())


class PostTopic(Base):
    """One topic of the topic set stored for a post.

    All rows written by the same replace share ``created_at``; the
    reconciler uses it to tell sets apart.
    """
    __tablename__ = "post_topics"

    id = mapped_column(BigInteger().with_variant(Integer, "sqlite"), primary_key=True)
    post_id = mapped_column(String(128), nullable=False, index=True)
    topic_label = mapped_column(String(255), nullable=False)
    topic_description = mapped_column(Text, nullable=True)
    keywords = mapped_column(JSON, nullable=False, default=list)  # List of keywords
    relevance_score = mapped_column(Float, default=0.0, nullable=False)
    confidence_score = mapped_column(Float, default=0.0, nullable=False)
    comment_count = mapped_column(Integer, default=0, nullable=False)
    sentiment_distribution = mapped_column(JSON, nullable=True)  # {positive, neutral, negative}
    extracted_method = mapped_column(String(64), nullable=False)
    language_detected = mapped_column(String(16), nullable=True)
    created_at = mapped_column(DateTime(timezone=True), nullable=False, index=True)


# Create indexes for performance
Index('idx_post_topics_post_created', PostTopic.post_id, PostTopic.created_at)
Index('idx_post_topics_post_relevance', PostTopic.post_id, PostTopic.relevance_score.desc())
Index('idx_comments_post_created', Comment.post_id, Comment.created_at)
