"""
Core Pydantic models for the topic-extraction pipeline.

Topics are created by a provider, ranked and truncated by the orchestrator,
and owned by the topic store once persisted.
"""

from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator

from posttopics.core.utils import dedupe

# Column widths of post_topics.topic_label and post_topics.language_detected
LABEL_MAX_LENGTH = 255
LANGUAGE_MAX_LENGTH = 16


class ExtractionMethod(str, Enum):
    """Tag identifying which tier (or service path) produced a result."""
    PRIMARY = "primary"
    SECONDARY = "secondary-fallback"
    BASIC = "basic-fallback"
    INSUFFICIENT_DATA = "insufficient-data"
    CACHED = "cached"
    NO_COMMENTS = "no-comments"
    ERROR = "error-fallback"


class SentimentDistribution(BaseModel):
    """Share of positive, neutral and negative comments in a topic."""
    positive: float = Field(default=0.33, ge=0.0, le=1.0)
    neutral: float = Field(default=0.34, ge=0.0, le=1.0)
    negative: float = Field(default=0.33, ge=0.0, le=1.0)

    def normalized(self) -> "SentimentDistribution":
        """Scale the three shares so they sum to 1."""
        total = self.positive + self.neutral + self.negative
        if total <= 0:
            return SentimentDistribution()
        return SentimentDistribution(
            positive=self.positive / total,
            neutral=self.neutral / total,
            negative=self.negative / total,
        )


class Topic(BaseModel):
    """A ranked topic extracted from a post's comments."""
    label: str = Field(..., min_length=1, description="Short topic title")
    description: str = Field(default="", description="What commenters say about the topic")
    keywords: List[str] = Field(default_factory=list, description="Distinct keywords")
    relevance_score: float = Field(..., ge=0.0, le=1.0)
    confidence_score: float = Field(..., ge=0.0, le=1.0)
    comment_count: int = Field(default=0, ge=0)
    sentiment_distribution: SentimentDistribution = Field(default_factory=SentimentDistribution)
    extraction_method: str = Field(default=ExtractionMethod.BASIC.value)
    detected_language: str = Field(default="unknown")

    @field_validator('label')
    @classmethod
    def validate_label(cls, v):
        """Ensure label is not blank."""
        if not v or v.isspace():
            raise ValueError("Topic label cannot be empty or whitespace")
        return v.strip()[:LABEL_MAX_LENGTH].rstrip()

    @field_validator('detected_language')
    @classmethod
    def validate_language(cls, v):
        """Fit the language tag to the stored column."""
        v = (v or "").strip()
        return v[:LANGUAGE_MAX_LENGTH].rstrip() or "unknown"

    @field_validator('keywords')
    @classmethod
    def validate_keywords(cls, v):
        """Keywords behave as a set; keep first-seen order."""
        return dedupe(v)

    @property
    def combined_score(self) -> float:
        """Ranking score used to order topics inside a set."""
        return self.relevance_score + self.confidence_score

    def with_method(self, method: ExtractionMethod) -> "Topic":
        """Copy tagged with the tier that produced it."""
        return self.model_copy(update={"extraction_method": method.value})

    def to_record(self) -> Dict[str, Any]:
        """Column values for a ``post_topics`` row."""
        return {
            "topic_label": self.label,
            "topic_description": self.description,
            "keywords": list(self.keywords),
            "relevance_score": self.relevance_score,
            "confidence_score": self.confidence_score,
            "comment_count": self.comment_count,
            "sentiment_distribution": self.sentiment_distribution.model_dump(),
            "extracted_method": self.extraction_method,
            "language_detected": self.detected_language,
        }

    @classmethod
    def from_record(cls, row: Any) -> "Topic":
        """Build a Topic from a ``PostTopic`` row."""
        return cls(
            label=row.topic_label,
            description=row.topic_description or "",
            keywords=row.keywords or [],
            relevance_score=row.relevance_score,
            confidence_score=row.confidence_score,
            comment_count=row.comment_count,
            sentiment_distribution=SentimentDistribution(**(row.sentiment_distribution or {})),
            extraction_method=row.extracted_method,
            detected_language=row.language_detected or "unknown",
        )


class CommentRecord(BaseModel):
    """A raw comment as returned by the comment stores."""
    text: str
    sentiment: Optional[str] = None


class ExtractionOutcome(BaseModel):
    """Terminal state of one run of the tiered extractor."""
    method: ExtractionMethod
    topics: List[Topic]
    valid_comment_count: int = 0
    batch_sizes: List[int] = Field(default_factory=list, description="Primary batch sizes attempted")
    errors: List[str] = Field(default_factory=list, description="Failures seen before the terminal tier")


class AnalysisResult(BaseModel):
    """Structured result returned to callers of ``analyze``."""
    success: bool
    topic_count: int = 0
    processing_time_ms: int = 0
    method: str
    error: Optional[str] = None


class ReconcileReport(BaseModel):
    """Summary of one duplicate topic set cleanup run."""
    total_posts: int = 0
    duplicate_posts: int = 0
    cleaned_posts: int = 0
    deleted_records: int = 0
    errors: List[str] = Field(default_factory=list)


class TopicStats(BaseModel):
    """Aggregate statistics over the topic set of a post."""
    total_topics: int = 0
    high_confidence_topics: int = 0
    average_relevance: float = 0.0
    average_confidence: float = 0.0
    top_keywords: List[str] = Field(default_factory=list)
    languages_detected: List[str] = Field(default_factory=list)
    topics: List[Topic] = Field(default_factory=list)
