"""Tests for the tiered topic extractor.

Covers the gate, the primary batch-shrink loop and every terminal state of
the cascade using scripted providers.
"""

import asyncio
from typing import Any, Dict, List

import pytest

from posttopics.analysis.errors import ProviderAuthFailure, ProviderUnavailable
from posttopics.analysis.models import ExtractionMethod
from posttopics.analysis.orchestrator import TieredTopicExtractor, rank_topics
from posttopics.analysis.providers import BasicTopicProvider, TopicProvider

from conftest import make_topic


class ScriptedProvider(TopicProvider):
    """Provider that plays back a list of results or exceptions."""

    def __init__(self, name: str, script: List[Any], delay: float = 0.0):
        self.name = name
        self.script = list(script)
        self.delay = delay
        self.batches: List[int] = []

    @property
    def provider_name(self) -> str:
        return self.name

    async def health_check(self) -> Dict[str, Any]:
        return {"status": "healthy", "provider": self.name}

    async def extract(self, comments):
        self.batches.append(len(comments))
        if self.delay:
            await asyncio.sleep(self.delay)
        step = self.script.pop(0) if len(self.script) > 1 else self.script[0]
        if isinstance(step, BaseException):
            raise step
        return step


def valid_comments(count: int) -> List[str]:
    return [f"valid comment about shipping number {i}" for i in range(count)]


def unavailable(provider: str = "openai") -> ProviderUnavailable:
    return ProviderUnavailable(provider, "HTTP 503: overloaded", 503)


@pytest.fixture
def primary_topics():
    return [
        make_topic("Shipping delays", 0.9, 0.8),
        make_topic("Pricing", 0.7, 0.7),
        make_topic("Quality", 0.6, 0.5),
        make_topic("Support", 0.4, 0.4),
    ]


def build_extractor(primary, secondary, tertiary=None, **overrides) -> TieredTopicExtractor:
    overrides.setdefault("primary_timeout", 1.0)
    return TieredTopicExtractor(primary, secondary, tertiary, **overrides)


class TestGate:
    """Tests for the insufficient-data gate."""

    @pytest.mark.asyncio
    async def test_two_comments_skip_every_provider(self):
        """Fewer than 3 valid comments give one low-confidence topic."""
        primary = ScriptedProvider("primary", [[]])
        secondary = ScriptedProvider("secondary", [[]])
        extractor = build_extractor(primary, secondary)

        outcome = await extractor.extract(["first comment is long enough", "second comment is long enough"])

        assert outcome.method == ExtractionMethod.INSUFFICIENT_DATA
        assert len(outcome.topics) == 1
        assert outcome.topics[0].confidence_score == 0.1
        assert outcome.topics[0].relevance_score == 0.1
        assert outcome.topics[0].extraction_method == "insufficient-data"
        assert primary.batches == []
        assert secondary.batches == []

    @pytest.mark.asyncio
    async def test_short_comments_do_not_count(self):
        primary = ScriptedProvider("primary", [[]])
        extractor = build_extractor(primary, ScriptedProvider("secondary", [[]]))

        outcome = await extractor.extract(["short", "tiny", "0123456789", "one valid comment here"])

        assert outcome.method == ExtractionMethod.INSUFFICIENT_DATA
        assert outcome.valid_comment_count == 1

    @pytest.mark.asyncio
    async def test_gate_is_deterministic(self):
        extractor = build_extractor(ScriptedProvider("p", [[]]), ScriptedProvider("s", [[]]))
        comments = ["shipping was slow again", "shipping never arrives"]

        first = await extractor.extract(comments)
        second = await extractor.extract(comments)

        assert first == second


class TestPrimaryTier:
    """Tests for the primary tier and batch shrinking."""

    @pytest.mark.asyncio
    async def test_primary_success_first_attempt(self, primary_topics):
        """50 valid comments, primary succeeds with batch 15."""
        primary = ScriptedProvider("primary", [primary_topics])
        secondary = ScriptedProvider("secondary", [[]])
        extractor = build_extractor(primary, secondary)

        outcome = await extractor.extract(valid_comments(50))

        assert outcome.method == ExtractionMethod.PRIMARY
        assert 3 <= len(outcome.topics) <= 5
        assert all(t.extraction_method == "primary" for t in outcome.topics)
        assert primary.batches == [15]
        assert outcome.batch_sizes == [15]
        assert outcome.valid_comment_count == 30
        assert secondary.batches == []

    @pytest.mark.asyncio
    async def test_batch_shrinks_15_7_3_then_secondary(self):
        """Three primary failures, then the secondary wins."""
        primary = ScriptedProvider("primary", [unavailable()])
        secondary = ScriptedProvider("secondary", [[
            make_topic("Shipping", 0.7, 0.6, ExtractionMethod.SECONDARY),
            make_topic("Pricing", 0.6, 0.6, ExtractionMethod.SECONDARY),
        ]])
        extractor = build_extractor(primary, secondary)

        outcome = await extractor.extract(valid_comments(20))

        assert primary.batches == [15, 7, 3]
        assert outcome.batch_sizes == [15, 7, 3]
        assert secondary.batches == [15]
        assert outcome.method == ExtractionMethod.SECONDARY
        assert all(t.extraction_method == "secondary-fallback" for t in outcome.topics)
        assert len(outcome.errors) == 3

    @pytest.mark.asyncio
    async def test_small_input_starts_with_its_own_size(self):
        primary = ScriptedProvider("primary", [unavailable()])
        extractor = build_extractor(primary, ScriptedProvider("secondary", [[make_topic()]]))

        await extractor.extract(valid_comments(5))

        assert primary.batches == [5, 3, 3]

    @pytest.mark.asyncio
    async def test_success_after_shrink(self, primary_topics):
        primary = ScriptedProvider("primary", [unavailable(), primary_topics])
        secondary = ScriptedProvider("secondary", [[]])
        extractor = build_extractor(primary, secondary)

        outcome = await extractor.extract(valid_comments(30))

        assert outcome.method == ExtractionMethod.PRIMARY
        assert primary.batches == [15, 7]
        assert secondary.batches == []

    @pytest.mark.asyncio
    async def test_auth_failure_skips_remaining_attempts(self):
        primary = ScriptedProvider("primary", [ProviderAuthFailure("openai", "API key not configured")])
        secondary = ScriptedProvider("secondary", [[make_topic("Shipping", method=ExtractionMethod.SECONDARY)]])
        extractor = build_extractor(primary, secondary)

        outcome = await extractor.extract(valid_comments(20))

        assert primary.batches == [15]
        assert outcome.method == ExtractionMethod.SECONDARY

    @pytest.mark.asyncio
    async def test_empty_primary_answer_escalates_without_shrinking(self):
        primary = ScriptedProvider("primary", [[]])
        secondary = ScriptedProvider("secondary", [[make_topic("Shipping", method=ExtractionMethod.SECONDARY)]])
        extractor = build_extractor(primary, secondary)

        outcome = await extractor.extract(valid_comments(20))

        assert primary.batches == [15]
        assert outcome.method == ExtractionMethod.SECONDARY

    @pytest.mark.asyncio
    async def test_timeout_counts_as_failed_attempt(self, primary_topics):
        """Each attempt is abandoned after the primary timeout."""
        primary = ScriptedProvider("primary", [primary_topics], delay=0.2)
        secondary = ScriptedProvider("secondary", [[make_topic("Fallback", method=ExtractionMethod.SECONDARY)]])
        extractor = build_extractor(primary, secondary, primary_timeout=0.01)

        outcome = await extractor.extract(valid_comments(20))

        assert primary.batches == [15, 7, 3]
        assert outcome.method == ExtractionMethod.SECONDARY
        assert all("timed out" in error for error in outcome.errors)


class TestFallbackTiers:
    """Tests for the secondary and basic tiers."""

    @pytest.mark.asyncio
    async def test_both_remote_tiers_fail(self):
        """Basic provider produces frequency keywords."""
        primary = ScriptedProvider("primary", [unavailable()])
        secondary = ScriptedProvider("secondary", [unavailable("huggingface")])
        comments = [
            "shipping is slow and refund is slow",
            "refund took forever to process",
            "shipping box arrived damaged",
        ]
        extractor = build_extractor(primary, secondary)

        outcome = await extractor.extract(comments)

        assert outcome.method == ExtractionMethod.BASIC
        assert len(outcome.topics) == 1
        assert outcome.topics[0].keywords == ["shipping", "slow", "refund"]
        assert outcome.topics[0].extraction_method == "basic-fallback"
        assert len(outcome.errors) == 4

    @pytest.mark.asyncio
    async def test_empty_secondary_answer_falls_to_basic(self):
        primary = ScriptedProvider("primary", [unavailable()])
        secondary = ScriptedProvider("secondary", [[]])
        extractor = build_extractor(primary, secondary)

        outcome = await extractor.extract(["alpha beta gamma words", "delta epsilon zeta words", "more unrelated text"])

        assert outcome.method == ExtractionMethod.BASIC
        assert outcome.topics[0].keywords == ["words"]

    @pytest.mark.asyncio
    async def test_failing_tertiary_still_returns_a_topic(self):
        primary = ScriptedProvider("primary", [unavailable()])
        secondary = ScriptedProvider("secondary", [unavailable("huggingface")])
        tertiary = ScriptedProvider("basic", [RuntimeError("broken")])
        extractor = build_extractor(primary, secondary, tertiary)

        outcome = await extractor.extract(valid_comments(10))

        assert outcome.method == ExtractionMethod.BASIC
        assert len(outcome.topics) == 1

    @pytest.mark.asyncio
    async def test_always_terminates_with_topics(self):
        """Whatever the providers do, at least one topic comes back."""
        for script in ([unavailable()], [[]], [ProviderAuthFailure("openai", "bad key")]):
            extractor = build_extractor(
                ScriptedProvider("primary", script),
                ScriptedProvider("secondary", script),
                BasicTopicProvider(),
            )
            outcome = await extractor.extract(valid_comments(12))
            assert outcome.topics


class TestRanking:
    """Tests for topic ranking and truncation."""

    def test_rank_by_relevance_plus_confidence(self):
        topics = [
            make_topic("Low", 0.2, 0.2),
            make_topic("High relevance", 0.9, 0.1),
            make_topic("Balanced", 0.6, 0.6),
        ]

        ranked = rank_topics(topics, limit=5)

        assert [t.label for t in ranked] == ["Balanced", "High relevance", "Low"]

    def test_ties_keep_provider_order(self):
        topics = [make_topic("First", 0.5, 0.5), make_topic("Second", 0.6, 0.4)]

        assert [t.label for t in rank_topics(topics, limit=5)] == ["First", "Second"]

    @pytest.mark.asyncio
    async def test_truncates_to_max_topics(self):
        many = [make_topic(f"Topic {i}", 0.1 * i, 0.5) for i in range(1, 9)]
        extractor = build_extractor(ScriptedProvider("primary", [many]), ScriptedProvider("secondary", [[]]))

        outcome = await extractor.extract(valid_comments(10))

        assert len(outcome.topics) == 5
        assert outcome.topics[0].label == "Topic 8"
