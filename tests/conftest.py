"""Shared fixtures for the posttopics tests."""

import json
from typing import Callable, Dict, List

import httpx
import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.pool import StaticPool

import posttopics.core.models  # noqa: F401  registers tables on Base.metadata
from posttopics.core.db import create_all, make_session_factory
from posttopics.analysis.models import ExtractionMethod, SentimentDistribution, Topic


@pytest_asyncio.fixture
async def engine():
    """In-memory SQLite engine with all tables created."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    await create_all(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    """Session maker bound to the in-memory engine."""
    return make_session_factory(engine)


@pytest.fixture
def sample_comments() -> List[str]:
    """Twenty valid comments about shipping, price and quality."""
    base = [
        "The shipping took three weeks to arrive here",
        "Price is way too high for what you get",
        "Quality of the fabric feels really cheap",
        "Shipping was late again, very annoying",
        "Great quality overall, would buy again",
    ]
    return [f"{text} #{i}" for i in range(4) for text in base]


def make_topic(
    label: str = "Shipping delays",
    relevance: float = 0.8,
    confidence: float = 0.7,
    method: ExtractionMethod = ExtractionMethod.PRIMARY,
    keywords: List[str] = None
) -> Topic:
    """Build a topic with sensible defaults."""
    return Topic(
        label=label,
        description=f"Comments about {label.lower()}",
        keywords=keywords if keywords is not None else [label.lower()],
        relevance_score=relevance,
        confidence_score=confidence,
        comment_count=5,
        sentiment_distribution=SentimentDistribution(positive=0.2, neutral=0.3, negative=0.5),
        extraction_method=method.value,
        detected_language="en",
    )


def openai_response(topics: List[Dict]) -> Dict:
    """Chat completions body whose message content is ``topics`` as JSON."""
    return {
        "choices": [
            {"message": {"role": "assistant", "content": json.dumps(topics)}}
        ]
    }


def mock_client(handler: Callable[[httpx.Request], httpx.Response]) -> httpx.AsyncClient:
    """AsyncClient that answers every request with ``handler``."""
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))
