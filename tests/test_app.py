"""Tests for the posttopics HTTP API."""

from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.testclient import TestClient

from posttopics.analysis.app import app, get_service
from posttopics.analysis.errors import PersistenceError
from posttopics.analysis.models import AnalysisResult, ReconcileReport, TopicStats

from conftest import make_topic


@pytest.fixture
def service():
    """Service double with async methods."""
    service = MagicMock()
    service.analyze = AsyncMock(return_value=AnalysisResult(
        success=True, topic_count=3, processing_time_ms=12, method="primary",
    ))
    service.analyze_comments = AsyncMock(return_value=AnalysisResult(
        success=True, topic_count=1, processing_time_ms=4, method="insufficient-data",
    ))
    service.get_topics = AsyncMock(return_value=[make_topic("Shipping delays")])
    service.get_stats = AsyncMock(return_value=TopicStats(total_topics=1, top_keywords=["shipping"]))
    service.get_key_topics = AsyncMock(return_value=["late delivery", "shipping"])
    service.delete_topics = AsyncMock(return_value=3)
    service.cleanup_duplicates = AsyncMock(return_value=ReconcileReport(
        total_posts=4, duplicate_posts=1, cleaned_posts=1, deleted_records=2,
    ))
    return service


@pytest.fixture
def client(service):
    app.dependency_overrides[get_service] = lambda: service
    yield TestClient(app)
    app.dependency_overrides.clear()


def test_healthz(client):
    response = client.get("/healthz")

    assert response.status_code == 200
    assert response.json() == {"status": "ok", "service": "posttopics"}


def test_analyze_post(client, service):
    response = client.post("/posts/p1/topics/analyze", params={"force": "true"})

    assert response.status_code == 200
    data = response.json()
    assert data["success"] is True
    assert data["method"] == "primary"
    assert data["topic_count"] == 3
    service.analyze.assert_awaited_once_with("p1", force=True)


def test_analyze_post_without_comments_is_404(client, service):
    service.analyze.return_value = AnalysisResult(
        success=False, method="no-comments", error="No comments found to analyze",
    )

    response = client.post("/posts/p1/topics/analyze")

    assert response.status_code == 404
    assert response.json()["detail"] == "No comments found to analyze"


def test_analyze_post_storage_failure_is_500(client, service):
    service.analyze.return_value = AnalysisResult(
        success=False, method="error-fallback", error="disk full",
    )

    response = client.post("/posts/p1/topics/analyze")

    assert response.status_code == 500
    assert "disk full" in response.json()["detail"]


def test_analyze_posted_comments(client, service):
    response = client.post("/posts/p1/topics", json={
        "comments": ["plain comment text", {"text": "structured comment", "sentiment": "positive"}],
    })

    assert response.status_code == 200
    assert response.json()["method"] == "insufficient-data"
    post_id, comments = service.analyze_comments.await_args.args
    assert post_id == "p1"
    assert comments[0] == "plain comment text"
    assert comments[1].text == "structured comment"


def test_analyze_posted_comments_requires_comments(client):
    response = client.post("/posts/p1/topics", json={"comments": []})

    assert response.status_code == 422


def test_get_topics(client):
    response = client.get("/posts/p1/topics")

    assert response.status_code == 200
    topics = response.json()
    assert topics[0]["label"] == "Shipping delays"
    assert topics[0]["extraction_method"] == "primary"


def test_get_stats(client):
    response = client.get("/posts/p1/topics/stats")

    assert response.status_code == 200
    assert response.json()["top_keywords"] == ["shipping"]


def test_get_key_topics(client):
    response = client.get("/posts/p1/topics/keywords")

    assert response.status_code == 200
    assert response.json() == {"post_id": "p1", "keywords": ["late delivery", "shipping"]}


def test_delete_topics(client, service):
    response = client.delete("/posts/p1/topics")

    assert response.status_code == 200
    assert response.json() == {"post_id": "p1", "deleted": 3}


def test_delete_topics_failure(client, service):
    service.delete_topics.side_effect = PersistenceError("locked")

    response = client.delete("/posts/p1/topics")

    assert response.status_code == 500


def test_cleanup_topics(client):
    response = client.post("/admin/cleanup/topics")

    assert response.status_code == 200
    data = response.json()
    assert data["deleted_records"] == 2
    assert data["cleaned_posts"] == 1
