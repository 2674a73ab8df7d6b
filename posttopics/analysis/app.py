"""Post topics FastAPI application."""

from typing import List, Optional, Union

import uvicorn
from fastapi import Depends, FastAPI, HTTPException, Query
from pydantic import BaseModel, Field

from posttopics.core.logging import get_logger, setup_logging
from posttopics.core.settings import settings
from .errors import PersistenceError
from .models import AnalysisResult, CommentRecord, ExtractionMethod, ReconcileReport, Topic, TopicStats
from .service import PostTopicsService, create_service

# Setup logging
setup_logging("posttopics")
logger = get_logger(__name__)

app = FastAPI(title="PostTopics", version="0.1.0", description="Comment topic extraction API")

_service: Optional[PostTopicsService] = None


class AnalyzeCommentsRequest(BaseModel):
    """Request model for analyzing caller-supplied comments."""
    comments: List[Union[str, CommentRecord]] = Field(..., min_length=1, description="Comments to analyze")


class DeleteTopicsResponse(BaseModel):
    """Response model for topic deletion."""
    post_id: str
    deleted: int


class KeyTopicsResponse(BaseModel):
    """Response model for key topics."""
    post_id: str
    keywords: List[str]


def get_service() -> PostTopicsService:
    """Get the application service (created on first use)."""
    global _service
    if _service is None:
        _service = create_service(settings)
    return _service


def _raise_for_result(post_id: str, result: AnalysisResult) -> AnalysisResult:
    if result.success:
        return result
    if result.method == ExtractionMethod.NO_COMMENTS.value:
        raise HTTPException(status_code=404, detail=result.error)
    logger.error(f"Topic analysis for post {post_id} failed: {result.error}")
    raise HTTPException(status_code=500, detail=f"Topic analysis failed: {result.error}")


@app.get("/healthz")
async def health_check():
    """Health check endpoint."""
    return {"status": "ok", "service": "posttopics"}


@app.post("/posts/{post_id}/topics/analyze", response_model=AnalysisResult)
async def analyze_post(
    post_id: str,
    force: bool = Query(default=False, description="Re-analyze even if topics are stored"),
    service: PostTopicsService = Depends(get_service)
):
    """
    Extract topics from the stored comments of a post.

    Concurrent requests for the same post share one analysis run.
    """
    logger.info(f"Topic analysis requested for post {post_id}", extra={"post_id": post_id, "force": force})
    result = await service.analyze(post_id, force=force)
    return _raise_for_result(post_id, result)


@app.post("/posts/{post_id}/topics", response_model=AnalysisResult)
async def analyze_post_comments(
    post_id: str,
    request: AnalyzeCommentsRequest,
    service: PostTopicsService = Depends(get_service)
):
    """Extract and store topics from comments sent in the request body."""
    result = await service.analyze_comments(post_id, request.comments)
    return _raise_for_result(post_id, result)


@app.get("/posts/{post_id}/topics", response_model=List[Topic])
async def get_post_topics(post_id: str, service: PostTopicsService = Depends(get_service)):
    """Stored topics of a post, most relevant first."""
    return await service.get_topics(post_id)


@app.get("/posts/{post_id}/topics/stats", response_model=TopicStats)
async def get_post_topic_stats(post_id: str, service: PostTopicsService = Depends(get_service)):
    """Aggregate statistics over the stored topics of a post."""
    return await service.get_stats(post_id)


@app.get("/posts/{post_id}/topics/keywords", response_model=KeyTopicsResponse)
async def get_post_key_topics(post_id: str, service: PostTopicsService = Depends(get_service)):
    """Keywords of the most relevant topic of a post."""
    keywords = await service.get_key_topics(post_id)
    return KeyTopicsResponse(post_id=post_id, keywords=keywords)


@app.delete("/posts/{post_id}/topics", response_model=DeleteTopicsResponse)
async def delete_post_topics(post_id: str, service: PostTopicsService = Depends(get_service)):
    """Delete the stored topics of a post."""
    try:
        deleted = await service.delete_topics(post_id)
    except PersistenceError as e:
        logger.error(f"Topic deletion failed for post {post_id}: {e}")
        raise HTTPException(status_code=500, detail=str(e))
    return DeleteTopicsResponse(post_id=post_id, deleted=deleted)


@app.post("/admin/cleanup/topics", response_model=ReconcileReport)
async def cleanup_topics(service: PostTopicsService = Depends(get_service)):
    """Remove duplicate topic sets, keeping the newest set of each post."""
    report = await service.cleanup_duplicates()
    logger.info(
        "Topic cleanup finished",
        extra={
            "duplicate_posts": report.duplicate_posts,
            "cleaned_posts": report.cleaned_posts,
            "deleted_records": report.deleted_records,
        }
    )
    return report


@app.on_event("startup")
async def startup_event():
    """Startup event handler."""
    logger.info("Starting posttopics service", extra={"service": "posttopics", "version": "0.1.0"})


@app.on_event("shutdown")
async def shutdown_event():
    """Shutdown event handler."""
    global _service
    if _service is not None:
        await _service.aclose()
        _service = None
    logger.info("Shutting down posttopics service")


def run_server(reload: bool = None):
    """Run the app with uvicorn."""
    uvicorn.run(
        "posttopics.analysis.app:app",
        host=settings.service_host,
        port=settings.service_port or 8000,
        reload=settings.debug if reload is None else reload,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    logger.info("Starting posttopics service via uvicorn")
    run_server()
