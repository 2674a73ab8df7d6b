"""Post comment topic analysis package.

This package contains modules for:
- Comment source resolution (comments.py)
- Extraction providers with tiered fallback (providers.py, orchestrator.py)
- Free-text response parsing (parser.py)
- Per-post single-flight coordination (singleflight.py)
- Topic set storage and duplicate cleanup (store.py, reconciler.py)
- Service facade, HTTP app and CLI (service.py, app.py, cli.py)
"""

from .errors import (
    PersistenceError,
    ProviderAuthFailure,
    ProviderError,
    ProviderResponseError,
    ProviderUnavailable,
    TopicPipelineError,
)

from .models import (
    AnalysisResult,
    CommentRecord,
    ExtractionMethod,
    ExtractionOutcome,
    ReconcileReport,
    SentimentDistribution,
    Topic,
    TopicStats,
)

from .orchestrator import TieredTopicExtractor, rank_topics
from .providers import BasicTopicProvider, PrimaryTopicProvider, SecondaryTopicProvider, TopicProvider
from .service import PostTopicsService, create_service
from .singleflight import SingleFlight

__all__ = [
    # Errors
    'TopicPipelineError',
    'ProviderError',
    'ProviderUnavailable',
    'ProviderAuthFailure',
    'ProviderResponseError',
    'PersistenceError',

    # Models
    'AnalysisResult',
    'CommentRecord',
    'ExtractionMethod',
    'ExtractionOutcome',
    'ReconcileReport',
    'SentimentDistribution',
    'Topic',
    'TopicStats',

    # Extraction
    'TopicProvider',
    'PrimaryTopicProvider',
    'SecondaryTopicProvider',
    'BasicTopicProvider',
    'TieredTopicExtractor',
    'rank_topics',

    # Service
    'SingleFlight',
    'PostTopicsService',
    'create_service',
]
