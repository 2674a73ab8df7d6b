"""Exceptions raised inside the topic-extraction pipeline."""


class TopicPipelineError(Exception):
    """Base exception for the topic pipeline."""
    pass


class ProviderError(TopicPipelineError):
    """A topic provider could not produce a result."""

    def __init__(self, provider: str, message: str, status_code: int = None):
        super().__init__(f"{provider}: {message}")
        self.provider = provider
        self.status_code = status_code


class ProviderUnavailable(ProviderError):
    """Timeout, network error, rate limit or 5xx response. Retryable."""
    pass


class ProviderAuthFailure(ProviderError):
    """Missing or rejected credentials. Never retried."""
    pass


class ProviderResponseError(ProviderError):
    """The provider answered with a body that could not be interpreted."""
    pass


class PersistenceError(TopicPipelineError):
    """Writing a topic set to the store failed."""
    pass
