"""
Topic provider interface and implementations.

Three interchangeable strategies turn a list of comment strings into topics,
ordered by decreasing sophistication and increasing availability:

- PrimaryTopicProvider: OpenAI-compatible chat completions (JSON answer)
- SecondaryTopicProvider: Hugging Face text generation (numbered sections)
- BasicTopicProvider: local keyword frequency, cannot fail

Providers return an empty list when no topic is found and raise a
ProviderError subclass when the remote call fails.
"""

import json
import math
import time
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

import httpx
from tenacity import AsyncRetrying, retry_if_exception, stop_after_attempt, wait_fixed

from posttopics.core.logging import get_logger
from posttopics.core.settings import Settings, get_settings
from posttopics.core.utils import extract_keywords, frequent_keywords
from .errors import ProviderAuthFailure, ProviderResponseError, ProviderUnavailable
from .models import ExtractionMethod, SentimentDistribution, Topic
from .parser import Parsed, general_topic_text, parse_numbered_sections

logger = get_logger(__name__)

PLACEHOLDER_KEYWORDS = ["general interaction", "diverse comments", "engagement"]


class TopicProvider(ABC):
    """Abstract base class for topic providers."""

    @abstractmethod
    async def extract(self, comments: List[str]) -> List[Topic]:
        """
        Extract topics from comment texts.

        Args:
            comments: Valid, trimmed comment strings

        Returns:
            Topics found (empty list when none)
        """
        pass

    @abstractmethod
    async def health_check(self) -> Dict[str, Any]:
        """Check provider health and availability."""
        pass

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Provider identification name."""
        pass


def _clamp(value: Any, default: float) -> float:
    """Coerce ``value`` to a float in [0, 1], using ``default`` when missing."""
    try:
        number = float(value)
    except (TypeError, ValueError):
        return default
    if not math.isfinite(number):
        return default
    return min(max(number, 0.0), 1.0)


def _count(value: Any, default: int) -> int:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return default
    if not math.isfinite(value):
        return default
    return max(int(value), 0)


def _sentiment(value: Any) -> SentimentDistribution:
    """
    Build a normalized distribution from an LLM sentiment object.

    Shares given as 0-100 percentages are scaled down before clamping.
    """
    if not isinstance(value, dict):
        return SentimentDistribution()
    shares = {}
    for name in ("positive", "neutral", "negative"):
        try:
            share = float(value.get(name))
        except (TypeError, ValueError):
            continue
        if math.isfinite(share):
            shares[name] = share
    if not shares:
        return SentimentDistribution()

    if max(shares.values()) > 1.0:
        shares = {name: share / 100 for name, share in shares.items()}
    return SentimentDistribution(
        positive=_clamp(shares.get("positive"), 0.33),
        neutral=_clamp(shares.get("neutral"), 0.33),
        negative=_clamp(shares.get("negative"), 0.33),
    ).normalized()


def _is_placeholder_key(key: Optional[str]) -> bool:
    return not key or key == "API-KEY-OPENAI" or "**" in key


class HTTPTopicProvider(TopicProvider):
    """Shared HTTP plumbing: client lifecycle, status mapping and one-shot retry."""

    # Status codes answered with one retry after ``retry_delay``
    retry_statuses: Tuple[int, ...] = (503,)

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        retry_delay: float = 1.5,
        timeout: float = 30.0
    ):
        self.retry_delay = retry_delay
        self._owns_client = client is None
        self.client = client or httpx.AsyncClient(
            timeout=httpx.Timeout(timeout),
            headers={"User-Agent": "PostTopics/1.0"},
        )
        self.call_count = 0
        self.error_count = 0
        self.total_processing_time = 0.0

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.aclose()

    async def aclose(self) -> None:
        """Close the HTTP client if this provider created it."""
        if self._owns_client:
            await self.client.aclose()

    def _should_retry(self, exc: BaseException) -> bool:
        return isinstance(exc, ProviderUnavailable) and exc.status_code in self.retry_statuses

    def _raise_for_status(self, response: httpx.Response) -> None:
        """Map an HTTP error status to the provider error taxonomy."""
        status = response.status_code
        if status < 400:
            return

        detail = response.text[:200] if response.text else "No content"
        if status in (401, 403):
            raise ProviderAuthFailure(self.provider_name, f"HTTP {status}: {detail}", status)
        if status == 429 or status >= 500:
            raise ProviderUnavailable(self.provider_name, f"HTTP {status}: {detail}", status)
        raise ProviderResponseError(self.provider_name, f"HTTP {status}: {detail}", status)

    async def _send(self, url: str, payload: Dict[str, Any], headers: Dict[str, str]) -> Any:
        try:
            response = await self.client.post(url, json=payload, headers=headers)
        except httpx.TimeoutException as e:
            raise ProviderUnavailable(self.provider_name, f"timeout: {type(e).__name__}") from e
        except httpx.RequestError as e:
            raise ProviderUnavailable(self.provider_name, f"request error: {e}") from e

        self._raise_for_status(response)

        try:
            return response.json()
        except ValueError as e:
            raise ProviderResponseError(self.provider_name, "response body is not JSON") from e

    def _log_retry(self, retry_state) -> None:
        logger.warning(
            f"{self.provider_name} temporarily unavailable "
            f"({retry_state.outcome.exception()}), retrying in {self.retry_delay}s"
        )

    async def _post_json(self, url: str, payload: Dict[str, Any], headers: Dict[str, str]) -> Any:
        """POST ``payload`` and return the decoded JSON, retrying once when unavailable."""
        start_time = time.time()
        self.call_count += 1

        retrying = AsyncRetrying(
            stop=stop_after_attempt(2),
            wait=wait_fixed(self.retry_delay),
            retry=retry_if_exception(self._should_retry),
            before_sleep=self._log_retry,
            reraise=True,
        )
        try:
            return await retrying(self._send, url, payload, headers)
        except Exception:
            self.error_count += 1
            raise
        finally:
            self.total_processing_time += time.time() - start_time

    async def health_check(self) -> Dict[str, Any]:
        return {
            "status": "configured" if self.is_configured else "unconfigured",
            "provider": self.provider_name,
            "calls_made": self.call_count,
            "errors": self.error_count,
            "avg_response_time": self.total_processing_time / max(self.call_count, 1),
            "timestamp": datetime.now(timezone.utc).isoformat()
        }

    @property
    def is_configured(self) -> bool:
        return True


class PrimaryTopicProvider(HTTPTopicProvider):
    """
    Higher-quality provider backed by an OpenAI-compatible chat completions API.

    Asks for exactly three topics as a JSON array and validates the answer.
    """

    # None covers timeouts and network errors
    retry_statuses = (429, 500, 502, 503, 504, None)

    SYSTEM_PROMPT = "You are an expert social media analyst. Always answer with valid JSON."

    def __init__(
        self,
        api_key: str,
        model: str = "gpt-3.5-turbo",
        base_url: str = "https://api.openai.com/v1/chat/completions",
        max_tokens: int = 800,
        **kwargs
    ):
        super().__init__(**kwargs)
        self.api_key = api_key
        self.model = model
        self.base_url = base_url
        self.max_tokens = max_tokens

    @property
    def provider_name(self) -> str:
        return "openai"

    @property
    def is_configured(self) -> bool:
        return not _is_placeholder_key(self.api_key)

    def build_prompt(self, comments: List[str]) -> str:
        numbered = "\n".join(f"{i}. {comment}" for i, comment in enumerate(comments, start=1))
        return f"""Analyze these comments and extract EXACTLY 3 specific topics people talk about the most.

Comments:
{numbered}

INSTRUCTIONS:
- Topics must be specific and grounded in what the comments actually say
- In keywords describe the KINDS OF COMMENTS or PATTERNS you find
- Set "language" to the ISO 639-1 code of the comments

Answer ONLY with a valid JSON array of exactly 3 elements:

[
  {{
    "topic_label": "Topic title",
    "topic_description": "What is said about this topic",
    "keywords": ["Comment type 1", "Comment pattern 2", "Comment category 3"],
    "relevance_score": 0.9,
    "confidence_score": 0.8,
    "comment_count": 12,
    "sentiment_distribution": {{"positive": 0.6, "neutral": 0.3, "negative": 0.1}},
    "language": "en"
  }}
]"""

    async def extract(self, comments: List[str]) -> List[Topic]:
        if not self.is_configured:
            raise ProviderAuthFailure(self.provider_name, "API key not configured")
        if not comments:
            return []

        body = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": self.SYSTEM_PROMPT},
                {"role": "user", "content": self.build_prompt(comments)},
            ],
            "max_tokens": self.max_tokens,
            "temperature": 0.3,
        }
        headers = {"Authorization": f"Bearer {self.api_key}"}

        data = await self._post_json(self.base_url, body, headers)
        return self.parse_response(data, len(comments))

    def parse_response(self, data: Any, batch_size: int) -> List[Topic]:
        """Turn a chat completions response into topics."""
        try:
            content = data["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError) as e:
            raise ProviderResponseError(self.provider_name, "no message content in response") from e
        if not content:
            raise ProviderResponseError(self.provider_name, "empty message content")

        clean = content.replace("```json", "").replace("```", "").strip()
        try:
            parsed = json.loads(clean)
        except json.JSONDecodeError as e:
            logger.error(f"Invalid JSON from {self.provider_name}: {clean[:200]}")
            raise ProviderResponseError(self.provider_name, f"invalid JSON: {e}") from e

        if not isinstance(parsed, list):
            raise ProviderResponseError(self.provider_name, "answer is not a JSON array")

        items = [item for item in parsed if isinstance(item, dict)]
        if not items:
            return []

        default_count = batch_size // len(items)
        topics = []
        for item in items:
            keywords = item.get("keywords")
            try:
                topics.append(Topic(
                    label=str(item.get("topic_label") or "").strip() or "Identified topic",
                    description=str(item.get("topic_description") or "No description available"),
                    keywords=[str(k) for k in keywords] if isinstance(keywords, list) else [],
                    relevance_score=_clamp(item.get("relevance_score"), 0.5),
                    confidence_score=_clamp(item.get("confidence_score"), 0.5),
                    comment_count=_count(item.get("comment_count"), default_count),
                    sentiment_distribution=_sentiment(item.get("sentiment_distribution")),
                    extraction_method=ExtractionMethod.PRIMARY.value,
                    detected_language=str(item.get("language") or "unknown"),
                ))
            except ValueError as e:
                raise ProviderResponseError(self.provider_name, f"invalid topic: {e}") from e
        return topics


class SecondaryTopicProvider(HTTPTopicProvider):
    """
    Lower-cost provider backed by the Hugging Face inference API.

    The model answers in free text; numbered sections become topics and an
    answer without sections becomes one general topic.
    """

    retry_statuses = (503,)

    def __init__(
        self,
        api_token: str = "",
        model: str = "HuggingFaceH4/zephyr-7b-beta",
        api_url: str = "https://api-inference.huggingface.co/models/",
        max_new_tokens: int = 400,
        **kwargs
    ):
        kwargs.setdefault("retry_delay", 3.0)
        super().__init__(**kwargs)
        self.api_token = api_token
        self.model = model
        self.api_url = api_url
        self.max_new_tokens = max_new_tokens

    @property
    def provider_name(self) -> str:
        return "huggingface"

    @property
    def endpoint(self) -> str:
        return f"{self.api_url.rstrip('/')}/{self.model}"

    def build_prompt(self, comments: List[str]) -> str:
        comments_json = json.dumps(comments, ensure_ascii=False, indent=2)
        return f"""Analyze these comments and extract the main topics with context:
{comments_json}

Answer format:
1. Main topic 1: [description]
2. Main topic 2: [description]
3. Overall conclusion:"""

    async def extract(self, comments: List[str]) -> List[Topic]:
        if not comments:
            return []

        payload = {
            "inputs": self.build_prompt(comments),
            "parameters": {"max_new_tokens": self.max_new_tokens, "return_full_text": False},
        }
        headers = {}
        if self.api_token:
            headers["Authorization"] = f"Bearer {self.api_token}"

        data = await self._post_json(self.endpoint, payload, headers)
        text = self.generated_text(data)
        if not text or not text.strip():
            logger.warning(f"{self.provider_name} returned no generated text")
            return []

        return self.topics_from_text(text, len(comments))

    @staticmethod
    def generated_text(data: Any) -> Optional[str]:
        """Pull the generated text out of the inference response shapes."""
        if isinstance(data, list) and data:
            first = data[0]
            if isinstance(first, dict):
                return first.get("generated_text") or first.get("summary_text")
            if isinstance(first, str):
                return first
            return None
        if isinstance(data, str):
            return data
        if isinstance(data, dict):
            return data.get("generated_text")
        return None

    def topics_from_text(self, text: str, total_comments: int) -> List[Topic]:
        result = parse_numbered_sections(text)
        if isinstance(result, Parsed):
            per_section = total_comments // len(result.sections)
            return [
                self._build_topic(label, description, per_section)
                for label, description in result.sections
            ]

        logger.info(f"{self.provider_name} answer has no numbered sections, using general topic")
        label, description = general_topic_text(result.raw)
        return [self._build_topic(label, description, total_comments)]

    @staticmethod
    def _build_topic(label: str, description: str, comment_count: int) -> Topic:
        keywords = extract_keywords(f"{label} {description}", max_keywords=8)
        return Topic(
            label=label,
            description=description,
            keywords=keywords,
            relevance_score=min(0.9, 0.3 + len(keywords) * 0.1),
            confidence_score=min(0.8, 0.4 + len(description) / 200),
            comment_count=comment_count,
            sentiment_distribution=SentimentDistribution(positive=0.4, neutral=0.4, negative=0.2),
            extraction_method=ExtractionMethod.SECONDARY.value,
        )


class BasicTopicProvider(TopicProvider):
    """
    Local keyword-frequency provider.

    Deterministic and dependency free; always returns exactly one topic.
    """

    def __init__(self, top_n: int = 3):
        self.top_n = top_n
        self.call_count = 0

    @property
    def provider_name(self) -> str:
        return "basic"

    async def health_check(self) -> Dict[str, Any]:
        """Always healthy for the local provider."""
        return {
            "status": "healthy",
            "provider": self.provider_name,
            "calls_made": self.call_count,
            "timestamp": datetime.now(timezone.utc).isoformat()
        }

    async def extract(self, comments: List[str]) -> List[Topic]:
        self.call_count += 1
        return [self.build_topic(comments)]

    def build_topic(self, comments: List[str]) -> Topic:
        keywords = frequent_keywords(comments, top_n=self.top_n)
        if not keywords:
            return Topic(
                label="General interaction",
                description="General user comments without specific identifiable topics.",
                keywords=PLACEHOLDER_KEYWORDS,
                relevance_score=0.3,
                confidence_score=0.2,
                comment_count=len(comments),
                sentiment_distribution=SentimentDistribution(positive=0.4, neutral=0.4, negative=0.2),
                extraction_method=ExtractionMethod.BASIC.value,
            )

        return Topic(
            label="Key topics",
            description="Recurring terms across the comments: " + ", ".join(keywords) + ".",
            keywords=keywords,
            relevance_score=0.3,
            confidence_score=0.2,
            comment_count=len(comments),
            sentiment_distribution=SentimentDistribution(positive=0.4, neutral=0.4, negative=0.2),
            extraction_method=ExtractionMethod.BASIC.value,
        )


def build_providers(
    settings: Optional[Settings] = None,
    client: Optional[httpx.AsyncClient] = None
) -> Tuple[PrimaryTopicProvider, SecondaryTopicProvider, BasicTopicProvider]:
    """
    Create the provider chain from settings.

    Args:
        settings: Application settings (defaults to the cached settings)
        client: Shared HTTP client (each provider creates one if None)

    Returns:
        (primary, secondary, tertiary) providers
    """
    settings = settings or get_settings()
    primary = PrimaryTopicProvider(
        api_key=settings.openai_api_key,
        model=settings.openai_model,
        base_url=settings.openai_base_url,
        client=client,
        retry_delay=settings.primary_retry_delay,
        timeout=settings.http_timeout_seconds,
    )
    secondary = SecondaryTopicProvider(
        api_token=settings.hf_api_token,
        model=settings.hf_model,
        api_url=settings.hf_api_url,
        client=client,
        retry_delay=settings.secondary_retry_delay,
        timeout=settings.http_timeout_seconds,
    )
    if not primary.is_configured:
        logger.warning("Primary topic provider has no API key; analyses will start at the secondary tier")
    return primary, secondary, BasicTopicProvider()
