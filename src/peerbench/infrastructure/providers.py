"""LLM Provider implementations on top of the OpenAI compatible chat API."""

import contextlib
import json
import logging
import threading
import time
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, Iterable, Iterator, List, Mapping, Optional, Tuple, Union, cast

import httpx
from openai import APIStatusError, OpenAI, OpenAIError

from ..domain import ForwardResponse, ModelInfo
from ..environment import Environment
from ..exceptions import ErrorCodes, ForwardError, ProviderError, ValidationError
from ..services import ChatMessages, IRateLimiter
from .rate_limiter import SlidingWindowRateLimiter

OPENROUTER_BASE_URL = "https://openrouter.ai/api/v1"

# Errors that consume a retry. Anything else is a bug and propagates.
TRANSIENT_ERRORS = (OpenAIError, httpx.HTTPError, json.JSONDecodeError, ProviderError)


def now_ms() -> int:
    return int(time.time() * 1000)


class BaseLLMProvider(ABC):
    """Base class for chat-completion Providers.

    Forwards inputs through the OpenAI client, admits calls through a sliding
    window rate limiter and retries failed calls up to ``max_retries`` times.
    """

    identifier: str = "base"

    def __init__(
        self,
        api_key: str,
        base_url: Optional[str] = None,
        *,
        max_retries: int = 5,
        timeout: float = 300.0,
        rate_limit: int = 20,
        rate_limit_time_window: float = 3.0,
        max_concurrency: Optional[int] = None,
        rate_limiter: Optional[IRateLimiter] = None,
        now_provider: Optional[Callable[[], int]] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self._api_key = api_key
        self._base_url = base_url
        self.max_retries = max_retries
        self.timeout = timeout
        self.rate_limiter = rate_limiter or SlidingWindowRateLimiter(rate_limit, rate_limit_time_window)
        self._concurrency = threading.BoundedSemaphore(max_concurrency) if max_concurrency else None
        self._now = now_provider or now_ms
        self._logger = logger or logging.getLogger(__name__)
        self._lock = threading.RLock()
        self._client: Optional[OpenAI] = None
        self._http_client: Optional[httpx.Client] = None

    def _ensure_client(self) -> OpenAI:
        """Lazily create and cache the OpenAI client."""
        with self._lock:
            if self._client is None:
                self._http_client = httpx.Client(http2=True, timeout=httpx.Timeout(self.timeout, connect=10))
                # Retries are handled by forward() so every attempt is counted once
                self._client = OpenAI(
                    api_key=self._api_key,
                    base_url=self._base_url,
                    http_client=self._http_client,
                    max_retries=0,
                )
                self._logger.debug("Initialized %s client with persistent HTTP/2 connection pool.", self.identifier)
            return self._client

    @contextlib.contextmanager
    def _concurrency_slot(self) -> Iterator[None]:
        if self._concurrency is None:
            yield
            return
        with self._concurrency:
            yield

    @staticmethod
    def build_messages(input: Union[str, ChatMessages], system: Optional[str] = None) -> ChatMessages:
        """Messages are passed through as is; a string becomes an optional system plus a user message."""
        if isinstance(input, list):
            return list(input)
        messages: ChatMessages = []
        if system:
            messages.append({"role": "system", "content": system})
        messages.append({"role": "user", "content": input})
        return messages

    def _create_completion(self, model: str, messages: ChatMessages, temperature: Optional[float]) -> Dict[str, Any]:
        client = self._ensure_client()
        request: Dict[str, Any] = {"model": model, "messages": messages}
        if temperature is not None:
            request["temperature"] = temperature

        client_any = cast(Any, client)
        raw_response = client_any.chat.completions.with_raw_response.create(**request, timeout=self.timeout)
        completion = raw_response.parse()
        payload = cast(Dict[str, Any], completion.model_dump())

        http_response = raw_response.http_response
        elapsed = http_response.elapsed.total_seconds() if http_response.elapsed else None
        self._logger.debug(
            "Received response status=%s latency=%s model=%s",
            http_response.status_code,
            f"{elapsed:.3f}s" if elapsed is not None else "unknown",
            model,
        )
        return payload

    def forward(
        self,
        input: Union[str, ChatMessages],
        *,
        model: str,
        system: Optional[str] = None,
        temperature: Optional[float] = None,
        abort_event: Optional[threading.Event] = None,
    ) -> ForwardResponse:
        """Send the input to ``model`` and return the answer text with accounting data."""
        self.rate_limiter.acquire()

        with self._concurrency_slot():
            retries_left = self.max_retries
            while retries_left > 0:
                started_at = self._now()
                if abort_event is not None and abort_event.is_set():
                    raise ForwardError("Forward aborted by caller", ErrorCodes.PROVIDER_ABORTED, started_at=started_at)

                try:
                    messages = self.build_messages(input, system)
                    payload = self._create_completion(model, messages, temperature)
                    error = payload.get("error")
                    if error:
                        raise ProviderError(f"Provider returned an error payload: {json.dumps(error, default=str)}")

                    usage = payload.get("usage") or {}
                    return ForwardResponse(
                        data=self._extract_text(payload),
                        started_at=started_at,
                        completed_at=self._now(),
                        input_tokens_used=usage.get("prompt_tokens"),
                        output_tokens_used=usage.get("completion_tokens"),
                        input_cost=self._extract_cost(usage, "prompt"),
                        output_cost=self._extract_cost(usage, "completion"),
                    )
                except APIStatusError as exc:
                    if exc.status_code == 401:
                        raise ForwardError(
                            "Invalid credentials provided for the Provider",
                            ErrorCodes.PROVIDER_UNAUTHORIZED,
                            started_at=started_at,
                            cause=exc,
                        ) from exc
                    retries_left -= 1
                    error_seen: BaseException = exc
                except TRANSIENT_ERRORS as exc:
                    retries_left -= 1
                    # Empty bodies surface as JSON decode errors; they are always retried
                    if isinstance(exc, json.JSONDecodeError):
                        self._logger.debug("Empty or malformed response body from %s: %s", model, exc)
                        continue
                    error_seen = exc

                if retries_left != 0:
                    self._logger.debug("Forward to %s failed (%s); %d retries left", model, error_seen, retries_left)
                    continue

                raise ForwardError(
                    f"Failed to forward prompt to the model: {error_seen}",
                    ErrorCodes.PROVIDER_FORWARD_FAILED,
                    started_at=started_at,
                    cause=error_seen,
                ) from error_seen

        raise ForwardError(
            "Failed to forward prompt to the model: Max retries reached",
            ErrorCodes.PROVIDER_MAX_RETRIES_REACHED,
            started_at=self._now(),
        )

    def list_models(self) -> List[Dict[str, Any]]:
        """Fetch the raw model catalog of the backend."""
        self.rate_limiter.acquire()
        with self._lock:
            self._ensure_client()
            if self._http_client is None:
                raise RuntimeError("HTTP client not initialised.")
            headers = {
                "Accept": "application/json",
                "Authorization": f"Bearer {self._api_key}",
            }
            try:
                response = self._http_client.get(f"{self._base_url}/models", headers=headers)
                response.raise_for_status()
                payload = cast(Dict[str, Any], response.json())
            except (httpx.HTTPError, json.JSONDecodeError) as exc:
                self._logger.error("Failed to fetch %s model catalog: %s", self.identifier, exc)
                raise ProviderError(f"Failed to fetch supported models: {exc}") from exc

        raw_data = payload.get("data")
        if not isinstance(raw_data, list):
            raise ProviderError("Unexpected response payload for model catalog.")
        return [entry for entry in cast(Iterable[Any], raw_data) if isinstance(entry, dict)]

    def get_supported_models(self) -> List[ModelInfo]:
        """Catalog entries this Provider understands, normalized."""
        models: List[ModelInfo] = []
        for entry in self.list_models():
            info = self.parse_model_info(entry)
            if info is not None:
                models.append(info)
        return models

    @abstractmethod
    def parse_model_info(self, model: Union[str, Mapping[str, Any]]) -> Optional[ModelInfo]:
        """Normalize a model id or catalog entry; None means the model is not supported."""

    def close(self) -> None:
        """Close connections and cleanup resources."""
        with self._lock:
            if self._http_client:
                self._http_client.close()
                self._http_client = None
            self._client = None
            self._logger.debug("Closed %s client connections", self.identifier)

    def __enter__(self) -> "BaseLLMProvider":
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()

    @staticmethod
    def _extract_cost(usage: Mapping[str, Any], kind: str) -> Optional[str]:
        details = usage.get("cost_details")
        if isinstance(details, Mapping):
            value = cast(Mapping[str, Any], details).get(f"upstream_inference_{kind}_cost")
            if isinstance(value, (int, float)) and not isinstance(value, bool):
                return str(value)
        return None

    @staticmethod
    def _extract_text(payload: Dict[str, Any]) -> str:
        """Extract text content from a chat completion payload."""
        try:
            message = payload["choices"][0]["message"]
        except (KeyError, IndexError, TypeError):
            return ""
        if not isinstance(message, dict):
            return ""

        content = message.get("content")
        if isinstance(content, str):
            return content

        # Structured content (list of segments)
        if isinstance(content, list):
            texts: List[str] = []
            for item in cast(List[Any], content):
                if isinstance(item, str):
                    texts.append(item)
                elif isinstance(item, dict):
                    text_value = cast(Dict[str, Any], item).get("text")
                    if isinstance(text_value, str):
                        texts.append(text_value)
            return "".join(texts)

        return ""


class OpenRouterProvider(BaseLLMProvider):
    """Provider for the models served through OpenRouter.ai."""

    identifier = "openrouter.ai"

    # Catalog owner slugs that differ from the owner names used in result files
    OWNER_ALIASES = {
        "meta-llama": "meta",
        "mistralai": "mistral",
        "deepseek-ai": "deepseek",
        "google-deepmind": "google",
    }

    def __init__(self, api_key: str, base_url: str = OPENROUTER_BASE_URL, **kwargs: Any):
        super().__init__(api_key, base_url, **kwargs)

    def parse_model_info(self, model: Union[str, Mapping[str, Any]]) -> Optional[ModelInfo]:
        """Parse ``<owner>/<name>[:<tier>]`` ids, optionally wrapped in a catalog entry."""
        metadata: Optional[Dict[str, Any]] = None
        if isinstance(model, Mapping):
            entry = cast(Mapping[str, Any], model)
            model_id = entry.get("id")
            metadata = {
                key: entry[key] for key in ("context_length", "pricing", "top_provider") if key in entry
            } or None
        else:
            model_id = model

        if not isinstance(model_id, str) or model_id.count("/") != 1:
            return None

        owner, _, name = model_id.partition("/")
        tier: Optional[str] = None
        if ":" in name:
            name, _, tier = name.partition(":")
        if not owner or not name or tier == "":
            return None

        return ModelInfo(
            id=model_id,
            name=name,
            owner=self.OWNER_ALIASES.get(owner, owner),
            provider=self.identifier,
            host="auto",
            tier=tier,
            metadata=metadata,
        )


ProviderFactory = Callable[[], BaseLLMProvider]


class ProviderRegistry:
    """Explicit identifier to Provider mapping.

    Providers are created on first use and cached, so every caller of ``get`` shares
    one instance (and one rate limiter) per identifier.
    """

    def __init__(self) -> None:
        self._factories: Dict[str, ProviderFactory] = {}
        self._instances: Dict[str, BaseLLMProvider] = {}
        self._lock = threading.RLock()

    def register(self, identifier: str, factory: ProviderFactory) -> None:
        with self._lock:
            self._factories[identifier] = factory
            self._instances.pop(identifier, None)

    @property
    def identifiers(self) -> List[str]:
        return list(self._factories)

    def get(self, identifier: str) -> Optional[BaseLLMProvider]:
        """Return the Provider, or None when the identifier is unknown."""
        with self._lock:
            if identifier in self._instances:
                return self._instances[identifier]
            factory = self._factories.get(identifier)
            if factory is None:
                return None
            provider = factory()
            self._instances[identifier] = provider
            return provider

    def close(self) -> None:
        with self._lock:
            for provider in self._instances.values():
                provider.close()
            self._instances.clear()


def create_provider_registry(env: Environment, **provider_options: Any) -> ProviderRegistry:
    """Registry with the built-in Providers configured from the environment."""
    registry = ProviderRegistry()

    def openrouter_factory() -> BaseLLMProvider:
        return OpenRouterProvider(api_key=env.require_openrouter_api_key(), **provider_options)

    registry.register(OpenRouterProvider.identifier, openrouter_factory)
    return registry


def parse_model_option(value: str) -> Tuple[str, str]:
    """Split a ``<provider>:<model>`` command line value."""
    provider, _, model = value.partition(":")
    if not provider or not model:
        raise ValidationError(f"Invalid model option: {value}", field="model", value=value)
    return provider, model


__all__ = [
    "OPENROUTER_BASE_URL",
    "TRANSIENT_ERRORS",
    "BaseLLMProvider",
    "OpenRouterProvider",
    "ProviderRegistry",
    "create_provider_registry",
    "parse_model_option",
    "now_ms",
]
