"""
Inference Runtime Integration

Interfaces for the language-inference runtime consumed by the
ModelLifecycleManager, plus an HTTP runtime for servers that expose an
OpenAI-compatible ``/models`` and ``/chat/completions`` API (llama.cpp,
Ollama, LM Studio and similar).
"""

import asyncio
import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, asdict
from functools import partial
from typing import Callable, List, Optional, Protocol

import requests

from heirloom.models.error import RemoteServiceError, ErrorSeverity
from heirloom.models.retry_config import LOCAL_SERVER_RETRY, RetryConfig
from heirloom.utils.retry_handler import RetryHandler


ProgressCallback = Callable[[float, str], None]


@dataclass
class ChatMessage:
    """Role-tagged message passed to a completion call."""
    role: str
    content: str

    @classmethod
    def system(cls, content: str) -> 'ChatMessage':
        return cls(role="system", content=content)

    @classmethod
    def user(cls, content: str) -> 'ChatMessage':
        return cls(role="user", content=content)


class InferenceEngine(Protocol):
    """Loaded model handle."""

    async def complete(self, messages: List[ChatMessage], temperature: float, max_tokens: int) -> str:
        ...

    async def unload(self) -> None:
        ...


class InferenceRuntime(Protocol):
    """Progressive model loader reporting ``(fraction, text)`` while it works."""

    async def load(self, model_id: str, progress_callback: ProgressCallback) -> InferenceEngine:
        ...


class HttpInferenceEngine:
    """
    Completion handle bound to one model on an OpenAI-compatible server.

    Blocking HTTP calls run on a single-worker thread pool so the event loop
    stays responsive.
    """

    def __init__(self, session: requests.Session, base_url: str, model_id: str,
                 timeout: float, retry_handler: RetryHandler, executor: ThreadPoolExecutor):
        self.session = session
        self.base_url = base_url
        self.model_id = model_id
        self.timeout = timeout
        self.retry_handler = retry_handler
        self._executor = executor
        self.logger = logging.getLogger(self.__class__.__name__)

    def _complete_sync(self, messages: List[ChatMessage], temperature: float, max_tokens: int) -> str:
        payload = {
            "model": self.model_id,
            "messages": [asdict(m) for m in messages],
            "temperature": temperature,
            "max_tokens": max_tokens,
        }

        def _post():
            response = self.session.post(f"{self.base_url}/chat/completions", json=payload, timeout=self.timeout)
            response.raise_for_status()
            return response.json()

        body = self.retry_handler.execute(_post)
        try:
            content = body["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError) as e:
            raise RemoteServiceError(
                severity=ErrorSeverity.ERROR,
                code="INFERENCE_BAD_RESPONSE",
                user_message="AI returned an unexpected response",
                technical_details=str(e)
            ) from e
        return content or ""

    async def complete(self, messages: List[ChatMessage], temperature: float, max_tokens: int) -> str:
        """
        Run one chat completion.

        Args:
            messages: Role-tagged conversation
            temperature: Sampling temperature
            max_tokens: Completion token budget

        Returns:
            str: Generated text (may be empty)
        """
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(
            self._executor,
            partial(self._complete_sync, messages, temperature, max_tokens)
        )

    async def unload(self) -> None:
        self.logger.debug(f"Releasing handle for model {self.model_id}")


class HttpInferenceRuntime:
    """
    Inference runtime backed by an OpenAI-compatible HTTP server.

    Loading checks that the server lists the requested model; the server owns
    the actual weights.
    """

    def __init__(self, base_url: str = "http://127.0.0.1:8080/v1", timeout: float = 60.0,
                 api_key: Optional[str] = None, retry_config: Optional[RetryConfig] = None):
        """
        Initialize the runtime.

        Args:
            base_url: API root, including the version prefix
            timeout: Per-request timeout in seconds
            api_key: Optional bearer token
            retry_config: Retry configuration (default: LOCAL_SERVER_RETRY)
        """
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.logger = logging.getLogger(self.__class__.__name__)

        self.retry_config = retry_config or LOCAL_SERVER_RETRY
        self.retry_handler = RetryHandler(self.retry_config, self.logger)
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="Inference")

        self.session = requests.Session()
        self.session.headers.update({"User-Agent": "LivingHeirloom/1.0 Inference Client"})
        if api_key:
            self.session.headers["Authorization"] = f"Bearer {api_key}"

    def _list_models_sync(self) -> List[str]:
        def _get():
            response = self.session.get(f"{self.base_url}/models", timeout=self.timeout)
            response.raise_for_status()
            return response.json()

        body = self.retry_handler.execute(_get)
        return [entry.get("id", "") for entry in body.get("data", []) if isinstance(entry, dict)]

    async def load(self, model_id: str, progress_callback: ProgressCallback) -> HttpInferenceEngine:
        """
        Resolve ``model_id`` on the server.

        Args:
            model_id: Model identifier
            progress_callback: Receives ``(fraction, text)`` updates

        Returns:
            HttpInferenceEngine: Handle for completion calls

        Raises:
            RemoteServiceError: If the server does not serve the model
        """
        progress_callback(0.1, f"Contacting inference server for {model_id}")
        loop = asyncio.get_running_loop()
        available = await loop.run_in_executor(self._executor, self._list_models_sync)
        progress_callback(0.8, "Model catalogue received")

        if available and model_id not in available:
            raise RemoteServiceError(
                severity=ErrorSeverity.ERROR,
                code="MODEL_NOT_AVAILABLE",
                user_message="AI unavailable",
                technical_details=f"Model '{model_id}' not served; available: {available[:5]}"
            )

        progress_callback(1.0, "Model ready")
        return HttpInferenceEngine(
            session=self.session,
            base_url=self.base_url,
            model_id=model_id,
            timeout=self.timeout,
            retry_handler=self.retry_handler,
            executor=self._executor
        )

    def close(self) -> None:
        """Close the HTTP session and release the worker thread."""
        self.session.close()
        self._executor.shutdown(wait=False, cancel_futures=True)
