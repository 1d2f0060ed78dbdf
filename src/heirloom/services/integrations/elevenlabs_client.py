"""
ElevenLabs HTTP Client Integration

Client for the remote voice-cloning and speech-synthesis service. Transient
failures are retried with exponential backoff; the rest surface as
NetworkError or RemoteServiceError.
"""

import logging
from dataclasses import replace
from typing import Any, Callable, Dict, List, Optional, Sequence

import requests

from heirloom.models.error import ErrorSeverity, RemoteServiceError
from heirloom.models.retry_config import VOICE_SERVICE_RETRY, RetryAttempt, RetryConfig
from heirloom.models.voice_model import VoiceSample
from heirloom.utils.retry_handler import RetryHandler


DEFAULT_BASE_URL = "https://api.elevenlabs.io/v1"
SPEECH_MODEL_ID = "eleven_multilingual_v2"
VOICE_SETTINGS = {
    "stability": 0.5,
    "similarity_boost": 0.8,
    "style": 0.5,
    "use_speaker_boost": True,
}


def _missing_key_error() -> RemoteServiceError:
    return RemoteServiceError(
        severity=ErrorSeverity.ERROR,
        code="API_KEY_MISSING",
        user_message="ElevenLabs API key not configured",
        suggested_action="Set ELEVENLABS_API_KEY to enable voice cloning"
    )


class ElevenLabsClient:
    """
    HTTP client for the ElevenLabs voice API.

    Attributes:
        base_url: API root including the version prefix
        timeout: Request timeout in seconds
        logger: Logger instance for this client
    """

    def __init__(
        self,
        api_key: Optional[str],
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = 60.0,
        retry_config: Optional[RetryConfig] = None,
        retry_callback: Optional[Callable[[RetryAttempt], None]] = None
    ):
        """
        Initialize the client.

        Args:
            api_key: Account key sent as ``xi-api-key``; None disables remote calls
            base_url: API root
            timeout: Request timeout in seconds (default: 60.0)
            retry_config: Retry configuration (default: VOICE_SERVICE_RETRY)
            retry_callback: Optional callback for retry attempts
        """
        self.api_key = api_key or None
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.logger = logging.getLogger(self.__class__.__name__)

        self.retry_config = replace(
            retry_config or VOICE_SERVICE_RETRY,
            request_timeout=timeout,
            on_retry_callback=retry_callback
        )
        self.retry_handler = RetryHandler(self.retry_config, self.logger)

        self.session = requests.Session()
        self.session.headers.update({"User-Agent": "LivingHeirloom/1.0 Voice Client"})
        if self.api_key:
            self.session.headers["xi-api-key"] = self.api_key

        self.logger.debug(f"ElevenLabs client initialized for {self.base_url} "
                          f"(configured={self.is_configured})")

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key)

    def _request(self, method: str, path: str, **kwargs) -> requests.Response:
        def _send():
            response = self.session.request(method, f"{self.base_url}{path}", timeout=self.timeout, **kwargs)
            response.raise_for_status()
            return response

        return self.retry_handler.execute(_send)

    def clone_voice(self, name: str, samples: Sequence[VoiceSample]) -> str:
        """
        Create a cloned voice from recorded samples.

        Args:
            name: Voice display name
            samples: Audio samples uploaded as ``files`` parts

        Returns:
            str: The new ``voice_id``

        Raises:
            RemoteServiceError: No API key, an error response or no voice id
            NetworkError: The service could not be reached
        """
        if not self.is_configured:
            raise _missing_key_error()

        files = [
            ("files", (f"sample_{index}.wav", sample.data, sample.mime_type))
            for index, sample in enumerate(samples)
        ]
        self.logger.info(f"Cloning voice '{name}' from {len(files)} sample(s)")
        response = self._request("POST", "/voices/add", data={"name": name}, files=files)

        try:
            voice_id = response.json().get("voice_id")
        except ValueError as e:
            raise RemoteServiceError(
                severity=ErrorSeverity.ERROR,
                code="VOICE_CLONE_FAILED",
                user_message="Voice cloning failed",
                technical_details=f"Unparseable response: {e}"
            ) from e

        if not voice_id:
            raise RemoteServiceError(
                severity=ErrorSeverity.ERROR,
                code="VOICE_CLONE_FAILED",
                user_message="Voice cloning failed",
                technical_details="Response did not contain a voice_id"
            )
        return voice_id

    def generate_speech(self, text: str, voice_id: str) -> bytes:
        """
        Synthesize speech with a cloned voice.

        Returns:
            bytes: MPEG audio, possibly empty if the service returned nothing
        """
        if not self.is_configured:
            raise _missing_key_error()

        payload: Dict[str, Any] = {
            "text": text,
            "model_id": SPEECH_MODEL_ID,
            "voice_settings": dict(VOICE_SETTINGS),
        }
        self.logger.info(f"Generating speech for text: {text[:50]}...")
        response = self._request(
            "POST",
            f"/text-to-speech/{voice_id}",
            json=payload,
            headers={"Accept": "audio/mpeg"}
        )
        return response.content or b""

    def list_voices(self) -> List[Dict[str, Any]]:
        """Voices on the account; empty when no key is configured."""
        if not self.is_configured:
            return []
        response = self._request("GET", "/voices")
        return list(response.json().get("voices") or [])

    def voice_exists(self, voice_id: str) -> bool:
        return any(voice.get("voice_id") == voice_id for voice in self.list_voices())

    def delete_voice(self, voice_id: str) -> None:
        if not self.is_configured:
            raise _missing_key_error()
        self._request("DELETE", f"/voices/{voice_id}")
        self.logger.info(f"Deleted remote voice {voice_id}")

    def close(self) -> None:
        """Close the HTTP session and clean up resources."""
        if self.session:
            self.session.close()
            self.logger.debug("ElevenLabs client session closed")

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
