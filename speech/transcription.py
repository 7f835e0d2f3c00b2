"""
Speech-to-text via Deepgram's prerecorded transcription API.

Returns the best transcript for the first channel. An empty string means
Deepgram heard no speech; provider failures raise TranscriptionError.
"""

import time
from typing import Any, Dict, Optional

import httpx

from errors import ProviderError
from logger import get_logger

logger = get_logger(__name__)

DEEPGRAM_LISTEN_URL = "https://api.deepgram.com/v1/listen"


class TranscriptionError(ProviderError):
    """Deepgram reported an error for this request."""
    pass


class TranscriptionUnavailableError(ProviderError):
    """Deepgram could not be reached (network error or timeout)."""
    pass


class DeepgramTranscriber:
    """Transcription provider backed by Deepgram's REST API."""

    name = "deepgram"

    def __init__(
        self,
        api_key: str,
        http_client: httpx.AsyncClient,
        model: str = "nova-2",
        language: str = "hi",
        url: str = DEEPGRAM_LISTEN_URL,
    ):
        if not api_key:
            raise TranscriptionError("DEEPGRAM_API_KEY is required")
        self._api_key = api_key
        self._http = http_client
        self.model = model
        self.language = language
        self.url = url

    @property
    def options(self) -> Dict[str, str]:
        """Query options; formatting on, diarization off."""
        return {
            "model": self.model,
            "language": self.language,
            "punctuate": "true",
            "smart_format": "true",
            "utterances": "true",
            "diarize": "false",
        }

    async def transcribe(self, audio: bytes, mime_type: str) -> str:
        """
        Transcribe a recorded clip.

        Args:
            audio: Raw audio bytes as uploaded by the client
            mime_type: Declared media type of the clip

        Returns:
            The transcript, stripped; "" when no speech was detected

        Raises:
            TranscriptionError: Deepgram answered with an error or unreadable body
            TranscriptionUnavailableError: Deepgram could not be reached
        """
        start_time = time.time()
        headers = {
            "Authorization": f"Token {self._api_key}",
            "Content-Type": mime_type or "application/octet-stream",
        }

        try:
            response = await self._http.post(self.url, params=self.options, headers=headers, content=audio)
        except httpx.TimeoutException as e:
            self._log_call(start_time, False, error=type(e).__name__)
            raise TranscriptionUnavailableError(f"Deepgram request timeout: {e}") from e
        except httpx.RequestError as e:
            self._log_call(start_time, False, error=type(e).__name__)
            raise TranscriptionUnavailableError(f"Deepgram network error: {e}") from e

        if response.status_code >= 400:
            detail = (response.text or "").strip()
            if len(detail) > 500:
                detail = detail[:500] + "..."
            self._log_call(start_time, False, status=response.status_code)
            raise TranscriptionError(f"Deepgram error {response.status_code}: {detail}")

        try:
            transcript = extract_transcript(response.json())
        except ValueError as e:
            self._log_call(start_time, False, status=response.status_code)
            raise TranscriptionError(f"Unreadable Deepgram response: {e}") from e

        self._log_call(start_time, True, audio_bytes=len(audio), transcript_length=len(transcript))
        return transcript

    def _log_call(self, start_time: float, success: bool, **kwargs) -> None:
        logger.provider_call(
            self.name,
            "transcribe",
            success,
            (time.time() - start_time) * 1000,
            **kwargs
        )


def extract_transcript(payload: Optional[Dict[str, Any]]) -> str:
    """Pull ``results.channels[0].alternatives[0].transcript`` out of a response."""
    if not isinstance(payload, dict):
        raise ValueError("response body is not a JSON object")

    channels = (payload.get("results") or {}).get("channels") or []
    if not channels:
        return ""
    alternatives = channels[0].get("alternatives") or []
    if not alternatives:
        return ""
    return (alternatives[0].get("transcript") or "").strip()
