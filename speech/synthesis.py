"""
Text-to-speech via ElevenLabs' streaming endpoint.
"""

import time
from typing import Dict, Optional

import httpx

from errors import ProviderError
from logger import get_logger
from speech.streams import AudioStream, PushStreamAdapter

logger = get_logger(__name__)

ELEVENLABS_API_URL = "https://api.elevenlabs.io/v1"

VOICE_CONFIGS: Dict[str, str] = {
    "hindi_male": "pNInz6obpgDQGcFmaJgB",    # Adam
    "hindi_female": "EXAVITQu4vr4xnSDxMaL",  # Bella
    "multilingual": "pNInz6obpgDQGcFmaJgB",  # Adam, good for Hindi
}
DEFAULT_VOICE = "multilingual"

# Wording picked so failure classification recognizes the condition
_STATUS_HINTS = {
    401: "unauthorized",
    403: "unauthorized",
    408: "timeout",
    429: "rate limit or quota exceeded",
    504: "gateway timeout",
}


class SynthesisError(ProviderError):
    """ElevenLabs rejected or failed the synthesis request."""
    pass


def get_voice_id(preference: Optional[str]) -> str:
    """Map a client voice preference to a concrete voice id, falling back to the default."""
    if preference and preference in VOICE_CONFIGS:
        return VOICE_CONFIGS[preference]
    if preference:
        logger.warning("Unknown voice preference, using default voice", preference=preference)
    return VOICE_CONFIGS[DEFAULT_VOICE]


class ElevenLabsSynthesizer:
    """Synthesis provider backed by ElevenLabs' REST streaming API."""

    name = "elevenlabs"
    media_type = "audio/mpeg"

    def __init__(
        self,
        api_key: str,
        http_client: httpx.AsyncClient,
        model_id: str = "eleven_multilingual_v2",
        base_url: str = ELEVENLABS_API_URL,
    ):
        if not api_key:
            raise SynthesisError("ELEVENLABS_API_KEY is required")
        self._api_key = api_key
        self._http = http_client
        self.model_id = model_id
        self.base_url = base_url.rstrip("/")

    async def synthesize(self, text: str, voice_id: str) -> AudioStream:
        """
        Open a streaming synthesis request for ``text``.

        The response status is checked before returning, so provider errors
        surface here rather than halfway through delivery. The returned stream
        closes the underlying HTTP response once fully consumed.

        Raises:
            SynthesisError: ElevenLabs answered with an error status or was unreachable
        """
        start_time = time.time()
        request = self._http.build_request(
            "POST",
            f"{self.base_url}/text-to-speech/{voice_id}/stream",
            headers={
                "xi-api-key": self._api_key,
                "Accept": self.media_type,
            },
            json={"text": text, "model_id": self.model_id},
        )

        try:
            response = await self._http.send(request, stream=True)
        except httpx.TimeoutException as e:
            self._log_call(start_time, False, voice_id=voice_id, error=type(e).__name__)
            raise SynthesisError(f"ElevenLabs request timeout: {e}") from e
        except httpx.RequestError as e:
            self._log_call(start_time, False, voice_id=voice_id, error=type(e).__name__)
            raise SynthesisError(f"ElevenLabs network error: {e}") from e

        if response.status_code >= 400:
            body = await response.aread()
            await response.aclose()
            detail = body.decode("utf-8", errors="replace").strip()
            if len(detail) > 500:
                detail = detail[:500] + "..."
            hint = _STATUS_HINTS.get(response.status_code, "request failed")
            self._log_call(start_time, False, voice_id=voice_id, status=response.status_code)
            raise SynthesisError(f"ElevenLabs {hint} ({response.status_code}): {detail}")

        self._log_call(start_time, True, voice_id=voice_id, text_length=len(text))
        return PushStreamAdapter(response.aiter_bytes(), on_close=response.aclose)

    def _log_call(self, start_time: float, success: bool, **kwargs) -> None:
        logger.provider_call(
            self.name,
            "synthesize",
            success,
            (time.time() - start_time) * 1000,
            **kwargs
        )
