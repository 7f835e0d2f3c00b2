"""
Connection management for the capability providers.

Builds the Deepgram, Gemini and ElevenLabs clients from configuration. A
provider that fails to initialize is left out and reported, never fatal:
the relay keeps serving health and session lookups in degraded mode.
"""

from typing import Any, Dict, Optional, Tuple

import httpx

from agent import ConversationAgent
from config import AppConfig
from logger import get_logger
from speech.synthesis import ElevenLabsSynthesizer
from speech.transcription import DeepgramTranscriber

logger = get_logger(__name__)

DEFAULT_TTS_PROVIDER = "elevenlabs"


class Providers:
    """Holds the initialized provider clients for the pipeline."""

    def __init__(
        self,
        transcriber: Optional[Any] = None,
        agent: Optional[Any] = None,
        synthesizers: Optional[Dict[str, Any]] = None,
        default_synthesizer: str = DEFAULT_TTS_PROVIDER,
        http_client: Optional[httpx.AsyncClient] = None,
        errors: Optional[Dict[str, str]] = None,
    ):
        self.transcriber = transcriber
        self.agent = agent
        self.synthesizers: Dict[str, Any] = dict(synthesizers or {})
        self.default_synthesizer = default_synthesizer
        self.errors: Dict[str, str] = dict(errors or {})
        self._http_client = http_client

    @classmethod
    def from_config(cls, config: AppConfig) -> "Providers":
        """Initialize every provider the configuration allows."""
        http_client = httpx.AsyncClient(timeout=httpx.Timeout(config.provider_timeout_seconds))
        errors: Dict[str, str] = {}
        transcriber = agent = None
        synthesizers: Dict[str, Any] = {}

        try:
            transcriber = DeepgramTranscriber(
                api_key=config.deepgram_api_key,
                http_client=http_client,
                model=config.deepgram_model,
                language=config.transcription_language,
            )
            logger.info("[DEEPGRAM] Client ready", model=config.deepgram_model)
        except Exception as e:
            errors["deepgram"] = str(e)
            logger.error(f"[DEEPGRAM] Initialization failed: {e}")

        try:
            agent = ConversationAgent(api_key=config.gemini_api_key, model=config.gemini_model_name)
        except Exception as e:
            errors["gemini"] = str(e)
            logger.error(f"[GEMINI] Initialization failed: {e}")

        try:
            synthesizers[DEFAULT_TTS_PROVIDER] = ElevenLabsSynthesizer(
                api_key=config.elevenlabs_api_key,
                http_client=http_client,
                model_id=config.elevenlabs_model_id,
            )
            logger.info("[ELEVENLABS] Client ready", model=config.elevenlabs_model_id)
        except Exception as e:
            errors["elevenlabs"] = str(e)
            logger.error(f"[ELEVENLABS] Initialization failed: {e}")

        providers = cls(
            transcriber=transcriber,
            agent=agent,
            synthesizers=synthesizers,
            http_client=http_client,
            errors=errors,
        )
        if providers.is_ready():
            logger.info("All API clients initialized successfully")
        else:
            logger.warning("Starting in DEGRADED MODE - voice turns will be refused", missing=sorted(errors))
        return providers

    def status(self) -> Dict[str, bool]:
        """Per-provider initialization flags, as reported by /health."""
        return {
            "gemini": self.agent is not None,
            "elevenlabs": self.default_synthesizer in self.synthesizers,
            "deepgram": self.transcriber is not None,
        }

    def is_ready(self) -> bool:
        return all(self.status().values())

    def synthesizer(self, name: Optional[str]) -> Tuple[str, Any]:
        """Pick a synthesis provider by name, falling back to the default one."""
        key = (name or "").strip().lower()
        if key in self.synthesizers:
            return key, self.synthesizers[key]
        if key:
            logger.warning("Unknown TTS provider, using default", requested=name, provider=self.default_synthesizer)
        return self.default_synthesizer, self.synthesizers[self.default_synthesizer]

    async def aclose(self) -> None:
        if self._http_client is not None:
            await self._http_client.aclose()
            self._http_client = None
