"""
Voice turn pipeline.

One turn runs strictly in order:
admission -> transcription -> session resolution -> generation -> synthesis.
The first unrecoverable failure ends the turn with a TurnError; nothing is
retried here, retry is the caller's decision.
"""

import time
from typing import Optional

from connection import Providers
from errors import ErrorCode, ProviderError, TurnError, classify_failure
from logger import get_logger
from models.session_model import Session
from models.turn_models import TurnRequest, TurnResult
from session_store import SessionStore
from speech.streams import close_payload, to_audio_stream
from speech.synthesis import get_voice_id
from speech.transcription import TranscriptionError

logger = get_logger(__name__)

MAX_AUDIO_BYTES = 25 * 1024 * 1024  # 25MB

ALLOWED_AUDIO_TYPES = frozenset({
    "audio/wav", "audio/mp3", "audio/mpeg", "audio/mp4",
    "audio/ogg", "audio/webm", "audio/flac", "audio/x-wav",
})


def is_audio_type(mime_type: Optional[str]) -> bool:
    """Accept the known audio types and any other ``audio/*``; parameters are ignored."""
    if not mime_type:
        return False
    base = mime_type.split(";", 1)[0].strip().lower()
    return base in ALLOWED_AUDIO_TYPES or base.startswith("audio/")


class TurnPipeline:
    """Runs voice turns against the session store and the capability providers."""

    def __init__(
        self,
        store: SessionStore,
        providers: Optional[Providers] = None,
        max_audio_bytes: int = MAX_AUDIO_BYTES,
    ):
        self.store = store
        self.providers = providers
        self.max_audio_bytes = max_audio_bytes

    def admit(self, request: TurnRequest) -> Providers:
        """
        Validate the turn before any provider is contacted.

        Returns:
            The ready provider set

        Raises:
            TurnError: NO_AUDIO_FILE, UNEXPECTED_FILE, FILE_TOO_LARGE,
                INVALID_FILE_TYPE, SERVICE_STARTING or SERVICE_UNAVAILABLE
        """
        session_id = request.session_id

        if request.file_count > 1:
            raise TurnError(ErrorCode.UNEXPECTED_FILE, 400, "Unexpected file field.", session_id)

        if request.file_count < 1 or not request.audio:
            raise TurnError(ErrorCode.NO_AUDIO_FILE, 400, "No audio file provided", session_id)

        if len(request.audio) > self.max_audio_bytes:
            limit_mb = self.max_audio_bytes // (1024 * 1024)
            raise TurnError(
                ErrorCode.FILE_TOO_LARGE, 400, f"File too large. Maximum size is {limit_mb}MB.", session_id
            )

        if not is_audio_type(request.mime_type):
            raise TurnError(ErrorCode.INVALID_FILE_TYPE, 400, "Only audio files are allowed.", session_id)

        providers = self.providers
        if providers is None:
            raise TurnError(
                ErrorCode.SERVICE_STARTING, 503,
                "Service starting up. Please try again in a moment.", session_id
            )
        if not providers.is_ready():
            raise TurnError(
                ErrorCode.SERVICE_UNAVAILABLE, 503,
                "Service temporarily unavailable. API clients not initialized.", session_id
            )
        return providers

    async def run(self, request: TurnRequest) -> TurnResult:
        """
        Execute one full voice turn.

        Raises:
            TurnError: For every failure, carrying the session id to retry on
        """
        start_time = time.time()
        providers = self.admit(request)

        logger.info(
            "Processing audio file",
            size_bytes=len(request.audio),
            mime_type=request.mime_type,
            session_id=request.session_id,
        )

        session_id = request.session_id
        try:
            transcript = await self._transcribe(providers, request)

            session = self.store.resolve(session_id)
            session_id = session.id
            session.message_count += 1

            reply = await self._generate(providers, session, transcript)

            provider_name, synthesizer = providers.synthesizer(request.tts_provider)
            voice_id = get_voice_id(request.voice_preference)
            logger.info(
                "Converting text to speech",
                provider=provider_name,
                voice_id=voice_id,
                preference=request.voice_preference,
            )
            payload = await synthesizer.synthesize(reply, voice_id)
            try:
                audio = to_audio_stream(payload)
            except TypeError:
                await close_payload(payload)
                raise

            self.store.touch(session)
        except Exception as e:
            error = classify_failure(e, session_id)
            self._log_failure(error)
            if error is e:
                raise
            raise error from e

        processing_ms = int((time.time() - start_time) * 1000)
        logger.info(
            "Turn completed",
            session_id=session.id,
            message_count=session.message_count,
            processing_ms=processing_ms,
        )
        return TurnResult(
            session_id=session.id,
            transcript=transcript,
            reply=reply,
            provider=provider_name,
            voice_id=voice_id,
            audio=audio,
            processing_ms=processing_ms,
            media_type=getattr(synthesizer, "media_type", "audio/mpeg"),
            message_count=session.message_count,
        )

    async def _transcribe(self, providers: Providers, request: TurnRequest) -> str:
        try:
            transcript = await providers.transcriber.transcribe(request.audio, request.mime_type)
        except TranscriptionError as e:
            raise TurnError(
                ErrorCode.STT_ERROR, 500, "Speech recognition failed", request.session_id, cause=e
            ) from e

        if not transcript or not transcript.strip():
            logger.warning("Transcription was empty", session_id=request.session_id)
            raise TurnError(
                ErrorCode.EMPTY_TRANSCRIPTION, 400,
                "Could not understand audio. Please try again.", request.session_id
            )

        transcript = transcript.strip()
        logger.info("Transcribed text", transcript=transcript)
        return transcript

    async def _generate(self, providers: Providers, session: Session, transcript: str) -> str:
        async with session.turn_lock:
            reply = await providers.agent.reply(session, transcript)
            if not reply or not reply.strip():
                raise ProviderError("Empty response from generation provider")
            reply = reply.strip()
            session.add_exchange(transcript, reply)

        logger.info("Generated reply", session_id=session.id, reply=reply)
        return reply

    def _log_failure(self, error: TurnError) -> None:
        cause = error.cause
        fields = {
            "code": error.code.value,
            "status": error.status_code,
            "session_id": error.session_id,
        }
        if cause is not None:
            fields["cause"] = f"{type(cause).__name__}: {cause}"

        if error.status_code >= 500:
            logger.error("Error processing turn", **fields)
        else:
            logger.warning("Turn rejected", **fields)
