"""Speech capability providers for the voice relay."""

from .streams import (
    AudioStream, PushStreamAdapter, PullStreamAdapter,
    IterableStreamAdapter, BufferAdapter, close_payload, to_audio_stream
)
from .transcription import (
    DeepgramTranscriber, TranscriptionError, TranscriptionUnavailableError, extract_transcript
)
from .synthesis import ElevenLabsSynthesizer, SynthesisError, VOICE_CONFIGS, DEFAULT_VOICE, get_voice_id

__all__ = [
    "AudioStream", "PushStreamAdapter", "PullStreamAdapter",
    "IterableStreamAdapter", "BufferAdapter", "close_payload", "to_audio_stream",
    "DeepgramTranscriber", "TranscriptionError", "TranscriptionUnavailableError", "extract_transcript",
    "ElevenLabsSynthesizer", "SynthesisError", "VOICE_CONFIGS", "DEFAULT_VOICE", "get_voice_id",
]
