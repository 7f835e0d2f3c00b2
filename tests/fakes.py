"""
In-process stand-ins for the capability providers.

Each fake counts its calls so tests can assert which pipeline stages ran.
"""

import os
import sys
from datetime import datetime, timedelta, timezone

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from connection import Providers

GREETING = "नमस्ते"
REPLY = "नमस्ते! कैसे हैं आप?"


class FakeClock:
    """Injectable store clock that only moves when told to."""

    def __init__(self):
        self.now = datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += timedelta(seconds=seconds)


class FakeTranscriber:
    name = "deepgram"

    def __init__(self, transcript=GREETING, error=None):
        self.transcript = transcript
        self.error = error
        self.calls = 0

    async def transcribe(self, audio, mime_type):
        self.calls += 1
        if self.error is not None:
            raise self.error
        return self.transcript


class FakeAgent:
    name = "gemini"

    def __init__(self, reply=REPLY, error=None):
        self.reply_text = reply
        self.error = error
        self.calls = 0
        self.seen = []

    async def reply(self, session, utterance):
        self.calls += 1
        self.seen.append((session.id, utterance))
        if self.error is not None:
            raise self.error
        return self.reply_text


class FakeSynthesizer:
    name = "elevenlabs"
    media_type = "audio/mpeg"

    def __init__(self, payload=None, error=None):
        self.payload = payload if payload is not None else [b"ID3", b"", b"audio"]
        self.error = error
        self.calls = 0
        self.voice_ids = []

    async def synthesize(self, text, voice_id):
        self.calls += 1
        self.voice_ids.append(voice_id)
        if self.error is not None:
            raise self.error
        return self.payload


def make_providers(transcriber=None, agent=None, synthesizer=None):
    """Fully initialized provider set backed by fakes."""
    return Providers(
        transcriber=transcriber or FakeTranscriber(),
        agent=agent or FakeAgent(),
        synthesizers={"elevenlabs": synthesizer or FakeSynthesizer()},
    )
