"""
Data model for Session entity.
"""

import asyncio
from datetime import datetime, timezone
from typing import Any, List, Literal, Optional
from pydantic import BaseModel, ConfigDict, Field, PrivateAttr


SYSTEM_INSTRUCTION = (
    "You are a helpful and friendly AI assistant named 'Dost' (which means friend in Hindi). "
    "You must reply ONLY in conversational Hindi using Devanagari script. "
    "Keep your responses natural, warm, and conversational. "
    "If asked about technical topics, explain them simply in Hindi. "
    "Always be polite and helpful."
)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class DialogueTurn(BaseModel):
    """One entry of a session's dialogue history."""
    role: Literal["system", "user", "model"]
    text: str
    timestamp: datetime = Field(default_factory=utcnow)


class SessionInfo(BaseModel):
    """Read-only diagnostic projection of a session."""
    session_id: str
    created_at: datetime
    message_count: int
    last_activity: datetime


class Session(BaseModel):
    """Represents a caller's conversation context."""
    model_config = ConfigDict(arbitrary_types_allowed=True)

    id: str
    history: List[DialogueTurn] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=utcnow)
    last_activity: datetime = Field(default_factory=utcnow)
    message_count: int = 0

    # Provider-side chat object; carries the running context between turns
    context: Optional[Any] = Field(default=None, exclude=True)

    _turn_lock: asyncio.Lock = PrivateAttr(default_factory=asyncio.Lock)

    @classmethod
    def seeded(cls, session_id: str, now: datetime) -> "Session":
        """Create a session whose history starts with the persona instruction."""
        return cls(
            id=session_id,
            history=[DialogueTurn(role="system", text=SYSTEM_INSTRUCTION, timestamp=now)],
            created_at=now,
            last_activity=now,
        )

    @property
    def turn_lock(self) -> asyncio.Lock:
        """Serializes generation calls on this session."""
        return self._turn_lock

    @property
    def system_instruction(self) -> str:
        for turn in self.history:
            if turn.role == "system":
                return turn.text
        return SYSTEM_INSTRUCTION

    @property
    def dialogue(self) -> List[DialogueTurn]:
        """History without the seeded system instruction."""
        return [turn for turn in self.history if turn.role != "system"]

    def add_exchange(self, user_text: str, reply_text: str, now: Optional[datetime] = None) -> None:
        """Record a completed user/model exchange."""
        now = now or utcnow()
        self.history.append(DialogueTurn(role="user", text=user_text, timestamp=now))
        self.history.append(DialogueTurn(role="model", text=reply_text, timestamp=now))

    def touch(self, now: datetime) -> None:
        """Refresh activity; never moves the timestamp backwards."""
        if now > self.last_activity:
            self.last_activity = now

    def is_expired(self, now: datetime, timeout_seconds: float) -> bool:
        """Check if session has been idle longer than the timeout."""
        return (now - self.last_activity).total_seconds() > timeout_seconds

    def info(self) -> SessionInfo:
        return SessionInfo(
            session_id=self.id,
            created_at=self.created_at,
            message_count=self.message_count,
            last_activity=self.last_activity,
        )
