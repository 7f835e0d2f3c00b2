"""
Conversational agent 'Dost' backed by Gemini chat sessions.

Each relay session owns one Gemini chat object. The chat carries the running
conversation on the provider side, so a turn only sends the new utterance.
"""

import time
from typing import Any, Dict, List, Optional
import google.generativeai as genai

from errors import ProviderError
from logger import get_logger
from models.session_model import Session

logger = get_logger(__name__)

GENERATION_CONFIG = {
    "temperature": 0.7,
    "top_p": 0.8,
    "max_output_tokens": 1024,
}


class AgentError(ProviderError):
    """Custom exception for agent errors."""
    pass


class ConversationAgent:
    """
    Generation provider for voice turns.

    Uses Gemini with the session's seeded persona as system instruction.
    """

    name = "gemini"

    def __init__(self, api_key: str, model: str = "gemini-2.5-flash"):
        """
        Initialize the conversation agent.

        Args:
            api_key: Gemini API key
            model: Gemini model name
        """
        self.model = model
        self._model_instances: Dict[str, Any] = {}

        if not api_key:
            logger.error("GEMINI_API_KEY not configured")
            raise AgentError("GEMINI_API_KEY environment variable is required")

        try:
            genai.configure(api_key=api_key)
            logger.info("Agent initialized", model=self.model)
        except Exception as e:
            logger.error(f"Failed to configure Gemini: {str(e)}")
            raise AgentError(f"Failed to configure Gemini API: {str(e)}")

    def model_instance(self, system_instruction: str):
        """Lazy-load one model instance per distinct system instruction."""
        if system_instruction not in self._model_instances:
            try:
                self._model_instances[system_instruction] = genai.GenerativeModel(
                    model_name=self.model,
                    generation_config=GENERATION_CONFIG,
                    system_instruction=system_instruction,
                )
                logger.info(f"Gemini model loaded: {self.model}")
            except Exception as e:
                logger.error(f"Failed to load model: {str(e)}")
                raise AgentError(f"Failed to load Gemini model: {str(e)}")
        return self._model_instances[system_instruction]

    def chat_for(self, session: Session):
        """Return the session's chat, starting it from the recorded history on first use."""
        if session.context is None:
            model = self.model_instance(session.system_instruction)
            session.context = model.start_chat(history=to_gemini_history(session))
            logger.debug("Started Gemini chat", session_id=session.id, turns=len(session.dialogue))
        return session.context

    async def reply(self, session: Session, utterance: str) -> str:
        """
        Send one user utterance on the session's chat.

        Args:
            session: Session whose conversation continues
            utterance: Transcribed user speech

        Returns:
            The model's reply text, possibly empty
        """
        chat = self.chat_for(session)

        start_time = time.time()
        response = await chat.send_message_async(utterance)
        duration = (time.time() - start_time) * 1000

        response_text = _response_text(response)
        usage = getattr(response, "usage_metadata", None)
        logger.provider_call(
            self.name,
            "generate",
            bool(response_text),
            duration,
            model=self.model,
            session_id=session.id,
            prompt_tokens=getattr(usage, "prompt_token_count", None),
            response_tokens=getattr(usage, "candidates_token_count", None),
        )
        return response_text


def to_gemini_history(session: Session) -> List[Dict[str, Any]]:
    """Convert recorded dialogue into Gemini ``contents`` entries."""
    return [
        {"role": turn.role, "parts": [turn.text]}
        for turn in session.dialogue
    ]


def _response_text(response: Optional[Any]) -> str:
    """Safely extract text; blocked or candidate-less responses raise on ``.text``."""
    if not response:
        return ""
    try:
        return response.text or ""
    except ValueError as e:
        logger.warning("Gemini response has no text", reason=str(e))
        return ""
