"""
Environment configuration for the Hindi voice relay.

Values come from the process environment, with ``.env`` loaded through
python-dotenv. Missing provider credentials are reported but never fatal on
their own: the relay starts in degraded mode and refuses voice turns.
"""

import os
from dataclasses import dataclass, field
from typing import List, Optional

from dotenv import load_dotenv

load_dotenv()


DEFAULT_CORS_ORIGINS = [
    "https://hindi-convo-bot-frontend.onrender.com",
    "http://localhost:5173",
    "http://localhost:3000",
]

# (variable, what it is needed for)
CREDENTIALS = [
    ("DEEPGRAM_API_KEY", "speech-to-text"),
    ("GEMINI_API_KEY", "reply generation; GOOGLE_GEMINI_API_KEY is also accepted"),
    ("ELEVENLABS_API_KEY", "text-to-speech"),
]

# (variable, lowest sensible, highest sensible, out of range is an error)
NUMERIC_BOUNDS = [
    ("PORT", 1, 65535, True),
    ("SESSION_TIMEOUT_MINUTES", 1, 1440, False),
    ("SESSION_SWEEP_INTERVAL_SECONDS", 5, 3600, False),
    ("MAX_AUDIO_MB", 1, 100, False),
    ("RATE_LIMIT_REQUESTS", 1, 10000, False),
    ("RATE_LIMIT_WINDOW", 60, 86400, False),
]


def env_str(name: str, default: str = "") -> str:
    return (os.getenv(name) or default).strip()


def env_int(name: str, default: int) -> int:
    try:
        return int(os.getenv(name, ""))
    except ValueError:
        return default


def env_bounded(name: str, default: int) -> int:
    """Integer from the environment; outside NUMERIC_BOUNDS the default is used."""
    value = env_int(name, default)
    for key, low, high, _ in NUMERIC_BOUNDS:
        if key == name and not low <= value <= high:
            return default
    return value


def env_float(name: str, default: float) -> float:
    try:
        return float(os.getenv(name, ""))
    except ValueError:
        return default


def gemini_api_key() -> str:
    return env_str("GEMINI_API_KEY") or env_str("GOOGLE_GEMINI_API_KEY")


@dataclass
class ConfigValidationError:
    """One problem found in the environment."""
    key: str
    message: str
    is_critical: bool = True


@dataclass
class AppConfig:
    """Resolved settings for one process."""

    # Capability provider credentials
    deepgram_api_key: str = ""
    gemini_api_key: str = ""
    elevenlabs_api_key: str = ""

    # Provider settings
    gemini_model_name: str = "gemini-2.5-flash"
    deepgram_model: str = "nova-2"
    transcription_language: str = "hi"
    elevenlabs_model_id: str = "eleven_multilingual_v2"
    provider_timeout_seconds: float = 60.0

    # Server
    host: str = "0.0.0.0"
    port: int = 3001
    environment: str = "development"
    log_level: str = "INFO"

    # Sessions
    session_timeout_minutes: int = 30
    session_sweep_interval_seconds: int = 300

    # Admission
    max_audio_mb: int = 25

    # CORS
    frontend_url: str = ""
    cors_origins: List[str] = field(default_factory=lambda: list(DEFAULT_CORS_ORIGINS))

    # Rate limiting on voice turns
    rate_limit_requests: int = 100
    rate_limit_window: int = 900

    @property
    def is_development(self) -> bool:
        return self.environment.lower() == "development"

    @property
    def max_audio_bytes(self) -> int:
        return self.max_audio_mb * 1024 * 1024

    @property
    def session_timeout_seconds(self) -> int:
        return self.session_timeout_minutes * 60

    @property
    def allowed_origins(self) -> List[str]:
        """CORS allow-list with the deployed frontend URL folded in."""
        origins = list(self.cors_origins)
        if self.frontend_url and self.frontend_url not in origins:
            origins.append(self.frontend_url)
        return origins


class ConfigValidator:
    """Checks the environment and builds an AppConfig from it."""

    def __init__(self):
        self.errors: List[ConfigValidationError] = []
        self.warnings: List[str] = []
        self.config: Optional[AppConfig] = None

    @staticmethod
    def credential(name: str) -> str:
        if name == "GEMINI_API_KEY":
            return gemini_api_key()
        return env_str(name)

    def validate(self) -> bool:
        """
        Inspect the environment.

        Returns:
            bool: False when a provider credential is missing
        """
        self.errors = []
        self.warnings = []

        for name, purpose in CREDENTIALS:
            if not self.credential(name):
                self.errors.append(ConfigValidationError(
                    key=name,
                    message=f"{name} is not set; it is required for {purpose}",
                ))

        if not env_str("FRONTEND_URL"):
            self.warnings.append("FRONTEND_URL is not set; only the default CORS origins are allowed")

        for name, low, high, strict in NUMERIC_BOUNDS:
            self._check_number(name, low, high, strict)

        return not any(error.is_critical for error in self.errors)

    def _check_number(self, name: str, low: int, high: int, strict: bool) -> None:
        raw = os.getenv(name)
        if not raw:
            return
        try:
            value = int(raw)
        except ValueError:
            self.errors.append(ConfigValidationError(
                key=name, message=f"{name}={raw!r} is not a number", is_critical=False
            ))
            return

        if low <= value <= high:
            return
        message = f"{name}={value} is outside [{low}, {high}]; using the default"
        if strict:
            self.errors.append(ConfigValidationError(key=name, message=message, is_critical=False))
        else:
            self.warnings.append(message)

    def load_config(self) -> AppConfig:
        """Build the configuration; unparsable or out-of-range numbers fall back to defaults."""
        cors_origins = [origin.strip() for origin in env_str("CORS_ORIGINS").split(",") if origin.strip()]

        self.config = AppConfig(
            deepgram_api_key=env_str("DEEPGRAM_API_KEY"),
            gemini_api_key=gemini_api_key(),
            elevenlabs_api_key=env_str("ELEVENLABS_API_KEY"),
            gemini_model_name=env_str("GEMINI_MODEL_NAME", "gemini-2.5-flash"),
            deepgram_model=env_str("DEEPGRAM_MODEL", "nova-2"),
            transcription_language=env_str("TRANSCRIPTION_LANGUAGE", "hi"),
            elevenlabs_model_id=env_str("ELEVENLABS_MODEL_ID", "eleven_multilingual_v2"),
            provider_timeout_seconds=env_float("PROVIDER_TIMEOUT_SECONDS", 60.0),
            host=env_str("HOST", "0.0.0.0"),
            port=env_bounded("PORT", 3001),
            environment=env_str("ENVIRONMENT", "development"),
            log_level=env_str("LOG_LEVEL", "INFO"),
            session_timeout_minutes=env_bounded("SESSION_TIMEOUT_MINUTES", 30),
            session_sweep_interval_seconds=env_bounded("SESSION_SWEEP_INTERVAL_SECONDS", 300),
            max_audio_mb=env_bounded("MAX_AUDIO_MB", 25),
            frontend_url=env_str("FRONTEND_URL"),
            cors_origins=cors_origins or list(DEFAULT_CORS_ORIGINS),
            rate_limit_requests=env_bounded("RATE_LIMIT_REQUESTS", 100),
            rate_limit_window=env_bounded("RATE_LIMIT_WINDOW", 900),
        )
        return self.config

    def log_status(self, logger) -> None:
        """Report credential presence (never values) and validation results."""
        for name, _ in CREDENTIALS:
            logger.info(f"[ENV CHECK] {name}: {'Present' if self.credential(name) else 'Missing'}")
        logger.info(f"[ENV CHECK] FRONTEND_URL: {env_str('FRONTEND_URL') or 'Not set'}")
        logger.info(f"[ENV CHECK] ENVIRONMENT: {env_str('ENVIRONMENT', 'development')}")

        for error in self.errors:
            report = logger.error if error.is_critical else logger.warning
            report(f"[CONFIG] {error.key}: {error.message}")
        for warning in self.warnings:
            logger.warning(f"[CONFIG] {warning}")


def validate_config_on_startup() -> AppConfig:
    """
    Load configuration, refusing to continue without provider credentials.

    Raises:
        ValueError: If a provider credential is missing
    """
    validator = ConfigValidator()
    valid = validator.validate()
    config = validator.load_config()

    if not valid:
        missing = ", ".join(error.key for error in validator.errors if error.is_critical)
        raise ValueError(f"Cannot start without provider credentials. Missing: {missing}")

    return config


def load_config() -> AppConfig:
    """Load configuration without failing on missing credentials."""
    return ConfigValidator().load_config()
