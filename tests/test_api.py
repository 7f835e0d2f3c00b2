"""
Integration tests for API endpoints - end-to-end turns through the HTTP surface.
"""

import os
import sys
from unittest.mock import AsyncMock, patch
from urllib.parse import unquote

import pytest
from fastapi.testclient import TestClient

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from app import create_app, encode_header_value
from config import AppConfig
from connection import Providers
from session_store import SESSION_TIMEOUT_SECONDS, SessionStore
from tests.fakes import GREETING, REPLY, FakeAgent, FakeClock, FakeSynthesizer, FakeTranscriber, make_providers
from tests.test_logger import test_logger

WEBM_CLIP = ("clip.webm", b"\x1aE\xdf\xa3webm-bytes", "audio/webm")


def build_client(providers=None, environment="production", raise_server_exceptions=True, store=None, **config_fields):
    config = AppConfig(environment=environment, **config_fields)
    app = create_app(config=config, providers=providers, store=store if store is not None else SessionStore(), serverless=False)
    return TestClient(app, raise_server_exceptions=raise_server_exceptions)


@pytest.fixture
def client():
    """Create test client backed by fake providers."""
    return build_client(make_providers())


class TestRootAndHealth:
    """Test root and health endpoints."""

    def setup_method(self):
        test_logger.log_section("TESTING: app.py - API Endpoints - Root/Health")

    def test_root_endpoint(self, client):
        response = client.get("/")

        assert response.status_code == 200
        data = response.json()
        assert data["message"] == "Hindi Voice Bot API"
        assert data["status"] == "running"

    @pytest.mark.parametrize("path", ["/health", "/api/health"])
    def test_health_check(self, client, path):
        test_logger.log_test_start("app.py", "health_check()", path)

        try:
            response = client.get(path)
            assert response.status_code == 200

            data = response.json()
            assert data["status"] == "healthy"
            assert data["active_sessions"] == 0
            assert data["apis"] == {"gemini": True, "elevenlabs": True, "deepgram": True}
            assert data["environment"] == "production"
            assert "error" not in data
            assert data["timestamp"].endswith("Z")
            assert "+00:00" not in data["timestamp"]

            test_logger.log_test_pass("app.py", "health_check()", path)
        except Exception as e:
            test_logger.log_test_fail("app.py", "health_check()", path, str(e))
            raise

    def test_health_degraded(self):
        client = build_client(Providers(agent=FakeAgent()))

        data = client.get("/health").json()

        assert data["status"] == "unhealthy"
        assert data["apis"] == {"gemini": True, "elevenlabs": False, "deepgram": False}
        assert data["error"] == "Some API clients are not initialized"

    def test_health_before_providers_exist(self):
        data = build_client(None).get("/health").json()

        assert data["status"] == "unhealthy"
        assert data["apis"] == {"gemini": False, "elevenlabs": False, "deepgram": False}

    def test_cors_exposes_metadata_headers(self, client):
        response = client.get("/health", headers={"Origin": "http://localhost:5173"})

        assert response.headers["access-control-allow-origin"] == "http://localhost:5173"
        assert "X-Session-Id" in response.headers["access-control-expose-headers"]


class TestTurnEndpoint:
    """Test voice turn endpoint - the critical path."""

    def setup_method(self):
        test_logger.log_section("TESTING: app.py - API Endpoints - Turn")

    def test_first_turn(self, client):
        test_logger.log_test_start("app.py", "voice_turn()", "first_turn")

        try:
            response = client.post("/turn", files={"audio": WEBM_CLIP}, data={"voicePreference": "hindi_male"})

            assert response.status_code == 200
            assert response.headers["content-type"].startswith("audio/mpeg")
            assert response.content == b"ID3audio"
            assert response.headers["x-session-id"]
            assert unquote(response.headers["x-transcription"]) == GREETING
            assert unquote(response.headers["x-response-text"]) == REPLY
            assert int(response.headers["x-processing-time"]) >= 0

            test_logger.log_test_pass("app.py", "voice_turn()", "first_turn", "audio streamed with metadata")
        except Exception as e:
            test_logger.log_test_fail("app.py", "voice_turn()", "first_turn", str(e))
            raise

    def test_follow_up_turn_keeps_session(self, client):
        test_logger.log_test_start("app.py", "voice_turn()", "follow_up")

        try:
            first = client.post("/turn", files={"audio": WEBM_CLIP})
            session_id = first.headers["x-session-id"]

            second = client.post("/api/chat", files={"audio": WEBM_CLIP}, headers={"X-Session-Id": session_id})
            third = client.post("/turn", files={"audio": WEBM_CLIP}, data={"sessionId": session_id})

            assert second.headers["x-session-id"] == session_id
            assert third.headers["x-session-id"] == session_id
            info = client.get(f"/session/{session_id}").json()
            assert info["message_count"] == 3

            test_logger.log_test_pass("app.py", "voice_turn()", "follow_up")
        except Exception as e:
            test_logger.log_test_fail("app.py", "voice_turn()", "follow_up", str(e))
            raise

    def test_stale_session_gets_new_id(self, client):
        response = client.post("/turn", files={"audio": WEBM_CLIP}, headers={"X-Session-Id": "expired-id"})

        assert response.status_code == 200
        assert response.headers["x-session-id"] != "expired-id"

    def test_swept_session_gets_new_id(self):
        test_logger.log_test_start("app.py", "voice_turn()", "swept_session")

        try:
            clock = FakeClock()
            store = SessionStore(timeout_seconds=SESSION_TIMEOUT_SECONDS, clock=clock)
            client = build_client(make_providers(), store=store)

            first = client.post("/turn", files={"audio": WEBM_CLIP})
            old_id = first.headers["x-session-id"]
            assert client.get(f"/session/{old_id}").status_code == 200

            clock.advance(SESSION_TIMEOUT_SECONDS + 1)
            assert store.sweep() == 1
            assert client.get(f"/session/{old_id}").status_code == 404

            replay = client.post("/turn", files={"audio": WEBM_CLIP}, headers={"X-Session-Id": old_id})

            assert replay.status_code == 200
            new_id = replay.headers["x-session-id"]
            assert new_id != old_id
            assert client.get(f"/session/{new_id}").json()["message_count"] == 1

            test_logger.log_test_pass("app.py", "voice_turn()", "swept_session")
        except Exception as e:
            test_logger.log_test_fail("app.py", "voice_turn()", "swept_session", str(e))
            raise

    def test_file_in_other_field_is_unexpected(self, client):
        response = client.post(
            "/turn",
            files=[("audio", WEBM_CLIP), ("attachment", ("notes.txt", b"x", "text/plain"))],
        )

        assert response.status_code == 400
        assert response.json()["code"] == "UNEXPECTED_FILE"

    def test_no_audio_file(self, client):
        response = client.post("/turn", data={"ttsProvider": "elevenlabs"})

        assert response.status_code == 400
        assert response.json() == {"error": "No audio file provided", "code": "NO_AUDIO_FILE"}

    def test_invalid_file_type(self, client):
        response = client.post("/turn", files={"audio": ("notes.txt", b"hello", "text/plain")})

        assert response.status_code == 400
        assert response.json()["code"] == "INVALID_FILE_TYPE"

    def test_file_too_large(self):
        client = build_client(make_providers(), max_audio_mb=1)

        response = client.post("/turn", files={"audio": ("big.wav", b"0" * (1024 * 1024 + 1), "audio/wav")})

        assert response.status_code == 400
        assert response.json()["code"] == "FILE_TOO_LARGE"

    def test_more_than_one_file(self, client):
        response = client.post("/turn", files=[("audio", WEBM_CLIP), ("audio", WEBM_CLIP)])

        assert response.status_code == 400
        assert response.json()["code"] == "UNEXPECTED_FILE"

    def test_degraded_mode_refuses_turns(self):
        transcriber = FakeTranscriber()
        client = build_client(Providers(transcriber=transcriber))

        response = client.post("/turn", files={"audio": WEBM_CLIP})

        assert response.status_code == 503
        assert response.json()["code"] == "SERVICE_UNAVAILABLE"
        assert transcriber.calls == 0

    def test_empty_transcription(self):
        client = build_client(make_providers(transcriber=FakeTranscriber("")))

        response = client.post("/turn", files={"audio": WEBM_CLIP})

        assert response.status_code == 400
        assert response.json() == {
            "error": "Could not understand audio. Please try again.",
            "code": "EMPTY_TRANSCRIPTION",
        }

    def test_quota_error_returns_session(self):
        test_logger.log_test_start("app.py", "voice_turn()", "quota_exceeded")

        try:
            agent = FakeAgent(error=RuntimeError("429 quota exceeded for model"))
            client = build_client(make_providers(agent=agent))

            response = client.post("/turn", files={"audio": WEBM_CLIP})

            assert response.status_code == 429
            data = response.json()
            assert data["code"] == "QUOTA_EXCEEDED"
            assert data["error"] == "Service temporarily unavailable due to high demand"
            assert "details" not in data
            assert client.get(f"/session/{data['sessionId']}").json()["message_count"] == 1

            test_logger.log_test_pass("app.py", "voice_turn()", "quota_exceeded")
        except Exception as e:
            test_logger.log_test_fail("app.py", "voice_turn()", "quota_exceeded", str(e))
            raise

    def test_development_errors_carry_details(self):
        synthesizer = FakeSynthesizer(error=RuntimeError("socket exploded"))
        client = build_client(make_providers(synthesizer=synthesizer), environment="development")

        data = client.post("/turn", files={"audio": WEBM_CLIP}).json()

        assert data["code"] == "INTERNAL_ERROR"
        assert data["details"] == "socket exploded"
        assert "stack" in data

    def test_rate_limit(self):
        client = build_client(make_providers(), rate_limit_requests=2)

        statuses = [client.post("/turn", files={"audio": WEBM_CLIP}).status_code for _ in range(3)]

        assert statuses == [200, 200, 429]

    def test_unhandled_error(self):
        client = build_client(make_providers(), raise_server_exceptions=False)
        client.app.state.pipeline.run = AsyncMock(side_effect=RuntimeError("unexpected"))

        response = client.post("/turn", files={"audio": WEBM_CLIP})

        assert response.status_code == 500
        assert response.json() == {"error": "Something went wrong!", "code": "UNHANDLED_ERROR"}


class TestSessionEndpoint:
    """Test session lookup endpoint."""

    def setup_method(self):
        test_logger.log_section("TESTING: app.py - API Endpoints - Session")

    def test_session_info(self, client):
        session_id = client.post("/turn", files={"audio": WEBM_CLIP}).headers["x-session-id"]

        data = client.get(f"/api/session/{session_id}").json()

        assert data["session_id"] == session_id
        assert data["message_count"] == 1
        assert "created_at" in data and "last_activity" in data

    def test_unknown_session(self, client):
        response = client.get("/session/does-not-exist")

        assert response.status_code == 404
        assert response.json() == {"error": "Session not found", "code": "NOT_FOUND"}

    def test_unknown_endpoint(self, client):
        response = client.get("/nowhere")

        assert response.status_code == 404
        assert response.json() == {"error": "Endpoint not found", "code": "NOT_FOUND"}


class TestLifespan:
    """Test startup and shutdown."""

    def setup_method(self):
        test_logger.log_section("TESTING: app.py - lifespan")

    def test_lifespan_builds_providers_and_clears_sessions(self):
        app = create_app(config=AppConfig(environment="production"), store=SessionStore(), serverless=False)

        with patch('app.Providers.from_config', return_value=make_providers()) as mock_from_config:
            with TestClient(app) as client:
                assert app.state.sweeper.running
                assert client.post("/turn", files={"audio": WEBM_CLIP}).status_code == 200
                assert len(app.state.store) == 1

        mock_from_config.assert_called_once()
        assert len(app.state.store) == 0
        assert not app.state.sweeper.running

    def test_serverless_builds_providers_lazily(self):
        app = create_app(config=AppConfig(environment="production"), store=SessionStore(), serverless=True)
        client = TestClient(app)

        with patch('app.Providers.from_config', return_value=make_providers()) as mock_from_config:
            response = client.post("/turn", files={"audio": WEBM_CLIP})

        assert response.status_code == 200
        mock_from_config.assert_called_once()


def test_header_encoding_matches_encode_uri_component():
    assert encode_header_value("नमस्ते! कैसे हैं आप?") == (
        "%E0%A4%A8%E0%A4%AE%E0%A4%B8%E0%A5%8D%E0%A4%A4%E0%A5%87!%20"
        "%E0%A4%95%E0%A5%88%E0%A4%B8%E0%A5%87%20%E0%A4%B9%E0%A5%88%E0%A4%82%20"
        "%E0%A4%86%E0%A4%AA%3F"
    )
    assert encode_header_value("a/b&c") == "a%2Fb%26c"
