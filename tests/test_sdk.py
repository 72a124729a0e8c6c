"""
Unit tests for SDK layer.

Tests the guarded OpenAI voice client: admission before the call, usage
recording after it, and no charge when the call fails.
"""

from datetime import datetime
from unittest.mock import Mock, patch

import pytest

from voice_quota_guard.core.admission import ReasonCode
from voice_quota_guard.core.service import VoiceQuotaService
from voice_quota_guard.sdk import GuardedVoiceClient, VoiceAccessDenied
from voice_quota_guard.storage.memory import InMemoryLedgerStore


class TestGuardedVoiceClient:
    """Test GuardedVoiceClient wrapper."""

    def setup_method(self):
        """Set up an in-memory service with a provisioned PRO user."""
        self.now = datetime(2026, 3, 10, 14, 30)
        self.store = InMemoryLedgerStore()
        self.service = VoiceQuotaService(self.store, clock=lambda: self.now)
        self.service.provision("user-1", "pro")

    @patch('voice_quota_guard.sdk.openai_client.OpenAI')
    def test_init_success(self, mock_openai_class):
        mock_openai_class.return_value = Mock()

        client = GuardedVoiceClient("user-1", self.service)

        assert client.user_id == "user-1"
        assert client.transcription_model == "whisper-1"
        assert client.speech_model == "gpt-4o-mini-tts"
        assert client.voice == "alloy"
        assert client.client is not None

    def test_init_missing_user(self):
        with pytest.raises(ValueError, match="user_id is required"):
            GuardedVoiceClient("", self.service)
        with pytest.raises(ValueError, match="user_id is required"):
            GuardedVoiceClient(None, self.service)

    def test_init_missing_service(self):
        with pytest.raises(ValueError, match="service is required"):
            GuardedVoiceClient("user-1", None)

    @patch('voice_quota_guard.sdk.openai_client.OpenAI')
    def test_transcribe_records_reported_duration(self, mock_openai_class):
        mock_response = Mock()
        mock_response.text = "hello there"
        mock_response.duration = 12.5
        mock_client = Mock()
        mock_client.audio.transcriptions.create.return_value = mock_response
        mock_openai_class.return_value = mock_client

        client = GuardedVoiceClient("user-1", self.service)
        result = client.transcribe(b"\x00" * 12288, mime_type="audio/webm")

        assert result.text == "hello there"
        assert result.usage.ledger.input_seconds_used == 12.5
        assert result.usage.ledger.output_seconds_used == 0
        assert result.remaining_before.input_seconds == 180.0

        kwargs = mock_client.audio.transcriptions.create.call_args.kwargs
        assert kwargs["model"] == "whisper-1"
        assert kwargs["file"] == ("speech.webm", b"\x00" * 12288)
        assert kwargs["response_format"] == "verbose_json"

    @patch('voice_quota_guard.sdk.openai_client.OpenAI')
    def test_transcribe_falls_back_to_estimate(self, mock_openai_class):
        mock_response = Mock()
        mock_response.text = "hi"
        mock_response.duration = None
        mock_client = Mock()
        mock_client.audio.transcriptions.create.return_value = mock_response
        mock_openai_class.return_value = mock_client

        client = GuardedVoiceClient("user-1", self.service)
        # 24 KB of mp3 at 24 KB/s
        result = client.transcribe(b"\x00" * 24576, mime_type="audio/mpeg", filename="clip.mp3")

        assert result.usage.ledger.input_seconds_used == 1.0

    @patch('voice_quota_guard.sdk.openai_client.OpenAI')
    def test_speak_records_pcm_duration(self, mock_openai_class):
        mock_response = Mock()
        mock_response.content = b"\x00" * 96000  # 2 seconds of 24 kHz 16-bit mono
        mock_client = Mock()
        mock_client.audio.speech.create.return_value = mock_response
        mock_openai_class.return_value = mock_client

        client = GuardedVoiceClient("user-1", self.service)
        result = client.speak("Hello, how can I help?")

        assert result.audio == mock_response.content
        assert result.usage.ledger.output_seconds_used == 2.0
        kwargs = mock_client.audio.speech.create.call_args.kwargs
        assert kwargs["voice"] == "alloy"
        assert kwargs["response_format"] == "pcm"

    @patch('voice_quota_guard.sdk.openai_client.OpenAI')
    def test_speak_truncates_long_text(self, mock_openai_class):
        mock_response = Mock()
        mock_response.content = b"\x00" * 48000
        mock_client = Mock()
        mock_client.audio.speech.create.return_value = mock_response
        mock_openai_class.return_value = mock_client

        client = GuardedVoiceClient("user-1", self.service)
        result = client.speak("a" * 800)

        sent = mock_client.audio.speech.create.call_args.kwargs["input"]
        assert sent == "a" * 500 + "..."
        assert result.text == sent

    @patch('voice_quota_guard.sdk.openai_client.OpenAI')
    def test_denied_request_never_calls_openai(self, mock_openai_class):
        mock_client = Mock()
        mock_openai_class.return_value = mock_client
        self.service.provision("user-2", "starter")

        client = GuardedVoiceClient("user-2", self.service)
        with pytest.raises(VoiceAccessDenied) as exc_info:
            client.speak("Hello")

        assert exc_info.value.reason is ReasonCode.PLAN_NOT_ALLOWED
        assert exc_info.value.decision.upgrade_required
        mock_client.audio.speech.create.assert_not_called()

    @patch('voice_quota_guard.sdk.openai_client.OpenAI')
    def test_openai_error_is_not_charged(self, mock_openai_class):
        mock_client = Mock()
        mock_client.audio.transcriptions.create.side_effect = RuntimeError("API Error")
        mock_openai_class.return_value = mock_client

        client = GuardedVoiceClient("user-1", self.service)
        with pytest.raises(RuntimeError, match="API Error"):
            client.transcribe(b"\x00" * 1024)

        ledger = self.store.get("user-1")
        assert ledger.request_count == 0
        assert ledger.input_seconds_used == 0

    @patch('voice_quota_guard.sdk.openai_client.OpenAI')
    def test_empty_inputs_rejected(self, mock_openai_class):
        mock_openai_class.return_value = Mock()
        client = GuardedVoiceClient("user-1", self.service)

        with pytest.raises(ValueError, match="audio is required"):
            client.transcribe(b"")
        with pytest.raises(ValueError, match="text is required"):
            client.speak("   ")
