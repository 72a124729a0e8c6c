"""
Unit tests for audio duration estimates.
"""

import pytest

from voice_quota_guard.sdk.audio import (
    estimate_audio_seconds,
    estimate_speech_seconds,
    pcm_duration_seconds,
    truncate_speech_text,
)


class TestAudioEstimates:
    """Test bitrate-based duration guesses."""

    def test_webm(self):
        assert estimate_audio_seconds(b"\x00" * 12288, "audio/webm") == 1.0
        assert estimate_audio_seconds(b"\x00" * 12288, "audio/webm;codecs=opus") == 1.0

    def test_known_containers(self):
        assert estimate_audio_seconds(24 * 1024 * 3, "audio/mpeg") == 3.0
        assert estimate_audio_seconds(176 * 1024, "audio/wav") == 1.0
        assert estimate_audio_seconds(32 * 1024, "audio/pcm") == 1.0

    def test_unknown_type_uses_default(self):
        assert estimate_audio_seconds(20 * 1024, "audio/flac") == 1.0
        assert estimate_audio_seconds(20 * 1024, None) == 1.0

    def test_negative_size_rejected(self):
        with pytest.raises(ValueError):
            estimate_audio_seconds(-1)

    def test_pcm_duration(self):
        assert pcm_duration_seconds(b"\x00" * 48000) == 1.0
        assert pcm_duration_seconds(32000, sample_rate=16000) == 1.0
        with pytest.raises(ValueError):
            pcm_duration_seconds(100, sample_rate=0)


class TestSpeechText:
    """Test speech-out text handling."""

    def test_short_text_unchanged(self):
        assert truncate_speech_text("hello") == "hello"

    def test_long_text_truncated(self):
        text = truncate_speech_text("x" * 501)
        assert text == "x" * 500 + "..."

    def test_speech_estimate(self):
        assert estimate_speech_seconds("a" * 30) == 2.0
        assert estimate_speech_seconds("") == 0.0
