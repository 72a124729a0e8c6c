"""
Audio duration estimates.

Admission needs a duration before the audio has been processed, so these
are rough, bitrate-based guesses. Commits use the real duration whenever
the speech provider reports one.
"""

from typing import Union

# Approximate KB per second of audio by container/codec
_KB_PER_SECOND = (
    ("webm", 12),
    ("opus", 12),
    ("mp3", 24),
    ("mpeg", 24),
    ("wav", 176),
    ("pcm", 32),  # 16 kHz, 16-bit mono
)
_DEFAULT_KB_PER_SECOND = 20

SPEECH_CHARS_PER_SECOND = 15
MAX_SPEECH_CHARS = 500


def estimate_audio_seconds(audio: Union[bytes, int], mime_type: str = "audio/webm") -> float:
    """Estimate playback length of an encoded audio payload.

    Args:
        audio: Raw audio bytes, or their length
        mime_type: MIME type of the payload

    Returns:
        Estimated seconds, rounded to 2 places
    """
    size = audio if isinstance(audio, int) else len(audio)
    if size < 0:
        raise ValueError("audio size cannot be negative")

    mime = (mime_type or "").lower()
    kb_per_second = _DEFAULT_KB_PER_SECOND
    for marker, rate in _KB_PER_SECOND:
        if marker in mime:
            kb_per_second = rate
            break

    return round(size / 1024 / kb_per_second, 2)


def pcm_duration_seconds(
    audio: Union[bytes, int],
    sample_rate: int = 24000,
    sample_width: int = 2,
    channels: int = 1
) -> float:
    """Exact duration of raw PCM audio."""
    size = audio if isinstance(audio, int) else len(audio)
    bytes_per_second = sample_rate * sample_width * channels
    if bytes_per_second <= 0:
        raise ValueError("sample_rate, sample_width and channels must be > 0")
    return round(size / bytes_per_second, 2)


def truncate_speech_text(text: str) -> str:
    if len(text) > MAX_SPEECH_CHARS:
        return text[:MAX_SPEECH_CHARS] + "..."
    return text


def estimate_speech_seconds(text: str) -> float:
    """Estimated spoken length of text, at about 15 characters per second."""
    return round(len(text) / SPEECH_CHARS_PER_SECOND, 2)
