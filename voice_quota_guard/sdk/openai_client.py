"""
Guarded OpenAI voice client.

Checks voice quota before calling the OpenAI audio API and records usage
after the call succeeds.
"""

from dataclasses import dataclass
from typing import Any, Optional

from openai import OpenAI

from ..core.admission import Decision, Remaining
from ..core.plans import UsageKind
from ..core.recorder import CommitResult
from ..core.service import VoiceQuotaService
from ..storage.models import UsageEvent
from .audio import (
    estimate_audio_seconds,
    estimate_speech_seconds,
    pcm_duration_seconds,
    truncate_speech_text,
)

# OpenAI "pcm" speech output: 24 kHz, 16-bit, mono
PCM_SAMPLE_RATE = 24000


class VoiceAccessDenied(Exception):
    """Raised when admission control denies a voice request."""
    def __init__(self, decision: Decision):
        super().__init__(decision.message or f"Voice request denied: {decision.reason.value}")
        self.decision = decision

    @property
    def reason(self):
        return self.decision.reason


@dataclass(frozen=True)
class VoiceResult:
    """Result of a guarded speech call."""
    text: Optional[str]
    audio: Optional[bytes]
    usage: CommitResult
    remaining_before: Remaining


class GuardedVoiceClient:
    """OpenAI audio client wrapper that meters voice minutes.

    Admission is checked first; the OpenAI call only happens when it passes,
    and usage is only committed when the OpenAI call returns. Provider
    errors propagate untouched and leave the ledger unchanged.
    """

    def __init__(
        self,
        user_id: str,
        service: VoiceQuotaService,
        transcription_model: str = "whisper-1",
        speech_model: str = "gpt-4o-mini-tts",
        voice: str = "alloy"
    ):
        """Initialize guarded voice client.

        Args:
            user_id: User whose quota is charged (required)
            service: Voice quota service wired to a ledger store (required)
            transcription_model: OpenAI model for speech-in
            speech_model: OpenAI model for speech-out
            voice: Voice name for speech-out

        Raises:
            ValueError: If user_id or service is missing
        """
        if not user_id or not user_id.strip():
            raise ValueError("user_id is required and cannot be empty")
        if service is None:
            raise ValueError("service is required")

        self.user_id = user_id
        self.service = service
        self.transcription_model = transcription_model
        self.speech_model = speech_model
        self.voice = voice
        self.client = OpenAI()

    def _admit(self, kind: UsageKind, seconds: float) -> Decision:
        decision = self.service.check(self.user_id, kind, seconds)
        if not decision.allowed:
            raise VoiceAccessDenied(decision)
        return decision

    def transcribe(
        self,
        audio: bytes,
        mime_type: str = "audio/webm",
        filename: str = "speech.webm",
        **kwargs: Any
    ) -> VoiceResult:
        """Transcribe user speech, charging it to the speech-in budget.

        Args:
            audio: Encoded audio bytes (required)
            mime_type: MIME type used for the duration estimate
            filename: File name sent to OpenAI (extension selects the decoder)
            **kwargs: Additional OpenAI transcription parameters

        Returns:
            VoiceResult with the transcript and the committed usage

        Raises:
            ValueError: If audio is empty
            VoiceAccessDenied: If admission control denies the request
            OpenAI API errors: Propagated without modification
        """
        if not audio:
            raise ValueError("audio is required and cannot be empty")

        estimated = estimate_audio_seconds(audio, mime_type)
        decision = self._admit(UsageKind.INPUT, estimated)

        response = self.client.audio.transcriptions.create(
            model=self.transcription_model,
            file=(filename, audio),
            response_format="verbose_json",
            **kwargs
        )

        duration = getattr(response, "duration", None)
        input_seconds = float(duration) if duration is not None else estimated

        usage = self.service.commit(self.user_id, UsageEvent(input_seconds=input_seconds, output_seconds=0))
        return VoiceResult(text=response.text, audio=None, usage=usage, remaining_before=decision.remaining)

    def speak(self, text: str, **kwargs: Any) -> VoiceResult:
        """Synthesize speech, charging it to the speech-out budget.

        Text longer than 500 characters is truncated before synthesis.

        Args:
            text: Text to speak (required)
            **kwargs: Additional OpenAI speech parameters

        Returns:
            VoiceResult with raw 24 kHz PCM audio and the committed usage

        Raises:
            ValueError: If text is empty
            VoiceAccessDenied: If admission control denies the request
            OpenAI API errors: Propagated without modification
        """
        if not text or not text.strip():
            raise ValueError("text is required and cannot be empty")

        spoken = truncate_speech_text(text)
        estimated = estimate_speech_seconds(spoken)
        decision = self._admit(UsageKind.OUTPUT, estimated)

        response = self.client.audio.speech.create(
            model=self.speech_model,
            voice=self.voice,
            input=spoken,
            response_format="pcm",
            **kwargs
        )

        audio = response.content
        output_seconds = pcm_duration_seconds(audio, sample_rate=PCM_SAMPLE_RATE) if audio else estimated

        usage = self.service.commit(self.user_id, UsageEvent(input_seconds=0, output_seconds=output_seconds))
        return VoiceResult(text=spoken, audio=audio, usage=usage, remaining_before=decision.remaining)
