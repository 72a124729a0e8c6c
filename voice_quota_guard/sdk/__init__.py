"""
SDK for Voice Quota Guard.

Provides quota-guarded access to speech providers.
"""

from .openai_client import GuardedVoiceClient, VoiceAccessDenied, VoiceResult

__all__ = ["GuardedVoiceClient", "VoiceAccessDenied", "VoiceResult"]
