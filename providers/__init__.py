"""Transcription backends for voice-transcribe.

Usage:
    from providers import get_transcriber

    transcriber = get_transcriber(api_key)
    text = transcriber.transcribe(pcm_bytes)  # None on failure
"""

from config import DEFAULT_API_MODEL


def get_transcriber(api_key: str, model: str | None = None):
    """Factory for the transcription client.

    Args:
        api_key: Bearer token for the backend
        model: Model id (default: whisper-1)
    """
    from .openai import OpenAITranscriber

    return OpenAITranscriber(api_key, model=model)


def get_default_model() -> str:
    return DEFAULT_API_MODEL


__all__ = [
    "get_transcriber",
    "get_default_model",
]
