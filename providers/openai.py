"""OpenAI transcription client.

Wraps the captured PCM in a WAV container, uploads it to
/v1/audio/transcriptions and pulls the `text` field out of the JSON body.
"""

from __future__ import annotations

import io
import json
import logging

from config import CHANNELS, DEFAULT_API_MODEL, SAMPLE_RATE
from utils.timing import timed_operation

logger = logging.getLogger("voice_transcribe.providers.openai")

UPLOAD_FILENAME = "recording.wav"


def encode_wav(pcm: bytes, sample_rate: int = SAMPLE_RATE, channels: int = CHANNELS) -> bytes:
    """Wraps raw int16 PCM in an uncompressed WAV container."""
    import numpy as np
    import soundfile as sf

    frame_bytes = 2 * channels
    usable = len(pcm) - len(pcm) % frame_bytes
    samples = np.frombuffer(pcm[:usable], dtype="<i2")
    if channels > 1:
        samples = samples.reshape(-1, channels)

    container = io.BytesIO()
    sf.write(container, samples, sample_rate, format="WAV", subtype="PCM_16")
    return container.getvalue()


def extract_text(body: str) -> str | None:
    """Returns the `text` field of a transcription response, or None.

    None covers malformed JSON, a missing or non-string field and empty text.
    """
    try:
        payload = json.loads(body)
    except (TypeError, ValueError):
        logger.error("Transcription response is not JSON")
        return None
    if not isinstance(payload, dict):
        return None
    text = payload.get("text")
    if not isinstance(text, str) or not text:
        logger.warning("Transcription response has no text")
        return None
    return text


class OpenAITranscriber:
    """Whisper API client for one finished recording.

    No retries: the SDK's own retry loop is disabled so a failed upload
    surfaces immediately as FAILED.
    """

    name = "openai"
    default_model = DEFAULT_API_MODEL

    def __init__(self, api_key: str, model: str | None = None) -> None:
        self.api_key = api_key
        self.model = model or self.default_model
        self._client = None

    def _get_client(self):
        """OpenAI client (lazy init)."""
        if self._client is None:
            from openai import OpenAI

            self._client = OpenAI(api_key=self.api_key, max_retries=0)
            logger.debug("OpenAI client initialized")
        return self._client

    def upload(self, container: bytes) -> str | None:
        """Posts the WAV as multipart form data.

        Returns:
            Raw response body, or None on transport / HTTP errors
        """
        import openai

        client = self._get_client()
        logger.info(f"OpenAI: {self.model}, {len(container) // 1024}KB")

        try:
            with timed_operation("OpenAI transcription", logger=logger):
                response = client.audio.transcriptions.with_raw_response.create(
                    model=self.model,
                    file=(UPLOAD_FILENAME, container, "audio/wav"),
                    response_format="json",
                )
        except openai.APIStatusError as e:
            logger.error(f"Transcription rejected: HTTP {e.status_code}: {e.message}")
            return None
        except openai.APIError as e:
            logger.error(f"Transcription request failed: {e}")
            return None

        return response.text

    def transcribe(self, pcm: bytes) -> str | None:
        """encode -> upload -> extract. None means FAILED."""
        body = self.upload(encode_wav(pcm))
        if body is None:
            return None
        text = extract_text(body)
        if text is not None:
            preview = text if len(text) <= 100 else f"{text[:100]}..."
            logger.debug(f"Result: {preview}")
        return text


__all__ = ["OpenAITranscriber", "encode_wav", "extract_text"]
