"""
Speaker-attributed transcription through an OpenAI-compatible API (LemonFox).
"""

import logging

from openai import OpenAI, OpenAIError

from .errors import TranscriptionFailed
from .models import TranscriptSegment

logger = logging.getLogger("dubtube")

LEMONFOX_BASE_URL = "https://api.lemonfox.ai/v1"


def make_transcription_client(api_key: str | None, base_url: str = LEMONFOX_BASE_URL) -> OpenAI:
    if not api_key:
        raise TranscriptionFailed("LEMONFOX_API_KEY is not set.")
    return OpenAI(api_key=api_key, base_url=base_url)


def _field(obj, name: str, default=None):
    if isinstance(obj, dict):
        return obj.get(name, default)
    return getattr(obj, name, default)


def segments_from_response(resp) -> list[TranscriptSegment]:
    """Convert a verbose_json transcription response into transcript segments."""
    segs = _field(resp, "segments")
    if not segs:
        raise TranscriptionFailed("Invalid response from transcription service")
    out: list[TranscriptSegment] = []
    for seg in segs:
        speaker = _field(seg, "speaker")
        out.append(
            TranscriptSegment(
                start=float(_field(seg, "start", 0.0)),
                end=float(_field(seg, "end", 0.0)),
                text=str(_field(seg, "text", "")).strip(),
                speaker=str(speaker) if speaker else "Unknown",
            )
        )
    return out


def transcribe_with_speakers(
    client: OpenAI, audio_path: str, model: str = "whisper-1"
) -> tuple[list[TranscriptSegment], str | None]:
    """Transcribe with speaker labels; returns (segments, detected language)."""
    try:
        with open(audio_path, "rb") as f:
            logger.info("Transcribing %s with %s (speaker labels on) …", audio_path, model)
            resp = client.audio.transcriptions.create(
                model=model,
                file=f,
                response_format="verbose_json",
                timestamp_granularities=["word"],
                extra_body={"speaker_labels": True},
            )
    except OSError as e:
        raise TranscriptionFailed(f"cannot read audio {audio_path}: {e}") from e
    except OpenAIError as e:
        raise TranscriptionFailed(f"Failed to transcribe audio: {e}") from e

    segments = segments_from_response(resp)
    language = _field(resp, "language")
    logger.info("Received %d segments (language: %s)", len(segments), language or "unknown")
    return segments, language
