"""
HTTP surface: audio extraction, transcription, translation, dubbing and audio streaming.
"""

import logging
import mimetypes
import os
from collections.abc import Iterator
from pathlib import Path
from typing import Any, Optional

from fastapi import APIRouter, FastAPI, Header, HTTPException, Request, status
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import BaseModel

from .config import Settings, load_settings
from .dubbing import run_dubbing_job
from .errors import (
    AudioDownloadFailed,
    DubbingJobFailed,
    InvalidDubbingRequest,
    TranscriptionFailed,
    TranslationFailed,
)
from .extraction import ExtractionGate, ensure_yt_cookies, extract_youtube_audio, random_proxy_url
from .models import TranscriptSegment
from .storage import cleanup_audio_folders
from .transcription import make_transcription_client, transcribe_with_speakers
from .translation import make_translator

logger = logging.getLogger("dubtube")

router = APIRouter()

CHUNK_SIZE = 1 << 16


class ExtractAudioRequest(BaseModel):
    videoId: Optional[str] = None


class TranscribeRequest(BaseModel):
    audioPath: Optional[str] = None


class TranslateRequest(BaseModel):
    texts: Optional[list[str]] = None
    text: Optional[str] = None
    targetLang: Optional[str] = None


class DubRequest(BaseModel):
    transcription: Optional[list[dict[str, Any]]] = None
    translatedTranscription: Optional[list[dict[str, Any]]] = None
    audioPath: Optional[str] = None


class _RangeParseError(Exception):
    """Raised when the supplied Range header cannot be satisfied."""


def _error(message: str, status_code: int, details: str | None = None) -> JSONResponse:
    body = {"error": message}
    if details:
        body["details"] = details
    return JSONResponse(body, status_code=status_code)


def _settings(request: Request) -> Settings:
    return request.app.state.settings


def resolve_audio_path(settings: Settings, audio_path: str) -> str:
    """Map a client path such as ``/audio/x.mp3`` onto the audio dir, basename only."""
    return os.path.join(settings.audio_dir, os.path.basename(audio_path))


def audio_url(path: str) -> str:
    return f"/audio/{os.path.basename(path)}"


def parse_byte_range(range_value: str, file_size: int) -> tuple[int, int]:
    """Return the inclusive byte range for a single ``bytes=start-end`` header."""
    if file_size <= 0:
        raise _RangeParseError
    header = range_value.strip()
    if not header.lower().startswith("bytes="):
        raise _RangeParseError
    spec = header[len("bytes=") :].strip()
    if "," in spec or "-" not in spec:
        raise _RangeParseError

    start_token, end_token = spec.split("-", 1)
    if not start_token:
        # suffix range: bytes=-N
        if not end_token.isdigit() or int(end_token) <= 0:
            raise _RangeParseError
        return max(file_size - int(end_token), 0), file_size - 1
    if not start_token.isdigit():
        raise _RangeParseError
    start = int(start_token)
    if start >= file_size:
        raise _RangeParseError
    if not end_token:
        return start, file_size - 1
    if not end_token.isdigit() or int(end_token) < start:
        raise _RangeParseError
    return start, min(int(end_token), file_size - 1)


def _iter_file_chunks(path: Path, start: int, end: int) -> Iterator[bytes]:
    remaining = end - start + 1
    with path.open("rb") as stream:
        stream.seek(start)
        while remaining > 0:
            chunk = stream.read(min(CHUNK_SIZE, remaining))
            if not chunk:
                break
            remaining -= len(chunk)
            yield chunk


@router.get("/health")
def health(request: Request) -> dict:
    gate: ExtractionGate = request.app.state.extraction_gate
    return {
        "status": "online",
        "extraction": {"active": gate.active_count, "queued": gate.queue_length},
    }


@router.post("/api/extract-audio")
def extract_audio(body: ExtractAudioRequest, request: Request):
    if not body.videoId:
        return _error("Video ID is required", status.HTTP_400_BAD_REQUEST)
    settings = _settings(request)
    try:
        cookies = ensure_yt_cookies(settings.ytdlp_cookies_b64, settings.ytdlp_cookies_path)
    except ValueError as e:
        logger.warning("Ignoring yt-dlp cookies: %s", e)
        cookies = None
    proxy = random_proxy_url(
        settings.proxy_host,
        settings.proxy_username,
        settings.proxy_password,
        settings.proxy_port_start,
        settings.proxy_port_end,
    )
    try:
        path = extract_youtube_audio(
            body.videoId,
            settings.audio_dir,
            gate=request.app.state.extraction_gate,
            cookies_path=cookies,
            proxy_url=proxy,
        )
    except ValueError as e:
        return _error(str(e), status.HTTP_400_BAD_REQUEST)
    except AudioDownloadFailed as e:
        logger.error("Audio extraction failed for %s: %s", body.videoId, e.reason)
        return _error("Failed to extract audio", status.HTTP_500_INTERNAL_SERVER_ERROR, e.reason)
    return {"audioUrl": audio_url(path)}


@router.post("/api/transcribe")
def transcribe(body: TranscribeRequest, request: Request):
    if not body.audioPath:
        return _error("Audio path is required", status.HTTP_400_BAD_REQUEST)
    settings = _settings(request)
    path = resolve_audio_path(settings, body.audioPath)
    if not os.path.isfile(path):
        return _error("Audio file not found", status.HTTP_404_NOT_FOUND)
    try:
        client = make_transcription_client(settings.lemonfox_api_key, settings.lemonfox_base_url)
        segments, language = transcribe_with_speakers(client, path)
    except TranscriptionFailed as e:
        logger.error("Error in transcribe: %s", e.reason)
        return _error(e.reason, status.HTTP_500_INTERNAL_SERVER_ERROR)
    return {"transcription": [s.to_dict() for s in segments], "language": language}


@router.post("/api/translate")
def translate(body: TranslateRequest, request: Request):
    texts = body.texts if body.texts is not None else ([body.text] if body.text else None)
    if not texts or not body.targetLang:
        return _error("Missing required parameters", status.HTTP_400_BAD_REQUEST)
    try:
        translator = make_translator(_settings(request))
        translations = translator(texts, body.targetLang)
    except TranslationFailed as e:
        logger.error("Translation error: %s", e.reason)
        return _error("Failed to translate text", status.HTTP_500_INTERNAL_SERVER_ERROR, e.reason)
    return {"translations": translations}


@router.post("/api/dub")
def dub_audio(body: DubRequest, request: Request):
    if not body.transcription or not body.translatedTranscription or not body.audioPath:
        return _error("Missing required parameters", status.HTTP_400_BAD_REQUEST)
    settings = _settings(request)
    try:
        transcript = [TranscriptSegment.from_dict(d) for d in body.transcription]
        translated = [TranscriptSegment.from_dict(d) for d in body.translatedTranscription]
    except (KeyError, TypeError, ValueError) as e:
        return _error("Invalid transcript segment", status.HTTP_400_BAD_REQUEST, str(e))

    source = resolve_audio_path(settings, body.audioPath)
    try:
        result = run_dubbing_job(transcript, translated, source, settings)
    except InvalidDubbingRequest as e:
        return _error(e.reason, status.HTTP_400_BAD_REQUEST)
    except DubbingJobFailed as e:
        logger.error("Error in dubbing route: %s", e.reason)
        return _error(
            "Failed to process dubbing request", status.HTTP_500_INTERNAL_SERVER_ERROR, e.reason
        )
    finally:
        cleanup_audio_folders(settings.audio_dir, settings.max_audio_dir_bytes)

    payload = result.to_dict(audio_url=audio_url(result.dubbed_audio_path))
    payload["streamUrl"] = f"/api/serve-audio?f={os.path.basename(result.dubbed_audio_path)}"
    return payload


@router.get("/api/serve-audio")
def serve_audio(
    request: Request,
    f: Optional[str] = None,
    range_header: Optional[str] = Header(default=None, alias="Range"),
):
    if not f:
        return _error("Missing file parameter", status.HTTP_400_BAD_REQUEST)
    path = Path(resolve_audio_path(_settings(request), f))
    if not path.is_file():
        return _error("File not found", status.HTTP_404_NOT_FOUND)

    file_size = path.stat().st_size
    media_type = mimetypes.guess_type(path.name)[0] or "audio/mpeg"
    headers = {"Accept-Ranges": "bytes", "Cache-Control": "public, max-age=3600"}

    if range_header:
        try:
            start, end = parse_byte_range(range_header, file_size)
        except _RangeParseError as exc:
            raise HTTPException(
                status_code=status.HTTP_416_REQUESTED_RANGE_NOT_SATISFIABLE,
                detail="Requested range not satisfiable",
                headers={"Content-Range": f"bytes */{file_size}"},
            ) from exc
        status_code = status.HTTP_206_PARTIAL_CONTENT
        headers["Content-Range"] = f"bytes {start}-{end}/{file_size}"
    else:
        start, end = 0, file_size - 1
        status_code = status.HTTP_200_OK

    headers["Content-Length"] = str(max(end - start + 1, 0))
    return StreamingResponse(
        _iter_file_chunks(path, start, end),
        status_code=status_code,
        media_type=media_type,
        headers=headers,
    )


def create_app(settings: Settings | None = None) -> FastAPI:
    settings = settings or load_settings()
    app = FastAPI(title="DubTube")
    app.state.settings = settings
    app.state.extraction_gate = ExtractionGate(settings.max_ytdlp_concurrency)
    app.include_router(router)
    return app
