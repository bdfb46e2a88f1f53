"""
YouTube audio extraction with yt-dlp.

Downloads go through a process-wide gate so only a few yt-dlp processes run at once;
callers wait for a slot instead of being rejected. Each download tries an ordered list of
attempt configurations until one succeeds.
"""

import base64
import binascii
import logging
import os
import random
import re
import threading
import uuid
from dataclasses import dataclass, field
from urllib.parse import quote

from .errors import AudioDownloadFailed
from .io_ffmpeg import ensure_dir, run_command

logger = logging.getLogger("dubtube")

VIDEO_ID_RE = re.compile(r"^[A-Za-z0-9_-]{11}$")
YTDLP_TIMEOUT_SECS = 600.0
COOKIES_MODE = 0o600


class ExtractionGate:
    """Counting semaphore that also reports how many callers are active or waiting."""

    def __init__(self, max_concurrency: int = 1):
        self.max_concurrency = max(1, int(max_concurrency))
        self._cond = threading.Condition()
        self._active = 0
        self._waiting = 0

    def acquire(self) -> None:
        with self._cond:
            self._waiting += 1
            try:
                while self._active >= self.max_concurrency:
                    self._cond.wait()
            finally:
                self._waiting -= 1
            self._active += 1

    def release(self) -> None:
        with self._cond:
            self._active = max(0, self._active - 1)
            self._cond.notify()

    def __enter__(self) -> "ExtractionGate":
        self.acquire()
        return self

    def __exit__(self, *exc) -> None:
        self.release()

    @property
    def active_count(self) -> int:
        return self._active

    @property
    def queue_length(self) -> int:
        return self._waiting


@dataclass(frozen=True)
class ExtractionAttempt:
    name: str
    extra_args: tuple[str, ...] = field(default_factory=tuple)


def build_extraction_attempts(
    cookies_path: str | None = None, proxy_url: str | None = None
) -> list[ExtractionAttempt]:
    """Ordered attempts, most capable first; options that are not configured are left out."""
    attempts: list[ExtractionAttempt] = []
    cookies = ("--cookies", cookies_path) if cookies_path else ()
    proxy = ("--proxy", proxy_url) if proxy_url else ()
    if cookies and proxy:
        attempts.append(ExtractionAttempt("cookies+proxy", cookies + proxy))
    if proxy:
        attempts.append(ExtractionAttempt("proxy", proxy))
    if cookies:
        attempts.append(ExtractionAttempt("cookies", cookies))
    attempts.append(ExtractionAttempt("plain"))
    return attempts


def ensure_yt_cookies(encoded: str | None, path: str = "/tmp/yt-cookies.txt") -> str | None:
    """
    Materialize a Base64-encoded cookies.txt once per process and return its path.
    Returns None when no cookies are configured. The contents are never logged.
    """
    absolute = os.path.abspath(path)
    if os.path.exists(absolute):
        return absolute
    if not encoded:
        return None
    try:
        decoded = base64.b64decode(encoded, validate=True)
    except (binascii.Error, ValueError) as e:
        raise ValueError("YTDLP_COOKIES_B64 is not valid Base64.") from e
    try:
        fd = os.open(absolute, os.O_WRONLY | os.O_CREAT | os.O_EXCL, COOKIES_MODE)
    except FileExistsError:
        # another worker wrote it first
        return absolute
    with os.fdopen(fd, "wb") as f:
        f.write(decoded)
    os.chmod(absolute, COOKIES_MODE)
    return absolute


def random_proxy_url(
    host: str | None,
    username: str | None,
    password: str | None,
    port_start: int | None,
    port_end: int | None,
) -> str | None:
    """HTTP proxy URL on a random port in [port_start, port_end], or None if unconfigured."""
    if not host or not username or not password or not port_start or not port_end:
        return None
    if port_start > port_end:
        return None
    port = random.randint(port_start, port_end)
    return f"http://{quote(username, safe='')}:{quote(password, safe='')}@{host}:{port}"


def extract_youtube_audio(
    video_id: str,
    out_dir: str,
    *,
    gate: ExtractionGate | None = None,
    cookies_path: str | None = None,
    proxy_url: str | None = None,
    timeout: float = YTDLP_TIMEOUT_SECS,
) -> str:
    """Download the audio of a YouTube video as MP3 and return the file path."""
    if not video_id or not VIDEO_ID_RE.match(video_id):
        raise ValueError(f"invalid YouTube video id: {video_id!r}")
    ensure_dir(out_dir)
    out_path = os.path.join(out_dir, f"{uuid.uuid4()}.mp3")
    url = f"https://www.youtube.com/watch?v={video_id}"
    attempts = build_extraction_attempts(cookies_path, proxy_url)

    gate = gate or ExtractionGate(1)
    last_error = "no attempts were made"
    with gate:
        for attempt in attempts:
            cmd = [
                "yt-dlp",
                url,
                "-x",
                "--audio-format",
                "mp3",
                "--audio-quality",
                "0",
                "-o",
                out_path,
                "--no-playlist",
                "--no-warnings",
                "--quiet",
                *attempt.extra_args,
            ]
            logger.info("Extracting audio for %s (attempt: %s)", video_id, attempt.name)
            result = run_command(cmd, timeout=timeout)
            if result.ok and os.path.isfile(out_path):
                logger.info("Extracted audio for %s -> %s", video_id, out_path)
                return out_path
            last_error = result.describe() if not result.ok else "yt-dlp produced no file"
            logger.warning("Attempt %s failed for %s: %s", attempt.name, video_id, last_error)

    raise AudioDownloadFailed(f"Failed to extract audio: {last_error}")
