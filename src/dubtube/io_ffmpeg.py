"""
Audio processing utilities using ffmpeg/ffprobe.

Every operation is a blocking external process. Re-encoding operations write the
fixed MP3 settings from ``config`` so their output can be joined by stream copy.
"""

import logging
import os
import shutil
import subprocess
import uuid
from dataclasses import dataclass
from pathlib import Path

from .config import (
    AUDIO_BITRATE,
    AUDIO_CODEC,
    CHANNEL_LAYOUT,
    CHANNELS,
    FFMPEG_TIMEOUT_SECS,
    PROBE_TIMEOUT_SECS,
    SAMPLE_RATE,
)
from .errors import (
    ConcatenationFailed,
    ExtractionFailed,
    NormalizationFailed,
    ProbeFailed,
    ProbeTimeout,
)

logger = logging.getLogger("dubtube")


@dataclass
class CommandResult:
    """Outcome of an external command: exit code, captured output, or why it never finished."""

    cmd: list[str]
    returncode: int | None
    stdout: str = ""
    stderr: str = ""
    timed_out: bool = False
    spawn_error: str | None = None

    @property
    def ok(self) -> bool:
        return self.returncode == 0 and not self.timed_out and self.spawn_error is None

    def describe(self) -> str:
        prog = self.cmd[0] if self.cmd else "command"
        if self.spawn_error is not None:
            return f"{prog} could not be started: {self.spawn_error}"
        if self.timed_out:
            return f"{prog} timed out"
        tail = (self.stderr or self.stdout).strip()[-300:]
        return f"{prog} exited with code {self.returncode}" + (f": {tail}" if tail else "")


def run_command(cmd: list[str], *, timeout: float | None = None) -> CommandResult:
    """Run a command, never raising for process failures."""
    logger.debug("Running: %s", " ".join(map(str, cmd)))
    try:
        proc = subprocess.run(
            cmd,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            text=True,
            check=False,
            timeout=timeout,
        )
    except subprocess.TimeoutExpired:
        return CommandResult(cmd=cmd, returncode=None, timed_out=True)
    except OSError as e:
        return CommandResult(cmd=cmd, returncode=None, spawn_error=str(e))
    return CommandResult(
        cmd=cmd, returncode=proc.returncode, stdout=proc.stdout or "", stderr=proc.stderr or ""
    )


def ensure_dir(path: str) -> None:
    """Ensure directory exists."""
    if path:
        Path(path).mkdir(parents=True, exist_ok=True)


def _encode_args() -> list[str]:
    return ["-ar", str(SAMPLE_RATE), "-ac", str(CHANNELS), "-c:a", AUDIO_CODEC, "-b:a", AUDIO_BITRATE]


def extract_segment(
    source: str, start: float, end: float, out_path: str, timeout: float = FFMPEG_TIMEOUT_SECS
) -> str:
    """Cut [start, end) out of ``source`` without re-encoding."""
    if start < 0 or end <= start:
        raise ValueError(f"invalid time range {start}..{end}")
    ensure_dir(str(Path(out_path).parent))
    cmd = [
        "ffmpeg",
        "-y",
        "-i",
        source,
        "-ss",
        f"{start:.3f}",
        "-to",
        f"{end:.3f}",
        "-c",
        "copy",
        out_path,
    ]
    result = run_command(cmd, timeout=timeout)
    if not result.ok:
        raise ExtractionFailed(result.describe())
    return out_path


def _concat_list_line(path: str) -> str:
    escaped = os.path.abspath(path).replace("'", "'\\''")
    return f"file '{escaped}'"


def concat_clips(
    clips: list[str],
    out_path: str,
    list_path: str | None = None,
    timeout: float = FFMPEG_TIMEOUT_SECS,
) -> str:
    """Join clips in the given order with the concat demuxer (stream copy)."""
    if not clips:
        raise ConcatenationFailed("no clips to concatenate")
    ensure_dir(str(Path(out_path).parent))
    if list_path is None:
        list_path = os.path.join(
            str(Path(out_path).parent), f"concat_list_{uuid.uuid4().hex}.txt"
        )
    try:
        with open(list_path, "w", encoding="utf-8") as f:
            f.write("\n".join(_concat_list_line(c) for c in clips))
            f.write("\n")
    except OSError as e:
        raise ConcatenationFailed(f"could not write concat list: {e}") from e

    cmd = ["ffmpeg", "-y", "-f", "concat", "-safe", "0", "-i", list_path, "-c", "copy", out_path]
    result = run_command(cmd, timeout=timeout)
    try:
        Path(list_path).unlink()
    except OSError:
        pass
    if not result.ok:
        raise ConcatenationFailed(result.describe())
    return out_path


def probe_duration(path: str, timeout: float = PROBE_TIMEOUT_SECS) -> float:
    """Return the container duration of ``path`` in seconds."""
    if not Path(path).is_file():
        raise ProbeFailed(f"file not found: {path}")
    cmd = [
        "ffprobe",
        "-v",
        "error",
        "-show_entries",
        "format=duration",
        "-of",
        "default=noprint_wrappers=1:nokey=1",
        path,
    ]
    result = run_command(cmd, timeout=timeout)
    if result.timed_out:
        raise ProbeTimeout(f"ffprobe timed out after {timeout:.0f}s on {path}")
    if not result.ok:
        raise ProbeFailed(result.describe())
    try:
        return float(result.stdout.strip())
    except ValueError as e:
        raise ProbeFailed(f"unreadable duration {result.stdout.strip()!r} for {path}") from e


def pad_with_silence(
    in_path: str, out_path: str, pad_secs: float, timeout: float = FFMPEG_TIMEOUT_SECS
) -> str:
    """Append ``pad_secs`` of digital silence to the end of a clip."""
    silence = f"anullsrc=channel_layout={CHANNEL_LAYOUT}:sample_rate={SAMPLE_RATE}"
    graph = (
        f"[0:a]aformat=sample_rates={SAMPLE_RATE}:channel_layouts={CHANNEL_LAYOUT}[main];"
        "[main][1:a]concat=n=2:v=0:a=1"
    )
    cmd = [
        "ffmpeg",
        "-y",
        "-i",
        in_path,
        "-f",
        "lavfi",
        "-t",
        f"{pad_secs:.6f}",
        "-i",
        silence,
        "-filter_complex",
        graph,
        *_encode_args(),
        out_path,
    ]
    result = run_command(cmd, timeout=timeout)
    if not result.ok:
        raise NormalizationFailed(f"pad: {result.describe()}")
    return out_path


def apply_tempo(
    in_path: str, out_path: str, factor: float, timeout: float = FFMPEG_TIMEOUT_SECS
) -> str:
    """
    Change playback speed without changing pitch.
    atempo > 1.0 => speed up (shorter), atempo < 1.0 => slow down (longer).
    """
    cmd = ["ffmpeg", "-y", "-i", in_path, "-filter:a", f"atempo={factor:.6f}", *_encode_args(), out_path]
    result = run_command(cmd, timeout=timeout)
    if not result.ok:
        raise NormalizationFailed(f"atempo: {result.describe()}")
    return out_path


def trim_audio(
    in_path: str, out_path: str, duration: float, timeout: float = FFMPEG_TIMEOUT_SECS
) -> str:
    """Keep only the first ``duration`` seconds of a clip."""
    cmd = ["ffmpeg", "-y", "-i", in_path, "-t", f"{duration:.6f}", *_encode_args(), out_path]
    result = run_command(cmd, timeout=timeout)
    if not result.ok:
        raise NormalizationFailed(f"trim: {result.describe()}")
    return out_path


def copy_clip(in_path: str, out_path: str) -> str:
    """Byte copy for clips that already have the right duration."""
    try:
        shutil.copyfile(in_path, out_path)
    except OSError as e:
        raise NormalizationFailed(f"copy: {e}") from e
    return out_path
