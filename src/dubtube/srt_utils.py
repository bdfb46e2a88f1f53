"""
SRT and JSON reading/writing for transcripts.
"""

import json
import logging
import re
from collections.abc import Sequence

from .models import TranscriptSegment

logger = logging.getLogger("dubtube")

_TS_LINE_RE = re.compile(r"(\d\d:\d\d:\d\d[,.]\d\d\d)\s+--\>\s+(\d\d:\d\d:\d\d[,.]\d\d\d)")
# "[SPEAKER_01] text" carries the speaker label inside SRT cues
_SPEAKER_RE = re.compile(r"^\[([^\]]+)\]\s*(.*)$")


def format_timestamp(t: float) -> str:
    total_ms = int(round(t * 1000))
    h, rem = divmod(total_ms, 3_600_000)
    m, rem = divmod(rem, 60_000)
    s, ms = divmod(rem, 1000)
    return f"{h:02}:{m:02}:{s:02},{ms:03}"


def write_srt(segments: Sequence[TranscriptSegment], path: str, use_translation: bool = True) -> None:
    """Write segments to SRT file, prefixing each cue with its speaker."""
    with open(path, "w", encoding="utf-8") as f:
        for i, s in enumerate(segments, 1):
            text = s.spoken_text if use_translation else s.text
            f.write(
                f"{i}\n{format_timestamp(s.start)} --> {format_timestamp(s.end)}\n"
                f"[{s.speaker}] {text}\n\n"
            )


def parse_srt(path: str) -> list[TranscriptSegment]:
    """Parse SRT file into segments."""

    def parse_ts(ts: str) -> float:
        h, m, rest = ts.split(":")
        s, ms = re.split(r"[,.]", rest)
        return int(h) * 3600 + int(m) * 60 + int(s) + int(ms) / 1000.0

    with open(path, encoding="utf-8") as f:
        raw = f.read()

    blocks = re.split(r"\n\s*\n", raw.strip(), flags=re.M)
    out: list[TranscriptSegment] = []
    for b in blocks:
        lines = [ln for ln in b.splitlines() if ln.strip()]
        if lines and re.match(r"^\d+$", lines[0].strip()):
            lines = lines[1:]
        if not lines:
            continue
        m = _TS_LINE_RE.match(lines[0])
        if not m:
            logger.warning("Skipping invalid block: %r", b[:80])
            continue
        text = " ".join(ln.strip() for ln in lines[1:])
        speaker = "Unknown"
        sm = _SPEAKER_RE.match(text)
        if sm:
            speaker, text = sm.group(1), sm.group(2)
        out.append(
            TranscriptSegment(
                start=parse_ts(m.group(1)), end=parse_ts(m.group(2)), text=text, speaker=speaker
            )
        )
    return out


def write_transcript_json(segments: Sequence[TranscriptSegment], path: str) -> None:
    with open(path, "w", encoding="utf-8") as f:
        json.dump([s.to_dict() for s in segments], f, ensure_ascii=False, indent=2)


def read_transcript(path: str) -> list[TranscriptSegment]:
    """Load a transcript from .srt or a JSON list of {start, end, text, speaker, translation}."""
    if path.lower().endswith(".srt"):
        return parse_srt(path)
    with open(path, encoding="utf-8") as f:
        data = json.load(f)
    if isinstance(data, dict):
        data = data.get("transcription") or data.get("segments") or []
    return [TranscriptSegment.from_dict(d) for d in data]
