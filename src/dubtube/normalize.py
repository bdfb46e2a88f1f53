"""
Fit a clip to a target duration by silence padding, tempo scaling or trimming.
"""

import logging
from typing import Literal

from .config import MAX_ATEMPO, MIN_ATEMPO, SEGMENT_TOLERANCE_SECS
from .errors import NormalizationFailed, ProbeFailed
from .io_ffmpeg import apply_tempo, copy_clip, pad_with_silence, probe_duration, trim_audio

logger = logging.getLogger("dubtube")

FitMode = Literal["pad-or-speedup", "pad-or-trim"]


def compute_atempo(current: float, target: float) -> float:
    """Speed-up factor that fits ``current`` seconds into ``target``, clamped to 0.5..2.0."""
    if target <= 0:
        return MAX_ATEMPO
    return min(max(current / target, MIN_ATEMPO), MAX_ATEMPO)


def normalize_duration(
    clip: str,
    target: float,
    out_path: str,
    *,
    tolerance: float = SEGMENT_TOLERANCE_SECS,
    fit_mode: FitMode = "pad-or-speedup",
) -> str:
    """
    Write a version of ``clip`` lasting ``target`` seconds to ``out_path``.

    Shorter clips get trailing silence, which never distorts speech. Longer clips are
    sped up (bounded, so the result may still overrun when more than 2x is needed) or,
    with ``fit_mode="pad-or-trim"``, cut at the target.
    """
    if target <= 0:
        raise NormalizationFailed(f"target duration must be positive, got {target}")
    try:
        current = probe_duration(clip)
    except ProbeFailed as e:
        raise NormalizationFailed(f"probe: {e.reason}") from e

    diff = current - target
    if abs(diff) < tolerance:
        logger.debug("%s already %.3fs (target %.3fs), copying", clip, current, target)
        return copy_clip(clip, out_path)

    if diff < 0:
        logger.debug("Padding %s by %.3fs", clip, -diff)
        return pad_with_silence(clip, out_path, -diff)

    if fit_mode == "pad-or-trim":
        logger.debug("Trimming %s from %.3fs to %.3fs", clip, current, target)
        return trim_audio(clip, out_path, target)

    factor = compute_atempo(current, target)
    if factor < current / target:
        logger.warning(
            "Clip %s needs %.2fx to fit %.3fs; capped at %.1fx", clip, current / target, target, factor
        )
    return apply_tempo(clip, out_path, factor)
