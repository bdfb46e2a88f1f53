"""
Per-speaker voice assignment: clone heavy speakers, pool the rest.
"""

import logging
import os
import re
from collections.abc import Callable, Sequence

from .config import CLONE_LABEL_PREFIX, CLONE_THRESHOLD_SECS, DEFAULT_VOICES
from .errors import CloningFailed, ConcatenationFailed, ExtractionFailed
from .io_ffmpeg import concat_clips, ensure_dir, extract_segment
from .models import SpeakerProfile, TranscriptSegment, VoiceAssignment, VoiceMode

logger = logging.getLogger("dubtube")

# (reference clip path, label) -> voice id
CloneFunc = Callable[[str, str], str]

_UNSAFE_RE = re.compile(r"[^0-9A-Za-z_-]+")


def safe_name(speaker_id: str) -> str:
    """Speaker id usable inside a file name."""
    return _UNSAFE_RE.sub("_", speaker_id).strip("_") or "speaker"


def aggregate_speakers(transcript: Sequence[TranscriptSegment]) -> dict[str, SpeakerProfile]:
    """Group segments by speaker, keeping first-seen speaker order and segment order."""
    profiles: dict[str, SpeakerProfile] = {}
    for seg in transcript:
        profile = profiles.get(seg.speaker)
        if profile is None:
            profile = profiles[seg.speaker] = SpeakerProfile(speaker_id=seg.speaker)
        profile.total_speaking_seconds += seg.duration
        profile.segments.append(seg)
    return profiles


def select_reference_segments(
    profile: SpeakerProfile, threshold: float = CLONE_THRESHOLD_SECS
) -> list[TranscriptSegment]:
    """Leading segments of a speaker until at least ``threshold`` seconds are collected."""
    selected: list[TranscriptSegment] = []
    total = 0.0
    for seg in profile.segments:
        if total >= threshold:
            break
        selected.append(seg)
        total += seg.duration
    return selected


def build_reference_clip(
    source_audio: str,
    segments: Sequence[TranscriptSegment],
    speaker_id: str,
    scratch_dir: str,
    job_id: str,
) -> str:
    """Cut the given segments out of the source and join them into one cloning sample."""
    ensure_dir(scratch_dir)
    tag = safe_name(speaker_id)
    parts: list[str] = []
    for i, seg in enumerate(segments):
        part = os.path.join(scratch_dir, f"{tag}_seg{i}_{job_id}.mp3")
        parts.append(extract_segment(source_audio, seg.start, seg.end, part))
    out = os.path.join(scratch_dir, f"{tag}_cloning_{job_id}.mp3")
    list_path = os.path.join(scratch_dir, f"{tag}_concat_list_{job_id}.txt")
    return concat_clips(parts, out, list_path=list_path)


def _clone_speaker(
    profile: SpeakerProfile,
    source_audio: str,
    clone_func: CloneFunc,
    scratch_dir: str,
    job_id: str,
    threshold: float,
) -> VoiceAssignment:
    speaker = profile.speaker_id
    reference: str | None = None
    voice_id = ""
    try:
        segments = select_reference_segments(profile, threshold)
        reference = build_reference_clip(source_audio, segments, speaker, scratch_dir, job_id)
        voice_id = clone_func(reference, f"{CLONE_LABEL_PREFIX} {speaker}")
        logger.info("Cloned voice for speaker %s -> %s", speaker, voice_id)
    except (ExtractionFailed, ConcatenationFailed) as e:
        logger.error("Could not build cloning sample for speaker %s: %s", speaker, e.reason)
    except CloningFailed as e:
        logger.error("Voice cloning failed for speaker %s: %s", speaker, e.reason)
    return VoiceAssignment(
        speaker_id=speaker,
        mode=VoiceMode.CLONED,
        voice_id=voice_id or "",
        total_speaking_seconds=profile.total_speaking_seconds,
        source_clip_path=reference,
    )


def assign_voices(
    transcript: Sequence[TranscriptSegment],
    source_audio: str,
    clone_func: CloneFunc,
    *,
    scratch_dir: str,
    job_id: str,
    threshold: float = CLONE_THRESHOLD_SECS,
    voice_pool: Sequence[str] = DEFAULT_VOICES,
    profiles: dict[str, SpeakerProfile] | None = None,
) -> dict[str, VoiceAssignment]:
    """
    Decide a voice for every speaker in the transcript.

    Speakers with at least ``threshold`` seconds of speech get a voice cloned from their own
    audio; a failed clone leaves them with an empty voice id. Everyone else takes the next
    pool voice, round-robin in first-seen order. The counter belongs to this call only.
    """
    if not voice_pool:
        raise ValueError("voice_pool must not be empty")
    if profiles is None:
        profiles = aggregate_speakers(transcript)

    assignments: dict[str, VoiceAssignment] = {}
    pool_index = 0
    for speaker, profile in profiles.items():
        if profile.total_speaking_seconds >= threshold:
            assignments[speaker] = _clone_speaker(
                profile, source_audio, clone_func, scratch_dir, job_id, threshold
            )
        else:
            voice_id = voice_pool[pool_index % len(voice_pool)]
            pool_index += 1
            assignments[speaker] = VoiceAssignment(
                speaker_id=speaker,
                mode=VoiceMode.POOLED,
                voice_id=voice_id,
                total_speaking_seconds=profile.total_speaking_seconds,
            )
            logger.info(
                "Speaker %s (%.1fs) uses default voice %s",
                speaker,
                profile.total_speaking_seconds,
                voice_id,
            )
    return assignments
