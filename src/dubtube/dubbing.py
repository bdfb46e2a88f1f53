"""
Dubbing orchestrator: turn a translated, diarized transcript into one audio track
that lines up with the source audio.
"""

import logging
import os
import uuid
from collections.abc import Sequence
from concurrent.futures import ThreadPoolExecutor

from pydub import AudioSegment
from pydub.exceptions import CouldntEncodeError
from tqdm import tqdm

from .config import (
    AUDIO_BITRATE,
    CHANNELS,
    SAMPLE_RATE,
    SEGMENT_TOLERANCE_SECS,
    TRACK_TOLERANCE_SECS,
    Settings,
)
from .elevenlabs import SynthFunc, make_cloner_elevenlabs, make_synth_elevenlabs
from .errors import (
    DubbingError,
    DubbingJobFailed,
    InvalidDubbingRequest,
    NormalizationFailed,
    SynthesisFailed,
)
from .io_ffmpeg import concat_clips, ensure_dir, probe_duration
from .models import DubbingJobResult, JobState, TranscriptSegment, VoiceAssignment
from .normalize import normalize_duration
from .voices import CloneFunc, aggregate_speakers, assign_voices, safe_name

logger = logging.getLogger("dubtube")


def validate_request(
    transcript: Sequence[TranscriptSegment],
    translated_transcript: Sequence[TranscriptSegment],
    source_audio: str | None,
) -> None:
    """Reject a request before any work is done."""
    if not transcript or not translated_transcript or not source_audio:
        raise InvalidDubbingRequest("Missing required parameters")
    if len(transcript) != len(translated_transcript):
        raise InvalidDubbingRequest(
            f"transcript has {len(transcript)} segments but translation has "
            f"{len(translated_transcript)}"
        )
    for i, seg in enumerate(transcript):
        if seg.end <= seg.start or seg.start < 0:
            raise InvalidDubbingRequest(f"segment {i} has invalid timing {seg.start}..{seg.end}")
    if not os.path.isfile(source_audio):
        raise InvalidDubbingRequest(f"source audio not found: {source_audio}")


def write_silence(duration: float, out_path: str) -> str:
    """Write ``duration`` seconds of silence in the pipeline's encode settings."""
    silent = AudioSegment.silent(duration=int(round(duration * 1000)), frame_rate=SAMPLE_RATE)
    silent.set_channels(CHANNELS).export(out_path, format="mp3", bitrate=AUDIO_BITRATE).close()
    return out_path


def _advance(job_id: str, current: JobState, nxt: JobState) -> JobState:
    logger.info("[job %s] %s -> %s", job_id, current.value, nxt.value)
    return nxt


class _SegmentRenderer:
    """Synthesize and fit one segment; failures are reported, not raised."""

    def __init__(
        self,
        transcript: Sequence[TranscriptSegment],
        translated: Sequence[TranscriptSegment],
        voices: dict[str, VoiceAssignment],
        synth_func: SynthFunc,
        tts_dir: str,
        job_id: str,
    ):
        self.transcript = transcript
        self.translated = translated
        self.voices = voices
        self.synth_func = synth_func
        self.tts_dir = tts_dir
        self.job_id = job_id

    def clip_path(self, i: int, suffix: str = "") -> str:
        tag = safe_name(self.transcript[i].speaker)
        return os.path.join(self.tts_dir, f"{tag}_seg{i}_{self.job_id}{suffix}.mp3")

    def __call__(self, i: int) -> tuple[int, str | None]:
        original = self.transcript[i]
        speaker = original.speaker
        voice = self.voices.get(speaker)
        if voice is None or voice.is_voiceless:
            logger.warning("Segment %d skipped: speaker %s has no voice", i, speaker)
            return i, None

        raw = self.clip_path(i)
        fitted = self.clip_path(i, "_adjusted")
        try:
            self.synth_func(self.translated[i].spoken_text, voice.voice_id, raw)
            normalize_duration(raw, original.duration, fitted, tolerance=SEGMENT_TOLERANCE_SECS)
        except (SynthesisFailed, NormalizationFailed) as e:
            logger.error(
                "TTS generation or adjustment failed for segment %d (speaker %s): %s",
                i,
                speaker,
                e.reason,
            )
            return i, None
        return i, fitted


def _render_segments(
    renderer: _SegmentRenderer, count: int, workers: int
) -> list[tuple[int, str | None]]:
    if workers <= 1:
        return [renderer(i) for i in tqdm(range(count), desc="TTS segments")]
    # map() yields in submission order, so transcript order survives the pool
    with ThreadPoolExecutor(max_workers=workers) as pool:
        return list(tqdm(pool.map(renderer, range(count)), total=count, desc="TTS segments"))


def _match_source_duration(
    track: str, source_audio: str, settings: Settings, job_id: str
) -> tuple[str, bool]:
    """Pad or trim the dubbed track to the source duration. Returns (path, adjusted)."""
    source_dur = probe_duration(source_audio)
    dubbed_dur = probe_duration(track)
    logger.info("[dur] source = %.3fs, dubbed = %.3fs", source_dur, dubbed_dur)
    if abs(dubbed_dur - source_dur) <= TRACK_TOLERANCE_SECS:
        return track, False

    final = os.path.join(settings.audio_dir, f"dubbed_{job_id}_final.mp3")
    normalize_duration(
        track, source_dur, final, tolerance=TRACK_TOLERANCE_SECS, fit_mode="pad-or-trim"
    )
    final_dur = probe_duration(final)
    if abs(final_dur - source_dur) > settings.final_verify_tolerance:
        raise NormalizationFailed(
            f"final track is {final_dur:.3f}s but source is {source_dur:.3f}s"
        )
    logger.info("[dur] final = %.3fs (target %.3fs)", final_dur, source_dur)
    return final, True


def dub(
    transcript: Sequence[TranscriptSegment],
    translated_transcript: Sequence[TranscriptSegment],
    source_audio: str,
    synth_func: SynthFunc,
    clone_func: CloneFunc,
    settings: Settings | None = None,
    *,
    job_id: str | None = None,
) -> DubbingJobResult:
    """
    Run one dubbing job.

    Segment-level problems (synthesis or fitting failures, voiceless speakers) skip the
    segment; with ``settings.fill_skipped_with_silence`` its slot is kept as silence so later
    segments stay aligned. Failures that leave no usable track raise ``DubbingJobFailed``.
    """
    settings = settings or Settings()
    validate_request(transcript, translated_transcript, source_audio)
    job_id = job_id or uuid.uuid4().hex
    state = JobState.START

    try:
        ensure_dir(settings.tts_dir)
        profiles = aggregate_speakers(transcript)
        voices = assign_voices(
            transcript,
            source_audio,
            clone_func,
            scratch_dir=settings.temp_dir,
            job_id=job_id,
            profiles=profiles,
        )
        state = _advance(job_id, state, JobState.VOICES_ASSIGNED)

        renderer = _SegmentRenderer(
            transcript, translated_transcript, voices, synth_func, settings.tts_dir, job_id
        )
        clips: list[str] = []
        skipped: list[int] = []
        for i, clip in _render_segments(renderer, len(transcript), settings.synthesis_workers):
            if clip is not None:
                clips.append(clip)
                continue
            skipped.append(i)
            if settings.fill_skipped_with_silence:
                try:
                    clips.append(write_silence(transcript[i].duration, renderer.clip_path(i, "_silence")))
                except (CouldntEncodeError, OSError) as e:
                    logger.error("Could not write silence for skipped segment %d: %s", i, e)
        if len(skipped) == len(transcript):
            raise DubbingJobFailed("no dubbed segments were produced", state=state.value)
        if skipped:
            logger.warning(
                "Dubbing completed with %d skipped segments: %s", len(skipped), skipped
            )
        state = _advance(job_id, state, JobState.SEGMENTS_SYNTHESIZED)

        track = concat_clips(
            clips,
            os.path.join(settings.audio_dir, f"dubbed_{job_id}.mp3"),
            list_path=os.path.join(settings.audio_dir, f"tts_concat_list_{job_id}.txt"),
        )
        state = _advance(job_id, state, JobState.CONCATENATED)

        final, adjusted = _match_source_duration(track, source_audio, settings, job_id)
        state = _advance(job_id, state, JobState.GLOBALLY_NORMALIZED)
    except DubbingJobFailed:
        logger.error("[job %s] %s -> %s", job_id, state.value, JobState.ERRORED.value)
        raise
    except DubbingError as e:
        logger.error("[job %s] %s -> %s: %s", job_id, state.value, JobState.ERRORED.value, e.reason)
        raise DubbingJobFailed(e.reason, state=state.value) from e

    message = "Dubbed audio generation complete"
    message += " and final adjustment applied." if adjusted else "."
    if skipped:
        message += f" {len(skipped)} of {len(transcript)} segments could not be dubbed."
    _advance(job_id, state, JobState.DONE)

    return DubbingJobResult(
        per_speaker_durations={k: p.total_speaking_seconds for k, p in profiles.items()},
        voice_assignments=voices,
        dubbed_audio_path=final,
        status_message=message,
        skipped_segments=skipped,
        speaker_segments={k: list(p.segments) for k, p in profiles.items()},
    )


def run_dubbing_job(
    transcript: Sequence[TranscriptSegment],
    translated_transcript: Sequence[TranscriptSegment],
    source_audio: str,
    settings: Settings,
) -> DubbingJobResult:
    """Run ``dub`` with the ElevenLabs adapters configured from ``settings``."""
    synth = make_synth_elevenlabs(
        settings.elevenlabs_api_key, settings.elevenlabs_model_id, settings.elevenlabs_output_format
    )
    clone = make_cloner_elevenlabs(settings.elevenlabs_api_key)
    return dub(transcript, translated_transcript, source_audio, synth, clone, settings)
