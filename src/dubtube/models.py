"""
Data models for the dubbing pipeline.
"""

from dataclasses import dataclass, field
from enum import Enum


@dataclass
class TranscriptSegment:
    """A diarized transcript segment, optionally annotated with its translation."""

    start: float  # seconds
    end: float  # seconds
    text: str
    speaker: str = "Unknown"
    translation: str | None = None

    @property
    def duration(self) -> float:
        return self.end - self.start

    @property
    def spoken_text(self) -> str:
        """Text to synthesize: the translation when present, else the original."""
        return self.translation or self.text

    @classmethod
    def from_dict(cls, data: dict) -> "TranscriptSegment":
        speaker = data.get("speaker")
        return cls(
            start=float(data["start"]),
            end=float(data["end"]),
            text=str(data.get("text", "")),
            speaker=str(speaker) if speaker not in (None, "") else "Unknown",
            translation=data.get("translation"),
        )

    def to_dict(self) -> dict:
        out = {"start": self.start, "end": self.end, "text": self.text, "speaker": self.speaker}
        if self.translation is not None:
            out["translation"] = self.translation
        return out


@dataclass
class SpeakerProfile:
    """Per-job aggregate of one speaker's segments."""

    speaker_id: str
    total_speaking_seconds: float = 0.0
    segments: list[TranscriptSegment] = field(default_factory=list)


class VoiceMode(str, Enum):
    CLONED = "clone"
    POOLED = "default"


@dataclass(frozen=True)
class VoiceAssignment:
    """Voice chosen for a speaker. An empty voice_id means the speaker stays voiceless."""

    speaker_id: str
    mode: VoiceMode
    voice_id: str
    total_speaking_seconds: float = 0.0
    source_clip_path: str | None = None

    @property
    def is_voiceless(self) -> bool:
        return not self.voice_id

    def to_dict(self) -> dict:
        out = {
            "type": self.mode.value,
            "voiceId": self.voice_id,
            "duration": self.total_speaking_seconds,
        }
        if self.source_clip_path:
            out["audioForCloning"] = self.source_clip_path
        return out


class JobState(str, Enum):
    START = "start"
    VOICES_ASSIGNED = "voices_assigned"
    SEGMENTS_SYNTHESIZED = "segments_synthesized"
    CONCATENATED = "concatenated"
    GLOBALLY_NORMALIZED = "globally_normalized"
    DONE = "done"
    ERRORED = "errored"


@dataclass
class DubbingJobResult:
    """Terminal output of a dubbing job."""

    per_speaker_durations: dict[str, float]
    voice_assignments: dict[str, VoiceAssignment]
    dubbed_audio_path: str
    status_message: str
    skipped_segments: list[int] = field(default_factory=list)
    speaker_segments: dict[str, list[TranscriptSegment]] = field(default_factory=dict)

    @property
    def is_partial(self) -> bool:
        return bool(self.skipped_segments)

    def to_dict(self, audio_url: str | None = None) -> dict:
        return {
            "speakerDurations": dict(self.per_speaker_durations),
            "speakerVoices": {k: v.to_dict() for k, v in self.voice_assignments.items()},
            "speakerSegments": {
                k: [s.to_dict() for s in segs] for k, segs in self.speaker_segments.items()
            },
            "dubbedAudioUrl": audio_url or self.dubbed_audio_path,
            "skippedSegments": list(self.skipped_segments),
            "message": self.status_message,
        }
