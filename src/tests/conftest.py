"""
Shared fixtures: an in-memory stand-in for ffmpeg/ffprobe that tracks clip durations.
"""

import os

import pytest

from dubtube.config import Settings
from dubtube.errors import ProbeFailed


class FakeMedia:
    """Records a duration per file path and implements the media operations on top of it."""

    def __init__(self):
        self.durations: dict[str, float] = {}
        self.concat_calls: list[list[str]] = []
        self.tempo_calls: list[float] = []
        self.extract_calls: list[tuple[float, float]] = []

    def _key(self, path: str) -> str:
        return os.path.abspath(path)

    def add(self, path: str, duration: float) -> str:
        os.makedirs(os.path.dirname(os.path.abspath(path)), exist_ok=True)
        with open(path, "wb") as f:
            f.write(b"\xff\xfb" + str(duration).encode())
        self.durations[self._key(path)] = duration
        return path

    def duration(self, path: str) -> float:
        return self.durations[self._key(path)]

    # media operations

    def probe_duration(self, path: str, timeout: float = 10.0) -> float:
        if self._key(path) not in self.durations:
            raise ProbeFailed(f"file not found: {path}")
        return self.duration(path)

    def extract_segment(self, source: str, start: float, end: float, out_path: str) -> str:
        self.extract_calls.append((start, end))
        return self.add(out_path, end - start)

    def concat_clips(self, clips: list[str], out_path: str, list_path: str | None = None) -> str:
        from dubtube.errors import ConcatenationFailed

        if not clips:
            raise ConcatenationFailed("no clips to concatenate")
        self.concat_calls.append(list(clips))
        return self.add(out_path, sum(self.duration(c) for c in clips))

    def pad_with_silence(self, in_path: str, out_path: str, pad_secs: float) -> str:
        return self.add(out_path, self.duration(in_path) + pad_secs)

    def apply_tempo(self, in_path: str, out_path: str, factor: float) -> str:
        self.tempo_calls.append(factor)
        return self.add(out_path, self.duration(in_path) / factor)

    def trim_audio(self, in_path: str, out_path: str, duration: float) -> str:
        return self.add(out_path, min(self.duration(in_path), duration))

    def copy_clip(self, in_path: str, out_path: str) -> str:
        return self.add(out_path, self.duration(in_path))

    def write_silence(self, duration: float, out_path: str) -> str:
        return self.add(out_path, duration)


@pytest.fixture
def fake_media(monkeypatch):
    media = FakeMedia()
    patches = {
        "dubtube.normalize": [
            "probe_duration",
            "pad_with_silence",
            "apply_tempo",
            "trim_audio",
            "copy_clip",
        ],
        "dubtube.voices": ["extract_segment", "concat_clips"],
        "dubtube.dubbing": ["concat_clips", "probe_duration", "write_silence"],
    }
    for module, names in patches.items():
        for name in names:
            monkeypatch.setattr(f"{module}.{name}", getattr(media, name))
    return media


@pytest.fixture
def settings(tmp_path):
    return Settings(audio_dir=str(tmp_path / "audio"))


class FakeSynth:
    """Synthesizer that writes a clip whose duration depends on the text."""

    def __init__(self, media: FakeMedia, durations: dict[str, float] | None = None, default: float = 1.0):
        self.media = media
        self.durations = durations or {}
        self.default = default
        self.calls: list[tuple[str, str]] = []
        self.fail_texts: set[str] = set()

    def __call__(self, text: str, voice_id: str, out_path: str) -> None:
        from dubtube.errors import SynthesisFailed

        self.calls.append((text, voice_id))
        if text in self.fail_texts:
            raise SynthesisFailed(f"rejected {text!r}")
        self.media.add(out_path, self.durations.get(text, self.default))


@pytest.fixture
def fake_synth(fake_media):
    return FakeSynth(fake_media)
