"""
Tests for the ffmpeg/ffprobe wrappers, with subprocess.run patched out.
"""

import subprocess

import pytest

from dubtube import io_ffmpeg
from dubtube.errors import ConcatenationFailed, ExtractionFailed, ProbeFailed, ProbeTimeout


class Recorder:
    def __init__(self, returncode=0, stdout="", stderr="", raises=None):
        self.returncode = returncode
        self.stdout = stdout
        self.stderr = stderr
        self.raises = raises
        self.calls = []
        self.files = {}

    def __call__(self, cmd, **kwargs):
        self.calls.append(cmd)
        if "-f" in cmd and "concat" in cmd:
            list_path = cmd[cmd.index("-i") + 1]
            with open(list_path, encoding="utf-8") as f:
                self.files[list_path] = f.read()
        if self.raises is not None:
            raise self.raises
        return subprocess.CompletedProcess(cmd, self.returncode, self.stdout, self.stderr)


@pytest.fixture
def recorder(monkeypatch):
    rec = Recorder()
    monkeypatch.setattr(io_ffmpeg.subprocess, "run", rec)
    return rec


def test_run_command_reports_timeout(recorder):
    recorder.raises = subprocess.TimeoutExpired(cmd=["ffprobe"], timeout=10)

    result = io_ffmpeg.run_command(["ffprobe", "x"], timeout=10)

    assert not result.ok
    assert result.timed_out
    assert result.describe() == "ffprobe timed out"


def test_run_command_reports_spawn_failure(recorder):
    recorder.raises = FileNotFoundError("No such file or directory: 'ffmpeg'")

    result = io_ffmpeg.run_command(["ffmpeg", "-version"])

    assert not result.ok
    assert "could not be started" in result.describe()


def test_run_command_reports_exit_code(recorder):
    recorder.returncode = 1
    recorder.stderr = "Invalid data found when processing input\n"

    result = io_ffmpeg.run_command(["ffmpeg", "-i", "bad.mp3"])

    assert result.returncode == 1
    assert result.describe() == "ffmpeg exited with code 1: Invalid data found when processing input"


def test_probe_duration_parses_output(recorder, tmp_path):
    clip = tmp_path / "a.mp3"
    clip.write_bytes(b"\x00")
    recorder.stdout = "4.987755\n"

    assert io_ffmpeg.probe_duration(str(clip)) == pytest.approx(4.987755)
    assert recorder.calls[0][0] == "ffprobe"


def test_probe_duration_missing_file(recorder, tmp_path):
    with pytest.raises(ProbeFailed):
        io_ffmpeg.probe_duration(str(tmp_path / "missing.mp3"))
    assert recorder.calls == []


def test_probe_duration_timeout(recorder, tmp_path):
    clip = tmp_path / "a.mp3"
    clip.write_bytes(b"\x00")
    recorder.raises = subprocess.TimeoutExpired(cmd=["ffprobe"], timeout=10)

    with pytest.raises(ProbeTimeout):
        io_ffmpeg.probe_duration(str(clip))


def test_probe_duration_unreadable_value(recorder, tmp_path):
    clip = tmp_path / "a.mp3"
    clip.write_bytes(b"\x00")
    recorder.stdout = "N/A\n"

    with pytest.raises(ProbeFailed):
        io_ffmpeg.probe_duration(str(clip))


def test_extract_segment_uses_stream_copy(recorder, tmp_path):
    out = str(tmp_path / "clips" / "seg.mp3")

    io_ffmpeg.extract_segment("source.mp3", 1.5, 4.25, out)

    cmd = recorder.calls[0]
    assert cmd[cmd.index("-ss") + 1] == "1.500"
    assert cmd[cmd.index("-to") + 1] == "4.250"
    assert cmd[cmd.index("-c") + 1] == "copy"
    assert (tmp_path / "clips").is_dir()


def test_extract_segment_failure(recorder, tmp_path):
    recorder.returncode = 1
    with pytest.raises(ExtractionFailed):
        io_ffmpeg.extract_segment("source.mp3", 0, 1, str(tmp_path / "seg.mp3"))


def test_extract_segment_rejects_bad_range(recorder, tmp_path):
    with pytest.raises(ValueError):
        io_ffmpeg.extract_segment("source.mp3", 3, 3, str(tmp_path / "seg.mp3"))


def test_concat_writes_ordered_list_and_cleans_up(recorder, tmp_path):
    clips = [str(tmp_path / "b.mp3"), str(tmp_path / "it's.mp3")]
    list_path = str(tmp_path / "list.txt")

    io_ffmpeg.concat_clips(clips, str(tmp_path / "out.mp3"), list_path=list_path)

    assert recorder.files[list_path].splitlines() == [
        f"file '{tmp_path}/b.mp3'",
        f"file '{tmp_path}/it'\\''s.mp3'",
    ]
    assert not (tmp_path / "list.txt").exists()
    cmd = recorder.calls[0]
    assert cmd[cmd.index("-c") + 1] == "copy"


def test_concat_failure(recorder, tmp_path):
    recorder.returncode = 1
    with pytest.raises(ConcatenationFailed):
        io_ffmpeg.concat_clips([str(tmp_path / "a.mp3")], str(tmp_path / "out.mp3"))


def test_concat_requires_clips(recorder, tmp_path):
    with pytest.raises(ConcatenationFailed):
        io_ffmpeg.concat_clips([], str(tmp_path / "out.mp3"))
    assert recorder.calls == []


def test_reencodes_share_one_format(recorder, tmp_path):
    io_ffmpeg.pad_with_silence("a.mp3", str(tmp_path / "p.mp3"), 0.5)
    io_ffmpeg.apply_tempo("a.mp3", str(tmp_path / "t.mp3"), 1.25)
    io_ffmpeg.trim_audio("a.mp3", str(tmp_path / "c.mp3"), 2.0)

    for cmd in recorder.calls:
        assert cmd[cmd.index("-ar") + 1] == "44100"
        assert cmd[cmd.index("-ac") + 1] == "1"
        assert cmd[cmd.index("-c:a") + 1] == "libmp3lame"
        assert cmd[cmd.index("-b:a") + 1] == "128k"
    assert "atempo=1.250000" in recorder.calls[1]
