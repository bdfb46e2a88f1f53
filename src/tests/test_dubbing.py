"""
Tests for the dubbing orchestrator, with ffmpeg and ElevenLabs replaced by fakes.
"""

import dataclasses
import os

import httpx
import pytest

from dubtube.config import DEFAULT_VOICES
from dubtube.dubbing import dub, validate_request
from dubtube.elevenlabs import elevenlabs_tts_speak
from dubtube.errors import (
    CloningFailed,
    ConcatenationFailed,
    DubbingJobFailed,
    InvalidDubbingRequest,
)
from dubtube.models import TranscriptSegment, VoiceMode


def _seg(start, end, text, speaker="A"):
    return TranscriptSegment(start=start, end=end, text=text, speaker=speaker)


def _no_clone(reference, label):
    raise CloningFailed("Missing ELEVENLABS_API_KEY")


@pytest.fixture
def source(fake_media, tmp_path):
    def make(duration):
        return fake_media.add(str(tmp_path / "source.mp3"), duration)

    return make


def test_end_to_end_single_pooled_speaker(fake_media, fake_synth, settings, source):
    transcript = [_seg(0, 2, "Hola"), _seg(2, 5, "Mundo")]
    translated = [_seg(0, 2, "Hello"), _seg(2, 5, "World")]
    fake_synth.durations = {"Hello": 1.4, "World": 3.6}

    result = dub(transcript, translated, source(5.0), fake_synth, _no_clone, settings, job_id="j1")

    assert result.voice_assignments["A"].mode is VoiceMode.POOLED
    assert result.voice_assignments["A"].voice_id == DEFAULT_VOICES[0]
    assert fake_synth.calls == [("Hello", DEFAULT_VOICES[0]), ("World", DEFAULT_VOICES[0])]
    assert [fake_media.duration(c) for c in fake_media.concat_calls[0]] == [
        pytest.approx(2.0),
        pytest.approx(3.0),
    ]
    assert result.dubbed_audio_path == os.path.join(settings.audio_dir, "dubbed_j1.mp3")
    assert fake_media.duration(result.dubbed_audio_path) == pytest.approx(5.0)
    assert result.per_speaker_durations == {"A": pytest.approx(5.0)}
    assert result.skipped_segments == []
    assert result.status_message == "Dubbed audio generation complete."


def test_clips_are_concatenated_in_transcript_order(fake_media, fake_synth, settings, source):
    transcript = [_seg(i, i + 1, f"t{i}", speaker="AB"[i % 2]) for i in range(6)]
    settings = dataclasses.replace(settings, synthesis_workers=4)

    dub(transcript, transcript, source(6.0), fake_synth, _no_clone, settings, job_id="j2")

    names = [os.path.basename(c) for c in fake_media.concat_calls[0]]
    assert [n.split("_")[1] for n in names] == [f"seg{i}" for i in range(6)]


def test_translated_text_is_spoken_with_original_speaker_voice(
    fake_media, fake_synth, settings, source
):
    transcript = [_seg(0, 1, "uno", "A"), _seg(1, 2, "dos", "B")]
    # speaker labels on the translated side are ignored
    translated = [_seg(0, 1, "one", "B"), _seg(1, 2, "two", "B")]

    dub(transcript, translated, source(2.0), fake_synth, _no_clone, settings)

    assert fake_synth.calls == [("one", DEFAULT_VOICES[0]), ("two", DEFAULT_VOICES[1])]


def test_voiceless_speaker_segments_become_silence(fake_media, fake_synth, settings, source):
    transcript = [_seg(0, 61, "largo", "A"), _seg(61, 63, "corto", "B")]

    result = dub(transcript, transcript, source(63.0), fake_synth, _no_clone, settings)

    assert result.voice_assignments["A"].is_voiceless
    assert result.voice_assignments["A"].to_dict()["voiceId"] == ""
    assert [text for text, _ in fake_synth.calls] == ["corto"]
    assert result.skipped_segments == [0]
    assert result.is_partial
    placeholder = fake_media.concat_calls[-1][0]
    assert placeholder.endswith("_silence.mp3")
    assert fake_media.duration(placeholder) == pytest.approx(61.0)
    assert fake_media.duration(result.dubbed_audio_path) == pytest.approx(63.0)
    assert "1 of 2 segments could not be dubbed" in result.status_message


def test_skipped_segments_can_be_dropped(fake_media, fake_synth, settings, source):
    transcript = [_seg(0, 2, "a"), _seg(2, 4, "b"), _seg(4, 6, "c")]
    fake_synth.fail_texts = {"b"}
    settings = dataclasses.replace(settings, fill_skipped_with_silence=False)

    result = dub(transcript, transcript, source(6.0), fake_synth, _no_clone, settings, job_id="j3")

    assert len(fake_media.concat_calls[0]) == 2
    # the short track is padded back to the source length
    assert result.dubbed_audio_path.endswith("dubbed_j3_final.mp3")
    assert fake_media.duration(result.dubbed_audio_path) == pytest.approx(6.0)
    assert result.skipped_segments == [1]


def test_synthesis_failure_skips_only_that_segment(fake_media, fake_synth, settings, source):
    transcript = [_seg(0, 2, "ok"), _seg(2, 4, "bad"), _seg(4, 5, "fine")]
    fake_synth.fail_texts = {"bad"}

    result = dub(transcript, transcript, source(5.0), fake_synth, _no_clone, settings)

    assert result.skipped_segments == [1]
    assert [text for text, _ in fake_synth.calls] == ["ok", "bad", "fine"]
    assert fake_media.duration(result.dubbed_audio_path) == pytest.approx(5.0)


def test_every_segment_skipped_is_job_fatal(fake_media, fake_synth, settings, source):
    transcript = [_seg(0, 2, "x"), _seg(2, 4, "y")]
    fake_synth.fail_texts = {"x", "y"}

    with pytest.raises(DubbingJobFailed) as exc:
        dub(transcript, transcript, source(4.0), fake_synth, _no_clone, settings)

    assert exc.value.reason == "no dubbed segments were produced"
    assert fake_media.concat_calls == []


def test_concatenation_failure_is_job_fatal(fake_media, fake_synth, settings, source, monkeypatch):
    def broken_concat(clips, out_path, list_path=None):
        raise ConcatenationFailed("ffmpeg exited with code 1: Invalid data")

    monkeypatch.setattr("dubtube.dubbing.concat_clips", broken_concat)
    transcript = [_seg(0, 2, "x")]

    with pytest.raises(DubbingJobFailed) as exc:
        dub(transcript, transcript, source(2.0), fake_synth, _no_clone, settings)

    assert "Invalid data" in exc.value.reason
    assert exc.value.state == "segments_synthesized"


def test_failed_clones_still_complete_with_pooled_speakers(
    fake_media, fake_synth, settings, source
):
    transcript = [
        _seg(0, 70, "a", "A"),
        _seg(70, 72, "b", "B"),
        _seg(72, 140, "c", "C"),
        _seg(140, 141, "d", "D"),
    ]

    result = dub(transcript, transcript, source(141.0), fake_synth, _no_clone, settings)

    voices = result.voice_assignments
    assert voices["A"].is_voiceless and voices["C"].is_voiceless
    assert voices["B"].voice_id == DEFAULT_VOICES[0]
    assert voices["D"].voice_id == DEFAULT_VOICES[1]
    assert result.skipped_segments == [0, 2]


def test_cloned_voice_is_used_for_heavy_speaker(fake_media, fake_synth, settings, source):
    transcript = [_seg(0, 40, "a", "A"), _seg(40, 80, "b", "A")]

    result = dub(
        transcript, transcript, source(80.0), fake_synth, lambda ref, label: "clone-A", settings
    )

    assert result.voice_assignments["A"].mode is VoiceMode.CLONED
    assert fake_synth.calls == [("a", "clone-A"), ("b", "clone-A")]
    assert result.to_dict()["speakerVoices"]["A"]["type"] == "clone"


def test_overlong_segment_is_trimmed_globally(fake_media, fake_synth, settings, source):
    transcript = [_seg(0, 1, "demasiado")]
    fake_synth.durations = {"demasiado": 3.0}

    result = dub(transcript, transcript, source(1.0), fake_synth, _no_clone, settings, job_id="j4")

    # 2x cap leaves 1.5s; the track is then cut to the source length
    assert fake_media.tempo_calls == [2.0]
    assert result.dubbed_audio_path.endswith("dubbed_j4_final.mp3")
    assert fake_media.duration(result.dubbed_audio_path) == pytest.approx(1.0)
    assert result.status_message.endswith("final adjustment applied.")


def test_jobs_do_not_share_scratch_names(fake_media, fake_synth, settings, source):
    transcript = [_seg(0, 1, "x")]
    audio = source(1.0)

    first = dub(transcript, transcript, audio, fake_synth, _no_clone, settings)
    second = dub(transcript, transcript, audio, fake_synth, _no_clone, settings)

    assert first.dubbed_audio_path != second.dubbed_audio_path
    assert set(fake_media.concat_calls[0]).isdisjoint(fake_media.concat_calls[1])


@pytest.mark.parametrize(
    "transcript, translated",
    [
        ([], []),
        ([_seg(0, 1, "a")], []),
        ([_seg(0, 1, "a")], [_seg(0, 1, "a"), _seg(1, 2, "b")]),
        ([_seg(2, 1, "a")], [_seg(2, 1, "a")]),
    ],
)
def test_invalid_requests_are_rejected(transcript, translated, source):
    with pytest.raises(InvalidDubbingRequest):
        validate_request(transcript, translated, source(2.0))


def test_missing_source_audio_is_rejected(tmp_path):
    transcript = [_seg(0, 1, "a")]
    with pytest.raises(InvalidDubbingRequest):
        validate_request(transcript, transcript, str(tmp_path / "nope.mp3"))
    with pytest.raises(InvalidDubbingRequest):
        validate_request(transcript, transcript, None)


def test_unverifiable_final_length_is_job_fatal(fake_media, fake_synth, settings, source, monkeypatch):
    def sloppy_trim(in_path, out_path, duration):
        return fake_media.add(out_path, duration + 0.2)

    monkeypatch.setattr("dubtube.normalize.trim_audio", sloppy_trim)
    transcript = [_seg(0, 1, "x")]
    fake_synth.durations = {"x": 3.0}

    with pytest.raises(DubbingJobFailed) as exc:
        dub(transcript, transcript, source(1.0), fake_synth, _no_clone, settings)

    assert exc.value.state == "concatenated"


def test_unwritable_synthesis_output_skips_only_that_segment(
    fake_media, settings, source, tmp_path
):
    def handler(request):
        return httpx.Response(200, content=b"ID3audio", headers={"content-type": "audio/mpeg"})

    client = httpx.Client(transport=httpx.MockTransport(handler))

    def synth(text, voice_id, out_path):
        elevenlabs_tts_speak("key", voice_id, text, out_path, client=client)
        fake_media.durations[os.path.abspath(out_path)] = 2.0

    # something already occupies segment 0's output path
    os.makedirs(os.path.join(settings.tts_dir, "A_seg0_j5.mp3"))
    transcript = [_seg(0, 2, "uno"), _seg(2, 4, "dos")]

    result = dub(transcript, transcript, source(4.0), synth, _no_clone, settings, job_id="j5")

    assert result.skipped_segments == [0]
    assert fake_media.duration(result.dubbed_audio_path) == pytest.approx(4.0)
