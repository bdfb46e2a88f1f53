"""
Speech synthesis and voice cloning with ElevenLabs.
"""

import logging
import os
from collections.abc import Callable
from pathlib import Path

import httpx

from .config import ELEVENLABS_MODEL_ID, ELEVENLABS_OUTPUT_FORMAT
from .errors import CloningFailed, SynthesisFailed
from .voices import CloneFunc

logger = logging.getLogger("dubtube")

ELEVENLABS_API_URL = "https://api.elevenlabs.io/v1"
USER_AGENT = "dubtube/0.1"
HTTP_OK = 200

# (text, voice_id, out_path) -> None
SynthFunc = Callable[[str, str, str], None]


def _error_message(r: httpx.Response) -> str:
    try:
        data = r.json()
    except ValueError:
        return r.text[:300]
    detail = data.get("detail") if isinstance(data, dict) else None
    if isinstance(detail, dict):
        return str(detail.get("message") or detail)
    if isinstance(data, dict) and data.get("message"):
        return str(data["message"])
    return str(detail or data)[:300]


def elevenlabs_tts_speak(
    api_key: str | None,
    voice_id: str,
    text: str,
    out_path: str,
    model_id: str = ELEVENLABS_MODEL_ID,
    output_format: str = ELEVENLABS_OUTPUT_FORMAT,
    client: httpx.Client | None = None,
    timeout: float = 60.0,
) -> None:
    """Synthesize speech using ElevenLabs TTS and write the MP3 to ``out_path``."""
    if not api_key:
        raise SynthesisFailed("ELEVENLABS_API_KEY is not set.")
    if not voice_id:
        raise SynthesisFailed("ElevenLabs voice_id is required.")

    headers = {
        "xi-api-key": api_key,
        "accept": "audio/mpeg",
        "Content-Type": "application/json",
        "User-Agent": USER_AGENT,
    }
    payload = {
        "text": text,
        "model_id": model_id,
        "voice_settings": {"stability": 0.5, "similarity_boost": 0.75},
    }
    url = f"{ELEVENLABS_API_URL}/text-to-speech/{voice_id}"

    owns_client = client is None
    if client is None:
        client = httpx.Client(follow_redirects=True, timeout=timeout)
    try:
        r = client.post(url, params={"output_format": output_format}, json=payload, headers=headers)
    except httpx.HTTPError as e:
        raise SynthesisFailed(f"ElevenLabs TTS request failed: {e}") from e
    finally:
        if owns_client:
            client.close()

    ctype = r.headers.get("content-type", "")
    if r.status_code != HTTP_OK or not ctype.startswith(("audio/", "application/octet-stream")):
        raise SynthesisFailed(f"ElevenLabs TTS failed: {r.status_code} {_error_message(r)}")
    if not r.content:
        raise SynthesisFailed("ElevenLabs TTS returned no audio")
    try:
        Path(out_path).parent.mkdir(parents=True, exist_ok=True)
        with open(out_path, "wb") as f:
            f.write(r.content)
    except OSError as e:
        raise SynthesisFailed(f"cannot write synthesized audio to {out_path}: {e}") from e


def elevenlabs_clone_voice(
    api_key: str | None,
    reference_path: str,
    label: str,
    client: httpx.Client | None = None,
    timeout: float = 120.0,
) -> str:
    """Create an instant voice clone from a reference recording and return its voice_id."""
    if not api_key:
        raise CloningFailed("Missing ELEVENLABS_API_KEY")
    try:
        with open(reference_path, "rb") as f:
            sample = f.read()
    except OSError as e:
        raise CloningFailed(f"cannot read reference clip {reference_path}: {e}") from e

    headers = {"xi-api-key": api_key, "accept": "application/json", "User-Agent": USER_AGENT}
    files = {"files": (os.path.basename(reference_path), sample, "audio/mpeg")}

    owns_client = client is None
    if client is None:
        client = httpx.Client(follow_redirects=True, timeout=timeout)
    try:
        r = client.post(
            f"{ELEVENLABS_API_URL}/voices/add", data={"name": label}, files=files, headers=headers
        )
    except httpx.HTTPError as e:
        raise CloningFailed(f"ElevenLabs voice cloning request failed: {e}") from e
    finally:
        if owns_client:
            client.close()

    if r.status_code != HTTP_OK:
        raise CloningFailed(f"Voice cloning failed: {r.status_code} {_error_message(r)}")
    try:
        voice_id = r.json().get("voice_id")
    except ValueError as e:
        raise CloningFailed("Voice cloning returned a non-JSON response") from e
    if not voice_id:
        raise CloningFailed("Voice cloning response has no voice_id")
    return str(voice_id)


def make_synth_elevenlabs(
    api_key: str | None,
    model_id: str = ELEVENLABS_MODEL_ID,
    output_format: str = ELEVENLABS_OUTPUT_FORMAT,
) -> SynthFunc:
    """Create ElevenLabs TTS synthesis function."""

    def _synth(text: str, voice_id: str, out_path: str) -> None:
        elevenlabs_tts_speak(
            api_key, voice_id, text, out_path, model_id=model_id, output_format=output_format
        )

    return _synth


def make_cloner_elevenlabs(api_key: str | None) -> CloneFunc:
    """Create ElevenLabs voice cloning function."""

    def _clone(reference_path: str, label: str) -> str:
        return elevenlabs_clone_voice(api_key, reference_path, label)

    return _clone
