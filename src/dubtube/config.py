"""
Runtime configuration and fixed pipeline constants.
"""

import logging
import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

# Voice assignment
CLONE_THRESHOLD_SECS = 60.0
DEFAULT_VOICES: tuple[str, ...] = (
    "EXAVITQu4vr4xnSDxMaL",  # Rachel
    "ErXwobaYiN019PkySvjV",  # Domi
    "MF3mGyEYCl7XYWbV9V6O",  # Bella
    "TxGEqnHWrfWFTfGW9XjX",  # Antoni
    "VR6AewLTigWG4xSOukaG",  # Elli
    "pNInz6obpgDQGcFmaJgB",  # Josh
    "yoZ06aMxZJJ28mfd3POQ",  # Arnold
)

# Duration fitting
SEGMENT_TOLERANCE_SECS = 0.05
TRACK_TOLERANCE_SECS = 0.01
FINAL_VERIFY_TOLERANCE_SECS = TRACK_TOLERANCE_SECS
MIN_ATEMPO = 0.5
MAX_ATEMPO = 2.0
PROBE_TIMEOUT_SECS = 10.0
FFMPEG_TIMEOUT_SECS = 300.0

# Every clip written by the pipeline uses these settings so that
# stream-copy concatenation never has to re-encode.
SAMPLE_RATE = 44100
CHANNELS = 1
CHANNEL_LAYOUT = "mono"
AUDIO_CODEC = "libmp3lame"
AUDIO_BITRATE = "128k"

# ElevenLabs
ELEVENLABS_MODEL_ID = "eleven_multilingual_v2"
ELEVENLABS_OUTPUT_FORMAT = "mp3_44100_128"
CLONE_LABEL_PREFIX = "DubTube Speaker"

# Scratch storage
MAX_AUDIO_DIR_BYTES = 1024 * 1024 * 1024

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        logging.getLogger("dubtube").warning("Ignoring non-integer %s=%r", name, raw)
        return default


@dataclass(frozen=True)
class Settings:
    """Per-process configuration, usually read from the environment."""

    audio_dir: str = os.path.join("public", "audio")
    elevenlabs_api_key: str | None = None
    elevenlabs_model_id: str = ELEVENLABS_MODEL_ID
    elevenlabs_output_format: str = ELEVENLABS_OUTPUT_FORMAT
    deepl_api_key: str | None = None
    lemonfox_api_key: str | None = None
    lemonfox_base_url: str = "https://api.lemonfox.ai/v1"
    openai_api_key: str | None = None
    max_ytdlp_concurrency: int = 1
    ytdlp_cookies_b64: str | None = None
    ytdlp_cookies_path: str = "/tmp/yt-cookies.txt"
    proxy_host: str | None = None
    proxy_username: str | None = None
    proxy_password: str | None = None
    proxy_port_start: int | None = None
    proxy_port_end: int | None = None
    max_audio_dir_bytes: int = MAX_AUDIO_DIR_BYTES
    synthesis_workers: int = 1
    fill_skipped_with_silence: bool = True
    final_verify_tolerance: float = FINAL_VERIFY_TOLERANCE_SECS

    @property
    def temp_dir(self) -> str:
        """Cloning reference clips and their parts."""
        return os.path.join(self.audio_dir, "temp")

    @property
    def tts_dir(self) -> str:
        """Synthesized and fitted per-segment clips."""
        return os.path.join(self.audio_dir, "tts")


def load_settings(env_file: str | None = None) -> Settings:
    """Load settings from the environment, reading a .env file first if present."""
    if env_file:
        load_dotenv(env_file)
    else:
        project_env = Path(__file__).resolve().parent.parent.parent / ".env"
        if project_env.exists():
            load_dotenv(project_env)
        else:
            load_dotenv()

    port_start = _env_int("PROXY_PORT_START", 0) or None
    port_end = _env_int("PROXY_PORT_END", 0) or None
    return Settings(
        audio_dir=os.getenv("DUBTUBE_AUDIO_DIR", os.path.join("public", "audio")),
        elevenlabs_api_key=os.getenv("ELEVENLABS_API_KEY"),
        elevenlabs_model_id=os.getenv("ELEVENLABS_MODEL_ID", ELEVENLABS_MODEL_ID),
        deepl_api_key=os.getenv("DEEPL_API_KEY"),
        lemonfox_api_key=os.getenv("LEMONFOX_API_KEY"),
        openai_api_key=os.getenv("OPENAI_API_KEY"),
        max_ytdlp_concurrency=max(1, _env_int("MAX_YTDLP_CONCURRENCY", 1)),
        ytdlp_cookies_b64=os.getenv("YTDLP_COOKIES_B64"),
        proxy_host=os.getenv("PROXY_HOST"),
        proxy_username=os.getenv("PROXY_USERNAME"),
        proxy_password=os.getenv("PROXY_PASSWORD"),
        proxy_port_start=port_start,
        proxy_port_end=port_end,
        max_audio_dir_bytes=_env_int("DUBTUBE_MAX_AUDIO_BYTES", MAX_AUDIO_DIR_BYTES),
        synthesis_workers=max(1, _env_int("DUBTUBE_SYNTHESIS_WORKERS", 1)),
        fill_skipped_with_silence=_env_bool("DUBTUBE_FILL_SKIPPED", True),
    )


def setup_logging(verbose: bool = False) -> None:
    """Setup logging configuration."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(level=level, format=LOG_FORMAT)
