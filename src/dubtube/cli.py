"""
Command-line interface for DubTube.
"""

import argparse
import json
import logging
import os
import sys
from dataclasses import replace

from .config import Settings, load_settings, setup_logging
from .dubbing import run_dubbing_job
from .errors import DubbingError
from .extraction import ExtractionGate, ensure_yt_cookies, extract_youtube_audio, random_proxy_url
from .io_ffmpeg import ensure_dir
from .models import DubbingJobResult
from .srt_utils import read_transcript, write_srt, write_transcript_json
from .storage import cleanup_audio_folders
from .transcription import make_transcription_client, transcribe_with_speakers
from .translation import make_translator, translate_transcript

logger = logging.getLogger("dubtube")


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command line arguments."""
    ap = argparse.ArgumentParser(description="Translate and dub YouTube videos")
    ap.add_argument("--env-file", default=None, help="Read settings from this .env file")
    ap.add_argument("--audio-dir", default=None, help="Override DUBTUBE_AUDIO_DIR")
    ap.add_argument("--verbose", "-v", action="store_true", help="Enable verbose logging")
    sub = ap.add_subparsers(dest="command", required=True)

    run_p = sub.add_parser("run", help="extract, transcribe, translate and dub a video")
    run_p.add_argument("--video-id", required=True)
    run_p.add_argument("--target-lang", required=True, help="Target language code, e.g. ES")
    run_p.add_argument("--workdir", default=".work")

    dub_p = sub.add_parser("dub", help="dub an already transcribed and translated audio file")
    dub_p.add_argument("--transcript", required=True, help="JSON or SRT with start,end,text,speaker")
    dub_p.add_argument(
        "--translated",
        default=None,
        help="JSON or SRT with translations (defaults to --transcript if it has them)",
    )
    dub_p.add_argument("--audio", required=True, help="Source audio file")
    dub_p.add_argument("--result-json", default=None)

    serve_p = sub.add_parser("serve", help="run the HTTP API")
    serve_p.add_argument("--host", default="127.0.0.1")
    serve_p.add_argument("--port", type=int, default=8000)

    sub.add_parser("cleanup", help="apply the size cap to scratch audio folders")
    return ap.parse_args(argv)


def _write_result(result: DubbingJobResult, path: str | None) -> None:
    payload = result.to_dict()
    if path:
        with open(path, "w", encoding="utf-8") as f:
            json.dump(payload, f, ensure_ascii=False, indent=2)
        logger.info(f"Saved result -> {path}")
    logger.info(result.status_message)
    logger.info(f"Done (dubbed) -> {result.dubbed_audio_path}")


def cmd_run(args: argparse.Namespace, settings: Settings) -> None:
    ensure_dir(args.workdir)
    cookies = ensure_yt_cookies(settings.ytdlp_cookies_b64, settings.ytdlp_cookies_path)
    proxy = random_proxy_url(
        settings.proxy_host,
        settings.proxy_username,
        settings.proxy_password,
        settings.proxy_port_start,
        settings.proxy_port_end,
    )
    audio = extract_youtube_audio(
        args.video_id,
        settings.audio_dir,
        gate=ExtractionGate(settings.max_ytdlp_concurrency),
        cookies_path=cookies,
        proxy_url=proxy,
    )

    client = make_transcription_client(settings.lemonfox_api_key, settings.lemonfox_base_url)
    transcript, language = transcribe_with_speakers(client, audio)
    logger.info(f"Transcribed {len(transcript)} segments (language: {language or 'auto'})")
    raw_json = os.path.join(args.workdir, "transcript.json")
    write_transcript_json(transcript, raw_json)
    logger.info(f"Saved transcript -> {raw_json}")

    translated = translate_transcript(transcript, args.target_lang, make_translator(settings))
    translated_json = os.path.join(args.workdir, "translated.json")
    write_transcript_json(translated, translated_json)
    srt_path = os.path.join(args.workdir, "subs.srt")
    write_srt(translated, srt_path)
    logger.info(f"Saved translation -> {translated_json}, {srt_path}")

    result = run_dubbing_job(transcript, translated, audio, settings)
    _write_result(result, os.path.join(args.workdir, "result.json"))


def cmd_dub(args: argparse.Namespace, settings: Settings) -> None:
    transcript = read_transcript(args.transcript)
    translated = read_transcript(args.translated) if args.translated else transcript
    logger.info(f"Loaded {len(transcript)} segments from {args.transcript}")
    result = run_dubbing_job(transcript, translated, args.audio, settings)
    _write_result(result, args.result_json)


def cmd_serve(args: argparse.Namespace, settings: Settings) -> None:
    import uvicorn

    from .api import create_app

    uvicorn.run(create_app(settings), host=args.host, port=args.port)


def main(argv: list[str] | None = None) -> int:
    """Main CLI entry point."""
    args = parse_args(argv)
    setup_logging(args.verbose)
    settings = load_settings(args.env_file)
    if args.audio_dir:
        settings = replace(settings, audio_dir=args.audio_dir)

    try:
        if args.command == "run":
            cmd_run(args, settings)
        elif args.command == "dub":
            cmd_dub(args, settings)
        elif args.command == "serve":
            cmd_serve(args, settings)
        elif args.command == "cleanup":
            freed = cleanup_audio_folders(settings.audio_dir, settings.max_audio_dir_bytes)
            logger.info(f"Freed {freed} bytes")
    except DubbingError as e:
        logger.error(e.reason)
        return 1
    except (ValueError, OSError) as e:
        logger.error(str(e))
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
