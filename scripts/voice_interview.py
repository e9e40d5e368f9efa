#!/usr/bin/env python

import argparse
import asyncio
import os
import sys

from interview_room.config import get_settings
from interview_room.main import load_job_description, run_interview, setup_logging


def _load_job_description(args) -> str:
    return load_job_description(args.job_file, args.job_text, args.stdin_job)


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(description="Run an offline voice interview (Piper + faster-whisper)")
    p.add_argument("--candidate-name", required=True)

    g = p.add_mutually_exclusive_group()
    g.add_argument("--job-file", help="Path to a job description file")
    g.add_argument("--job-text", help="Job description text")
    g.add_argument("--stdin-job", action="store_true", help="Read job description from stdin")

    p.add_argument("--mode", default="basic", choices=["basic", "advanced", "challenge"])
    p.add_argument("--output", default=None, help="Write the finished transcript (JSON) to this file")
    p.add_argument(
        "--language",
        default=os.getenv("INTERVIEW_ROOM_LANGUAGE", "en-US"),
        help="Interview language (default: INTERVIEW_ROOM_LANGUAGE or 'en-US')",
    )
    p.add_argument(
        "--silence-timeout",
        type=float,
        default=float(os.getenv("INTERVIEW_ROOM_SILENCE_TIMEOUT_S", "30") or "30"),
        help="Seconds to wait for an answer (default: INTERVIEW_ROOM_SILENCE_TIMEOUT_S or 30)",
    )

    # STT
    p.add_argument(
        "--stt-model",
        default=os.getenv("INTERVIEW_ROOM_STT_MODEL", "small"),
        help="faster-whisper model size (default: INTERVIEW_ROOM_STT_MODEL or 'small')",
    )
    p.add_argument(
        "--stt-device",
        default=os.getenv("INTERVIEW_ROOM_STT_DEVICE", "cpu"),
        choices=["cpu", "cuda", "auto"],
        help="STT device (default: INTERVIEW_ROOM_STT_DEVICE or 'cpu')",
    )

    # TTS
    p.add_argument(
        "--piper-bin",
        default=os.getenv("INTERVIEW_ROOM_PIPER_BIN", "piper"),
        help="Path/name of Piper TTS binary (default: INTERVIEW_ROOM_PIPER_BIN or 'piper')",
    )
    p.add_argument(
        "--piper-model",
        default=os.getenv("INTERVIEW_ROOM_PIPER_MODEL", None),
        help="Path to Piper .onnx model (default: INTERVIEW_ROOM_PIPER_MODEL)",
    )

    return p


async def main(argv: list[str] | None = None) -> None:
    args = build_parser().parse_args(argv)

    settings = get_settings()
    voices = dict(settings.piper_voices)
    if args.piper_model:
        voices[args.language.split("-", 1)[0].lower()] = args.piper_model

    settings = settings.model_copy(
        update={
            "language": args.language,
            "silence_timeout_s": args.silence_timeout,
            "stt_backend": "whisper",
            "stt_model": args.stt_model,
            "stt_device": args.stt_device,
            "piper_bin": args.piper_bin,
            "piper_voices": voices,
        }
    )

    await run_interview(
        settings,
        candidate_name=args.candidate_name,
        job_description=_load_job_description(args),
        mode=args.mode,
        remote_tts=False,
        output=args.output,
    )


if __name__ == "__main__":
    setup_logging()
    try:
        asyncio.run(main(sys.argv[1:]))
    except KeyboardInterrupt:
        raise SystemExit(0)
