"""
Main entry point for the interview room.

Runs a scripted voice interview on the local microphone and speaker:
questions come from the backend (or the generic fallback), the interviewer
speaks through the remote voice with Piper as fallback, and answers are
transcribed by the configured STT backend.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import signal
import sys
from pathlib import Path
from typing import Any

from interview_room.call.session_manager import ScriptedCallSession
from interview_room.config import Settings, get_settings
from interview_room.errors import InterviewRoomError
from interview_room.orchestrator.evaluation import EvaluationClient
from interview_room.orchestrator.interview_orchestrator import InterviewOrchestrator, OrchestratorConfig
from interview_room.orchestrator.interview_state import InterviewSession
from interview_room.orchestrator.questions import QuestionSupplier
from interview_room.orchestrator.schemas import InterviewHandoff, Speaker, StatusChange
from interview_room.voice.audio_io import AudioIO
from interview_room.voice.speech_input import RetryPolicy, SpeechInput
from interview_room.voice.speech_output import SpeechOutput, SpeechOutputConfig
from interview_room.voice.stt import RemoteSTT, RemoteSTTConfig, STTConfig, STTProvider, WhisperSTT
from interview_room.voice.tts import PiperTTS, RemoteTTS, RemoteTTSConfig, TTSConfig

logger = logging.getLogger(__name__)


def setup_logging(level: str | None = None) -> None:
    """Configure application logging."""
    settings = get_settings()
    logging.basicConfig(
        level=getattr(logging, level or ("DEBUG" if settings.debug else settings.log_level)),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[logging.StreamHandler(sys.stdout)],
    )


def load_job_description(job_file: str | None = None, job_text: str | None = None, stdin_job: bool = False) -> str:
    """Read the job description from a file, the command line or stdin."""
    if job_file:
        return Path(job_file).read_text(encoding="utf-8")
    if job_text:
        return job_text
    if stdin_job:
        if sys.stdin.isatty():
            raise RuntimeError(
                "--stdin-job was set, but stdin is a TTY (nothing is being piped). "
                "Pipe the job description into stdin or use --job-text / --job-file instead."
            )
        return sys.stdin.read()
    return ""


def build_call_session(settings: Settings, *, remote_tts: bool = True) -> tuple[ScriptedCallSession, list[Any]]:
    """
    Wire the local speech stack into a scripted call session.

    Returns:
        The call session and the HTTP-backed providers to close afterwards.
    """
    audio = AudioIO()
    closables: list[Any] = []

    primary: RemoteTTS | None = None
    if remote_tts:
        primary = RemoteTTS(
            RemoteTTSConfig(
                base_url=settings.api_base_url,
                path=settings.tts_path,
                proxy_path=settings.audio_proxy_path,
                voice=settings.tts_voice,
                language=settings.language,
                timeout_s=settings.http_timeout,
            )
        )
        closables.append(primary)
    fallback = PiperTTS(TTSConfig(piper_bin=settings.piper_bin, voices=settings.piper_voices, language=settings.language))
    ok, reason = fallback.is_available()
    if not ok:
        logger.warning(f"[VOICE][TTS] local voice unavailable: {reason}")

    speech_output = SpeechOutput(
        audio=audio,
        primary=primary,
        fallback=fallback,
        config=SpeechOutputConfig(
            sticky_fallback=settings.sticky_tts_fallback,
            max_primary_failures=settings.max_primary_tts_failures,
        ),
    )

    stt: STTProvider
    if settings.stt_backend == "whisper":
        stt = WhisperSTT(
            STTConfig(
                model_size=settings.stt_model,
                device=settings.stt_device,
                language=settings.language.split("-", 1)[0],
            )
        )
    else:
        remote_stt = RemoteSTT(
            RemoteSTTConfig(base_url=settings.api_base_url, path=settings.stt_path, timeout_s=settings.http_timeout)
        )
        closables.append(remote_stt)
        stt = remote_stt

    speech_input = SpeechInput(
        audio=audio,
        stt=stt,
        retry_policy=RetryPolicy(
            max_attempts=settings.transcription_max_attempts,
            backoff_s=settings.transcription_retry_delay_s,
        ),
    )
    return ScriptedCallSession(speech_output, speech_input), closables


def _print_change(change: StatusChange) -> None:
    if change.turn is not None:
        who = "Interviewer" if change.turn.speaker == Speaker.INTERVIEWER else "You"
        suffix = f" ({change.turn.confidence}%)" if change.turn.confidence is not None else ""
        print(f"{who}: {change.turn.text}{suffix}")
    if change.status != change.previous:
        print(f"[{change.status.value}]")
    if change.error_message:
        print(f"! {change.error_message} (press Enter to retry)")


async def _read_controls(orchestrator: InterviewOrchestrator) -> None:
    """Enter stops listening (or retries after an error); 'q' ends the interview."""
    while True:
        line = await asyncio.to_thread(sys.stdin.readline)
        if not line:
            return
        command = line.strip().lower()
        if command in {"q", "quit", "exit"}:
            await orchestrator.cancel()
            return
        if orchestrator.is_waiting_for_retry:
            orchestrator.retry()
        else:
            orchestrator.stop_listening()


async def run_interview(
    settings: Settings,
    *,
    candidate_name: str,
    job_description: str = "",
    cv_path: str | None = None,
    mode: str = "basic",
    remote_tts: bool = True,
    confirm_readiness: bool = False,
    output: str | None = None,
) -> InterviewHandoff | None:
    """
    Run one interview session to completion.

    Returns:
        The handoff, or None if the session could not start.
    """
    supplier = QuestionSupplier(base_url=settings.api_base_url, path=settings.session_path)
    try:
        question_set = await supplier.fetch(job_description, cv_path=cv_path, mode=mode)
    finally:
        await supplier.close()
    logger.info(f"Session {question_set.session_id}: {len(question_set.questions)} questions ({question_set.source})")

    session = InterviewSession(
        session_id=question_set.session_id,
        candidate_name=candidate_name,
        questions=question_set.questions,
        job_description=job_description,
    )
    call, closables = build_call_session(settings, remote_tts=remote_tts)
    evaluation = EvaluationClient(url=settings.evaluation_url, timeout=settings.http_timeout)

    async def on_complete(handoff: InterviewHandoff) -> None:
        print(f"\nInterview finished ({handoff.end_reason}) after {handoff.duration:.1f}s.")
        if output:
            Path(output).write_text(handoff.model_dump_json(indent=2), encoding="utf-8")
            print(f"Transcript written to {output}")
        if evaluation.is_configured:
            try:
                await evaluation.submit(handoff)
            except InterviewRoomError as e:
                logger.error(f"Could not submit interview for evaluation: {e.message}")

    orchestrator = InterviewOrchestrator(
        session,
        call,
        config=OrchestratorConfig.from_settings(settings, confirm_readiness=confirm_readiness),
        on_complete=on_complete,
    )
    orchestrator.subscribe(_print_change)

    loop = asyncio.get_running_loop()
    try:
        loop.add_signal_handler(signal.SIGINT, lambda: asyncio.ensure_future(orchestrator.cancel()))
    except (NotImplementedError, RuntimeError):
        pass  # Windows: Ctrl+C surfaces as KeyboardInterrupt instead.

    controls = asyncio.create_task(_read_controls(orchestrator))
    try:
        print("Press Enter when you finish an answer, 'q' + Enter to end the interview.")
        handoff = await orchestrator.run()
        if handoff is None:
            print(f"Could not start the interview: {session.error_message}")
        return handoff
    finally:
        controls.cancel()
        try:
            loop.remove_signal_handler(signal.SIGINT)
        except (NotImplementedError, RuntimeError):
            pass
        await evaluation.close()
        for closable in closables:
            await closable.close()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="interview-room", description="Run a voice interview session")
    parser.add_argument("--candidate-name", required=True)

    g = parser.add_mutually_exclusive_group()
    g.add_argument("--job-file", help="Path to a job description file")
    g.add_argument("--job-text", help="Job description text")
    g.add_argument("--stdin-job", action="store_true", help="Read job description from stdin")

    parser.add_argument("--cv", help="CV file sent to the question generator")
    parser.add_argument("--mode", choices=["basic", "advanced", "challenge"], default="basic")
    parser.add_argument("--language", help="Interview language, e.g. en-US (default: settings)")
    parser.add_argument("--stt-backend", choices=["remote", "whisper"], help="Speech-to-text backend")
    parser.add_argument("--silence-timeout", type=float, help="Seconds to wait for an answer")
    parser.add_argument("--no-remote-tts", action="store_true", help="Speak with the local Piper voice only")
    parser.add_argument("--confirm-readiness", action="store_true", help="Wait for a 'ready' reply to the greeting")
    parser.add_argument("--output", help="Write the finished transcript (JSON) to this file")
    return parser


def apply_overrides(settings: Settings, args: argparse.Namespace) -> Settings:
    """Settings with command-line overrides applied."""
    updates: dict[str, Any] = {}
    if getattr(args, "language", None):
        updates["language"] = args.language
    if getattr(args, "stt_backend", None):
        updates["stt_backend"] = args.stt_backend
    if getattr(args, "silence_timeout", None):
        updates["silence_timeout_s"] = args.silence_timeout
    return settings.model_copy(update=updates) if updates else settings


async def _main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    settings = apply_overrides(get_settings(), args)
    job_description = load_job_description(args.job_file, args.job_text, args.stdin_job)
    handoff = await run_interview(
        settings,
        candidate_name=args.candidate_name,
        job_description=job_description,
        cv_path=args.cv,
        mode=args.mode,
        remote_tts=not args.no_remote_tts,
        confirm_readiness=args.confirm_readiness,
        output=args.output,
    )
    return 0 if handoff is not None else 1


def main() -> None:
    """Main entry point for the application."""
    setup_logging()

    try:
        sys.exit(asyncio.run(_main(sys.argv[1:])))
    except KeyboardInterrupt:
        print("\nInterview session terminated by user.")
        sys.exit(0)
    except Exception as e:
        logging.error(f"Application error: {e}", exc_info=True)
        sys.exit(1)


if __name__ == "__main__":
    main()
