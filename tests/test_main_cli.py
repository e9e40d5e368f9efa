import logging

from interview_room import main
from interview_room.config import Settings
from interview_room.main import _print_change, apply_overrides, build_parser, load_job_description, setup_logging
from interview_room.orchestrator.schemas import SessionStatus, Speaker, StatusChange, Turn


def test_parser_and_overrides():
    args = build_parser().parse_args(
        ["--candidate-name", "Alex", "--job-text", "Backend Developer", "--language", "vi-VN",
         "--stt-backend", "whisper", "--silence-timeout", "12", "--no-remote-tts"]
    )
    settings = apply_overrides(Settings(), args)

    assert args.no_remote_tts is True
    assert args.mode == "basic"
    assert settings.language == "vi-VN"
    assert settings.stt_backend == "whisper"
    assert settings.silence_timeout_s == 12.0


def test_no_overrides_keeps_settings():
    settings = Settings()
    args = build_parser().parse_args(["--candidate-name", "Alex"])
    assert apply_overrides(settings, args) is settings


def test_job_description_sources(tmp_path):
    job = tmp_path / "job.md"
    job.write_text("Data Engineer", encoding="utf-8")

    assert load_job_description(job_file=str(job)) == "Data Engineer"
    assert load_job_description(job_text="Designer") == "Designer"
    assert load_job_description() == ""


def test_status_changes_are_printed(capsys):
    turn = Turn(speaker=Speaker.CANDIDATE, text="I like APIs.", confidence=81, question_index=0)
    _print_change(
        StatusChange(
            status=SessionStatus.RESPONDING,
            previous=SessionStatus.PROCESSING,
            question_index=0,
            turn=turn,
        )
    )
    _print_change(
        StatusChange(
            status=SessionStatus.LISTENING,
            previous=SessionStatus.LISTENING,
            question_index=0,
            error_message="Microphone access denied",
        )
    )

    out = capsys.readouterr().out
    assert "You: I like APIs. (81%)" in out
    assert "[responding]" in out
    assert "[listening]" not in out
    assert "Microphone access denied" in out


def test_debug_setting_forces_debug_logging(monkeypatch):
    levels = []
    monkeypatch.setattr(main.logging, "basicConfig", lambda **kwargs: levels.append(kwargs["level"]))

    monkeypatch.setattr(main, "get_settings", lambda: Settings(debug=True, log_level="WARNING"))
    setup_logging()
    monkeypatch.setattr(main, "get_settings", lambda: Settings(log_level="WARNING"))
    setup_logging()
    setup_logging("ERROR")

    assert levels == [logging.DEBUG, logging.WARNING, logging.ERROR]
