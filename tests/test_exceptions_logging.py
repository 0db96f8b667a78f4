from __future__ import annotations

import logging
from io import StringIO
from pathlib import Path

import pytest

from peerbench.exceptions import (
    ArtifactSaveError,
    ConfigurationError,
    EnvVariableNeededError,
    ErrorCodes,
    ForwardError,
    JudgeParsingError,
    PeerBenchException,
    ScorerNotFoundError,
    ScoringError,
    TaskSchemaError,
    ValidationError,
)
from peerbench.logging_config import (
    ColorFormatter,
    ContextLogger,
    StructuredFormatter,
    configure_logging,
    describe_error,
    get_logger,
    should_use_color,
)


def test_peerbenchexception_str_with_context() -> None:
    exc = PeerBenchException("Failure", {"step": "forward", "code": 42})
    assert "step=forward" in str(exc)
    assert exc.context["code"] == 42


def test_exception_specialisations() -> None:
    assert str(ConfigurationError("Missing")) == "Missing"
    assert isinstance(EnvVariableNeededError("PB_OPENROUTER_AI_KEY"), ConfigurationError)
    assert isinstance(TaskSchemaError("bad task"), ValidationError)
    assert isinstance(ScorerNotFoundError("none"), ScoringError)

    forward = ForwardError("denied", ErrorCodes.PROVIDER_UNAUTHORIZED, started_at=5, cause=RuntimeError("x"))
    assert forward.code == "PROVIDER_UNAUTHORIZED"
    assert forward.started_at == 5
    parsed = JudgeParsingError("no json", raw_response="oops")
    assert parsed.raw_response == "oops"
    validation = ValidationError("invalid", field="temperature", value=9)
    assert validation.field == "temperature"
    artifact = ArtifactSaveError("failed", file_path="/tmp/file")
    assert artifact.file_path == "/tmp/file"


def test_configure_logging_writes_log_file(tmp_path: Path) -> None:
    log_file = tmp_path / "logs" / "run.log"
    use_color = configure_logging(level="DEBUG", log_file=log_file, use_color=False)

    logger = get_logger("peerbench.tests")
    logger.debug("debug message")
    logger.error("error message")
    root = logging.getLogger()
    for handler in root.handlers[:]:
        handler.close()
        root.removeHandler(handler)

    assert use_color is False
    content = log_file.read_text(encoding="utf-8")
    assert "[DEBUG] peerbench.tests: debug message" in content
    assert "[ERROR] peerbench.tests: error message" in content


def test_structured_formatter_adds_exception_context() -> None:
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter("%(levelname)s:%(message)s %(ctx_step)s"))
    logger = logging.getLogger("structured-test")
    logger.handlers = [handler]
    logger.setLevel(logging.ERROR)
    logger.propagate = False

    try:
        raise ScoringError("failed", context={"step": "judge"})
    except ScoringError:
        logger.exception("scoring failed")

    handler.flush()
    assert "judge" in stream.getvalue()


def test_color_formatter_wraps_message() -> None:
    record = logging.LogRecord("x", logging.ERROR, __file__, 1, "boom", None, None)
    formatted = ColorFormatter("%(message)s").format(record)
    assert "boom" in formatted
    assert formatted.endswith("\x1b[0m")


def test_context_logger_prefixes_messages(caplog: pytest.LogCaptureFixture) -> None:
    logger = get_logger("peerbench.context-test", "Provider(dummy:acme/model-a, task.json)")
    assert isinstance(logger, ContextLogger)

    with caplog.at_level(logging.INFO, logger="peerbench.context-test"):
        logger.info("Sending prompt %s", "p-1")

    assert caplog.messages == ["Provider(dummy:acme/model-a, task.json): Sending prompt p-1"]


def test_describe_error_depends_on_environment() -> None:
    try:
        raise ValueError("broken input")
    except ValueError as exc:
        assert describe_error(exc, is_dev=False) == "broken input"
        detailed = describe_error(exc, is_dev=True)

    assert detailed.startswith("Traceback")
    assert detailed.endswith("ValueError: broken input")


def test_should_use_color_honours_no_color(monkeypatch: pytest.MonkeyPatch) -> None:
    class TTY:
        def isatty(self) -> bool:
            return True

    monkeypatch.delenv("NO_COLOR", raising=False)
    assert should_use_color(TTY())
    monkeypatch.setenv("NO_COLOR", "1")
    assert not should_use_color(TTY())
    assert not should_use_color(StringIO())
