import logging

from chatstream.config import (
    EMPTY_RESPONSE_MESSAGE,
    ERROR_MESSAGE,
    StreamSettings,
    configure_logging,
)


def test_defaults():
    settings = StreamSettings()
    assert settings.data_prefix == "data:"
    assert settings.terminator == "[DONE]"
    assert settings.idle_timeout == 60.0
    assert settings.strict_finish_reasons == frozenset({"stop", "tool_calls"})
    assert settings.empty_response_message == EMPTY_RESPONSE_MESSAGE
    assert settings.error_message == ERROR_MESSAGE
    assert settings.max_retries == 0
    assert settings.retry_delay == 1.0


def test_from_env(monkeypatch):
    monkeypatch.setenv("CHATSTREAM_IDLE_TIMEOUT", "15")
    monkeypatch.setenv("CHATSTREAM_MAX_RETRIES", "3")
    monkeypatch.setenv("CHATSTREAM_RETRY_DELAY", "0.5")
    settings = StreamSettings.from_env()
    assert settings.idle_timeout == 15.0
    assert settings.max_retries == 3
    assert settings.retry_delay == 0.5


def test_from_env_overrides_win(monkeypatch):
    monkeypatch.setenv("CHATSTREAM_MAX_RETRIES", "3")
    assert StreamSettings.from_env(max_retries=1).max_retries == 1


def test_from_env_without_variables(monkeypatch):
    for name in ("CHATSTREAM_IDLE_TIMEOUT", "CHATSTREAM_MAX_RETRIES", "CHATSTREAM_RETRY_DELAY"):
        monkeypatch.delenv(name, raising=False)
    assert StreamSettings.from_env() == StreamSettings()


def test_configure_logging_with_file(tmp_path, monkeypatch):
    root = logging.getLogger()
    monkeypatch.setattr(root, "handlers", [])
    monkeypatch.setattr(root, "level", root.level)
    log_file = tmp_path / "chatstream.log"

    configure_logging(logging.DEBUG, log_file=str(log_file))
    logging.getLogger("chatstream.test").debug("hello")
    for handler in root.handlers:
        handler.flush()

    assert "chatstream.test:DEBUG:hello" in log_file.read_text()
    for handler in root.handlers:
        handler.close()
