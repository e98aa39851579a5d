from unittest.mock import MagicMock, patch

import structlog

from swipematch.utils.errors import NotFoundError, StorageUnavailableError
from swipematch.utils.logging import (
    add_service_context,
    build_processors,
    configure_logging,
    get_logger,
    log_context,
    log_error,
)


def test_build_processors_picks_renderer():
    json_chain = build_processors(json_logs=True)
    console_chain = build_processors(json_logs=False)

    assert isinstance(json_chain[-1], structlog.processors.JSONRenderer)
    assert isinstance(console_chain[-1], structlog.dev.ConsoleRenderer)
    assert json_chain[0] is structlog.contextvars.merge_contextvars
    assert add_service_context in json_chain


@patch("swipematch.utils.logging.settings")
def test_add_service_context_keeps_explicit_values(mock_settings):
    mock_settings.APP_NAME = "SwipeMatch"
    mock_settings.ENVIRONMENT = "staging"

    event = add_service_context(None, "info", {"event": "hello", "environment": "test"})

    assert event == {"event": "hello", "app": "SwipeMatch", "environment": "test"}


@patch("swipematch.utils.logging.structlog.configure")
@patch("swipematch.utils.logging.logging")
@patch("swipematch.utils.logging.settings")
def test_configure_logging_defaults_from_environment(mock_settings, mock_logging, mock_configure):
    mock_settings.LOG_LEVEL = "DEBUG"
    mock_settings.ENVIRONMENT = "production"

    configure_logging()

    _args, kwargs = mock_logging.basicConfig.call_args
    assert kwargs["level"] == mock_logging.DEBUG
    processors = mock_configure.call_args.kwargs["processors"]
    assert isinstance(processors[-1], structlog.processors.JSONRenderer)


@patch("swipematch.utils.logging.structlog.configure")
@patch("swipematch.utils.logging.logging")
@patch("swipematch.utils.logging.settings")
def test_configure_logging_json_override(mock_settings, mock_logging, mock_configure):
    mock_settings.LOG_LEVEL = "INFO"
    mock_settings.ENVIRONMENT = "development"

    configure_logging(json_logs=True)

    processors = mock_configure.call_args.kwargs["processors"]
    assert isinstance(processors[-1], structlog.processors.JSONRenderer)


@patch("swipematch.utils.logging.structlog")
def test_get_logger_binds_initial_values(mock_structlog):
    logger = get_logger("swipematch.test", match_id="m1")

    mock_structlog.get_logger.assert_called_with("swipematch.test")
    mock_structlog.get_logger.return_value.bind.assert_called_with(match_id="m1")
    assert logger == mock_structlog.get_logger.return_value.bind.return_value


def test_log_context_binds_and_restores():
    structlog.contextvars.clear_contextvars()

    with log_context(request_id="r1"):
        with log_context(request_id="r2", match_id="m1"):
            assert structlog.contextvars.get_contextvars() == {"request_id": "r2", "match_id": "m1"}
        assert structlog.contextvars.get_contextvars() == {"request_id": "r1"}

    assert structlog.contextvars.get_contextvars() == {}


def test_log_context_restores_on_error():
    structlog.contextvars.clear_contextvars()

    try:
        with log_context(request_id="r1"):
            raise ValueError("boom")
    except ValueError:
        pass

    assert "request_id" not in structlog.contextvars.get_contextvars()


def test_log_error_plain_exception():
    mock_logger = MagicMock()
    error = ValueError("bad value")

    log_error(mock_logger, error, "something went wrong", {"user_id": "u1"})

    args, kwargs = mock_logger.error.call_args
    assert args[0] == "something went wrong"
    assert kwargs["user_id"] == "u1"
    assert kwargs["error_type"] == "ValueError"
    assert kwargs["exc_info"] is error
    assert "error_kind" not in kwargs


def test_log_error_client_error_is_a_warning():
    mock_logger = MagicMock()
    extra = {"operation": "lookup"}
    error = NotFoundError("missing", details={"user_id": "u9"})

    log_error(mock_logger, error, extra=extra)

    mock_logger.error.assert_not_called()
    args, kwargs = mock_logger.warning.call_args
    assert args[0] == "An error occurred"
    assert kwargs["error_kind"] == "NotFound"
    assert kwargs["status_code"] == 404
    assert kwargs["error_details"] == {"user_id": "u9"}
    assert "exc_info" not in kwargs
    assert extra == {"operation": "lookup"}


def test_log_error_server_error_keeps_traceback():
    mock_logger = MagicMock()
    error = StorageUnavailableError("db down", details={"operation": "profiles.get"})

    log_error(mock_logger, error, "Request failed")

    mock_logger.warning.assert_not_called()
    _args, kwargs = mock_logger.error.call_args
    assert kwargs["status_code"] == 503
    assert kwargs["error_kind"] == error.kind
    assert kwargs["exc_info"] is error
