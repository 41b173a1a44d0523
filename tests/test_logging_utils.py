import json
import logging
import os
import sys

sys.path.append(os.path.join(os.path.dirname(__file__), '..', 'src'))

from voicepipe.logging_utils import log_error_with_context, log_with_context, setup_logger


def _lines(path):
    return [json.loads(line) for line in path.read_text().splitlines() if line.strip()]


def test_setup_logger_is_idempotent(tmp_path):
    logfile = str(tmp_path / "plain.log")
    first = setup_logger("voicepipe.test_idempotent", logfile)
    second = setup_logger("voicepipe.test_idempotent", logfile)

    assert first is second
    assert len(first.handlers) == 2


def test_structured_logger_writes_context_as_json(tmp_path):
    logfile = tmp_path / "structured.log"
    logger = setup_logger("voicepipe.test_structured", str(logfile), structured=True)

    log_with_context(logger, logging.INFO, "chunk played", request_id="req-1", chunk_index=2)

    entry = _lines(logfile)[-1]
    assert entry["message"] == "chunk played"
    assert entry["request_id"] == "req-1"
    assert entry["chunk_index"] == 2
    assert entry["level"] == "INFO"


def test_error_with_context_returns_id(tmp_path):
    logfile = tmp_path / "errors.log"
    logger = setup_logger("voicepipe.test_errors", str(logfile), structured=True)

    try:
        raise ValueError("bad audio")
    except ValueError as e:
        error_id = log_error_with_context(logger, e, component="playback")

    entry = _lines(logfile)[-1]
    assert error_id.startswith("ERR_")
    assert entry["error_id"] == error_id
    assert entry["error_type"] == "ValueError"
    assert entry["message"] == "Error in playback: bad audio"
    assert entry["traceback"]
