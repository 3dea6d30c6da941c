"""Tests for structured logging setup."""

from __future__ import annotations

import json
import logging

from confidential_records.logger import ROOT_LOGGER, configure_logging, get_logger


def test_get_logger_nests_under_package_root():
    assert get_logger("gateway").name == f"{ROOT_LOGGER}.gateway"
    assert get_logger(f"{ROOT_LOGGER}.records").name == f"{ROOT_LOGGER}.records"


def test_configure_logging_writes_json_lines(tmp_path):
    root = logging.getLogger(ROOT_LOGGER)
    saved = list(root.handlers)
    for handler in saved:
        root.removeHandler(handler)

    log_file = tmp_path / "logs" / "records.log"
    try:
        logger = configure_logging("INFO", str(log_file))
        get_logger("gateway").info("sealed handle")
        for handler in logger.handlers:
            handler.flush()

        line = log_file.read_text().strip().splitlines()[-1]
        entry = json.loads(line)
        assert entry["level"] == "INFO"
        assert entry["name"] == f"{ROOT_LOGGER}.gateway"
        assert entry["msg"] == "sealed handle"
        assert entry["ts"].endswith("Z")
    finally:
        for handler in list(root.handlers):
            root.removeHandler(handler)
            handler.close()
        for handler in saved:
            root.addHandler(handler)
