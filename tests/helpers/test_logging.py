from __future__ import annotations

import logging

import pytest

from dissect.xva.helpers.logging import TRACE_LEVEL, DiskLogAdapter, TraceLogger, get_logger


def test_get_logger() -> None:
    log = get_logger("dissect.xva.test")

    assert isinstance(log, TraceLogger)
    assert logging.getLevelName(TRACE_LEVEL) == "TRACE"


def test_trace(caplog: pytest.LogCaptureFixture) -> None:
    log = get_logger("dissect.xva.test.trace")

    with caplog.at_level(TRACE_LEVEL, logger="dissect.xva.test.trace"):
        log.trace("block %d", 3)

    assert caplog.records[0].levelno == TRACE_LEVEL
    assert caplog.records[0].getMessage() == "block 3"


def test_disk_log_adapter(caplog: pytest.LogCaptureFixture) -> None:
    log = DiskLogAdapter(get_logger("dissect.xva.test.adapter"), {"disk": 1})

    with caplog.at_level(TRACE_LEVEL, logger="dissect.xva.test.adapter"):
        log.warning("conversion failed")
        log.trace("details")

    assert [record.getMessage() for record in caplog.records] == ["disk 1: conversion failed", "disk 1: details"]
