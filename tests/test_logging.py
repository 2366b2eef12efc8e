"""Tests for the package logger bootstrap."""

from __future__ import annotations

import logging

import shop_ledger


def test_configure_logging_is_idempotent():
    handlers = list(shop_ledger.log.handlers)

    assert shop_ledger.configure_logging() is shop_ledger.log
    assert shop_ledger.log.handlers == handlers


def test_console_level_reads_environment(monkeypatch):
    monkeypatch.setenv("SHOP_LEDGER_CONSOLE_LEVEL", "debug")
    assert shop_ledger._console_level() == logging.DEBUG

    monkeypatch.setenv("SHOP_LEDGER_CONSOLE_LEVEL", "chatty")
    assert shop_ledger._console_level() == logging.WARNING
