"""
Pytest configuration and global fixtures.

This module provides shared fixtures used across all tests.
"""

import os
from collections.abc import Callable, Generator
from datetime import datetime
from typing import Any

import pytest

from pixproof.reconciliation.domain import (
    BankTransactionRecord,
    ReceiptRecord,
    ReconciliationSettings,
)
from pixproof.reconciliation.engine import ReconciliationEngine
from pixproof.reconciliation.learning import LearningStore
from pixproof.utils import config


@pytest.fixture(autouse=True)
def isolated_settings(monkeypatch) -> Generator[None, None, None]:
    """Run every test against default settings, whatever the environment holds."""
    for key in list(os.environ):
        if key.startswith("PIXPROOF_"):
            monkeypatch.delenv(key)
    monkeypatch.chdir(os.path.dirname(__file__))  # no stray .env file
    config._settings = None
    yield
    config._settings = None


@pytest.fixture
def make_receipt() -> Callable[..., ReceiptRecord]:
    """Factory for receipts with sensible defaults."""
    counter = iter(range(1, 10_000))

    def _make(**overrides: Any) -> ReceiptRecord:
        data: dict[str, Any] = {
            "id": f"r{next(counter)}",
            "amount": "100.00",
            "payer_name": "JOAO SILVA",
            "transaction_date": datetime(2025, 7, 15, 14, 30),
        }
        data.update(overrides)
        return ReceiptRecord(**data)

    return _make


@pytest.fixture
def make_transaction() -> Callable[..., BankTransactionRecord]:
    """Factory for bank transactions with sensible defaults."""
    counter = iter(range(1, 10_000))

    def _make(**overrides: Any) -> BankTransactionRecord:
        data: dict[str, Any] = {
            "id": f"t{next(counter)}",
            "amount": "100.00",
            "description": "PIX RECEBIDO - JOAO SILVA",
            "transaction_date": datetime(2025, 7, 15, 14, 45),
        }
        data.update(overrides)
        return BankTransactionRecord(**data)

    return _make


@pytest.fixture
def settings() -> ReconciliationSettings:
    """Default reconciliation settings."""
    return ReconciliationSettings()


@pytest.fixture
def learning() -> LearningStore:
    return LearningStore()


@pytest.fixture
def engine(settings: ReconciliationSettings, learning: LearningStore) -> ReconciliationEngine:
    """Engine with default settings and an empty learning store."""
    return ReconciliationEngine(settings, learning)
