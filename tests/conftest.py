from __future__ import annotations

from datetime import datetime
from decimal import Decimal

import pytest

from invest_engine import EngineConfig, PortfolioService
from invest_engine.engine.models import AssetType, Operation
from invest_engine.storage import InMemoryLedgerStore


@pytest.fixture
def sample_ledger():
    """Small ledger with two stock lots, a fii and a partial sale."""
    return [
        Operation("PETR4", "buy", Decimal("10"), Decimal("10"), AssetType.STOCK, date=datetime(2024, 1, 10)),
        Operation("PETR4", "buy", Decimal("5"), Decimal("20"), AssetType.STOCK, date=datetime(2024, 3, 5)),
        Operation("HGLG11", "buy", Decimal("4"), Decimal("150"), AssetType.FII, date=datetime(2024, 2, 1)),
        Operation("PETR4", "sell", Decimal("3"), Decimal("25"), AssetType.STOCK, date=datetime(2024, 4, 1)),
    ]


@pytest.fixture
def store(sample_ledger):
    return InMemoryLedgerStore(sample_ledger)


@pytest.fixture
def service(store):
    return PortfolioService(store, EngineConfig())
