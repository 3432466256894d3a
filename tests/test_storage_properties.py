"""Property-based tests for storage and ledger persistence.

Tests the storage service round-trip properties using Hypothesis.
"""

from __future__ import annotations

import tempfile
from datetime import datetime
from decimal import Decimal
from pathlib import Path

import pytest
from hypothesis import given, settings, strategies as st

from invest_engine import EngineConfig, LedgerStoreError
from invest_engine.engine.consolidation import consolidate
from invest_engine.engine.models import AssetType, Operation
from invest_engine.storage import JsonFileStorage, JsonLedgerStore, LedgerSerializer


@st.composite
def operation_strategy(draw):
    """Generate a ledger operation with string-friendly decimal amounts."""
    return Operation(
        instrument_key=draw(st.sampled_from(["PETR4", "VALE3", "HGLG11", "BTC"])),
        operation_type=draw(st.sampled_from(["buy", "sell"])),
        quantity=draw(st.decimals(min_value=Decimal("0.001"), max_value=Decimal("1000"), places=3)),
        unit_price=draw(st.decimals(min_value=Decimal("0.01"), max_value=Decimal("100000"), places=2)),
        asset_type=draw(st.sampled_from(list(AssetType))),
        fees=draw(st.decimals(min_value=Decimal("0"), max_value=Decimal("50"), places=2)),
        date=draw(st.datetimes(min_value=datetime(2020, 1, 1), max_value=datetime(2025, 12, 31))),
        name=draw(st.text(max_size=20)),
    )


@given(operations=st.lists(operation_strategy(), max_size=20))
@settings(max_examples=100)
def test_ledger_serialization_round_trip(operations):
    """
    **Property 14: Ledger serialization round trip**

    For any ledger, serializing then deserializing SHALL restore equal
    operations in the same order.
    """
    restored = LedgerSerializer.deserialize(LedgerSerializer.serialize(operations))

    assert restored == operations


@given(data=st.dictionaries(
    keys=st.text(alphabet="abcdefghijklmnopqrstuvwxyz_", min_size=1, max_size=10),
    values=st.one_of(st.integers(), st.text(max_size=30), st.lists(st.integers(), max_size=5)),
    max_size=10,
))
@settings(max_examples=50)
def test_json_storage_round_trip(data):
    with tempfile.TemporaryDirectory() as tmp:
        storage = JsonFileStorage(tmp)
        storage.save("targets", data)

        assert storage.load("targets") == data
        assert not any(p.name.endswith(".tmp") for p in Path(tmp).iterdir())


def test_missing_and_corrupted_documents_load_as_none(tmp_path):
    storage = JsonFileStorage(tmp_path)
    (tmp_path / "broken.json").write_text("{not json", encoding="utf-8")

    assert storage.load("missing") is None
    assert storage.load("broken") is None


def test_unserializable_data_raises_and_keeps_previous_document(tmp_path):
    storage = JsonFileStorage(tmp_path)
    storage.save("ledger", {"operations": []})

    with pytest.raises(TypeError):
        storage.save("ledger", {"bad": object()})

    assert storage.load("ledger") == {"operations": []}
    assert [p.name for p in tmp_path.iterdir()] == ["ledger.json"]


def test_delete_removes_document(tmp_path):
    storage = JsonFileStorage(tmp_path)
    storage.save("ledger", [])

    storage.delete("ledger")
    storage.delete("ledger")

    assert storage.load("ledger") is None


def test_keys_with_separators_stay_inside_base_path(tmp_path):
    storage = JsonFileStorage(tmp_path)

    storage.save("users/alice", {"a": 1})

    assert (tmp_path / "users_alice.json").exists()


def test_json_ledger_store_persists_consolidation(tmp_path, sample_ledger):
    store = JsonLedgerStore(JsonFileStorage(tmp_path))
    for op in sample_ledger:
        store.append_operation(op)
    result = consolidate("PETR4", store.get_operations())

    assert store.replace_operations("PETR4", [result.operation], result.replaced_ids)

    reopened = JsonLedgerStore(JsonFileStorage(tmp_path))
    operations = reopened.get_operations()
    assert len(operations) == 3
    merged = operations[0]
    assert merged.lineage is not None
    assert merged.lineage.source_ids == tuple(op.id for op in sample_ledger[:2])
    assert merged.quantity == Decimal("15")


def test_json_ledger_store_rejects_unreadable_ledger(tmp_path):
    storage = JsonFileStorage(tmp_path)
    storage.save("ledger", {"operations": [{"ticker": "BTC", "operation": "buy", "quantity": "x", "price": 1}]})

    with pytest.raises(LedgerStoreError):
        JsonLedgerStore(storage)


def test_failed_write_leaves_ledger_unchanged(tmp_path, sample_ledger):
    class FailingStorage(JsonFileStorage):
        def save(self, key, data):
            raise OSError("disk full")

    store = JsonLedgerStore(FailingStorage(tmp_path))

    with pytest.raises(LedgerStoreError):
        store.append_operation(sample_ledger[0])

    assert store.get_operations() == ()


def test_json_ledger_store_opens_configured_directory(tmp_path, sample_ledger):
    config = EngineConfig(data_dir=tmp_path / "ledgers")
    JsonLedgerStore.from_config(config).append_operation(sample_ledger[0])

    reopened = JsonLedgerStore.from_config(config)

    assert reopened.get_operations() == (sample_ledger[0],)
    assert (tmp_path / "ledgers" / "ledger.json").exists()
