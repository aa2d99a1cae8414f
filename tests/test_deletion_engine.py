import pytest
import numpy as np
import sys
import os
import logging
from datetime import datetime, timezone
from numpy.random import default_rng

# Add parent directory to path to import from src
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from src.pipeline.knn_restoration.data_generators import generate_data
from src.pipeline.knn_restoration.deletion import DeletionEngine, DeletionRequest
from src.pipeline.knn_restoration.errors import ValidationError
from src.pipeline.knn_restoration.records import FEATURE_NAMES, Record, RecordSchema
from src.pipeline.knn_restoration.store import DataStore

# --- Fixtures ---

@pytest.fixture
def store():
    """Store holding 40 generated records (all feature values between 1 and 10)."""
    store = DataStore()
    store.add_records(generate_data(n=40, rng=default_rng(0)))
    return store


@pytest.fixture
def ten_records():
    """10 active records split 5/5 between the two classes, no zero values."""
    records = []
    for i in range(10):
        features = {name: float(j + 1) + i for j, name in enumerate(FEATURE_NAMES)}
        records.append(Record(id=i + 1, label=2 if i < 5 else 4, features=features))
    return records


def zeroed_fields(record):
    return [name for name, value in record.features.items() if value == 0]

# ----------------------------------------------------------------------
# Partial and full deletion
# ----------------------------------------------------------------------

def test_01_three_rows_two_attributes(ten_records):
    """Random deletion of 3 rows with 2 attributes each zeroes exactly 2 fields on 3 records."""
    engine = DeletionEngine(rng=default_rng(5))
    plan = engine.plan_deletion(ten_records, DeletionRequest(target_row_count=3, attributes_per_row=2))

    assert len(plan.per_record_updates) == 3
    assert plan.removed_record_ids == []
    for updated in plan.per_record_updates.values():
        assert len(zeroed_fields(updated)) == 2
        assert updated.status == 'removed'
    assert plan.statistics.partial_deletions == 3
    assert plan.statistics.full_deletions == 0
    assert plan.statistics.total_deleted == 3
    assert not plan.is_full_deletion


def test_02_partial_snapshot_keeps_original_values(ten_records):
    engine = DeletionEngine(rng=default_rng(6))
    now = datetime(2024, 1, 1, tzinfo=timezone.utc)
    plan = engine.plan_deletion(ten_records, DeletionRequest(target_row_count=4, attributes_per_row=3), now=now)
    originals = {r.id: r for r in ten_records}

    for snapshot in plan.deleted_records:
        assert snapshot.status == 'deleted'
        assert snapshot.deleted_at == now
        assert not snapshot.full_row_deleted
        assert len(snapshot.deleted_attributes) == len(set(snapshot.deleted_attributes)) == 3
        assert set(snapshot.deleted_attributes) <= set(FEATURE_NAMES)
        assert snapshot.features == originals[snapshot.id].features
        assert sorted(zeroed_fields(plan.per_record_updates[snapshot.id])) == sorted(snapshot.deleted_attributes)

    # Input records are never mutated
    assert all(not zeroed_fields(r) and r.status == 'active' for r in ten_records)
    assert sum(plan.statistics.attributes_deleted.values()) == 12


@pytest.mark.parametrize("attributes_per_row, force_full_row", [(7, False), (7, True), (10, False), (2, True)])
def test_03_full_deletion(ten_records, attributes_per_row, force_full_row):
    """More than 6 attributes (or forcing) always removes the whole row."""
    engine = DeletionEngine(rng=default_rng(7))
    request = DeletionRequest(target_row_count=4, attributes_per_row=attributes_per_row, force_full_row=force_full_row)
    plan = engine.plan_deletion(ten_records, request)

    assert plan.is_full_deletion
    assert len(plan.removed_record_ids) == 4
    assert plan.per_record_updates == {}
    for snapshot in plan.deleted_records:
        assert snapshot.full_row_deleted
        assert snapshot.deleted_attributes == []
    assert plan.statistics.full_deletions == 4
    assert plan.statistics.attributes_deleted == {}


def test_04_six_attributes_is_still_partial(ten_records):
    plan = DeletionEngine(rng=default_rng(8)).plan_deletion(
        ten_records, DeletionRequest(target_row_count=2, attributes_per_row=6))
    assert not plan.is_full_deletion
    assert all(len(s.deleted_attributes) == 6 for s in plan.deleted_records)


def test_05_attributes_limited_to_eligible_features():
    schema = RecordSchema(feature_names=('a', 'b'), class_labels=(2, 4))
    records = [Record(id=i, label=2, features={'a': 1.0, 'b': 2.0}) for i in range(3)]
    plan = DeletionEngine(schema, rng=default_rng(0)).plan_deletion(
        records, DeletionRequest(target_row_count=3, attributes_per_row=2))
    assert all(sorted(s.deleted_attributes) == ['a', 'b'] for s in plan.deleted_records)


def test_06_deleted_records_are_ignored(ten_records):
    ten_records[0].status = 'deleted'
    plan = DeletionEngine(rng=default_rng(9)).plan_deletion(
        ten_records, DeletionRequest(target_row_count=9, attributes_per_row=1))
    assert 1 not in plan.per_record_updates
    assert len(plan.deleted_records) == 9

# ----------------------------------------------------------------------
# Explicit mode
# ----------------------------------------------------------------------

def test_07_explicit_ids(ten_records):
    request = DeletionRequest(mode='explicit', explicit_ids=[2, 5, 999], attributes_per_row=7)
    plan = DeletionEngine(rng=default_rng(1)).plan_deletion(ten_records, request)
    assert sorted(plan.removed_record_ids) == [2, 5]


@pytest.mark.parametrize("explicit_ids", [[1, 2, 98, 99], [1, 1, 2, 2, 2]])
def test_07b_explicit_ids_beyond_active_count(ten_records, explicit_ids):
    active = ten_records[:3]
    request = DeletionRequest(mode='explicit', explicit_ids=explicit_ids, attributes_per_row=2)
    plan = DeletionEngine(rng=default_rng(2)).plan_deletion(active, request)
    assert sorted(s.id for s in plan.deleted_records) == [1, 2]
    assert sorted(plan.per_record_updates) == [1, 2]
    assert plan.statistics.partial_deletions == 2


@pytest.mark.parametrize("request_kwargs, message", [
    ({'target_row_count': 0}, "At least 1 row"),
    ({'target_row_count': 11}, "Cannot delete more rows"),
    ({'target_row_count': 2, 'attributes_per_row': 0}, "At least 1 attribute"),
    ({'target_row_count': 2, 'attributes_per_row': 11}, "Cannot delete more attributes"),
    ({'mode': 'sequential', 'target_row_count': 2}, "Unknown deletion mode"),
    ({'mode': 'explicit', 'explicit_ids': []}, "No rows were selected"),
    ({'mode': 'explicit', 'explicit_ids': [100, 101]}, "are active"),
])
def test_08_invalid_requests(ten_records, request_kwargs, message):
    engine = DeletionEngine(rng=default_rng(0))
    with pytest.raises(ValidationError) as exc_info:
        engine.plan_deletion(ten_records, DeletionRequest(**request_kwargs))
    assert message in str(exc_info.value)


def test_09_validation_leaves_store_untouched(store):
    before = store.get_table_items()
    with pytest.raises(ValidationError):
        plan = DeletionEngine(rng=default_rng(0)).plan_deletion(
            store.get_active_records(), DeletionRequest(target_row_count=41))
        store.apply_deletion_result(plan)
    assert store.get_table_items() == before
    assert store.get_deleted_records() == []

# ----------------------------------------------------------------------
# Determinism and store application
# ----------------------------------------------------------------------

def test_10_same_seed_same_plan(store):
    request = DeletionRequest(target_row_count=5, attributes_per_row=3)
    plan_a = DeletionEngine(seed=11).plan_deletion(store.get_active_records(), request)
    plan_b = DeletionEngine(seed=11).plan_deletion(store.get_active_records(), request)
    assert [(s.id, s.deleted_attributes) for s in plan_a.deleted_records] == \
        [(s.id, s.deleted_attributes) for s in plan_b.deleted_records]


def test_11_apply_full_deletion(store, caplog):
    engine = DeletionEngine(rng=default_rng(3))
    with caplog.at_level(logging.INFO):
        plan = engine.plan_deletion(store.get_active_records(), DeletionRequest(target_row_count=5, attributes_per_row=8))
    store.apply_deletion_result(plan)

    active_ids = {r.id for r in store.get_active_records()}
    deleted_ids = {r.id for r in store.get_deleted_records()}
    assert len(active_ids) == 35
    assert active_ids.isdisjoint(deleted_ids)
    assert len(store.get_full_deletions()) == 5
    assert store.get_partial_deletions() == []
    assert "Planned full deletion of 5 of 40 active rows" in caplog.text


def test_12_new_batch_replaces_previous(store):
    engine = DeletionEngine(rng=default_rng(4))
    first = engine.plan_deletion(store.get_active_records(), DeletionRequest(target_row_count=3, attributes_per_row=8))
    store.apply_deletion_result(first)
    second = engine.plan_deletion(store.get_active_records(), DeletionRequest(target_row_count=2, attributes_per_row=2))
    store.apply_deletion_result(second)

    assert sorted(r.id for r in store.get_deleted_records()) == sorted(s.id for s in second.deleted_records)
    assert store.get_full_deletions() == []
    assert store.statistics.as_dict() == second.statistics.as_dict()
    assert store.statistics.total_deleted == 2
    # Rows removed by the first batch stay out of the table
    assert len(store.get_table_items()) == 37
    assert len(store.get_partial_deletions()) == 2
