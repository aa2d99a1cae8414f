"""In-memory table owner that applies deletion and restoration results."""

import logging

import pandas as pd

from src.pipeline.knn_restoration.deletion import DeletionStatistics
from src.pipeline.knn_restoration.records import (
    STATUS_RESTORED, STATUS_UPDATED, RecordSchema, record_from_row, records_to_frame
)
from src.pipeline.knn_restoration.reporter import data_quality_metrics

logger = logging.getLogger(__name__)


class DataStore:
    """Owns the canonical table, the deleted partition and the batch statistics.

    Accessors hand out copies so engines can never modify the table directly.
    """

    def __init__(self, schema=None):
        self.schema = schema or RecordSchema()
        self.table = []
        self.deleted_records = []
        self.full_deletions = []
        self.statistics = DeletionStatistics()
        self._next_id = 1

    def add_records(self, rows):
        """Replace the table with new rows, assigning fresh identifiers."""
        if isinstance(rows, pd.DataFrame):
            rows = rows.to_dict('records')
        records = []
        for row in rows:
            records.append(record_from_row(row, self.schema, self._next_id))
            self._next_id += 1
        self.table = records
        self.deleted_records = []
        self.full_deletions = []
        self.statistics = DeletionStatistics()
        logger.info(f"Loaded {len(records)} records")
        return [record.copy() for record in records]

    def get_table_items(self):
        return [record.copy() for record in self.table]

    def get_active_records(self):
        return [record.copy() for record in self.table if record.is_active]

    def get_deleted_records(self):
        return [record.copy() for record in self.deleted_records]

    def get_full_deletions(self):
        return [record.copy() for record in self.full_deletions]

    def get_partial_deletions(self):
        full_ids = {record.id for record in self.full_deletions}
        return [record.copy() for record in self.deleted_records if record.id not in full_ids]

    def get_deletion_statistics(self):
        return self.statistics.copy()

    def clear_deleted_records(self):
        self.deleted_records = []
        self.full_deletions = []
        self.statistics = DeletionStatistics()

    def apply_deletion_result(self, plan):
        """Apply a DeletionPlan. A new batch replaces the previous deleted partition."""
        removed = set(plan.removed_record_ids)
        table = []
        for record in self.table:
            if record.id in removed:
                continue
            updated = plan.per_record_updates.get(record.id)
            table.append(updated.copy() if updated is not None else record)

        deleted = [record.copy() for record in plan.deleted_records]
        self.table = table
        self.deleted_records = deleted
        self.full_deletions = [record for record in deleted if record.full_row_deleted]
        self.statistics = plan.statistics.copy()

    def apply_restoration_result(self, result):
        remaining_ids = {record.id for record in result.updated_deleted}
        self.table = [record.copy() for record in result.updated_active]
        self.deleted_records = [record.copy() for record in result.updated_deleted]
        self.full_deletions = [record for record in self.full_deletions if record.id in remaining_ids]

    def restore_record(self, record_id):
        """
        Put one deleted record back with its original values (no imputation).

        Returns False when the id is not in the deleted partition.
        """
        index = next((i for i, row in enumerate(self.deleted_records) if row.id == record_id), None)
        if index is None:
            return False
        deleted = self.deleted_records[index]

        if deleted.full_row_deleted:
            self.table.append(deleted.copy(
                status=STATUS_RESTORED, deleted_at=None, full_row_deleted=False, deleted_attributes=[]))
        else:
            existing = next((row for row in self.table if row.id == record_id), None)
            if existing is not None:
                for attr in deleted.deleted_attributes:
                    if existing.features.get(attr) == 0:
                        existing.features[attr] = deleted.features.get(attr)
                existing.status = STATUS_RESTORED

        del self.deleted_records[index]
        self.full_deletions = [row for row in self.full_deletions if row.id != record_id]
        self.statistics.record_restore(deleted)
        return True

    def update_row(self, record_id, values):
        for record in self.table:
            if record.id == record_id:
                record.features.update({k: v for k, v in values.items() if k in self.schema.feature_names})
                record.status = STATUS_UPDATED
                return True
        return False

    def data_quality_metrics(self):
        return data_quality_metrics(self.table, self.deleted_records)

    def to_frame(self):
        return records_to_frame(self.table, self.schema)
