"""Deletion planning: which records lose which attributes.

The engine never mutates the records it is given. It returns a DeletionPlan
that the table owner applies (see DataStore.apply_deletion_result).
"""

import logging
import numbers
from dataclasses import dataclass, field
from datetime import datetime, timezone

from src.pipeline.knn_restoration.config import FULL_DELETION_THRESHOLD, MIN_ROWS_TO_DELETE
from src.pipeline.knn_restoration.errors import ValidationError
from src.pipeline.knn_restoration.records import STATUS_DELETED, STATUS_REMOVED, RecordSchema
from src.pipeline.knn_restoration.sampling import as_sampler

logger = logging.getLogger(__name__)

RANDOM_MODE = 'random'
EXPLICIT_MODE = 'explicit'


@dataclass
class DeletionRequest:
    mode: str = RANDOM_MODE
    target_row_count: int = 0
    explicit_ids: list = field(default_factory=list)
    attributes_per_row: int = 1
    force_full_row: bool = False

    @property
    def is_full_deletion(self):
        return bool(self.force_full_row) or self.attributes_per_row > FULL_DELETION_THRESHOLD

    @property
    def row_count(self):
        return self.target_row_count if self.mode == RANDOM_MODE else len(self.explicit_ids)

    @property
    def name(self):
        suffix = '_full' if self.is_full_deletion else ''
        return f"{self.mode}_rows{self.row_count}_attrs{self.attributes_per_row}{suffix}"


@dataclass
class DeletionStatistics:
    total_deleted: int = 0
    partial_deletions: int = 0
    full_deletions: int = 0
    attributes_deleted: dict = field(default_factory=dict)

    def record_deletion(self, deleted_attributes, is_full_deletion):
        self.total_deleted += 1
        if is_full_deletion:
            self.full_deletions += 1
        else:
            self.partial_deletions += 1
            for attr in deleted_attributes:
                self.attributes_deleted[attr] = self.attributes_deleted.get(attr, 0) + 1

    def record_restore(self, record):
        """Undo the counts of one deleted record."""
        self.total_deleted = max(0, self.total_deleted - 1)
        if record.full_row_deleted:
            self.full_deletions = max(0, self.full_deletions - 1)
            return
        self.partial_deletions = max(0, self.partial_deletions - 1)
        for attr in record.deleted_attributes:
            remaining = self.attributes_deleted.get(attr, 0) - 1
            if remaining > 0:
                self.attributes_deleted[attr] = remaining
            else:
                self.attributes_deleted.pop(attr, None)

    def copy(self):
        return DeletionStatistics(self.total_deleted, self.partial_deletions,
                                  self.full_deletions, dict(self.attributes_deleted))

    def as_dict(self):
        return {
            'total_deleted': self.total_deleted,
            'partial_deletions': self.partial_deletions,
            'full_deletions': self.full_deletions,
            'attributes_deleted': dict(self.attributes_deleted),
        }


@dataclass
class DeletionPlan:
    """Mutation instructions for one deletion batch.

    removed_record_ids  -- records leaving the active table (full deletions)
    per_record_updates  -- id -> zeroed active copy (partial deletions)
    deleted_records     -- snapshots for the deleted partition, pre-zero values kept
    statistics          -- counters of this batch, starting from zero
    """
    removed_record_ids: list
    per_record_updates: dict
    deleted_records: list
    statistics: DeletionStatistics
    is_full_deletion: bool


def _is_count(value):
    return isinstance(value, numbers.Integral) and not isinstance(value, bool)


class DeletionEngine:
    def __init__(self, schema=None, sampler=None, rng=None, seed=None):
        self.schema = schema or RecordSchema()
        self.sampler = as_sampler(sampler if sampler is not None else rng, seed=seed)

    @property
    def eligible_features(self):
        return list(self.schema.feature_names)

    def validate_request(self, active_records, request):
        """
        Check a request against the active records and resolve its candidate ids.

        Raises ValidationError without side effects when the request is malformed.
        For explicit requests ids that are not active are dropped silently.
        """
        n_active = len(active_records)
        n_features = len(self.eligible_features)

        if request.mode not in (RANDOM_MODE, EXPLICIT_MODE):
            raise ValidationError(f"Unknown deletion mode {request.mode!r}. Expected 'random' or 'explicit'.")
        if not _is_count(request.attributes_per_row) or request.attributes_per_row < 1:
            raise ValidationError(f"At least 1 attribute must be deleted. Got {request.attributes_per_row!r}.")
        if request.attributes_per_row > n_features:
            raise ValidationError(
                f"Cannot delete more attributes than available ({n_features}). Got {request.attributes_per_row}.")

        if request.mode == RANDOM_MODE:
            if not _is_count(request.target_row_count) or request.target_row_count < MIN_ROWS_TO_DELETE:
                raise ValidationError(
                    f"At least {MIN_ROWS_TO_DELETE} row must be deleted. Got {request.target_row_count!r}.")
            if request.target_row_count > n_active:
                raise ValidationError(
                    f"Cannot delete more rows than available ({n_active}). Got {request.target_row_count}.")
            return None

        if not request.explicit_ids:
            raise ValidationError("No rows were selected for deletion.")
        requested = set(request.explicit_ids)
        valid_ids = [record.id for record in active_records if record.id in requested]
        if not valid_ids:
            raise ValidationError(f"None of the selected ids {list(request.explicit_ids)} are active.")
        return valid_ids

    def plan_deletion(self, active_records, request, now=None):
        """
        Decide which records are removed or have attributes zeroed.

        Parameters:
        -----------
        active_records : list of Record
            Current table rows; rows with status 'deleted' are ignored
        request : DeletionRequest
        now : datetime, optional
            Timestamp stored in ``deleted_at`` (defaults to current UTC time)

        Returns:
        --------
        DeletionPlan
        """
        active = [record for record in active_records if record.is_active]
        candidate_ids = self.validate_request(active, request)
        if candidate_ids is None:
            candidate_ids = self.sampler.sample([record.id for record in active], request.target_row_count)
        candidate_ids = set(candidate_ids)

        now = now or datetime.now(timezone.utc)
        is_full_deletion = request.is_full_deletion
        statistics = DeletionStatistics()
        removed_ids = []
        updates = {}
        deleted_records = []

        for record in active:
            if record.id not in candidate_ids:
                continue
            if is_full_deletion:
                removed_ids.append(record.id)
                deleted_records.append(record.copy(
                    status=STATUS_DELETED, deleted_at=now, full_row_deleted=True, deleted_attributes=[]))
                statistics.record_deletion([], True)
                continue

            attributes = self.sampler.sample(self.eligible_features, request.attributes_per_row)
            zeroed = dict(record.features)
            zeroed.update({attr: 0 for attr in attributes})
            updates[record.id] = record.copy(features=zeroed, status=STATUS_REMOVED)
            deleted_records.append(record.copy(
                status=STATUS_DELETED, deleted_at=now, full_row_deleted=False, deleted_attributes=list(attributes)))
            statistics.record_deletion(attributes, False)

        kind = 'full' if is_full_deletion else f'partial ({request.attributes_per_row} attributes per row)'
        logger.info(f"Planned {kind} deletion of {len(deleted_records)} of {len(active)} active rows")
        return DeletionPlan(
            removed_record_ids=removed_ids,
            per_record_updates=updates,
            deleted_records=deleted_records,
            statistics=statistics,
            is_full_deletion=is_full_deletion,
        )
