"""KNN-based restoration of deleted records."""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone

from src.pipeline.knn_restoration.aggregation import impute_value
from src.pipeline.knn_restoration.config import ImputationRule, KNNConfig
from src.pipeline.knn_restoration.errors import PerRecordFailure
from src.pipeline.knn_restoration.knn_search import find_knn
from src.pipeline.knn_restoration.records import STATUS_RESTORED, RecordSchema, clean_label, is_missing_value

logger = logging.getLogger(__name__)


@dataclass
class RestorationResult:
    restored_count: int
    failed_count: int
    updated_active: list
    updated_deleted: list
    restored_ids: list = field(default_factory=list)
    failures: list = field(default_factory=list)


class RestorationEngine:
    """Rebuilds deleted attributes (or whole rows) from same-class neighbors.

    The default config is an immutable value; a config passed to restore()
    replaces it for that call only.
    """

    def __init__(self, config=None, schema=None):
        self.config = (config or KNNConfig()).validate()
        self.schema = schema or RecordSchema()

    def _missing_features(self, record):
        if record.full_row_deleted:
            return list(self.schema.feature_names)
        missing = list(record.deleted_attributes)
        for name in self.schema.feature_names:
            if name not in missing and is_missing_value(record.features.get(name)):
                missing.append(name)
        return missing

    def _query(self, record, missing):
        features = dict(record.features)
        for name in missing:
            if record.full_row_deleted:
                # Keep surviving values of a removed row as search context
                if is_missing_value(features.get(name)):
                    features[name] = None
            else:
                features[name] = None
        return record.copy(features=features)

    def restore_record(self, record, active_records, config, imputation_rule, now=None):
        """
        Compute the restored version of one deleted record.

        Raises PerRecordFailure when the record has no recognized label or no
        same-class neighbor exists. Nothing is mutated.
        """
        label = clean_label(record.label)
        if label not in self.schema.class_labels:
            raise PerRecordFailure(record.id, f"unrecognized label {record.label!r}")

        pool = [row for row in active_records
                if row.id != record.id and clean_label(row.label) == label]
        if not pool:
            raise PerRecordFailure(record.id, f"no active records with label {label}")

        missing = self._missing_features(record)
        neighbors = find_knn(self._query(record, missing), pool, self.schema.feature_names, config)
        if not neighbors:
            raise PerRecordFailure(record.id, "no neighbors found")

        if record.full_row_deleted:
            features = dict(record.features)
        else:
            index = self._find_index(active_records, record.id)
            if index is None:
                raise PerRecordFailure(record.id, "identifier not found in the active set")
            features = dict(active_records[index].features)

        for name in missing:
            value = impute_value([n.record.features.get(name) for n in neighbors], imputation_rule)
            if value is not None:
                features[name] = value

        return record.copy(
            label=label,
            features=features,
            status=STATUS_RESTORED,
            deleted_at=None,
            full_row_deleted=False,
            deleted_attributes=[],
            restored_at=now or datetime.now(timezone.utc),
        )

    @staticmethod
    def _find_index(records, record_id):
        for i, row in enumerate(records):
            if row.id == record_id:
                return i
        return None

    def restore(self, deleted_records, active_records, config=None, imputation_rule=None):
        """
        Restore every deleted record that has same-class neighbors.

        Parameters:
        -----------
        deleted_records : list of Record
            The deleted partition (snapshots with ``full_row_deleted`` / ``deleted_attributes``)
        active_records : list of Record
            Current active table rows
        config : KNNConfig, optional
            Overrides the engine default for this call
        imputation_rule : ImputationRule, optional
            'Median Value' selects the median, anything else the mean

        Returns:
        --------
        RestorationResult : per-record failures are tallied, never raised
        """
        config = config.validate() if config is not None else self.config
        imputation_rule = imputation_rule or ImputationRule()
        updated_active = [row.copy() for row in active_records if row.is_active]
        updated_deleted = [row.copy() for row in deleted_records]
        restored_ids = []
        failures = []

        if not updated_deleted:
            logger.info("No deleted records to restore")
            return RestorationResult(0, 0, updated_active, updated_deleted)

        logger.info(f"Restoring {len(updated_deleted)} deleted records with {config.name}")
        for record in list(updated_deleted):
            try:
                restored = self.restore_record(record, updated_active, config, imputation_rule)
            except PerRecordFailure as failure:
                logger.warning(str(failure))
                failures.append(failure)
                continue

            if record.full_row_deleted:
                updated_active.append(restored)
            else:
                updated_active[self._find_index(updated_active, record.id)] = restored
            updated_deleted = [row for row in updated_deleted if row.id != record.id]
            restored_ids.append(record.id)

        logger.info(f"Restored {len(restored_ids)} records, {len(failures)} failed")
        return RestorationResult(
            restored_count=len(restored_ids),
            failed_count=len(failures),
            updated_active=updated_active,
            updated_deleted=updated_deleted,
            restored_ids=restored_ids,
            failures=failures,
        )
