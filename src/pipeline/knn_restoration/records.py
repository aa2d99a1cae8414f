"""Record model: row shape, field classification and value cleaning."""

import math
import numbers
import re
from dataclasses import dataclass, field, replace

import numpy as np
import pandas as pd

STATUS_ACTIVE = 'active'
STATUS_UPDATED = 'updated'
STATUS_REMOVED = 'removed'
STATUS_DELETED = 'deleted'
STATUS_RESTORED = 'restored'

# Breast cancer (Wisconsin) cytology features: 2 = benign, 4 = malignant
FEATURE_NAMES = (
    'radius', 'texture', 'perimeter', 'area',
    'smoothness', 'compactness', 'concavity',
    'concavePoints', 'symmetry', 'fractalDimension'
)
CLASS_LABELS = (2, 4)

# Identifier, label and lifecycle fields are never deletable attributes
RESERVED_FIELDS = ('id', 'decision', 'status', 'deletedAt', 'fullRowDeleted', 'deletedAttributes', 'restoredAt')

_LEADING_INT = re.compile(r'^[+-]?\d+')


@dataclass(frozen=True)
class RecordSchema:
    """Fixed description of a dataset: ordered features and the two classes."""
    feature_names: tuple = FEATURE_NAMES
    class_labels: tuple = CLASS_LABELS
    id_field: str = 'id'
    label_field: str = 'decision'

    def __post_init__(self):
        object.__setattr__(self, 'feature_names', tuple(self.feature_names))
        object.__setattr__(self, 'class_labels', tuple(self.class_labels))
        if len(self.class_labels) != 2:
            raise ValueError(f"Exactly two class labels are required. Got {self.class_labels}.")
        if not self.feature_names:
            raise ValueError("At least one feature name is required.")

    def is_recognized(self, label):
        return clean_label(label) in self.class_labels

    @property
    def positive_label(self):
        return self.class_labels[0]

    @property
    def negative_label(self):
        return self.class_labels[1]


@dataclass
class Record:
    id: int
    label: object
    features: dict = field(default_factory=dict)
    status: str = STATUS_ACTIVE
    deleted_at: object = None
    full_row_deleted: bool = False
    deleted_attributes: list = field(default_factory=list)
    restored_at: object = None

    @property
    def is_active(self):
        return self.status != STATUS_DELETED

    def copy(self, **changes):
        """Return an independent copy, optionally with some fields replaced."""
        changes.setdefault('features', dict(self.features))
        changes.setdefault('deleted_attributes', list(self.deleted_attributes))
        return replace(self, **changes)


def clean_label(value):
    """Parse a raw class label the way the source tables store it.

    Carriage returns and surrounding whitespace are stripped and the leading
    integer is taken, so ``'4\\r'`` and ``'4.0'`` both become ``4``.
    Returns None when no integer can be read.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, numbers.Integral):
        return int(value)
    if isinstance(value, numbers.Real):
        if math.isnan(value) or math.isinf(value):
            return None
        return int(value)
    match = _LEADING_INT.match(str(value).replace('\r', '').strip())
    return int(match.group(0)) if match else None


def to_number(value):
    """Convert a raw feature value to float, NaN when it is not numeric."""
    if value is None or isinstance(value, bool):
        return float('nan')
    if isinstance(value, numbers.Real):
        return float(value)
    try:
        return float(str(value).strip())
    except ValueError:
        return float('nan')


def clean_value(value):
    """Coerce a raw feature value to a number, non-numeric input becomes 0."""
    number = to_number(value)
    return 0.0 if math.isnan(number) else number


def is_missing_value(value):
    """Zero, NaN and None all mark a feature as lost."""
    if value is None:
        return True
    number = to_number(value)
    return math.isnan(number) or number == 0


def feature_matrix(records, feature_names):
    """Stack record features into a float matrix, NaN for non-numeric cells."""
    matrix = np.full((len(records), len(feature_names)), np.nan, dtype=np.float64)
    for i, record in enumerate(records):
        for j, name in enumerate(feature_names):
            matrix[i, j] = to_number(record.features.get(name))
    return matrix


def infer_schema(columns, class_labels=CLASS_LABELS):
    """Build a schema from table columns, everything not reserved is a feature."""
    features = [col for col in columns if col not in RESERVED_FIELDS]
    return RecordSchema(feature_names=tuple(features), class_labels=class_labels)


def record_from_row(row, schema, record_id):
    """Create an active record from a mapping of raw column values."""
    return Record(
        id=record_id,
        label=row.get(schema.label_field),
        features={name: row.get(name) for name in schema.feature_names},
        status=row.get('status') or STATUS_ACTIVE,
    )


def records_to_frame(records, schema):
    """Flatten records into a DataFrame (one column per feature)."""
    rows = []
    for record in records:
        row = {schema.id_field: record.id, schema.label_field: record.label}
        row.update({name: record.features.get(name) for name in schema.feature_names})
        row.update({
            'status': record.status,
            'deletedAt': record.deleted_at,
            'fullRowDeleted': record.full_row_deleted,
            'deletedAttributes': list(record.deleted_attributes),
        })
        rows.append(row)
    columns = [schema.id_field, schema.label_field, *schema.feature_names,
               'status', 'deletedAt', 'fullRowDeleted', 'deletedAttributes']
    return pd.DataFrame(rows, columns=columns)


def records_from_frame(frame, schema, start_id=1):
    """Create active records from a DataFrame, numbering ids from ``start_id``."""
    return [record_from_row(row, schema, start_id + i)
            for i, row in enumerate(frame.to_dict('records'))]
