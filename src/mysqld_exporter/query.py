"""Helpers shared by collectors for turning result sets into samples."""

import re
from dataclasses import dataclass
from typing import Any, Callable, Dict, NamedTuple, Optional, Sequence, Tuple

from mysqld_exporter.instance import Rows
from mysqld_exporter.metrics import MetricDescriptor, MetricSink, ValueKind, new_desc
from mysqld_exporter.parsing import parse_status, sanitize_metric_fragment, to_text

_WHITESPACE_RE = re.compile(r'\s+')

def sanitize_query(query: str) -> str:
    """Collapse whitespace runs; for logging and matching, not execution."""
    return _WHITESPACE_RE.sub(' ', query).strip()

def untyped_descriptor(subsystem: str, stem: str, help: str, labels: Sequence[str] = ()) -> MetricDescriptor:
    """Descriptor for a value whose semantic type is unknown."""
    return new_desc(subsystem, sanitize_metric_fragment(stem), help, labels, ValueKind.UNTYPED)

#-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~
# Dispatch Tables
#-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~

@dataclass(frozen=True)
class ColumnMetric:
    """How one result column becomes a sample."""
    descriptor: MetricDescriptor
    divisor: float = 1.0
    parser: Callable[[Any], Tuple[float, bool]] = parse_status

class DispatchTable:
    """Column name to descriptor mapping for row-shaped result sets.

    Label columns supply the label values of every sample in a row. Other
    columns found in the table emit with their descriptor; unknown numeric
    columns emit untyped samples named after the column.
    """

    def __init__(
        self,
        subsystem: str,
        label_columns: Sequence[str],
        labels: Sequence[str],
        columns: Dict[str, ColumnMetric],
        fallback_prefix: str = '',
        fallback_help: str = "Unsupported metric from column {column}."
    ):
        if len(label_columns) != len(labels):
            raise ValueError("Each label column needs exactly one label name")
        self.subsystem = subsystem
        self.label_columns = tuple(column.upper() for column in label_columns)
        self.labels = tuple(labels)
        self.columns = {name.upper(): metric for name, metric in columns.items()}
        self.fallback_prefix = fallback_prefix
        self.fallback_help = fallback_help

    def metric_for(self, column: str) -> ColumnMetric:
        metric = self.columns.get(column.upper())
        if metric is not None:
            return metric
        return ColumnMetric(untyped_descriptor(
            self.subsystem,
            f"{self.fallback_prefix}{column}",
            self.fallback_help.format(column=column),
            self.labels,
        ))

    def emit(self, rows: Rows, sink: MetricSink) -> int:
        """Write samples for every row; returns the number written."""
        upper = [column.upper() for column in rows.columns]
        missing = [column for column in self.label_columns if column not in upper]
        if missing:
            raise ValueError(f"Result set lacks label columns {missing}")
        label_index = [upper.index(column) for column in self.label_columns]
        value_columns = [
            (index, self.metric_for(column))
            for index, column in enumerate(rows.columns)
            if index not in label_index
        ]

        written = 0
        for row in rows:
            label_values = [to_text(row[index]) for index in label_index]
            for index, metric in value_columns:
                value, ok = metric.parser(row[index])
                if not ok:
                    continue
                sink.send(metric.descriptor.sample(value / metric.divisor, *label_values))
                written += 1
        return written

#-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~
# Status Keys
#-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~

class StatusKeyMatch(NamedTuple):
    stem: str
    label_key: str
    label_value: str
    descriptor: MetricDescriptor

@dataclass(frozen=True)
class StatusPrefix:
    """A well-known status key prefix mapped to a labelled descriptor."""
    prefix: str
    descriptor: MetricDescriptor

    def __post_init__(self):
        if len(self.descriptor.variable_labels) != 1:
            raise ValueError(f"Prefix {self.prefix} needs a descriptor with one label")

class StatusKeyMatcher:
    """Splits status keys like Com_select into (stem, label key, label value)."""

    def __init__(self, prefixes: Sequence[StatusPrefix]):
        # Longest prefix wins
        self.prefixes = sorted(prefixes, key=lambda p: len(p.prefix), reverse=True)

    def match(self, key: str) -> Optional[StatusKeyMatch]:
        lowered = key.lower()
        for entry in self.prefixes:
            if lowered.startswith(entry.prefix) and len(lowered) > len(entry.prefix):
                return StatusKeyMatch(
                    stem=entry.prefix.rstrip('_'),
                    label_key=entry.descriptor.variable_labels[0],
                    label_value=lowered[len(entry.prefix):],
                    descriptor=entry.descriptor,
                )
        return None
