"""Collector running user defined queries from YAML files.

Each top level key of a queries file is a metric namespace:

    mysql_performance_schema:
      query: "SELECT event_name, count_star FROM ..."
      metrics:
        - event_name:
            usage: "LABEL"
            description: "Event name"
        - count_star:
            usage: "COUNTER"
            description: "Number of events"

Samples are named <namespace>_<column> without the mysql prefix. Files
are re-read on every scrape so edits apply without a restart.
"""

import datetime
import logging
import math
import os
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

import pymysql
import yaml

from mysqld_exporter.args import ArgDefinition, ArgKind
from mysqld_exporter.errors import ConfigurationError, MetricValidationError, ScrapeError
from mysqld_exporter.metrics import MetricDescriptor, MetricSink, ValueKind
from mysqld_exporter.parsing import MILLI_SECONDS, parse_duration, parse_float, to_text
from mysqld_exporter.scraper import ConfigurableScraper, ScrapeContext

CUSTOM_QUERY = 'custom_query'

RESOLUTION_DIRECTORIES = {
    'hr': 'high-resolution',
    'mr': 'medium-resolution',
    'lr': 'low-resolution',
}
CUSTOM_QUERIES_ROOT = '/usr/local/percona/pmm2/collectors/custom-queries/mysql'

QUERY_FILE_SUFFIXES = ('.yml', '.yaml')

# DURATION columns holding -1 have no value
NO_DURATION = '-1'

#-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~
# Query Definitions
#-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~

class ColumnUsage(Enum):
    """What a result column of a custom query turns into."""
    DISCARD = "DISCARD"              # Ignored
    LABEL = "LABEL"                  # Label of every sample in the row
    COUNTER = "COUNTER"
    GAUGE = "GAUGE"
    MAPPEDMETRIC = "MAPPEDMETRIC"    # Text mapped to numbers by metric_mapping
    DURATION = "DURATION"            # Duration text, reported in milliseconds

    @classmethod
    def from_config(cls, value: Any) -> 'ColumnUsage':
        """Get column usage from its name."""
        try:
            return cls(str(value))
        except ValueError:
            raise ConfigurationError(
                f"Invalid column usage: {value}. "
                f"Must be one of: {[usage.value for usage in cls]}"
            )

@dataclass(frozen=True)
class ColumnMapping:
    """Declared handling of one result column."""
    name: str
    usage: ColumnUsage
    description: str = ''
    mapping: Dict[str, float] = field(default_factory=dict)

    @property
    def emits(self) -> bool:
        return self.usage not in (ColumnUsage.DISCARD, ColumnUsage.LABEL)

@dataclass
class CustomQuery:
    """One namespace of a queries file with its descriptors built."""
    namespace: str
    query: str
    columns: Dict[str, ColumnMapping]
    labels: Tuple[str, ...] = ()
    descriptors: Dict[str, MetricDescriptor] = field(default_factory=dict)

    def __post_init__(self):
        self.labels = tuple(
            name for name, column in self.columns.items()
            if column.usage is ColumnUsage.LABEL
        )
        try:
            for name, column in self.columns.items():
                if column.emits:
                    self.descriptors[name] = self._descriptor(column)
        except MetricValidationError as e:
            raise ConfigurationError(f"Invalid custom query {self.namespace}: {e}")

    def _descriptor(self, column: ColumnMapping) -> MetricDescriptor:
        name = f"{self.namespace}_{column.name}"
        if column.usage is ColumnUsage.DURATION:
            name = f"{name}_milliseconds"
        kind = ValueKind.COUNTER if column.usage is ColumnUsage.COUNTER else ValueKind.GAUGE
        return MetricDescriptor(name, column.description, self.labels, kind)

    def unknown_descriptor(self, column: str) -> MetricDescriptor:
        """Descriptor for a result column the definition does not mention."""
        return MetricDescriptor(
            f"{self.namespace}_{column}",
            f"Unknown metric from {self.namespace}",
            self.labels,
            ValueKind.UNTYPED,
        )

def _parse_column(namespace: str, entry: Any) -> List[ColumnMapping]:
    if not isinstance(entry, dict):
        raise ConfigurationError(f"Metrics of custom query {namespace} must be mappings")

    columns = []
    for name, attributes in entry.items():
        if not isinstance(attributes, dict):
            raise ConfigurationError(f"Column {name} of custom query {namespace} must be a mapping")
        mapping = attributes.get('metric_mapping') or {}
        if not isinstance(mapping, dict):
            raise ConfigurationError(f"metric_mapping of {namespace}.{name} must be a mapping")
        try:
            values = {str(key): float(value) for key, value in mapping.items()}
        except (TypeError, ValueError):
            raise ConfigurationError(f"metric_mapping of {namespace}.{name} must map text to numbers")
        columns.append(ColumnMapping(
            name=str(name),
            usage=ColumnUsage.from_config(attributes.get('usage')),
            description=str(attributes.get('description') or ''),
            mapping=values,
        ))
    return columns

def parse_custom_queries(content: str, source: str = '<string>') -> List[CustomQuery]:
    """Parse a queries document.

    Raises:
        ConfigurationError: On invalid YAML or definitions
    """
    try:
        raw = yaml.safe_load(content) or {}
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML in custom queries file {source}: {e}")
    if not isinstance(raw, dict):
        raise ConfigurationError(f"Custom queries file {source} must be a mapping")

    queries = []
    for namespace, definition in raw.items():
        if not isinstance(definition, dict):
            raise ConfigurationError(f"Incorrect format of custom query {namespace} in {source}")

        columns: Dict[str, ColumnMapping] = {}
        for entry in definition.get('metrics') or ():
            for column in _parse_column(namespace, entry):
                columns[column.name] = column
        queries.append(CustomQuery(
            namespace=str(namespace),
            query=str(definition.get('query') or ''),
            columns=columns,
        ))
    return queries

def load_custom_queries(path: str) -> List[CustomQuery]:
    """Queries from a file, or from every YAML file of a directory.

    Raises:
        ConfigurationError: If a file cannot be read or parsed
    """
    if os.path.isdir(path):
        files = sorted(
            os.path.join(path, name) for name in os.listdir(path)
            if name.endswith(QUERY_FILE_SUFFIXES)
        )
    else:
        files = [path]

    queries = []
    for file_path in files:
        try:
            with open(file_path) as f:
                content = f.read()
        except OSError as e:
            raise ConfigurationError(f"Failed to open custom queries {file_path}: {e}")
        queries.extend(parse_custom_queries(content, file_path))
    return queries

#-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~
# Value Conversion
#-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~

def db_to_float(raw: Any) -> Optional[float]:
    """Numeric value of a column; NULL is NaN, None when not numeric."""
    if raw is None:
        return math.nan
    if isinstance(raw, datetime.datetime):
        return raw.timestamp()
    if isinstance(raw, (int, float, Decimal)):
        return float(raw)
    return parse_float(to_text(raw).strip())

def convert(column: ColumnMapping, raw: Any) -> Optional[float]:
    """Sample value of a column according to its usage."""
    if column.usage is ColumnUsage.MAPPEDMETRIC:
        return column.mapping.get(to_text(raw))
    if column.usage is ColumnUsage.DURATION:
        text = to_text(raw).strip()
        if raw is None or text == NO_DURATION:
            return None
        seconds = parse_duration(text)
        if seconds is None:
            return None
        # Whole milliseconds, truncated
        return float(int(seconds * MILLI_SECONDS))
    return db_to_float(raw)

#-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~
# Collector
#-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~

class ScrapeCustomQuery(ConfigurableScraper):
    """Runs the custom queries of one resolution.

    A failing namespace does not stop the others; the collector fails
    once all ran. Columns that cannot be converted are logged and skipped.
    """

    help = "Collect the metrics from custom queries."
    min_version = '5.1'

    def __init__(self, resolution: str):
        self.resolution = resolution
        self.name = f"{CUSTOM_QUERY}.{resolution}"
        self.ARG_DEFINITIONS = (
            ArgDefinition(
                'directory',
                "Queries file, or directory of .yml files, to run",
                os.path.join(CUSTOM_QUERIES_ROOT, RESOLUTION_DIRECTORIES[resolution]),
                ArgKind.STRING,
            ),
        )
        super().__init__()

    def scrape(
        self,
        ctx: ScrapeContext,
        instance,
        sink: MetricSink,
        logger: logging.Logger
    ) -> None:
        path = self.arg_value('directory')
        if not os.path.exists(path):
            logger.debug(f"No custom queries at {path}")
            return

        errors = []
        for query in load_custom_queries(path):
            if not query.query:
                continue
            try:
                self._run(ctx, instance, sink, logger, query)
            except pymysql.err.Error as e:
                errors.append(f"{query.namespace}: {e}")

        if errors:
            raise ScrapeError(f"Custom queries failed: {'; '.join(errors)}")

    def _run(
        self,
        ctx: ScrapeContext,
        instance,
        sink: MetricSink,
        logger: logging.Logger,
        query: CustomQuery
    ) -> None:
        with instance.query(ctx, query.query) as rows:
            columns = rows.columns
            indexes = {name: index for index, name in enumerate(columns)}
            for row in rows:
                labels = [
                    to_text(row[indexes[name]]) if name in indexes else ''
                    for name in query.labels
                ]
                for name, raw in zip(columns, row):
                    column = query.columns.get(name)
                    if column is not None and not column.emits:
                        continue

                    try:
                        if column is None:
                            desc = query.unknown_descriptor(name)
                            value = db_to_float(raw)
                        else:
                            desc = query.descriptors[name]
                            value = convert(column, raw)
                    except MetricValidationError as e:
                        logger.info(f"Discarding column {name} of {query.namespace}: {e}")
                        continue
                    if value is None:
                        logger.info(f"Unexpected error parsing column: {query.namespace}, {name}, {raw!r}")
                        continue
                    sink.send(desc.sample(value, *labels))
