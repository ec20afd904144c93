"""Metric descriptors, samples and the sink collectors write into."""

import logging
import threading
from collections import deque
from dataclasses import dataclass
from enum import Enum
from typing import Any, Deque, Dict, Iterator, List, Optional, Sequence, Tuple

from prometheus_client.core import (
    CounterMetricFamily, GaugeMetricFamily, HistogramMetricFamily,
    Metric, UnknownMetricFamily
)
from prometheus_client.utils import floatToGoString

from mysqld_exporter.errors import MetricValidationError, SinkClosedError
from mysqld_exporter.parsing import (
    NAMESPACE, build_fqn, valid_label_name, valid_metric_name
)

#-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~
# Descriptors and Samples
#-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~

class ValueKind(Enum):
    """Kinds of metric values a descriptor can carry."""
    GAUGE = "gauge"          # A value that can go up and down
    COUNTER = "counter"      # Value that only increases
    UNTYPED = "untyped"      # Semantic type unknown
    HISTOGRAM = "histogram"
    SUMMARY = "summary"

@dataclass(frozen=True, eq=True)
class MetricDescriptor:
    """Immutable schema of one metric."""
    name: str
    help: str
    variable_labels: Tuple[str, ...] = ()
    kind: ValueKind = ValueKind.UNTYPED
    const_labels: Tuple[Tuple[str, str], ...] = ()

    def __post_init__(self):
        if not valid_metric_name(self.name):
            raise MetricValidationError(f"Invalid metric name: {self.name!r}")
        keys = list(self.variable_labels) + [key for key, _ in self.const_labels]
        for key in keys:
            if not valid_label_name(key):
                raise MetricValidationError(
                    f"Invalid label name {key!r} for metric {self.name}"
                )
        if len(set(keys)) != len(keys):
            raise MetricValidationError(f"Duplicate label names for metric {self.name}")

    @property
    def constant_label_keys(self) -> Tuple[str, ...]:
        return tuple(key for key, _ in self.const_labels)

    @property
    def label_keys(self) -> Tuple[str, ...]:
        """Variable label keys followed by constant label keys."""
        return self.variable_labels + self.constant_label_keys

    def sample(
        self,
        value: float,
        *label_values: Any,
        buckets: Optional[Dict[float, float]] = None,
        count: Optional[float] = None,
        quantiles: Optional[Dict[float, float]] = None
    ) -> 'Sample':
        """Create a sample for this descriptor.

        Args:
            value: Sample value, or the sum for histograms and summaries
            label_values: One value per variable label, in order
            buckets: Histogram upper bound to cumulative count
            count: Observation count for histograms and summaries
            quantiles: Summary quantile to value

        Raises:
            MetricValidationError: On label arity or kind mismatch
        """
        if len(label_values) != len(self.variable_labels):
            raise MetricValidationError(
                f"Metric {self.name} expects {len(self.variable_labels)} label values, "
                f"got {len(label_values)}"
            )
        if buckets is not None and self.kind is not ValueKind.HISTOGRAM:
            raise MetricValidationError(f"Metric {self.name} is not a histogram")
        if quantiles is not None and self.kind is not ValueKind.SUMMARY:
            raise MetricValidationError(f"Metric {self.name} is not a summary")

        return Sample(
            descriptor=self,
            value=float(value),
            label_values=tuple('' if v is None else str(v) for v in label_values),
            buckets=tuple(sorted(buckets.items())) if buckets is not None else None,
            count=float(count) if count is not None else None,
            quantiles=tuple(sorted(quantiles.items())) if quantiles is not None else None,
        )

def new_desc(
    subsystem: str,
    stem: str,
    help: str,
    labels: Sequence[str] = (),
    kind: ValueKind = ValueKind.UNTYPED,
    const_labels: Optional[Dict[str, str]] = None
) -> MetricDescriptor:
    """Create a descriptor named namespace_subsystem_stem."""
    return MetricDescriptor(
        name=build_fqn(NAMESPACE, subsystem, stem),
        help=help,
        variable_labels=tuple(labels),
        kind=kind,
        const_labels=tuple(sorted((const_labels or {}).items())),
    )

@dataclass(frozen=True)
class Sample:
    """One observation written to the sink during a scrape."""
    descriptor: MetricDescriptor
    value: float
    label_values: Tuple[str, ...] = ()
    buckets: Optional[Tuple[Tuple[float, float], ...]] = None
    count: Optional[float] = None
    quantiles: Optional[Tuple[Tuple[float, float], ...]] = None

    @property
    def name(self) -> str:
        return self.descriptor.name

    @property
    def labels(self) -> Dict[str, str]:
        """Variable and constant labels as a dictionary."""
        labels = dict(zip(self.descriptor.variable_labels, self.label_values))
        labels.update(self.descriptor.const_labels)
        return labels

#-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~
# Metric Sink
#-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~

class MetricSink:
    """Bounded multi-producer, single-consumer sample queue.

    Collectors call send(); the orchestrator closes the sink once every
    task has finished or the deadline fired. Iterating the sink yields
    samples until it is closed and drained.
    """

    DEFAULT_CAPACITY = 1024

    def __init__(self, capacity: int = DEFAULT_CAPACITY):
        self.capacity = max(capacity, 1)
        self._buffer: Deque[Sample] = deque()
        self._cond = threading.Condition()
        self._closed = False

    @property
    def closed(self) -> bool:
        with self._cond:
            return self._closed

    def send(self, sample: Sample) -> None:
        """Write a sample, blocking while the buffer is full.

        Raises:
            SinkClosedError: If the sink was closed before or while waiting
        """
        if not isinstance(sample, Sample):
            raise MetricValidationError(f"Expected a Sample, got {type(sample).__name__}")

        with self._cond:
            while len(self._buffer) >= self.capacity and not self._closed:
                self._cond.wait()
            if self._closed:
                raise SinkClosedError(f"Metric sink closed, dropping {sample.name}")
            self._buffer.append(sample)
            self._cond.notify_all()

    def close(self) -> None:
        with self._cond:
            self._closed = True
            self._cond.notify_all()

    def __iter__(self) -> Iterator[Sample]:
        while True:
            with self._cond:
                while not self._buffer and not self._closed:
                    self._cond.wait()
                if not self._buffer:
                    return
                sample = self._buffer.popleft()
                self._cond.notify_all()
            yield sample

#-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~
# Metric Families
#-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~

class FamilyBuilder:
    """Groups samples into prometheus_client metric families.

    A sample whose descriptor conflicts with an earlier descriptor of the
    same name, or which repeats an earlier label set, is logged and dropped.
    """

    def __init__(self, logger: logging.Logger):
        self.logger = logger
        self._descriptors: Dict[str, MetricDescriptor] = {}
        self._samples: Dict[str, List[Sample]] = {}
        self._seen: set = set()

    def add(self, sample: Sample) -> bool:
        desc = sample.descriptor
        existing = self._descriptors.get(desc.name)
        if existing is None:
            self._descriptors[desc.name] = desc
            self._samples[desc.name] = []
        elif existing != desc:
            self.logger.warning(
                f"Dropping sample for {desc.name}: descriptor conflicts with an "
                f"earlier descriptor of the same name"
            )
            return False

        key = (desc.name, sample.label_values)
        if key in self._seen:
            self.logger.warning(
                f"Dropping duplicate sample for {desc.name} {sample.labels}"
            )
            return False

        self._seen.add(key)
        self._samples[desc.name].append(sample)
        return True

    def __len__(self) -> int:
        return len(self._seen)

    def families(self) -> List[Metric]:
        return [
            self._build_family(self._descriptors[name], samples)
            for name, samples in self._samples.items()
        ]

    def _build_family(self, desc: MetricDescriptor, samples: List[Sample]) -> Metric:
        labels = list(desc.label_keys)
        const_values = [value for _, value in desc.const_labels]

        if desc.kind is ValueKind.SUMMARY:
            return self._build_summary(desc, samples)

        if desc.kind is ValueKind.GAUGE:
            family = GaugeMetricFamily(desc.name, desc.help, labels=labels)
        elif desc.kind is ValueKind.COUNTER:
            family = CounterMetricFamily(desc.name, desc.help, labels=labels)
        elif desc.kind is ValueKind.HISTOGRAM:
            family = HistogramMetricFamily(desc.name, desc.help, labels=labels)
        else:
            family = UnknownMetricFamily(desc.name, desc.help, labels=labels)

        for sample in samples:
            label_values = list(sample.label_values) + const_values
            if desc.kind is ValueKind.HISTOGRAM:
                buckets = [
                    (floatToGoString(bound), cumulative)
                    for bound, cumulative in (sample.buckets or ())
                    if bound != float('inf')
                ]
                buckets.append(('+Inf', sample.count or 0.0))
                family.add_metric(label_values, buckets, sample.value)
            else:
                family.add_metric(label_values, sample.value)
        return family

    def _build_summary(self, desc: MetricDescriptor, samples: List[Sample]) -> Metric:
        family = Metric(desc.name, desc.help, 'summary')
        for sample in samples:
            labels = sample.labels
            for quantile, value in sample.quantiles or ():
                family.add_sample(
                    desc.name,
                    dict(labels, quantile=floatToGoString(quantile)),
                    value
                )
            family.add_sample(f"{desc.name}_count", labels, sample.count or 0.0)
            family.add_sample(f"{desc.name}_sum", labels, sample.value)
        return family
