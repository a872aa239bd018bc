"""Metric family data model."""

from __future__ import annotations

import dataclasses
import decimal
import enum
from dataclasses import dataclass, field

from .names import (
    METRIC_NAME_LABEL,
    EscapingScheme,
    escape_name,
    is_valid_legacy_metric_name,
)

_NANOS_PER_SECOND = 1_000_000_000
_MIN_VALID_SECONDS = -62135596800  # 0001-01-01T00:00:00Z
_MAX_VALID_SECONDS = 253402300799  # 9999-12-31T23:59:59Z


class MetricType(enum.IntEnum):
    COUNTER = 0
    GAUGE = 1
    SUMMARY = 2
    UNTYPED = 3
    HISTOGRAM = 4
    GAUGE_HISTOGRAM = 5


@dataclass(frozen=True)
class Timestamp:
    """A point in time as whole seconds plus non-negative nanoseconds."""

    seconds: int = 0
    nanos: int = 0

    def to_nanos(self) -> int:
        return self.seconds * _NANOS_PER_SECOND + self.nanos

    @classmethod
    def from_seconds(cls, seconds: int | float) -> Timestamp:
        total = round(decimal.Decimal(str(seconds)) * _NANOS_PER_SECOND)
        whole, frac = divmod(total, _NANOS_PER_SECOND)
        return cls(seconds=whole, nanos=frac)

    def check_valid(self) -> None:
        """Raise ValueError if the timestamp is out of the representable range."""
        if self.seconds < _MIN_VALID_SECONDS:
            raise ValueError(f"timestamp {self} before 0001-01-01")
        if self.seconds > _MAX_VALID_SECONDS:
            raise ValueError(f"timestamp {self} after 10000-01-01")
        if not 0 <= self.nanos < _NANOS_PER_SECOND:
            raise ValueError(f"timestamp {self} has out-of-range nanos")


@dataclass
class LabelPair:
    name: str = ""
    value: str = ""


@dataclass
class Exemplar:
    label: list[LabelPair] = field(default_factory=list)
    value: float = 0.0
    timestamp: Timestamp | None = None


@dataclass
class Counter:
    value: float = 0.0
    exemplar: Exemplar | None = None
    created_timestamp: Timestamp | None = None


@dataclass
class Gauge:
    value: float = 0.0


@dataclass
class Untyped:
    value: float = 0.0


@dataclass
class Quantile:
    quantile: float = 0.0
    value: float = 0.0


@dataclass
class Summary:
    sample_count: int = 0
    sample_sum: float = 0.0
    quantile: list[Quantile] = field(default_factory=list)
    created_timestamp: Timestamp | None = None


@dataclass
class Bucket:
    cumulative_count: int = 0
    upper_bound: float = 0.0
    exemplar: Exemplar | None = None


@dataclass
class Histogram:
    sample_count: int = 0
    sample_sum: float = 0.0
    bucket: list[Bucket] = field(default_factory=list)
    created_timestamp: Timestamp | None = None


@dataclass
class Metric:
    label: list[LabelPair] = field(default_factory=list)
    gauge: Gauge | None = None
    counter: Counter | None = None
    summary: Summary | None = None
    untyped: Untyped | None = None
    histogram: Histogram | None = None
    timestamp_ms: int | None = None


@dataclass
class MetricFamily:
    """A named group of metrics sharing a type, help text and unit."""

    name: str = ""
    help: str | None = None
    type: MetricType | int = MetricType.COUNTER
    metric: list[Metric] = field(default_factory=list)
    unit: str | None = None


def _metric_needs_escaping(metric: Metric) -> bool:
    for pair in metric.label:
        if pair.name == METRIC_NAME_LABEL and not is_valid_legacy_metric_name(
            pair.value
        ):
            return True
        if not is_valid_legacy_metric_name(pair.name):
            return True
    return False


def _escape_label(pair: LabelPair, scheme: EscapingScheme) -> LabelPair:
    if pair.name == METRIC_NAME_LABEL:
        if is_valid_legacy_metric_name(pair.value):
            return pair
        return LabelPair(METRIC_NAME_LABEL, escape_name(pair.value, scheme))
    if is_valid_legacy_metric_name(pair.name):
        return pair
    return LabelPair(escape_name(pair.name, scheme), pair.value)


def escape_metric_family(
    family: MetricFamily | None, scheme: EscapingScheme
) -> MetricFamily | None:
    """Return ``family`` with its names escaped; the input is left unchanged."""
    if family is None:
        return None
    if scheme is EscapingScheme.NO_ESCAPING:
        return family

    name = family.name
    if name and not is_valid_legacy_metric_name(name):
        name = escape_name(name, scheme)

    metrics = [
        dataclasses.replace(
            metric, label=[_escape_label(pair, scheme) for pair in metric.label]
        )
        if _metric_needs_escaping(metric)
        else metric
        for metric in family.metric
    ]
    return MetricFamily(
        name=name,
        help=family.help,
        type=family.type,
        metric=metrics,
        unit=family.unit,
    )