"""Decoding of exposition data into metric families and samples."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import IO, Iterator, Mapping, Optional

from .formats import (
    FMT_PROTO_DELIM,
    FMT_TEXT,
    FMT_UNKNOWN,
    HDR_CONTENT_TYPE,
    PROTO_PROTOCOL,
    PROTO_TYPE,
    TEXT_VERSION,
    Format,
)
from .metrics import Metric, MetricFamily, MetricType
from .names import (
    BUCKET_LABEL,
    METRIC_NAME_LABEL,
    QUANTILE_LABEL,
    ValidationScheme,
    is_valid_label_name,
    is_valid_metric_name,
)
from .protobuf import read_delimited
from .text_create import format_float


@dataclass
class DecodeOptions:
    """Options for sample extraction."""

    timestamp: int = 0  # milliseconds, used when a metric carries none


@dataclass
class Sample:
    """One labelled value at a point in time (milliseconds)."""

    metric: dict[str, str] = field(default_factory=dict)
    value: float = 0.0
    timestamp: int = 0


def _parse_media_type(value: str) -> tuple[str, dict[str, str]]:
    parts = value.split(";")
    media_type = parts[0].strip().lower()
    if not media_type or media_type.count("/") != 1:
        raise ValueError(f"invalid media type {value!r}")
    params: dict[str, str] = {}
    for part in parts[1:]:
        part = part.strip()
        if not part:
            continue
        key, sep, val = part.partition("=")
        if not sep or not key.strip():
            raise ValueError(f"invalid media parameter {part!r}")
        val = val.strip()
        if len(val) >= 2 and val[0] == val[-1] == '"':
            val = val[1:-1]
        params[key.strip().lower()] = val
    return media_type, params


def response_format(headers: Optional[Mapping[str, str]]) -> Format:
    """Return the format named by a response's Content-Type header."""
    content_type = ""
    for key, value in (headers or {}).items():
        if key.lower() == HDR_CONTENT_TYPE.lower():
            content_type = value
            break
    try:
        media_type, params = _parse_media_type(content_type)
    except ValueError:
        return FMT_UNKNOWN

    if media_type == PROTO_TYPE:
        if params.get("proto", PROTO_PROTOCOL) != PROTO_PROTOCOL:
            return FMT_UNKNOWN
        if params.get("encoding", "delimited") != "delimited":
            return FMT_UNKNOWN
        return FMT_PROTO_DELIM
    if media_type == "text/plain":
        if params.get("version", TEXT_VERSION) != TEXT_VERSION:
            return FMT_UNKNOWN
        return FMT_TEXT
    return FMT_UNKNOWN


def _valid_utf8(value: str) -> bool:
    try:
        value.encode("utf-8")
    except UnicodeEncodeError:
        return False
    return True


class ProtoDecoder:
    """Reads length-delimited protocol buffer metric families from a stream."""

    def __init__(
        self, stream: IO[bytes], validation: ValidationScheme = ValidationScheme.UTF8
    ) -> None:
        self._stream = stream
        self._validation = validation

    def decode(self) -> MetricFamily:
        """Return the next family; raise EOFError at the end of the stream."""
        family = read_delimited(self._stream)
        if not is_valid_metric_name(family.name, self._validation):
            raise ValueError(f"invalid metric name {family.name!r}")
        for metric in family.metric:
            for pair in metric.label:
                if not _valid_utf8(pair.value):
                    raise ValueError(f"invalid label value {pair.value!r}")
                if not is_valid_label_name(pair.name, self._validation):
                    raise ValueError(f"invalid label name {pair.name!r}")
        return family

    def __iter__(self) -> Iterator[MetricFamily]:
        while True:
            try:
                yield self.decode()
            except EOFError:
                return


class SampleDecoder:
    """Wraps a family decoder and turns each family into samples."""

    def __init__(self, decoder, options: Optional[DecodeOptions] = None) -> None:
        self._decoder = decoder
        self._options = options or DecodeOptions()

    def decode(self) -> list[Sample]:
        """Return the samples of the next family; raise EOFError at the end."""
        return _extract(self._decoder.decode(), self._options)

    def __iter__(self) -> Iterator[list[Sample]]:
        while True:
            try:
                yield self.decode()
            except EOFError:
                return


def extract_samples(
    options: DecodeOptions, *args: MetricFamily
) -> tuple[list[Sample], Optional[Exception]]:
    """Extract samples from every family.

    Families that fail are skipped; the last error met is returned beside
    the samples extracted from the rest.
    """
    samples: list[Sample] = []
    last_error: Optional[Exception] = None
    for family in args:
        try:
            samples.extend(_extract(family, options))
        except ValueError as exc:
            last_error = exc
    return samples, last_error


def _labels(metric: Metric, name: str, **extra: str) -> dict[str, str]:
    lset = {pair.name: pair.value for pair in metric.label}
    lset.update(extra)
    lset[METRIC_NAME_LABEL] = name
    return lset


def _timestamp(metric: Metric, options: DecodeOptions) -> int:
    return metric.timestamp_ms if metric.timestamp_ms is not None else options.timestamp


def _extract(family: MetricFamily, options: DecodeOptions) -> list[Sample]:
    try:
        kind = MetricType(family.type)
    except ValueError:
        kind = None
    simple = {
        MetricType.COUNTER: "counter",
        MetricType.GAUGE: "gauge",
        MetricType.UNTYPED: "untyped",
    }
    if kind in simple:
        attr = simple[kind]
        return [
            Sample(
                _labels(m, family.name),
                float(getattr(m, attr).value),
                _timestamp(m, options),
            )
            for m in family.metric
            if getattr(m, attr) is not None
        ]
    if kind is MetricType.SUMMARY:
        return _extract_summary(family, options)
    if kind is MetricType.HISTOGRAM:
        return _extract_histogram(family, options)
    raise ValueError(f"extract_samples: unknown metric family type {family.type}")


def _extract_summary(family: MetricFamily, options: DecodeOptions) -> list[Sample]:
    samples: list[Sample] = []
    name = family.name
    for m in family.metric:
        summary = m.summary
        if summary is None:
            continue
        ts = _timestamp(m, options)
        for q in summary.quantile:
            labels = _labels(m, name, **{QUANTILE_LABEL: format_float(q.quantile)})
            samples.append(Sample(labels, float(q.value), ts))
        samples.append(Sample(_labels(m, name + "_sum"), float(summary.sample_sum), ts))
        samples.append(
            Sample(_labels(m, name + "_count"), float(summary.sample_count), ts)
        )
    return samples


def _extract_histogram(family: MetricFamily, options: DecodeOptions) -> list[Sample]:
    samples: list[Sample] = []
    name = family.name
    for m in family.metric:
        histogram = m.histogram
        if histogram is None:
            continue
        ts = _timestamp(m, options)
        inf_seen = False
        for b in histogram.bucket:
            labels = _labels(m, name + "_bucket", **{BUCKET_LABEL: format_float(b.upper_bound)})
            if math.isinf(b.upper_bound) and b.upper_bound > 0:
                inf_seen = True
            samples.append(Sample(labels, float(b.cumulative_count), ts))
        samples.append(Sample(_labels(m, name + "_sum"), float(histogram.sample_sum), ts))
        count = float(histogram.sample_count)
        samples.append(Sample(_labels(m, name + "_count"), count, ts))
        if not inf_seen:
            labels = _labels(m, name + "_bucket", **{BUCKET_LABEL: "+Inf"})
            samples.append(Sample(labels, count, ts))
    return samples