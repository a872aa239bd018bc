"""Rendering of metric families in the OpenMetrics text format."""

from __future__ import annotations

import math
from typing import IO, Any

from .metrics import Exemplar, Metric, MetricFamily, MetricType, Timestamp
from .names import BUCKET_LABEL, QUANTILE_LABEL
from .text_create import (
    _label_pairs,
    _write_text,
    escape_string,
    format_float,
    format_name,
)

_EOF_LINE = "# EOF\n"


def format_open_metrics_float(value: float) -> str:
    """Format a float as the text format does, but always with a '.' or 'e'."""
    if math.isnan(value):
        return "NaN"
    if math.isinf(value):
        return "+Inf" if value > 0 else "-Inf"
    if value == 1:
        return "1.0"
    if value == 0:
        return "0.0"
    if value == -1:
        return "-1.0"
    text = format_float(float(value))
    if "e" not in text and "." not in text:
        text += ".0"
    return text


def _name_and_labels(
    name: str, metric_labels: list, extra_name: str = "", extra_value: float = 0.0
) -> str:
    return _label_pairs(
        name, metric_labels, extra_name, extra_value, format_open_metrics_float
    )


def _timestamp_seconds(ts: Timestamp) -> float:
    return float(ts.to_nanos()) / 1e9


def _exemplar(exemplar: Exemplar) -> str:
    text = " # " + _name_and_labels("", exemplar.label)
    text += " " + format_open_metrics_float(exemplar.value)
    if exemplar.timestamp is not None:
        exemplar.timestamp.check_valid()
        text += " " + format_open_metrics_float(_timestamp_seconds(exemplar.timestamp))
    return text


def _sample(
    name: str,
    suffix: str,
    metric: Metric,
    value: float | int,
    *,
    extra_name: str = "",
    extra_value: float = 0.0,
    exemplar: Exemplar | None = None,
) -> str:
    line = _name_and_labels(name + suffix, metric.label, extra_name, extra_value)
    if isinstance(value, int) and not isinstance(value, bool):
        line += " " + str(value)
    else:
        line += " " + format_open_metrics_float(value)
    if metric.timestamp_ms is not None:
        line += " " + format_open_metrics_float(float(metric.timestamp_ms) / 1000)
    if exemplar is not None and exemplar.label:
        line += _exemplar(exemplar)
    return line + "\n"


def _created(name: str, suffix_to_trim: str, metric: Metric, ts: Timestamp) -> str:
    created_name = name.removesuffix(suffix_to_trim) + "_created"
    line = _name_and_labels(created_name, metric.label)
    return line + " " + format_open_metrics_float(_timestamp_seconds(ts)) + "\n"


def _type_label(metric_type: MetricType | int, name: str) -> str:
    try:
        kind = MetricType(metric_type)
    except ValueError:
        raise ValueError(f"unknown metric type {int(metric_type)}") from None
    if kind is MetricType.COUNTER:
        return "counter" if name.endswith("_total") else "unknown"
    labels = {
        MetricType.GAUGE: "gauge",
        MetricType.SUMMARY: "summary",
        MetricType.UNTYPED: "unknown",
        MetricType.HISTOGRAM: "histogram",
    }
    if kind not in labels:
        raise ValueError(f"unknown metric type {kind.name}")
    return labels[kind]


def _render(
    family: MetricFamily, parts: list[str], with_created_lines: bool, with_unit: bool
) -> None:
    name = family.name
    metric_type = family.type
    is_total_counter = metric_type == MetricType.COUNTER and name.endswith("_total")

    compliant = name[: -len("_total")] if is_total_counter else name
    unit = family.unit if with_unit else None
    if unit is not None and not compliant.endswith("_" + unit):
        compliant = compliant + "_" + unit

    if family.help is not None:
        parts.append(f"# HELP {format_name(compliant)} {escape_string(family.help, True)}\n")
    parts.append(f"# TYPE {format_name(compliant)} {_type_label(metric_type, name)}\n")
    if unit is not None:
        parts.append(f"# UNIT {format_name(compliant)} {escape_string(unit, True)}\n")

    if is_total_counter:
        compliant += "_total"
    kind = MetricType(metric_type)

    for metric in family.metric:
        if kind is MetricType.COUNTER:
            counter = metric.counter
            if counter is None:
                raise ValueError(f"expected counter in metric {compliant} {metric}")
            parts.append(
                _sample(compliant, "", metric, float(counter.value), exemplar=counter.exemplar)
            )
            if with_created_lines and counter.created_timestamp is not None:
                parts.append(
                    _created(compliant, "_total", metric, counter.created_timestamp)
                )
        elif kind is MetricType.GAUGE:
            if metric.gauge is None:
                raise ValueError(f"expected gauge in metric {compliant} {metric}")
            parts.append(_sample(compliant, "", metric, float(metric.gauge.value)))
        elif kind is MetricType.UNTYPED:
            if metric.untyped is None:
                raise ValueError(f"expected untyped in metric {compliant} {metric}")
            parts.append(_sample(compliant, "", metric, float(metric.untyped.value)))
        elif kind is MetricType.SUMMARY:
            summary = metric.summary
            if summary is None:
                raise ValueError(f"expected summary in metric {compliant} {metric}")
            for q in summary.quantile:
                parts.append(
                    _sample(
                        compliant,
                        "",
                        metric,
                        float(q.value),
                        extra_name=QUANTILE_LABEL,
                        extra_value=q.quantile,
                    )
                )
            parts.append(_sample(compliant, "_sum", metric, float(summary.sample_sum)))
            parts.append(_sample(compliant, "_count", metric, int(summary.sample_count)))
            if with_created_lines and summary.created_timestamp is not None:
                parts.append(_created(compliant, "", metric, summary.created_timestamp))
        elif kind is MetricType.HISTOGRAM:
            histogram = metric.histogram
            if histogram is None:
                raise ValueError(f"expected histogram in metric {compliant} {metric}")
            inf_seen = False
            for bucket in histogram.bucket:
                parts.append(
                    _sample(
                        compliant,
                        "_bucket",
                        metric,
                        int(bucket.cumulative_count),
                        extra_name=BUCKET_LABEL,
                        extra_value=bucket.upper_bound,
                        exemplar=bucket.exemplar,
                    )
                )
                if math.isinf(bucket.upper_bound) and bucket.upper_bound > 0:
                    inf_seen = True
            if not inf_seen:
                parts.append(
                    _sample(
                        compliant,
                        "_bucket",
                        metric,
                        int(histogram.sample_count),
                        extra_name=BUCKET_LABEL,
                        extra_value=math.inf,
                    )
                )
            parts.append(_sample(compliant, "_sum", metric, float(histogram.sample_sum)))
            parts.append(
                _sample(compliant, "_count", metric, int(histogram.sample_count))
            )
            if with_created_lines and histogram.created_timestamp is not None:
                parts.append(
                    _created(compliant, "", metric, histogram.created_timestamp)
                )
        else:
            raise ValueError(f"unexpected type in metric {compliant} {metric}")


def metric_family_to_open_metrics(
    out: IO[Any],
    family: MetricFamily,
    *,
    with_created_lines: bool = False,
    with_unit: bool = False,
) -> int:
    """Write ``family`` to ``out`` in OpenMetrics format; return the UTF-8 byte count.

    The final ``# EOF`` line is not written; see :func:`finalize_open_metrics`.
    On error, whatever was rendered before the failure has already been written.
    """
    if not family.name:
        raise ValueError(f"MetricFamily has no name: {family}")

    parts: list[str] = []
    try:
        _render(family, parts, with_created_lines, with_unit)
    finally:
        text = "".join(parts)
        if text:
            _write_text(out, text)
    return len(text.encode("utf-8"))


def finalize_open_metrics(out: IO[Any]) -> int:
    """Write the closing ``# EOF`` line; return the number of bytes written."""
    _write_text(out, _EOF_LINE)
    return len(_EOF_LINE)