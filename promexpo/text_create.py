"""Rendering of metric families in the classic text exposition format."""

from __future__ import annotations

import decimal
import io
import math
from typing import IO, Any

from .metrics import Metric, MetricFamily, MetricType
from .names import BUCKET_LABEL, QUANTILE_LABEL, is_valid_legacy_metric_name

_ESCAPES = str.maketrans({"\\": "\\\\", "\n": "\\n"})
_QUOTED_ESCAPES = str.maketrans({"\\": "\\\\", "\n": "\\n", '"': '\\"'})

_TYPE_NAMES = {
    MetricType.COUNTER: "counter",
    MetricType.GAUGE: "gauge",
    MetricType.SUMMARY: "summary",
    MetricType.UNTYPED: "untyped",
    MetricType.HISTOGRAM: "histogram",
}


def escape_string(value: str, include_double_quote: bool) -> str:
    """Escape backslashes and newlines, and double quotes if asked to."""
    return value.translate(_QUOTED_ESCAPES if include_double_quote else _ESCAPES)


def format_name(name: str) -> str:
    """Return ``name`` as is if legacy-valid, otherwise quoted and escaped."""
    if is_valid_legacy_metric_name(name):
        return name
    return '"' + escape_string(name, True) + '"'


def _shortest_float(value: float) -> str:
    """Shortest round-trip form, in exponent notation outside 1e-4 .. 1e6."""
    sign = "-" if value < 0 else ""
    dec = decimal.Decimal(repr(abs(value))).normalize()
    _, digit_tuple, exponent = dec.as_tuple()
    digits = "".join(str(d) for d in digit_tuple)
    point = len(digits) + exponent
    exp10 = point - 1
    if exp10 < -4 or exp10 >= 6:
        mantissa = digits[0]
        if len(digits) > 1:
            mantissa += "." + digits[1:]
        exp_sign = "-" if exp10 < 0 else "+"
        return f"{sign}{mantissa}e{exp_sign}{abs(exp10):02d}"
    if point <= 0:
        return f"{sign}0.{'0' * -point}{digits}"
    if point >= len(digits):
        return sign + digits + "0" * (point - len(digits))
    return f"{sign}{digits[:point]}.{digits[point:]}"


def format_float(value: float) -> str:
    """Format a sample value the way the text format expects."""
    if math.isnan(value):
        return "NaN"
    if math.isinf(value):
        return "+Inf" if value > 0 else "-Inf"
    if value == 1:
        return "1"
    if value == 0:
        return "0"
    if value == -1:
        return "-1"
    return _shortest_float(float(value))


def _label_pairs(
    name: str,
    metric_labels: list,
    extra_name: str,
    extra_value: float,
    float_formatter=format_float,
) -> str:
    """Render a metric name with its labels, quoting what is not legacy-valid."""
    parts: list[str] = []
    inside_braces = False
    if name:
        if not is_valid_legacy_metric_name(name):
            inside_braces = True
        parts.append(format_name(name))

    labels = [
        f'{format_name(pair.name)}="{escape_string(pair.value, True)}"'
        for pair in metric_labels
    ]
    if extra_name:
        labels.append(f'{extra_name}="{float_formatter(extra_value)}"')

    if not labels:
        if inside_braces:
            return "{" + parts[0] + "}"
        return "".join(parts)
    if inside_braces:
        return "{" + ",".join(parts + labels) + "}"
    return "".join(parts) + "{" + ",".join(labels) + "}"


def _write_text(out: IO[Any], text: str) -> None:
    if isinstance(out, (io.RawIOBase, io.BufferedIOBase)):
        out.write(text.encode("utf-8"))
    else:
        out.write(text)


def _sample(
    name: str,
    suffix: str,
    metric: Metric,
    extra_name: str,
    extra_value: float,
    value: float,
) -> str:
    line = _label_pairs(name + suffix, metric.label, extra_name, extra_value)
    line += " " + format_float(value)
    if metric.timestamp_ms is not None:
        line += " " + str(int(metric.timestamp_ms))
    return line + "\n"


def _type_label(metric_type: MetricType | int) -> str:
    try:
        return _TYPE_NAMES[MetricType(metric_type)]
    except (ValueError, KeyError):
        try:
            label = MetricType(metric_type).name
        except ValueError:
            label = str(int(metric_type))
        raise ValueError(f"unknown metric type {label}") from None


def _render(family: MetricFamily, parts: list[str]) -> None:
    name = family.name
    if family.help is not None:
        parts.append(f"# HELP {format_name(name)} {escape_string(family.help, False)}\n")
    parts.append(f"# TYPE {format_name(name)} {_type_label(family.type)}\n")
    metric_type = MetricType(family.type)

    for metric in family.metric:
        if metric_type is MetricType.COUNTER:
            if metric.counter is None:
                raise ValueError(f"expected counter in metric {name} {metric}")
            parts.append(_sample(name, "", metric, "", 0, metric.counter.value))
        elif metric_type is MetricType.GAUGE:
            if metric.gauge is None:
                raise ValueError(f"expected gauge in metric {name} {metric}")
            parts.append(_sample(name, "", metric, "", 0, metric.gauge.value))
        elif metric_type is MetricType.UNTYPED:
            if metric.untyped is None:
                raise ValueError(f"expected untyped in metric {name} {metric}")
            parts.append(_sample(name, "", metric, "", 0, metric.untyped.value))
        elif metric_type is MetricType.SUMMARY:
            summary = metric.summary
            if summary is None:
                raise ValueError(f"expected summary in metric {name} {metric}")
            for q in summary.quantile:
                parts.append(
                    _sample(name, "", metric, QUANTILE_LABEL, q.quantile, q.value)
                )
            parts.append(_sample(name, "_sum", metric, "", 0, summary.sample_sum))
            parts.append(
                _sample(name, "_count", metric, "", 0, float(summary.sample_count))
            )
        elif metric_type is MetricType.HISTOGRAM:
            histogram = metric.histogram
            if histogram is None:
                raise ValueError(f"expected histogram in metric {name} {metric}")
            inf_seen = False
            for bucket in histogram.bucket:
                parts.append(
                    _sample(
                        name,
                        "_bucket",
                        metric,
                        BUCKET_LABEL,
                        bucket.upper_bound,
                        float(bucket.cumulative_count),
                    )
                )
                if math.isinf(bucket.upper_bound) and bucket.upper_bound > 0:
                    inf_seen = True
            if not inf_seen:
                parts.append(
                    _sample(
                        name,
                        "_bucket",
                        metric,
                        BUCKET_LABEL,
                        math.inf,
                        float(histogram.sample_count),
                    )
                )
            parts.append(_sample(name, "_sum", metric, "", 0, histogram.sample_sum))
            parts.append(
                _sample(name, "_count", metric, "", 0, float(histogram.sample_count))
            )
        else:
            raise ValueError(f"unexpected type in metric {name} {metric}")


def metric_family_to_text(out: IO[Any], family: MetricFamily) -> int:
    """Write ``family`` to ``out`` in text format; return the UTF-8 byte count.

    ``out`` may be a text or a binary stream. On error, whatever was rendered
    before the failing metric has already been written.
    """
    if not family.metric:
        raise ValueError(f"MetricFamily has no metrics: {family}")
    if not family.name:
        raise ValueError(f"MetricFamily has no name: {family}")

    parts: list[str] = []
    try:
        _render(family, parts)
    finally:
        text = "".join(parts)
        if text:
            _write_text(out, text)
    return len(text.encode("utf-8"))