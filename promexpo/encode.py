"""Content negotiation and encoders for the exposition formats."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import IO, Any, Callable, Mapping, Optional

from .formats import (
    FMT_OPEN_METRICS_0_0_1,
    FMT_OPEN_METRICS_1_0_0,
    FMT_PROTO_COMPACT,
    FMT_PROTO_DELIM,
    FMT_PROTO_TEXT,
    FMT_TEXT,
    HDR_ACCEPT,
    OPEN_METRICS_TYPE,
    OPEN_METRICS_VERSION_0_0_1,
    OPEN_METRICS_VERSION_1_0_0,
    PROTO_PROTOCOL,
    PROTO_TYPE,
    TEXT_VERSION,
    Format,
    FormatType,
)
from .metrics import MetricFamily, escape_metric_family
from .names import ESCAPING_KEY, EscapingScheme, get_default_escaping_scheme
from .openmetrics_create import finalize_open_metrics, metric_family_to_open_metrics
from .protobuf import format_compact_text, format_text, write_delimited
from .text_create import _write_text, metric_family_to_text

_KNOWN_ESCAPINGS = frozenset(scheme.value for scheme in EscapingScheme)

_PROTO_ENCODINGS = {
    "delimited": FMT_PROTO_DELIM,
    "text": FMT_PROTO_TEXT,
    "compact-text": FMT_PROTO_COMPACT,
}


@dataclass
class AcceptSpec:
    """One media range of an Accept header."""

    type: str
    subtype: str
    q: float = 1.0
    params: dict[str, str] = field(default_factory=dict)


def parse_accept(header: str) -> list[AcceptSpec]:
    """Parse an Accept header, most preferred media range first."""
    specs: list[AcceptSpec] = []
    for part in header.split(","):
        pieces = part.strip(" ").split(";")
        range_parts = pieces[0].split("/")
        media_type = range_parts[0].strip(" ")
        if len(range_parts) == 1 and media_type == "*":
            subtype = "*"
        elif len(range_parts) == 2:
            subtype = range_parts[1].strip(" ")
        else:
            continue
        spec = AcceptSpec(media_type, subtype)
        for param in pieces[1:]:
            key, sep, value = param.partition("=")
            if not sep:
                continue
            key = key.strip(" ")
            if key == "q":
                try:
                    spec.q = float(value)
                except ValueError:
                    spec.q = 0.0
            else:
                spec.params[key] = value.strip(" ")
        specs.append(spec)
    specs.sort(key=lambda s: (-s.q, s.type == "*", s.subtype == "*"))
    return specs


def _header(headers: Optional[Mapping[str, str]], name: str) -> str:
    for key, value in (headers or {}).items():
        if key.lower() == name.lower():
            return value
    return ""


def _negotiate(
    headers: Optional[Mapping[str, str]], include_open_metrics: bool
) -> Format:
    escaping = f"; escaping={get_default_escaping_scheme().value}"
    for spec in parse_accept(_header(headers, HDR_ACCEPT)):
        escape_param = spec.params.get(ESCAPING_KEY, "")
        if escape_param in _KNOWN_ESCAPINGS:
            escaping = "; escaping=" + escape_param
        version = spec.params.get("version", "")
        media = f"{spec.type}/{spec.subtype}"
        if media == PROTO_TYPE and spec.params.get("proto") == PROTO_PROTOCOL:
            fmt = _PROTO_ENCODINGS.get(spec.params.get("encoding", ""))
            if fmt is not None:
                return Format(fmt + escaping)
        if (
            spec.type == "text"
            and spec.subtype == "plain"
            and version in (TEXT_VERSION, "")
        ):
            return Format(FMT_TEXT + escaping)
        if (
            include_open_metrics
            and media == OPEN_METRICS_TYPE
            and version in (OPEN_METRICS_VERSION_0_0_1, OPEN_METRICS_VERSION_1_0_0, "")
        ):
            if version == OPEN_METRICS_VERSION_1_0_0:
                return Format(FMT_OPEN_METRICS_1_0_0 + escaping)
            return Format(FMT_OPEN_METRICS_0_0_1 + escaping)
    return Format(FMT_TEXT + escaping)


def negotiate(headers: Optional[Mapping[str, str]]) -> Format:
    """Pick a format from the Accept header; never picks OpenMetrics."""
    return _negotiate(headers, include_open_metrics=False)


def negotiate_including_open_metrics(headers: Optional[Mapping[str, str]]) -> Format:
    """Pick a format from the Accept header, OpenMetrics included."""
    return _negotiate(headers, include_open_metrics=True)


class Encoder:
    """Writes metric families to a stream in one format.

    Use as a context manager, or call :meth:`close` when done, so that
    formats needing a trailer (OpenMetrics) are finished properly.
    """

    def __init__(
        self,
        encode: Callable[[MetricFamily], Any],
        close: Callable[[], Any] = lambda: None,
    ) -> None:
        self._encode = encode
        self._close = close

    def encode(self, family: MetricFamily) -> None:
        self._encode(family)

    def close(self) -> None:
        self._close()

    def __enter__(self) -> Encoder:
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()


def new_encoder(
    out: IO[Any],
    format: Format | str,
    *,
    with_created_lines: bool = False,
    with_unit: bool = False,
) -> Encoder:
    """Return an encoder writing to ``out`` in ``format``.

    Names are escaped as the format's escaping term says, or by the default
    scheme. The OpenMetrics options are ignored by the other formats.
    """
    fmt = Format(format)
    scheme = fmt.to_escaping_scheme()
    kind = fmt.format_type()

    if kind is FormatType.PROTO_DELIM:
        return Encoder(lambda family: write_delimited(out, family))
    if kind is FormatType.PROTO_COMPACT:
        return Encoder(
            lambda family: _write_text(
                out, format_compact_text(escape_metric_family(family, scheme)) + "\n"
            )
        )
    if kind is FormatType.PROTO_TEXT:
        return Encoder(
            lambda family: _write_text(
                out, format_text(escape_metric_family(family, scheme)) + "\n"
            )
        )
    if kind is FormatType.TEXT_PLAIN:
        return Encoder(
            lambda family: metric_family_to_text(
                out, escape_metric_family(family, scheme)
            )
        )
    if kind is FormatType.OPEN_METRICS:
        return Encoder(
            lambda family: metric_family_to_open_metrics(
                out,
                escape_metric_family(family, scheme),
                with_created_lines=with_created_lines,
                with_unit=with_unit,
            ),
            lambda: finalize_open_metrics(out),
        )
    raise ValueError(f"unknown format {str(fmt)!r}")