"""Content types of the exposition formats and their parsing."""

from __future__ import annotations

import enum

from .names import (
    ESCAPING_KEY,
    EscapingScheme,
    escaping_scheme_from_string,
    get_default_escaping_scheme,
)

TEXT_VERSION = "0.0.4"
PROTO_TYPE = "application/vnd.google.protobuf"
PROTO_PROTOCOL = "io.prometheus.client.MetricFamily"
PROTO_FMT = PROTO_TYPE + "; proto=" + PROTO_PROTOCOL + ";"
OPEN_METRICS_TYPE = "application/openmetrics-text"
OPEN_METRICS_VERSION_0_0_1 = "0.0.1"
OPEN_METRICS_VERSION_1_0_0 = "1.0.0"

HDR_CONTENT_TYPE = "Content-Type"
HDR_ACCEPT = "Accept"


class FormatType(enum.IntEnum):
    """Overall category of a format string."""

    UNKNOWN = 0
    PROTO_COMPACT = 1
    PROTO_DELIM = 2
    PROTO_TEXT = 3
    TEXT_PLAIN = 4
    OPEN_METRICS = 5


class Format(str):
    """An HTTP content type naming one of the wire formats."""

    __slots__ = ()

    def _params(self) -> tuple[str, dict[str, str]]:
        tokens = self.split(";")
        params: dict[str, str] = {}
        for token in tokens[1:]:
            parts = token.split("=")
            if len(parts) != 2:
                continue
            params[parts[0].strip()] = parts[1].strip()
        return tokens[0].strip(), params

    def format_type(self) -> FormatType:
        media_type, params = self._params()
        if media_type == PROTO_TYPE:
            if params.get("proto") != PROTO_PROTOCOL:
                return FormatType.UNKNOWN
            return {
                "delimited": FormatType.PROTO_DELIM,
                "text": FormatType.PROTO_TEXT,
                "compact-text": FormatType.PROTO_COMPACT,
            }.get(params.get("encoding", ""), FormatType.UNKNOWN)
        if media_type == OPEN_METRICS_TYPE:
            if params.get("charset") != "utf-8":
                return FormatType.UNKNOWN
            return FormatType.OPEN_METRICS
        if media_type == "text/plain":
            version = params.get("version")
            if version is None or version == TEXT_VERSION:
                return FormatType.TEXT_PLAIN
            return FormatType.UNKNOWN
        return FormatType.UNKNOWN

    def with_escaping_scheme(self, scheme: EscapingScheme) -> Format:
        """Return a copy with any escaping term replaced by ``scheme``."""
        terms = []
        for part in self.split(";"):
            tokens = part.split("=")
            if len(tokens) != 2:
                trimmed = part.strip()
                if trimmed:
                    terms.append(trimmed)
                continue
            if tokens[0].strip() != ESCAPING_KEY:
                terms.append(part.strip())
        terms.append(f"{ESCAPING_KEY}={scheme.value}")
        return Format("; ".join(terms))

    def to_escaping_scheme(self) -> EscapingScheme:
        """Return the escaping term's scheme, or the default if absent or invalid."""
        for part in self.split(";"):
            tokens = part.split("=")
            if len(tokens) != 2:
                continue
            key, value = tokens[0].strip(), tokens[1].strip()
            if key == ESCAPING_KEY:
                try:
                    return escaping_scheme_from_string(value)
                except ValueError:
                    return get_default_escaping_scheme()
        return get_default_escaping_scheme()


FMT_UNKNOWN = Format("<unknown>")
FMT_TEXT = Format("text/plain; version=" + TEXT_VERSION + "; charset=utf-8")
FMT_PROTO_DELIM = Format(PROTO_FMT + " encoding=delimited")
FMT_PROTO_TEXT = Format(PROTO_FMT + " encoding=text")
FMT_PROTO_COMPACT = Format(PROTO_FMT + " encoding=compact-text")
FMT_OPEN_METRICS_1_0_0 = Format(
    OPEN_METRICS_TYPE + "; version=" + OPEN_METRICS_VERSION_1_0_0 + "; charset=utf-8"
)
FMT_OPEN_METRICS_0_0_1 = Format(
    OPEN_METRICS_TYPE + "; version=" + OPEN_METRICS_VERSION_0_0_1 + "; charset=utf-8"
)


def new_format(format_type: FormatType) -> Format:
    """Return the latest format of the given type."""
    return {
        FormatType.PROTO_COMPACT: FMT_PROTO_COMPACT,
        FormatType.PROTO_DELIM: FMT_PROTO_DELIM,
        FormatType.PROTO_TEXT: FMT_PROTO_TEXT,
        FormatType.TEXT_PLAIN: FMT_TEXT,
        FormatType.OPEN_METRICS: FMT_OPEN_METRICS_1_0_0,
    }.get(format_type, FMT_UNKNOWN)


def new_open_metrics_format(version: str) -> Format:
    """Return the OpenMetrics format of ``version``; raise ValueError if unknown."""
    if version == OPEN_METRICS_VERSION_0_0_1:
        return FMT_OPEN_METRICS_0_0_1
    if version == OPEN_METRICS_VERSION_1_0_0:
        return FMT_OPEN_METRICS_1_0_0
    raise ValueError("unknown open metrics version string")