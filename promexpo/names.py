"""Validation and escaping of metric and label names."""

from __future__ import annotations

import enum
import re

METRIC_NAME_LABEL = "__name__"
QUANTILE_LABEL = "quantile"
BUCKET_LABEL = "le"
ESCAPING_KEY = "escaping"

_LEGACY_METRIC_NAME = re.compile(r"[a-zA-Z_:][a-zA-Z0-9_:]*")
_LEGACY_LABEL_NAME = re.compile(r"[a-zA-Z_][a-zA-Z0-9_]*")


class EscapingScheme(enum.Enum):
    """How names that are not valid under the legacy rules are rewritten."""

    NO_ESCAPING = "allow-utf-8"
    UNDERSCORE_ESCAPING = "underscores"
    DOTS_ESCAPING = "dots"
    VALUE_ENCODING_ESCAPING = "values"

    def __str__(self) -> str:
        return self.value


class ValidationScheme(enum.Enum):
    """Which rules a metric or label name is checked against."""

    LEGACY = "legacy"
    UTF8 = "utf8"


_defaults = {"escaping": EscapingScheme.UNDERSCORE_ESCAPING}


def escaping_scheme_from_string(value: str) -> EscapingScheme:
    """Return the scheme named by ``value``; raise ValueError if there is none."""
    if value == "":
        raise ValueError("got empty string instead of escaping scheme")
    try:
        return EscapingScheme(value)
    except ValueError:
        raise ValueError(f"unknown format scheme {value}") from None


def get_default_escaping_scheme() -> EscapingScheme:
    """Return the scheme used when a format names none."""
    return _defaults["escaping"]


def set_default_escaping_scheme(scheme: EscapingScheme) -> None:
    """Change the scheme used when a format names none."""
    if not isinstance(scheme, EscapingScheme):
        raise TypeError(f"expected an EscapingScheme, got {scheme!r}")
    _defaults["escaping"] = scheme


def _is_valid_utf8(name: str) -> bool:
    try:
        name.encode("utf-8")
    except UnicodeEncodeError:
        return False
    return True


def is_valid_legacy_metric_name(name: str) -> bool:
    """True if ``name`` matches ``[a-zA-Z_:][a-zA-Z0-9_:]*``."""
    return _LEGACY_METRIC_NAME.fullmatch(name) is not None


def is_valid_metric_name(
    name: str, validation: ValidationScheme = ValidationScheme.UTF8
) -> bool:
    """Check a metric name under the given validation scheme."""
    if validation is ValidationScheme.LEGACY:
        return is_valid_legacy_metric_name(name)
    return len(name) > 0 and _is_valid_utf8(name)


def is_valid_label_name(
    name: str, validation: ValidationScheme = ValidationScheme.UTF8
) -> bool:
    """Check a label name under the given validation scheme."""
    if validation is ValidationScheme.LEGACY:
        return _LEGACY_LABEL_NAME.fullmatch(name) is not None
    return len(name) > 0 and _is_valid_utf8(name)


def _is_legacy_char(ch: str, first: bool) -> bool:
    return (
        ("a" <= ch <= "z")
        or ("A" <= ch <= "Z")
        or ch in "_:"
        or ("0" <= ch <= "9" and not first)
    )


def _is_surrogate(ch: str) -> bool:
    return 0xD800 <= ord(ch) <= 0xDFFF


def escape_name(name: str, scheme: EscapingScheme) -> str:
    """Rewrite ``name`` so that it is valid under the legacy rules."""
    if not isinstance(scheme, EscapingScheme):
        raise ValueError(f"invalid escaping scheme {scheme!r}")
    if not name or scheme is EscapingScheme.NO_ESCAPING:
        return name

    if scheme is EscapingScheme.UNDERSCORE_ESCAPING:
        if is_valid_legacy_metric_name(name):
            return name
        return "".join(
            ch if _is_legacy_char(ch, pos == 0) else "_"
            for pos, ch in enumerate(name)
        )

    if scheme is EscapingScheme.DOTS_ESCAPING:
        parts = []
        for pos, ch in enumerate(name):
            if ch == "_":
                parts.append("__")
            elif ch == ".":
                parts.append("_dot_")
            elif _is_legacy_char(ch, pos == 0):
                parts.append(ch)
            else:
                parts.append("__")
        return "".join(parts)

    if is_valid_legacy_metric_name(name):
        return name
    parts = ["U__"]
    for pos, ch in enumerate(name):
        if ch == "_":
            parts.append("__")
        elif _is_legacy_char(ch, pos == 0):
            parts.append(ch)
        elif _is_surrogate(ch):
            parts.append("_FFFD_")
        else:
            parts.append(f"_{ord(ch):x}_")
    return "".join(parts)