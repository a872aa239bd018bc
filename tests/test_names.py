import pytest

from promexpo.names import (
    EscapingScheme,
    ValidationScheme,
    escape_name,
    escaping_scheme_from_string,
    get_default_escaping_scheme,
    is_valid_label_name,
    is_valid_legacy_metric_name,
    is_valid_metric_name,
    set_default_escaping_scheme,
)


@pytest.mark.parametrize(
    "text, scheme",
    [
        ("allow-utf-8", EscapingScheme.NO_ESCAPING),
        ("underscores", EscapingScheme.UNDERSCORE_ESCAPING),
        ("dots", EscapingScheme.DOTS_ESCAPING),
        ("values", EscapingScheme.VALUE_ENCODING_ESCAPING),
    ],
)
def test_escaping_scheme_from_string(text, scheme):
    assert escaping_scheme_from_string(text) is scheme
    assert str(scheme) == text


@pytest.mark.parametrize("text", ["", "invalid", "Dots"])
def test_escaping_scheme_from_string_rejects(text):
    with pytest.raises(ValueError):
        escaping_scheme_from_string(text)


def test_default_escaping_scheme_roundtrip():
    original = get_default_escaping_scheme()
    try:
        set_default_escaping_scheme(EscapingScheme.DOTS_ESCAPING)
        assert get_default_escaping_scheme() is EscapingScheme.DOTS_ESCAPING
    finally:
        set_default_escaping_scheme(original)
    assert get_default_escaping_scheme() is original


def test_default_escaping_scheme_starts_as_underscores():
    assert get_default_escaping_scheme() is EscapingScheme.UNDERSCORE_ESCAPING


def test_set_default_rejects_non_scheme():
    with pytest.raises(TypeError):
        set_default_escaping_scheme("dots")


@pytest.mark.parametrize(
    "name, valid",
    [
        ("foo_metric", True),
        ("request_count", True),
        (":colon_start", True),
        ("foo.metric", False),
        ("1abc", False),
        ("", False),
        ("name*2", False),
        ("trailing\n", False),
    ],
)
def test_is_valid_legacy_metric_name(name, valid):
    assert is_valid_legacy_metric_name(name) is valid
    assert is_valid_metric_name(name, ValidationScheme.LEGACY) is valid


@pytest.mark.parametrize(
    "name, valid",
    [
        ("name_1", True),
        ("__name__", True),
        ("some_label_name", True),
        ("some_!abel_name", False),
        ("label:colon", False),
        ("1label", False),
        ("", False),
    ],
)
def test_is_valid_label_name_legacy(name, valid):
    assert is_valid_label_name(name, ValidationScheme.LEGACY) is valid


@pytest.mark.parametrize("name", ["name.1", "name*2", "gauge.name", "Björn"])
def test_utf8_validation_accepts_non_legacy(name):
    assert is_valid_label_name(name, ValidationScheme.UTF8) is True
    assert is_valid_metric_name(name, ValidationScheme.UTF8) is True
    assert is_valid_label_name(name, ValidationScheme.LEGACY) is False


@pytest.mark.parametrize("name", ["", "\ud800"])
def test_utf8_validation_rejects(name):
    assert is_valid_label_name(name, ValidationScheme.UTF8) is False
    assert is_valid_metric_name(name, ValidationScheme.UTF8) is False


@pytest.mark.parametrize(
    "name, expected",
    [("foo.metric", "foo_metric"), ("dotted.label.name", "dotted_label_name")],
)
def test_escape_name_underscores(name, expected):
    assert escape_name(name, EscapingScheme.UNDERSCORE_ESCAPING) == expected


def test_escape_name_dots():
    assert escape_name("a.b", EscapingScheme.DOTS_ESCAPING) == "a_dot_b"


def test_escape_name_values():
    assert escape_name("a.b", EscapingScheme.VALUE_ENCODING_ESCAPING) == "U__a_2e_b"


def test_escape_name_values_surrogate():
    escaped = escape_name("a\ud800", EscapingScheme.VALUE_ENCODING_ESCAPING)
    assert "_FFFD_" in escaped


@pytest.mark.parametrize("scheme", list(EscapingScheme))
def test_escape_empty_name(scheme):
    assert escape_name("", scheme) == ""


@pytest.mark.parametrize("name", ["gauge.name", "name*2", "佖佥", "foo_metric"])
def test_no_escaping_is_identity(name):
    assert escape_name(name, EscapingScheme.NO_ESCAPING) == name


@pytest.mark.parametrize(
    "scheme",
    [EscapingScheme.UNDERSCORE_ESCAPING, EscapingScheme.VALUE_ENCODING_ESCAPING],
)
@pytest.mark.parametrize("name", ["foo_metric", "request_count", ":x"])
def test_legacy_valid_names_untouched(scheme, name):
    assert escape_name(name, scheme) == name


@pytest.mark.parametrize(
    "scheme",
    [
        EscapingScheme.UNDERSCORE_ESCAPING,
        EscapingScheme.DOTS_ESCAPING,
        EscapingScheme.VALUE_ENCODING_ESCAPING,
    ],
)
@pytest.mark.parametrize(
    "name", ["gauge.name", "name*2", "1abc", "Björn", "佖佥", "with space"]
)
def test_escaped_names_are_legacy_valid(scheme, name):
    assert is_valid_legacy_metric_name(escape_name(name, scheme))


def test_escape_name_rejects_unknown_scheme():
    with pytest.raises(ValueError):
        escape_name("foo.bar", "dots")