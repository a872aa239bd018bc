import io
import math

import pytest

from promexpo.metrics import (
    Bucket,
    Counter,
    Gauge,
    Histogram,
    LabelPair,
    Metric,
    MetricFamily,
    MetricType,
    Quantile,
    Summary,
    Untyped,
)
from promexpo.text_create import (
    escape_string,
    format_float,
    format_name,
    metric_family_to_text,
)


def _histogram_buckets(with_inf):
    buckets = [
        Bucket(upper_bound=100, cumulative_count=123),
        Bucket(upper_bound=120, cumulative_count=412),
        Bucket(upper_bound=144, cumulative_count=592),
        Bucket(upper_bound=172.8, cumulative_count=1524),
    ]
    if with_inf:
        buckets.append(Bucket(upper_bound=math.inf, cumulative_count=2693))
    return buckets


HISTOGRAM_OUT = """# HELP request_duration_microseconds The response latency.
# TYPE request_duration_microseconds histogram
request_duration_microseconds_bucket{le="100"} 123
request_duration_microseconds_bucket{le="120"} 412
request_duration_microseconds_bucket{le="144"} 592
request_duration_microseconds_bucket{le="172.8"} 1524
request_duration_microseconds_bucket{le="+Inf"} 2693
request_duration_microseconds_sum 1.7560473e+06
request_duration_microseconds_count 2693
"""


SCENARIOS = [
    (
        MetricFamily(
            name="name",
            help="two-line\n doc  str\\ing",
            type=MetricType.COUNTER,
            metric=[
                Metric(
                    label=[LabelPair("labelname", "val1"), LabelPair("basename", "basevalue")],
                    counter=Counter(value=math.nan),
                ),
                Metric(
                    label=[LabelPair("labelname", "val2"), LabelPair("basename", "basevalue")],
                    counter=Counter(value=0.23),
                    timestamp_ms=1234567890,
                ),
            ],
        ),
        """# HELP name two-line\\n doc  str\\\\ing
# TYPE name counter
name{labelname="val1",basename="basevalue"} NaN
name{labelname="val2",basename="basevalue"} 0.23 1234567890
""",
    ),
    (
        MetricFamily(
            name="gauge_name",
            help='gauge\ndoc\nstr"ing',
            type=MetricType.GAUGE,
            metric=[
                Metric(
                    label=[
                        LabelPair("name_1", "val with\nnew line"),
                        LabelPair("name_2", 'val with \\backslash and "quotes"'),
                    ],
                    gauge=Gauge(value=math.inf),
                ),
                Metric(
                    label=[LabelPair("name_1", "Björn"), LabelPair("name_2", "佖佥")],
                    gauge=Gauge(value=3.14e42),
                ),
            ],
        ),
        """# HELP gauge_name gauge\\ndoc\\nstr"ing
# TYPE gauge_name gauge
gauge_name{name_1="val with\\nnew line",name_2="val with \\\\backslash and \\"quotes\\""} +Inf
gauge_name{name_1="Björn",name_2="佖佥"} 3.14e+42
""",
    ),
    (
        MetricFamily(
            name="gauge.name",
            help='gauge\ndoc\nstr"ing',
            type=MetricType.GAUGE,
            metric=[
                Metric(
                    label=[
                        LabelPair("name.1", "val with\nnew line"),
                        LabelPair("name*2", 'val with \\backslash and "quotes"'),
                    ],
                    gauge=Gauge(value=math.inf),
                ),
                Metric(
                    label=[LabelPair("name.1", "Björn"), LabelPair("name*2", "佖佥")],
                    gauge=Gauge(value=3.14e42),
                ),
            ],
        ),
        """# HELP "gauge.name" gauge\\ndoc\\nstr"ing
# TYPE "gauge.name" gauge
{"gauge.name","name.1"="val with\\nnew line","name*2"="val with \\\\backslash and \\"quotes\\""} +Inf
{"gauge.name","name.1"="Björn","name*2"="佖佥"} 3.14e+42
""",
    ),
    (
        MetricFamily(
            name="untyped_name",
            type=MetricType.UNTYPED,
            metric=[
                Metric(untyped=Untyped(value=-math.inf)),
                Metric(label=[LabelPair("name_1", "value 1")], untyped=Untyped(value=-1.23e-45)),
            ],
        ),
        """# TYPE untyped_name untyped
untyped_name -Inf
untyped_name{name_1="value 1"} -1.23e-45
""",
    ),
    (
        MetricFamily(
            name="summary_name",
            help="summary docstring",
            type=MetricType.SUMMARY,
            metric=[
                Metric(
                    summary=Summary(
                        sample_count=42,
                        sample_sum=-3.4567,
                        quantile=[
                            Quantile(0.5, -1.23),
                            Quantile(0.9, 0.2342354),
                            Quantile(0.99, 0),
                        ],
                    )
                ),
                Metric(
                    label=[LabelPair("name_1", "value 1"), LabelPair("name_2", "value 2")],
                    summary=Summary(
                        sample_count=4711,
                        sample_sum=2010.1971,
                        quantile=[Quantile(0.5, 1), Quantile(0.9, 2), Quantile(0.99, 3)],
                    ),
                ),
            ],
        ),
        """# HELP summary_name summary docstring
# TYPE summary_name summary
summary_name{quantile="0.5"} -1.23
summary_name{quantile="0.9"} 0.2342354
summary_name{quantile="0.99"} 0
summary_name_sum -3.4567
summary_name_count 42
summary_name{name_1="value 1",name_2="value 2",quantile="0.5"} 1
summary_name{name_1="value 1",name_2="value 2",quantile="0.9"} 2
summary_name{name_1="value 1",name_2="value 2",quantile="0.99"} 3
summary_name_sum{name_1="value 1",name_2="value 2"} 2010.1971
summary_name_count{name_1="value 1",name_2="value 2"} 4711
""",
    ),
    (
        MetricFamily(
            name="request_duration_microseconds",
            help="The response latency.",
            type=MetricType.HISTOGRAM,
            metric=[
                Metric(
                    histogram=Histogram(
                        sample_count=2693,
                        sample_sum=1756047.3,
                        bucket=_histogram_buckets(True),
                    )
                )
            ],
        ),
        HISTOGRAM_OUT,
    ),
    (
        MetricFamily(
            name="request_duration_microseconds",
            help="The response latency.",
            type=MetricType.HISTOGRAM,
            metric=[
                Metric(
                    histogram=Histogram(
                        sample_count=2693,
                        sample_sum=1756047.3,
                        bucket=_histogram_buckets(False),
                    )
                )
            ],
        ),
        HISTOGRAM_OUT,
    ),
    (
        MetricFamily(
            name="name",
            help="doc string",
            metric=[Metric(counter=Counter(value=-math.inf))],
        ),
        """# HELP name doc string
# TYPE name counter
name -Inf
""",
    ),
]


@pytest.mark.parametrize("family, expected", SCENARIOS)
def test_create(family, expected):
    out = io.StringIO()
    written = metric_family_to_text(out, family)
    assert out.getvalue() == expected
    assert written == len(expected.encode("utf-8"))


def test_create_to_binary_stream():
    family, expected = SCENARIOS[1]
    out = io.BytesIO()
    written = metric_family_to_text(out, family)
    assert out.getvalue() == expected.encode("utf-8")
    assert written == len(out.getvalue())


@pytest.mark.parametrize(
    "family, message",
    [
        (
            MetricFamily(name="name", help="doc string", type=MetricType.COUNTER, metric=[]),
            "MetricFamily has no metrics",
        ),
        (
            MetricFamily(
                help="doc string",
                type=MetricType.UNTYPED,
                metric=[Metric(untyped=Untyped(value=-math.inf))],
            ),
            "MetricFamily has no name",
        ),
        (
            MetricFamily(
                name="name",
                help="doc string",
                type=MetricType.COUNTER,
                metric=[Metric(untyped=Untyped(value=-math.inf))],
            ),
            "expected counter in metric",
        ),
    ],
)
def test_create_error(family, message):
    with pytest.raises(ValueError) as excinfo:
        metric_family_to_text(io.StringIO(), family)
    assert str(excinfo.value).startswith(message)


def test_wrong_type_writes_header_before_failing():
    family = MetricFamily(
        name="name",
        help="doc string",
        type=MetricType.COUNTER,
        metric=[Metric(untyped=Untyped(value=1))],
    )
    out = io.StringIO()
    with pytest.raises(ValueError):
        metric_family_to_text(out, family)
    assert out.getvalue() == "# HELP name doc string\n# TYPE name counter\n"


@pytest.mark.parametrize("metric_type", [42, MetricType.GAUGE_HISTOGRAM])
def test_unknown_metric_type(metric_type):
    family = MetricFamily(name="bad", type=metric_type, metric=[Metric(gauge=Gauge(2.7))])
    with pytest.raises(ValueError, match="unknown metric type"):
        metric_family_to_text(io.StringIO(), family)


@pytest.mark.parametrize(
    "value, expected",
    [
        (1, "1"),
        (0, "0"),
        (-0.0, "0"),
        (-1, "-1"),
        (math.nan, "NaN"),
        (math.inf, "+Inf"),
        (-math.inf, "-Inf"),
        (0.23, "0.23"),
        (100, "100"),
        (172.8, "172.8"),
        (123456, "123456"),
        (1756047.3, "1.7560473e+06"),
        (1234567890.0, "1.23456789e+09"),
        (3.14e42, "3.14e+42"),
        (-1.23e-45, "-1.23e-45"),
        (0.0001, "0.0001"),
        (0.00001, "1e-05"),
    ],
)
def test_format_float(value, expected):
    assert format_float(value) == expected


def test_escape_string():
    raw = 'a\\b\n"c"'
    assert escape_string(raw, False) == 'a\\\\b\\n"c"'
    assert escape_string(raw, True) == 'a\\\\b\\n\\"c\\"'


@pytest.mark.parametrize(
    "name, expected",
    [
        ("valid_name:sub", "valid_name:sub"),
        ("gauge.name", '"gauge.name"'),
        ('gauge.name"', '"gauge.name\\""'),
        ("1starts_with_digit", '"1starts_with_digit"'),
    ],
)
def test_format_name(name, expected):
    assert format_name(name) == expected