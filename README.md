# promexpo

Tools for writing metrics in the Prometheus exposition formats and for
reading metric families from the length-delimited protobuf format.

- Metric families are plain dataclasses (`MetricFamily`, `Metric`, `Counter`,
  `Gauge`, `Untyped`, `Summary`, `Histogram`, `Exemplar`, `Timestamp`, ...) in
  `promexpo.metrics`.
- `promexpo.text_create.metric_family_to_text` writes the classic text format
  (version 0.0.4).
- `promexpo.openmetrics_create.metric_family_to_open_metrics` writes
  OpenMetrics text, optionally with `_created` lines and units;
  `finalize_open_metrics` writes the closing `# EOF` line.
- `promexpo.protobuf` encodes and decodes metric families in the protobuf wire
  format (`encode_metric_family`, `decode_metric_family`, `write_delimited`,
  `read_delimited`), and renders the protobuf text and compact-text forms
  (`format_text`, `format_compact_text`).
- `promexpo.decode` reads delimited protobuf streams (`ProtoDecoder`), turns
  families into flat samples (`SampleDecoder`, `extract_samples`) and reads a
  format from a `Content-Type` header (`response_format`).
- `promexpo.encode` negotiates a format from an `Accept` header (`negotiate`,
  `negotiate_including_open_metrics`) and builds an encoder for it
  (`new_encoder`).
- `promexpo.formats` describes content types (`Format`, `FormatType`) and
  their escaping terms.
- `promexpo.names` validates and escapes metric and label names.

The package has no runtime dependencies.

## Installation

```
pip install promexpo
```

## Writing the text format

```python
import io
from promexpo.metrics import MetricFamily, MetricType, Metric, Counter, LabelPair
from promexpo.text_create import metric_family_to_text

family = MetricFamily(
    name="http_requests_total",
    help="Number of HTTP requests.",
    type=MetricType.COUNTER,
    metric=[
        Metric(label=[LabelPair(name="code", value="200")], counter=Counter(value=1027)),
    ],
)

out = io.StringIO()
metric_family_to_text(out, family)
print(out.getvalue())
# # HELP http_requests_total Number of HTTP requests.
# # TYPE http_requests_total counter
# http_requests_total{code="200"} 1027
```

`metric_family_to_text` returns the number of UTF-8 bytes written and accepts
a text or a binary stream. It raises `ValueError` for a family without metrics
or without a name, and for a metric that lacks the value its family's type
calls for.

## Content negotiation and encoding

```python
import io
from promexpo.encode import negotiate_including_open_metrics, new_encoder

fmt = negotiate_including_open_metrics({"Accept": "application/openmetrics-text; version=1.0.0"})
out = io.StringIO()
with new_encoder(out, fmt, with_created_lines=False, with_unit=False) as encoder:
    encoder.encode(family)
# Leaving the block writes the final "# EOF" line for OpenMetrics.
```

`negotiate` never picks OpenMetrics; both functions fall back to the text
format. The text-based encoders write to text or binary streams; the delimited
protobuf encoder writes bytes, so pass it a binary stream. `new_encoder`
raises `ValueError` for a format it does not recognise.

## Decoding samples

```python
from promexpo.decode import DecodeOptions, ProtoDecoder, SampleDecoder

with open("metrics.bin", "rb") as stream:
    decoder = SampleDecoder(ProtoDecoder(stream), DecodeOptions(timestamp=0))
    for samples in decoder:
        for sample in samples:
            print(sample.metric, sample.value, sample.timestamp)
```

`ProtoDecoder` checks names under `ValidationScheme.UTF8` unless given
`ValidationScheme.LEGACY`, and raises `ValueError` for invalid names. Its
`decode` raises `EOFError` at the end of the stream; iterating stops there.

`extract_samples(options, *families)` does the same for families you already
have. It returns a pair: the samples of every family it could extract, and the
last error met (or `None`); families of unknown type are skipped.

## Name escaping

Names that are not valid under the legacy rules are quoted in the output. When
a format asks for escaping (`escaping=underscores`, `dots` or `values`), names
are rewritten first; `escaping=allow-utf-8` leaves them as they are.
`promexpo.names.set_default_escaping_scheme` sets the scheme used when a
format gives none (underscores unless changed).

## What it does not do

The package does not parse the text or OpenMetrics formats; it only writes
them. Reading is limited to the length-delimited protobuf format. It serves
no HTTP endpoint and scrapes nothing: headers are passed in as plain mappings.

## Running the tests

```
pip install -e ".[test]"
pytest
```