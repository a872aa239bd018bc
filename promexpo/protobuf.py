"""Protocol buffer wire and text encodings of metric families."""

from __future__ import annotations

import struct
from typing import IO, Iterator, Union

from .metrics import (
    Bucket,
    Counter,
    Exemplar,
    Gauge,
    Histogram,
    LabelPair,
    Metric,
    MetricFamily,
    MetricType,
    Quantile,
    Summary,
    Timestamp,
    Untyped,
)
from .text_create import _shortest_float

_VARINT = 0
_FIXED64 = 1
_LENGTH = 2
_FIXED32 = 5

_MASK64 = (1 << 64) - 1

_TextValue = Union[str, list]


# --- wire encoding -----------------------------------------------------------


def _varint(value: int) -> bytes:
    value &= _MASK64
    out = bytearray()
    while True:
        byte = value & 0x7F
        value >>= 7
        if value:
            out.append(byte | 0x80)
        else:
            out.append(byte)
            return bytes(out)


def _key(number: int, wire_type: int) -> bytes:
    return _varint((number << 3) | wire_type)


def _f_varint(number: int, value: int) -> bytes:
    return _key(number, _VARINT) + _varint(int(value))


def _f_double(number: int, value: float) -> bytes:
    return _key(number, _FIXED64) + struct.pack("<d", float(value))


def _f_bytes(number: int, data: bytes) -> bytes:
    return _key(number, _LENGTH) + _varint(len(data)) + data


def _f_string(number: int, value: str) -> bytes:
    return _f_bytes(number, value.encode("utf-8", "surrogateescape"))


def _enc_label(pair: LabelPair) -> bytes:
    return _f_string(1, pair.name) + _f_string(2, pair.value)


def _enc_timestamp(ts: Timestamp) -> bytes:
    out = b""
    if ts.seconds:
        out += _f_varint(1, ts.seconds)
    if ts.nanos:
        out += _f_varint(2, ts.nanos)
    return out


def _enc_exemplar(ex: Exemplar) -> bytes:
    out = b"".join(_f_bytes(1, _enc_label(p)) for p in ex.label)
    out += _f_double(2, ex.value)
    if ex.timestamp is not None:
        out += _f_bytes(3, _enc_timestamp(ex.timestamp))
    return out


def _enc_counter(c: Counter) -> bytes:
    out = _f_double(1, c.value)
    if c.exemplar is not None:
        out += _f_bytes(2, _enc_exemplar(c.exemplar))
    if c.created_timestamp is not None:
        out += _f_bytes(3, _enc_timestamp(c.created_timestamp))
    return out


def _enc_summary(s: Summary) -> bytes:
    out = _f_varint(1, s.sample_count) + _f_double(2, s.sample_sum)
    for q in s.quantile:
        out += _f_bytes(3, _f_double(1, q.quantile) + _f_double(2, q.value))
    if s.created_timestamp is not None:
        out += _f_bytes(4, _enc_timestamp(s.created_timestamp))
    return out


def _enc_bucket(b: Bucket) -> bytes:
    out = _f_varint(1, b.cumulative_count) + _f_double(2, b.upper_bound)
    if b.exemplar is not None:
        out += _f_bytes(3, _enc_exemplar(b.exemplar))
    return out


def _enc_histogram(h: Histogram) -> bytes:
    out = _f_varint(1, h.sample_count) + _f_double(2, h.sample_sum)
    for b in h.bucket:
        out += _f_bytes(3, _enc_bucket(b))
    if h.created_timestamp is not None:
        out += _f_bytes(15, _enc_timestamp(h.created_timestamp))
    return out


def _enc_metric(m: Metric) -> bytes:
    out = b"".join(_f_bytes(1, _enc_label(p)) for p in m.label)
    if m.gauge is not None:
        out += _f_bytes(2, _f_double(1, m.gauge.value))
    if m.counter is not None:
        out += _f_bytes(3, _enc_counter(m.counter))
    if m.summary is not None:
        out += _f_bytes(4, _enc_summary(m.summary))
    if m.untyped is not None:
        out += _f_bytes(5, _f_double(1, m.untyped.value))
    if m.timestamp_ms is not None:
        out += _f_varint(6, m.timestamp_ms)
    if m.histogram is not None:
        out += _f_bytes(7, _enc_histogram(m.histogram))
    return out


def encode_metric_family(family: MetricFamily) -> bytes:
    """Serialize ``family`` to protocol buffer wire bytes."""
    out = _f_string(1, family.name)
    if family.help is not None:
        out += _f_string(2, family.help)
    out += _f_varint(3, int(family.type))
    for m in family.metric:
        out += _f_bytes(4, _enc_metric(m))
    if family.unit is not None:
        out += _f_string(5, family.unit)
    return out


# --- wire decoding -----------------------------------------------------------


def _read_varint(data: bytes, pos: int) -> tuple[int, int]:
    result = 0
    shift = 0
    while True:
        if pos >= len(data):
            raise ValueError("truncated varint")
        byte = data[pos]
        pos += 1
        result |= (byte & 0x7F) << shift
        if not byte & 0x80:
            return result & _MASK64, pos
        shift += 7
        if shift >= 70:
            raise ValueError("varint too long")


def _fields(data: bytes) -> Iterator[tuple[int, int, object]]:
    pos = 0
    while pos < len(data):
        key, pos = _read_varint(data, pos)
        number, wire_type = key >> 3, key & 7
        if number == 0:
            raise ValueError("invalid field number 0")
        if wire_type == _VARINT:
            value, pos = _read_varint(data, pos)
        elif wire_type == _FIXED64:
            if pos + 8 > len(data):
                raise ValueError("truncated fixed64 field")
            value, pos = data[pos : pos + 8], pos + 8
        elif wire_type == _LENGTH:
            length, pos = _read_varint(data, pos)
            if pos + length > len(data):
                raise ValueError("truncated length-delimited field")
            value, pos = data[pos : pos + length], pos + length
        elif wire_type == _FIXED32:
            if pos + 4 > len(data):
                raise ValueError("truncated fixed32 field")
            value, pos = data[pos : pos + 4], pos + 4
        else:
            raise ValueError(f"unsupported wire type {wire_type}")
        yield number, wire_type, value


def _check(wire_type: int, expected: int, number: int) -> None:
    if wire_type != expected:
        raise ValueError(f"field {number} has wrong wire type {wire_type}")


def _signed(value: int) -> int:
    return value - (1 << 64) if value >= 1 << 63 else value


def _double(raw: object) -> float:
    return struct.unpack("<d", raw)[0]


def _string(raw: object) -> str:
    return bytes(raw).decode("utf-8", "surrogateescape")


def _dec_label(data: bytes) -> LabelPair:
    pair = LabelPair()
    for num, wt, val in _fields(data):
        if num == 1:
            _check(wt, _LENGTH, num)
            pair.name = _string(val)
        elif num == 2:
            _check(wt, _LENGTH, num)
            pair.value = _string(val)
    return pair


def _dec_timestamp(data: bytes) -> Timestamp:
    seconds = nanos = 0
    for num, wt, val in _fields(data):
        if num == 1:
            _check(wt, _VARINT, num)
            seconds = _signed(val)
        elif num == 2:
            _check(wt, _VARINT, num)
            nanos = _signed(val)
    return Timestamp(seconds=seconds, nanos=nanos)


def _dec_value(data: bytes) -> float:
    value = 0.0
    for num, wt, val in _fields(data):
        if num == 1:
            _check(wt, _FIXED64, num)
            value = _double(val)
    return value


def _dec_exemplar(data: bytes) -> Exemplar:
    ex = Exemplar()
    for num, wt, val in _fields(data):
        if num == 1:
            _check(wt, _LENGTH, num)
            ex.label.append(_dec_label(val))
        elif num == 2:
            _check(wt, _FIXED64, num)
            ex.value = _double(val)
        elif num == 3:
            _check(wt, _LENGTH, num)
            ex.timestamp = _dec_timestamp(val)
    return ex


def _dec_counter(data: bytes) -> Counter:
    c = Counter()
    for num, wt, val in _fields(data):
        if num == 1:
            _check(wt, _FIXED64, num)
            c.value = _double(val)
        elif num == 2:
            _check(wt, _LENGTH, num)
            c.exemplar = _dec_exemplar(val)
        elif num == 3:
            _check(wt, _LENGTH, num)
            c.created_timestamp = _dec_timestamp(val)
    return c


def _dec_quantile(data: bytes) -> Quantile:
    q = Quantile()
    for num, wt, val in _fields(data):
        if num == 1:
            _check(wt, _FIXED64, num)
            q.quantile = _double(val)
        elif num == 2:
            _check(wt, _FIXED64, num)
            q.value = _double(val)
    return q


def _dec_summary(data: bytes) -> Summary:
    s = Summary()
    for num, wt, val in _fields(data):
        if num == 1:
            _check(wt, _VARINT, num)
            s.sample_count = val
        elif num == 2:
            _check(wt, _FIXED64, num)
            s.sample_sum = _double(val)
        elif num == 3:
            _check(wt, _LENGTH, num)
            s.quantile.append(_dec_quantile(val))
        elif num == 4:
            _check(wt, _LENGTH, num)
            s.created_timestamp = _dec_timestamp(val)
    return s


def _dec_bucket(data: bytes) -> Bucket:
    b = Bucket()
    for num, wt, val in _fields(data):
        if num == 1:
            _check(wt, _VARINT, num)
            b.cumulative_count = val
        elif num == 2:
            _check(wt, _FIXED64, num)
            b.upper_bound = _double(val)
        elif num == 3:
            _check(wt, _LENGTH, num)
            b.exemplar = _dec_exemplar(val)
    return b


def _dec_histogram(data: bytes) -> Histogram:
    h = Histogram()
    for num, wt, val in _fields(data):
        if num == 1:
            _check(wt, _VARINT, num)
            h.sample_count = val
        elif num == 2:
            _check(wt, _FIXED64, num)
            h.sample_sum = _double(val)
        elif num == 3:
            _check(wt, _LENGTH, num)
            h.bucket.append(_dec_bucket(val))
        elif num == 15:
            _check(wt, _LENGTH, num)
            h.created_timestamp = _dec_timestamp(val)
    return h


def _dec_metric(data: bytes) -> Metric:
    m = Metric()
    for num, wt, val in _fields(data):
        if num == 1:
            _check(wt, _LENGTH, num)
            m.label.append(_dec_label(val))
        elif num == 2:
            _check(wt, _LENGTH, num)
            m.gauge = Gauge(_dec_value(val))
        elif num == 3:
            _check(wt, _LENGTH, num)
            m.counter = _dec_counter(val)
        elif num == 4:
            _check(wt, _LENGTH, num)
            m.summary = _dec_summary(val)
        elif num == 5:
            _check(wt, _LENGTH, num)
            m.untyped = Untyped(_dec_value(val))
        elif num == 6:
            _check(wt, _VARINT, num)
            m.timestamp_ms = _signed(val)
        elif num == 7:
            _check(wt, _LENGTH, num)
            m.histogram = _dec_histogram(val)
    return m


def decode_metric_family(data: bytes) -> MetricFamily:
    """Parse protocol buffer wire bytes into a MetricFamily."""
    family = MetricFamily()
    for num, wt, val in _fields(bytes(data)):
        if num == 1:
            _check(wt, _LENGTH, num)
            family.name = _string(val)
        elif num == 2:
            _check(wt, _LENGTH, num)
            family.help = _string(val)
        elif num == 3:
            _check(wt, _VARINT, num)
            raw = _signed(val)
            try:
                family.type = MetricType(raw)
            except ValueError:
                family.type = raw
        elif num == 4:
            _check(wt, _LENGTH, num)
            family.metric.append(_dec_metric(val))
        elif num == 5:
            _check(wt, _LENGTH, num)
            family.unit = _string(val)
    return family


def write_delimited(out: IO[bytes], family: MetricFamily) -> int:
    """Write ``family`` with a varint length prefix; return bytes written."""
    payload = encode_metric_family(family)
    data = _varint(len(payload)) + payload
    out.write(data)
    return len(data)


def read_delimited(stream: IO[bytes]) -> MetricFamily:
    """Read one length-prefixed family.

    Raises EOFError at a clean end of stream and ValueError if it is truncated.
    """
    length = 0
    shift = 0
    first = True
    while True:
        byte = stream.read(1)
        if not byte:
            if first:
                raise EOFError("end of stream")
            raise ValueError("unexpected EOF in length prefix")
        first = False
        length |= (byte[0] & 0x7F) << shift
        if not byte[0] & 0x80:
            break
        shift += 7
        if shift >= 70:
            raise ValueError("length prefix too long")
    payload = stream.read(length) if length else b""
    if len(payload) != length:
        raise ValueError("unexpected EOF in message")
    return decode_metric_family(payload)


# --- text encoding -----------------------------------------------------------


def _quote(value: str) -> str:
    parts = ['"']
    for byte in value.encode("utf-8", "surrogateescape"):
        ch = chr(byte)
        if ch == "\\":
            parts.append("\\\\")
        elif ch == '"':
            parts.append('\\"')
        elif ch == "\n":
            parts.append("\\n")
        elif ch == "\r":
            parts.append("\\r")
        elif ch == "\t":
            parts.append("\\t")
        elif byte < 0x20 or byte == 0x7F:
            parts.append(f"\\{byte:03o}")
        else:
            parts.append(None)  # placeholder for raw byte
            parts[-1] = bytes([byte])
    out = bytearray()
    for part in parts:
        out += part if isinstance(part, bytes) else part.encode("ascii")
    out += b'"'
    return out.decode("utf-8", "backslashreplace")


def _num(value: float) -> str:
    value = float(value)
    if value != value:
        return "nan"
    if value in (float("inf"), float("-inf")):
        return "inf" if value > 0 else "-inf"
    if value == 0:
        return "-0" if str(value).startswith("-") else "0"
    return _shortest_float(value)


def _items(msg: object) -> list[tuple[str, _TextValue]]:
    items: list[tuple[str, _TextValue]] = []
    if isinstance(msg, LabelPair):
        items = [("name", _quote(msg.name)), ("value", _quote(msg.value))]
    elif isinstance(msg, (Gauge, Untyped)):
        items = [("value", _num(msg.value))]
    elif isinstance(msg, Timestamp):
        if msg.seconds:
            items.append(("seconds", str(msg.seconds)))
        if msg.nanos:
            items.append(("nanos", str(msg.nanos)))
    elif isinstance(msg, Exemplar):
        items = [("label", _items(p)) for p in msg.label]
        items.append(("value", _num(msg.value)))
        if msg.timestamp is not None:
            items.append(("timestamp", _items(msg.timestamp)))
    elif isinstance(msg, Counter):
        items = [("value", _num(msg.value))]
        if msg.exemplar is not None:
            items.append(("exemplar", _items(msg.exemplar)))
        if msg.created_timestamp is not None:
            items.append(("created_timestamp", _items(msg.created_timestamp)))
    elif isinstance(msg, Quantile):
        items = [("quantile", _num(msg.quantile)), ("value", _num(msg.value))]
    elif isinstance(msg, Summary):
        items = [("sample_count", str(msg.sample_count)), ("sample_sum", _num(msg.sample_sum))]
        items += [("quantile", _items(q)) for q in msg.quantile]
        if msg.created_timestamp is not None:
            items.append(("created_timestamp", _items(msg.created_timestamp)))
    elif isinstance(msg, Bucket):
        items = [
            ("cumulative_count", str(msg.cumulative_count)),
            ("upper_bound", _num(msg.upper_bound)),
        ]
        if msg.exemplar is not None:
            items.append(("exemplar", _items(msg.exemplar)))
    elif isinstance(msg, Histogram):
        items = [("sample_count", str(msg.sample_count)), ("sample_sum", _num(msg.sample_sum))]
        items += [("bucket", _items(b)) for b in msg.bucket]
        if msg.created_timestamp is not None:
            items.append(("created_timestamp", _items(msg.created_timestamp)))
    elif isinstance(msg, Metric):
        items = [("label", _items(p)) for p in msg.label]
        for key in ("gauge", "counter", "summary", "untyped"):
            sub = getattr(msg, key)
            if sub is not None:
                items.append((key, _items(sub)))
        if msg.timestamp_ms is not None:
            items.append(("timestamp_ms", str(msg.timestamp_ms)))
        if msg.histogram is not None:
            items.append(("histogram", _items(msg.histogram)))
    elif isinstance(msg, MetricFamily):
        items = [("name", _quote(msg.name))]
        if msg.help is not None:
            items.append(("help", _quote(msg.help)))
        try:
            type_name = MetricType(msg.type).name
        except ValueError:
            type_name = str(int(msg.type))
        items.append(("type", type_name))
        items += [("metric", _items(m)) for m in msg.metric]
        if msg.unit is not None:
            items.append(("unit", _quote(msg.unit)))
    else:
        raise TypeError(f"cannot format {type(msg).__name__}")
    return items


def _multi_line(items: list, indent: str) -> str:
    lines = []
    for key, value in items:
        if isinstance(value, list):
            lines.append(f"{indent}{key}: {{\n")
            lines.append(_multi_line(value, indent + "  "))
            lines.append(f"{indent}}}\n")
        else:
            lines.append(f"{indent}{key}: {value}\n")
    return "".join(lines)


def _compact(items: list) -> str:
    return " ".join(
        f"{key}:{{{_compact(value)}}}" if isinstance(value, list) else f"{key}:{value}"
        for key, value in items
    )


def format_text(family: MetricFamily) -> str:
    """Render ``family`` in the multi-line protocol buffer text format."""
    return _multi_line(_items(family), "")


def format_compact_text(family: MetricFamily) -> str:
    """Render ``family`` in the single-line protocol buffer text format."""
    return _compact(_items(family))