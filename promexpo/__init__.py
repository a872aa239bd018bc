"""Write Prometheus text and OpenMetrics output, and encode and decode delimited protobuf metric families."""

__version__ = "0.1.0"

__all__ = [
    "names",
    "metrics",
    "formats",
    "text_create",
    "openmetrics_create",
    "protobuf",
    "decode",
    "encode",
]