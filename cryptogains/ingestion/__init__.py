"""Ingestion formats for importing and exporting transaction files."""

from cryptogains.ingestion.base import (
    SourceFormat,
    detect_format,
    formats,
    get_format,
    parse_bytes,
    parse_file,
    read_source,
)
from cryptogains.ingestion.ctc import CTC_FORMAT, parse_ctc, write_ctc_csv
from cryptogains.ingestion.interchange import JSON_FORMAT, export_json, load_json

__all__ = [
    "CTC_FORMAT",
    "JSON_FORMAT",
    "SourceFormat",
    "detect_format",
    "export_json",
    "formats",
    "get_format",
    "load_json",
    "parse_bytes",
    "parse_ctc",
    "parse_file",
    "read_source",
    "write_ctc_csv",
]
