"""Source format registry for transaction imports.

Each supported file format is a SourceFormat value bundling a content sniffer
and a parser. Formats register themselves on import; a file's format is
chosen by asking every registered sniffer in registration order.
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path

from cryptogains.exceptions import SourceImportError, UnknownSourceFormatError
from cryptogains.models.transaction import Transaction

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SourceFormat:
    """A file format that can be turned into transactions."""

    source_type: str
    label: str
    detect: Callable[[bytes], bool]
    parse: Callable[[bytes, str], list[Transaction]]


_REGISTRY: dict[str, SourceFormat] = {}


def register(source_format: SourceFormat) -> SourceFormat:
    _REGISTRY[source_format.source_type] = source_format
    return source_format


def formats() -> list[SourceFormat]:
    """Registered formats, in detection order."""
    return list(_REGISTRY.values())


def get_format(source_type: str) -> SourceFormat:
    try:
        return _REGISTRY[source_type]
    except KeyError:
        known = ", ".join(sorted(_REGISTRY))
        raise SourceImportError(source_type, f"Unknown source type. Known types: {known}") from None


def detect_format(data: bytes) -> SourceFormat | None:
    for source_format in _REGISTRY.values():
        if source_format.detect(data):
            return source_format
    return None


def decode(data: bytes, source: str) -> str:
    try:
        return data.decode("utf-8-sig")
    except UnicodeDecodeError as exc:
        raise SourceImportError(source, f"Not UTF-8 text: {exc}") from exc


def read_source(path: Path) -> bytes:
    if not path.exists():
        raise SourceImportError(str(path), "File not found")
    try:
        return path.read_bytes()
    except OSError as exc:
        raise SourceImportError(str(path), str(exc)) from exc


def parse_bytes(data: bytes, source: str, source_type: str | None = None) -> list[Transaction]:
    """Parse file content, detecting its format unless `source_type` is given."""
    if source_type is not None:
        source_format = get_format(source_type)
    else:
        source_format = detect_format(data)
        if source_format is None:
            raise UnknownSourceFormatError(source)
    transactions = source_format.parse(data, source)
    logger.info("Loaded %d transactions from %s (%s)", len(transactions), source, source_format.label)
    return transactions


def parse_file(path: Path, source_type: str | None = None, source: str | None = None) -> list[Transaction]:
    """Parse a file; `source` labels its errors and generated ids, defaulting to the file name."""
    return parse_bytes(read_source(path), source or path.name, source_type)
