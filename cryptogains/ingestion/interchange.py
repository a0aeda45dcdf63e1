"""JSON interchange format for transactions.

The file holds the normalized transactions as they are modelled, so exporting
and importing again reproduces the same ledger:

    {"format": "cryptogains-transactions", "version": 1, "transactions": [...]}
"""

import json
from pathlib import Path

from pydantic import ValidationError

from cryptogains.exceptions import SourceImportError, StructuralError
from cryptogains.ingestion.base import SourceFormat, decode, register
from cryptogains.models.transaction import Transaction

FORMAT_NAME = "cryptogains-transactions"
FORMAT_VERSION = 1


def dumps(transactions: list[Transaction]) -> str:
    document = {
        "format": FORMAT_NAME,
        "version": FORMAT_VERSION,
        "transactions": [tx.model_dump(mode="json", exclude_defaults=True) for tx in transactions],
    }
    return json.dumps(document, indent=2)


def export_json(transactions: list[Transaction], path: Path) -> None:
    path.write_text(dumps(transactions) + "\n")


def loads(text: str, source: str = "<json>") -> list[Transaction]:
    try:
        document = json.loads(text)
    except json.JSONDecodeError as exc:
        raise SourceImportError(source, f"Invalid JSON: {exc}") from exc

    if not isinstance(document, dict) or document.get("format") != FORMAT_NAME:
        raise SourceImportError(source, f"Not a {FORMAT_NAME} document")
    version = document.get("version")
    if version != FORMAT_VERSION:
        raise SourceImportError(source, f"Unsupported version {version!r}")

    records = document.get("transactions", [])
    if not isinstance(records, list):
        raise SourceImportError(source, "'transactions' must be a list")

    transactions: list[Transaction] = []
    problems: dict[str, str] = {}
    for index, record in enumerate(records):
        try:
            transactions.append(Transaction.model_validate(record))
        except ValidationError as exc:
            tx_id = record.get("id") if isinstance(record, dict) else None
            problems[str(tx_id or f"#{index}")] = "; ".join(
                f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in exc.errors()
            )
    if problems:
        raise StructuralError(problems)
    return transactions


def load_json(path: Path) -> list[Transaction]:
    return loads(path.read_text(encoding="utf-8"), path.name)


def _detect(data: bytes) -> bool:
    head = data[:200].lstrip()
    return head.startswith(b"{") and f'"{FORMAT_NAME}"'.encode() in head


def _parse(data: bytes, source: str) -> list[Transaction]:
    return loads(decode(data, source), source)


JSON_FORMAT = register(SourceFormat("json", "cryptogains JSON", _detect, _parse))
