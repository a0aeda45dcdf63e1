"""CryptoTaxCalculator (CTC) CSV import and export.

The column order and labels are fixed by the CTC "advanced manual" import
template and must not be changed.
"""

import csv
import io
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from pathlib import Path

from pydantic import ValidationError

from cryptogains.exceptions import SourceImportError, StructuralError
from cryptogains.ingestion.base import SourceFormat, decode, register
from cryptogains.models.enums import FIAT_CURRENCY, TransactionType
from cryptogains.models.transaction import Amount, BlockchainRef, Transaction, fiat

T = TransactionType

CTC_HEADER = [
    "Timestamp (UTC)",
    "Type",
    "Base Currency",
    "Base Amount",
    "Quote Currency (Optional)",
    "Quote Amount (Optional)",
    "Fee Currency (Optional)",
    "Fee Amount (Optional)",
    "From (Optional)",
    "To (Optional)",
    "Blockchain (Optional)",
    "ID (Optional)",
    "Description (Optional)",
    "Reference Price Per Unit (Optional)",
    "Reference Price Currency (Optional)",
]

TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"

# CTC types whose base amount leaves the wallet
_OUTGOING_CTC_TYPES: dict[str, TransactionType] = {
    "send": T.SEND,
    "transfer-out": T.SEND,
    "fiat-withdrawal": T.WITHDRAWAL,
    "fee": T.FEE,
    "approval": T.FEE,
    "expense": T.EXPENSE,
    "stolen": T.STOLEN,
    "lost": T.LOST,
    "burn": T.BURN,
    "outgoing-gift": T.GIFT,
}

# CTC types whose base amount arrives in the wallet
_INCOMING_CTC_TYPES: dict[str, TransactionType] = {
    "receive": T.RECEIVE,
    "transfer-in": T.RECEIVE,
    "fiat-deposit": T.DEPOSIT,
    "chain-split": T.CHAIN_SPLIT,
    "income": T.INCOME,
    "interest": T.INCOME,
    "mining": T.INCOME,
    "royalties": T.INCOME,
    "royalty": T.INCOME,
    "airdrop": T.AIRDROP,
    "staking": T.STAKING,
    "cashback": T.CASHBACK,
    "incoming-gift": T.GIFT,
    "gift": T.GIFT,
    "spam": T.SPAM,
}

_DIRECT_EXPORT_TYPES = {
    T.FEE: "fee",
    T.EXPENSE: "expense",
    T.STOLEN: "stolen",
    T.LOST: "lost",
    T.BURN: "burn",
    T.CHAIN_SPLIT: "chain-split",
    T.INCOME: "income",
    T.AIRDROP: "airdrop",
    T.STAKING: "staking",
    T.CASHBACK: "cashback",
    T.SPAM: "spam",
    T.SEND: "send",
    T.RECEIVE: "receive",
}


def _decimal(value: str, column: str) -> Decimal | None:
    value = value.strip()
    if not value:
        return None
    try:
        return Decimal(value)
    except InvalidOperation:
        raise ValueError(f"invalid number in '{column}': {value!r}") from None


def _amount(currency: str, quantity: str, column: str) -> Amount | None:
    parsed = _decimal(quantity, column)
    if not currency.strip() or parsed is None:
        return None
    return Amount(currency=currency, quantity=parsed)


def _row_to_transaction(row: dict[str, str], tx_id: str) -> Transaction:
    ctc_type = row["Type"].strip().lower()
    timestamp = datetime.strptime(row["Timestamp (UTC)"].strip(), TIMESTAMP_FORMAT).replace(tzinfo=timezone.utc)
    base = _amount(row["Base Currency"], row["Base Amount"], "Base Amount")
    if base is None:
        raise ValueError("missing base currency or amount")
    quote = _amount(row.get("Quote Currency (Optional)", ""), row.get("Quote Amount (Optional)", ""), "Quote Amount")
    fee = _amount(row.get("Fee Currency (Optional)", ""), row.get("Fee Amount (Optional)", ""), "Fee Amount")
    to_wallet = row.get("To (Optional)", "").strip() or None
    from_wallet = row.get("From (Optional)", "").strip() or None
    chain = row.get("Blockchain (Optional)", "").strip()

    fields: dict = {
        "id": tx_id,
        "timestamp": timestamp,
        "fee": fee,
        "description": row.get("Description (Optional)", "").strip(),
    }

    if ctc_type == "buy":
        fields["received"] = base
        fields["sent"] = quote
        fields["type"] = T.TRADE if quote is not None and not quote.is_fiat else T.BUY
    elif ctc_type == "sell":
        fields["sent"] = base
        fields["received"] = quote
        fields["type"] = T.TRADE if quote is not None and not quote.is_fiat else T.SELL
    elif ctc_type in ("send", "transfer-out") and from_wallet and to_wallet:
        fields.update(type=T.TRANSFER, sent=base, to_wallet_id=to_wallet)
    elif ctc_type in _OUTGOING_CTC_TYPES:
        fields.update(type=_OUTGOING_CTC_TYPES[ctc_type], sent=base)
    elif ctc_type in _INCOMING_CTC_TYPES:
        fields.update(type=_INCOMING_CTC_TYPES[ctc_type], received=base)
    else:
        raise ValueError(f"unsupported CTC type {ctc_type!r}")

    price = _decimal(row.get("Reference Price Per Unit (Optional)", ""), "Reference Price Per Unit")
    price_currency = row.get("Reference Price Currency (Optional)", "").strip().upper()
    if price is not None and price_currency == FIAT_CURRENCY:
        fields["value"] = fiat(price * base.quantity)

    if chain:
        fields["blockchain"] = BlockchainRef(chain=chain, tx_hash=row.get("ID (Optional)", "").strip() or tx_id)

    return Transaction(**fields)


def parse_ctc(text: str, source: str) -> list[Transaction]:
    reader = csv.DictReader(io.StringIO(text))
    missing = [column for column in CTC_HEADER[:4] if column not in (reader.fieldnames or [])]
    if missing:
        raise SourceImportError(source, f"Missing CTC columns: {', '.join(missing)}")

    transactions: list[Transaction] = []
    problems: dict[str, str] = {}
    # Row numbers count the header as line 1
    for line, row in enumerate(reader, start=2):
        tx_id = row.get("ID (Optional)", "").strip() or f"{source}:{line}"
        try:
            transactions.append(_row_to_transaction(row, tx_id))
        except ValidationError as exc:
            problems[tx_id] = "; ".join(err["msg"] for err in exc.errors())
        except ValueError as exc:
            problems[tx_id] = str(exc)
    if problems:
        raise StructuralError(problems)
    return transactions


def _export_type(tx: Transaction) -> tuple[str, Amount, Amount | None]:
    """CTC type, base amount and quote amount for a transaction."""
    match tx.type:
        case T.BUY | T.SELL | T.TRADE | T.SWAP:
            if tx.received is None or tx.received.is_fiat:
                return "sell", tx.sent, tx.received
            return "buy", tx.received, tx.sent
        case T.DEPOSIT:
            return ("fiat-deposit" if tx.received.is_fiat else "receive"), tx.received, None
        case T.WITHDRAWAL:
            return ("fiat-withdrawal" if tx.sent.is_fiat else "send"), tx.sent, None
        case T.TRANSFER:
            return "send", tx.sent, None
        case T.GIFT:
            if tx.sent is not None:
                return "outgoing-gift", tx.sent, None
            return "incoming-gift", tx.received, None
        case _:
            base = tx.sent if tx.sent is not None else tx.received
            return _DIRECT_EXPORT_TYPES[tx.type], base, None


def transaction_row(tx: Transaction) -> list[str]:
    ctc_type, base, quote = _export_type(tx)
    outgoing = ctc_type in _OUTGOING_CTC_TYPES or ctc_type == "sell"

    if tx.type == T.TRANSFER:
        from_wallet, to_wallet = tx.wallet_id, tx.to_wallet_id or ""
    elif outgoing:
        from_wallet, to_wallet = tx.wallet_id, ""
    else:
        from_wallet, to_wallet = "", tx.wallet_id

    price = ""
    price_currency = ""
    if tx.value is not None and base.quantity > 0 and not base.is_fiat:
        price = str(tx.value.quantity / base.quantity)
        price_currency = tx.value.currency

    return [
        tx.timestamp.astimezone(timezone.utc).strftime(TIMESTAMP_FORMAT),
        ctc_type,
        base.currency,
        str(base.quantity),
        quote.currency if quote else "",
        str(quote.quantity) if quote else "",
        tx.fee.currency if tx.fee else "",
        str(tx.fee.quantity) if tx.fee else "",
        from_wallet,
        to_wallet,
        tx.blockchain.chain if tx.blockchain else "",
        tx.id,
        tx.description,
        price,
        price_currency,
    ]


def write_ctc_csv(transactions: list[Transaction], path: Path) -> None:
    with open(path, "w", newline="", encoding="utf-8") as f:
        writer = csv.writer(f)
        writer.writerow(CTC_HEADER)
        writer.writerows(transaction_row(tx) for tx in transactions)


def _detect(data: bytes) -> bool:
    return data.lstrip(b"\xef\xbb\xbf \r\n").startswith(b"Timestamp (UTC),Type,Base Currency")


def _parse(data: bytes, source: str) -> list[Transaction]:
    return parse_ctc(decode(data, source), source)


CTC_FORMAT = register(SourceFormat("ctc", "CryptoTaxCalculator CSV", _detect, _parse))
