"""Portfolio file: wallets, their transaction sources and engine settings.

A portfolio is a JSON file. Source paths are stored relative to the
portfolio file so the portfolio and its exports can be moved together.
"""

import logging
import os
from pathlib import Path

from pydantic import BaseModel, Field, PrivateAttr, ValidationError

from cryptogains.config import EngineConfig
from cryptogains.exceptions import GainsError, PortfolioError
from cryptogains.ingestion import parse_file
from cryptogains.models.transaction import Transaction

logger = logging.getLogger(__name__)


class WalletSource(BaseModel):
    source_type: str
    path: str
    name: str = ""
    enabled: bool = True

    @property
    def source_id(self) -> str:
        return self.name or self.path


class Wallet(BaseModel):
    name: str
    enabled: bool = True
    sources: list[WalletSource] = Field(default_factory=list)


class Portfolio(BaseModel):
    wallets: list[Wallet] = Field(default_factory=list)
    ignored_currencies: list[str] = Field(default_factory=list)
    settings: EngineConfig = Field(default_factory=EngineConfig)

    _path: Path | None = PrivateAttr(default=None)

    @classmethod
    def load(cls, path: Path) -> "Portfolio":
        if not path.exists():
            raise PortfolioError(str(path), "File not found. Create one with `cryptogains init`.")
        try:
            portfolio = cls.model_validate_json(path.read_text())
        except ValidationError as exc:
            raise PortfolioError(str(path), str(exc)) from exc
        portfolio._path = path
        return portfolio

    def save(self, path: Path | None = None) -> Path:
        path = path or self._path
        if path is None:
            raise PortfolioError("<unsaved>", "No path given")
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(self.model_dump_json(indent=2) + "\n")
        self._path = path
        return path

    @property
    def base_dir(self) -> Path:
        return self._path.parent if self._path is not None else Path.cwd()

    def wallet(self, name: str) -> Wallet:
        for wallet in self.wallets:
            if wallet.name == name:
                return wallet
        raise PortfolioError(str(self._path), f"No wallet named '{name}'")

    def add_wallet(self, name: str) -> Wallet:
        if any(w.name == name for w in self.wallets):
            raise PortfolioError(str(self._path), f"Wallet '{name}' already exists")
        wallet = Wallet(name=name)
        self.wallets.append(wallet)
        return wallet

    def add_source(self, wallet_name: str, path: Path, source_type: str, name: str = "") -> WalletSource:
        """Attach a source file to a wallet, creating the wallet when needed."""
        try:
            wallet = self.wallet(wallet_name)
        except PortfolioError:
            wallet = self.add_wallet(wallet_name)
        source = WalletSource(source_type=source_type, path=self._relative(path), name=name)
        if any(s.source_id == source.source_id for s in wallet.sources):
            raise PortfolioError(str(self._path), f"Wallet '{wallet_name}' already has source '{source.source_id}'")
        wallet.sources.append(source)
        return source

    def _relative(self, path: Path) -> str:
        try:
            return os.path.relpath(path.resolve(), self.base_dir.resolve())
        except ValueError:
            # Different drive on Windows
            return str(path.resolve())

    def resolve(self, source: WalletSource) -> Path:
        return self.base_dir / source.path

    def enabled_sources(self) -> set[tuple[str, str]]:
        """(wallet_id, source_id) pairs that take part in the computation."""
        return {
            (wallet.name, source.source_id)
            for wallet in self.wallets
            if wallet.enabled
            for source in wallet.sources
            if source.enabled
        }

    def load_transactions(self) -> list[Transaction]:
        """Parse every source and tag its transactions with wallet and source ids.

        Generated ids carry the wallet and source, and an id already used by
        an earlier source is qualified with them, so ids are unique across the
        portfolio. Disabled sources that fail to load are skipped with a
        warning; errors in enabled sources propagate.
        """
        enabled = self.enabled_sources()
        transactions: list[Transaction] = []
        seen: set[str] = set()
        for wallet in self.wallets:
            for source in wallet.sources:
                label = f"{wallet.name}/{source.source_id}"
                try:
                    parsed = parse_file(self.resolve(source), source.source_type, label)
                except GainsError as exc:
                    if (wallet.name, source.source_id) in enabled:
                        raise
                    logger.warning("Skipping disabled source %s: %s", source.source_id, exc)
                    continue
                new_ids = [_unique_id(tx.id, label, seen) for tx in parsed]
                renamed: dict[str, str] = {}
                for tx, new_id in zip(parsed, new_ids):
                    renamed.setdefault(tx.id, new_id)
                transactions.extend(
                    _tag(tx, new_id, wallet.name, source.source_id, renamed) for tx, new_id in zip(parsed, new_ids)
                )
        return transactions


def _unique_id(tx_id: str, label: str, seen: set[str]) -> str:
    """Qualify an id already used by an earlier source with the source label."""
    candidate = tx_id if tx_id not in seen else f"{label}:{tx_id}"
    base, n = candidate, 2
    while candidate in seen:
        candidate = f"{base}#{n}"
        n += 1
    if candidate != tx_id:
        logger.warning("Transaction id %s is not unique, using %s", tx_id, candidate)
    seen.add(candidate)
    return candidate


def _tag(tx: Transaction, tx_id: str, wallet_id: str, source_id: str, renamed: dict[str, str]) -> Transaction:
    update: dict = {"id": tx_id, "wallet_id": wallet_id, "source_id": source_id}
    if tx.matching_tx_id is not None:
        update["matching_tx_id"] = renamed.get(tx.matching_tx_id, tx.matching_tx_id)
    if tx.merged_tx_ids:
        update["merged_tx_ids"] = tuple(renamed.get(i, i) for i in tx.merged_tx_ids)
    return tx.model_copy(update=update)
