"""FIFO lot ledger: per-currency queues of open acquisition lots."""

import bisect
from collections import defaultdict
from datetime import datetime
from decimal import Decimal

from cryptogains.models.ledger import Disposal, Lot, LotFragment

ZERO = Decimal("0")

QueueKey = tuple[str | None, str]  # (wallet_id or None, currency)


class LotLedger:
    """Holds open lots and consumes them oldest first.

    With `per_wallet` every wallet has its own queue per currency; otherwise
    all wallets share one queue per currency.
    """

    def __init__(self, per_wallet: bool = False):
        self.per_wallet = per_wallet
        self._queues: dict[QueueKey, list[Lot]] = defaultdict(list)

    def _key(self, currency: str, wallet_id: str | None) -> QueueKey:
        return (wallet_id if self.per_wallet else None, currency)

    def acquire(
        self,
        currency: str,
        amount: Decimal,
        unit_cost: Decimal | None,
        at: datetime,
        tx_id: str,
        wallet_id: str | None = None,
    ) -> Lot | None:
        """Add a lot. Zero amounts are not recorded."""
        if amount <= 0:
            return None
        lot = Lot(
            currency=currency,
            amount=amount,
            unit_cost=unit_cost,
            acquired_at=at,
            origin_tx_id=tx_id,
            wallet_id=wallet_id if self.per_wallet else None,
        )
        self._insert(lot)
        return lot

    def restore(self, fragment: LotFragment, wallet_id: str | None = None) -> Lot:
        """Put a consumed fragment back, keeping its acquisition date and unit cost."""
        lot = fragment.lot.model_copy(
            update={"amount": fragment.amount, "wallet_id": wallet_id if self.per_wallet else None}
        )
        self._insert(lot)
        return lot

    def _insert(self, lot: Lot) -> None:
        queue = self._queues[self._key(lot.currency, lot.wallet_id)]
        # Chronological input makes this an append; transfers may land earlier
        bisect.insort_right(queue, lot, key=lambda item: item.sort_key)

    def dispose(
        self,
        currency: str,
        amount: Decimal,
        at: datetime,
        wallet_id: str | None = None,
    ) -> Disposal:
        """Consume `amount` from the oldest lots, splitting the last one if needed."""
        queue = self._queues[self._key(currency, wallet_id)]
        remaining = amount
        fragments: list[LotFragment] = []

        while remaining > 0 and queue:
            head = queue[0]
            if head.acquired_at > at:
                break
            taken = min(head.amount, remaining)
            fragments.append(LotFragment(lot=head.model_copy(), amount=taken))
            remaining -= taken
            if taken == head.amount:
                queue.pop(0)
            else:
                head.amount -= taken

        return Disposal(currency=currency, fragments=fragments, deficit=max(remaining, ZERO))

    def balance(self, currency: str, wallet_id: str | None = None) -> Decimal:
        """Tracked quantity of a currency; all wallets when `wallet_id` is None."""
        return sum((lot.amount for lot in self._lots_for(currency, wallet_id)), ZERO)

    def cost_base(self, currency: str, wallet_id: str | None = None) -> Decimal | None:
        """Remaining cost basis of a currency, None when any lot's cost is unknown."""
        total = ZERO
        for lot in self._lots_for(currency, wallet_id):
            if lot.cost_base is None:
                return None
            total += lot.cost_base
        return total

    def _lots_for(self, currency: str, wallet_id: str | None) -> list[Lot]:
        lots: list[Lot] = []
        for (queue_wallet, queue_currency), queue in self._queues.items():
            if queue_currency != currency:
                continue
            if wallet_id is not None and self.per_wallet and queue_wallet != wallet_id:
                continue
            lots.extend(queue)
        return sorted(lots, key=lambda lot: lot.sort_key)

    def lots(self, currency: str, wallet_id: str | None = None) -> list[Lot]:
        """Copies of the open lots of a currency in consumption order."""
        return [lot.model_copy() for lot in self._lots_for(currency, wallet_id)]

    def currencies(self) -> list[str]:
        return sorted({currency for (_, currency), queue in self._queues.items() if queue})

    def snapshot(self) -> dict[str, tuple[Decimal, Decimal | None]]:
        """(balance, cost base) for every currency with open lots."""
        return {currency: (self.balance(currency), self.cost_base(currency)) for currency in self.currencies()}
