"""
Per-consumer differential-privacy budget ledger.

Epsilon is accounted in Decimal so that repeated charges sum exactly
(0.1 + 0.2 must not drift past a 0.3 cap). Check-and-deduct is a single
lock-guarded step; concurrent releases can never jointly overspend.
Budgets reset only when the external scheduler calls ``reset_epoch``.
"""

from __future__ import annotations

import math
import threading
from dataclasses import dataclass
from decimal import Decimal
from typing import Dict, Mapping, Optional

import structlog

from .config import DEFAULT_EPSILON_CAP
from .errors import BudgetExceededError

logger = structlog.get_logger()


def to_decimal(value: float, name: str) -> Decimal:
    if isinstance(value, bool) or not isinstance(value, (int, float, Decimal)):
        raise ValueError(f"{name} must be a number")
    if isinstance(value, float) and not math.isfinite(value):
        raise ValueError(f"{name} must be finite")
    amount = Decimal(str(value))
    if amount <= 0:
        raise ValueError(f"{name} must be positive")
    return amount


@dataclass(frozen=True)
class PrivacyBudget:
    """Snapshot of one consumer's budget."""

    consumer_id: str
    cap: Decimal
    spent: Decimal
    epoch: int

    @property
    def remaining(self) -> Decimal:
        return self.cap - self.spent


class BudgetLedger:
    """
    Tracks cumulative epsilon per consumer against a cap.

    Args:
        default_cap: Cap for consumers without an explicit one
        caps: Per-consumer cap overrides
        epoch: Starting epoch number
    """

    def __init__(
        self,
        default_cap: float = DEFAULT_EPSILON_CAP,
        caps: Optional[Mapping[str, float]] = None,
        epoch: int = 0,
    ) -> None:
        self._default_cap = to_decimal(default_cap, "default_cap")
        self._caps: Dict[str, Decimal] = {
            consumer: to_decimal(cap, f"cap[{consumer}]")
            for consumer, cap in (caps or {}).items()
        }
        self._spent: Dict[str, Decimal] = {}
        self._epoch = epoch
        self._lock = threading.Lock()

    @property
    def epoch(self) -> int:
        return self._epoch

    def cap_for(self, consumer_id: str) -> Decimal:
        return self._caps.get(consumer_id, self._default_cap)

    def set_cap(self, consumer_id: str, cap: float) -> None:
        amount = to_decimal(cap, "cap")
        with self._lock:
            self._caps[consumer_id] = amount

    def charge(self, consumer_id: str, epsilon: float) -> PrivacyBudget:
        """
        Atomically deduct ``epsilon`` from the consumer's budget.

        Returns:
            The budget state after the charge

        Raises:
            ValueError: If epsilon is not a positive finite number
            BudgetExceededError: If the remaining budget is insufficient;
                nothing is deducted
        """
        amount = to_decimal(epsilon, "epsilon")
        with self._lock:
            cap = self.cap_for(consumer_id)
            spent = self._spent.get(consumer_id, Decimal(0))
            if spent + amount > cap:
                remaining = cap - spent
                logger.warning(
                    "privacy_budget_exceeded",
                    consumer_id=consumer_id,
                    requested=str(amount),
                    remaining=str(remaining),
                )
                raise BudgetExceededError(consumer_id, float(amount), float(remaining))
            spent += amount
            self._spent[consumer_id] = spent
            state = PrivacyBudget(consumer_id, cap, spent, self._epoch)
        logger.info(
            "privacy_budget_charged",
            consumer_id=consumer_id,
            epsilon=str(amount),
            remaining=str(state.remaining),
        )
        return state

    def remaining(self, consumer_id: str) -> Decimal:
        with self._lock:
            return self.cap_for(consumer_id) - self._spent.get(consumer_id, Decimal(0))

    def spent(self, consumer_id: str) -> Decimal:
        with self._lock:
            return self._spent.get(consumer_id, Decimal(0))

    def reset_epoch(self, epoch: Optional[int] = None) -> int:
        """Start a new epoch, clearing all spend. Called by the external scheduler."""
        with self._lock:
            new_epoch = self._epoch + 1 if epoch is None else epoch
            if new_epoch <= self._epoch:
                raise ValueError(f"epoch must advance past {self._epoch}")
            self._epoch = new_epoch
            self._spent.clear()
        logger.info("privacy_budget_epoch_reset", epoch=new_epoch)
        return new_epoch

    def snapshot(self) -> Dict[str, PrivacyBudget]:
        with self._lock:
            consumers = set(self._spent) | set(self._caps)
            return {
                consumer: PrivacyBudget(
                    consumer,
                    self.cap_for(consumer),
                    self._spent.get(consumer, Decimal(0)),
                    self._epoch,
                )
                for consumer in sorted(consumers)
            }
