"""
Per-investor vesting schedules.

A schedule holds an investor's allocated ask tokens at its own address and
releases them to the beneficiary over time. Two curves are supported:

- LINEAR: vested amount grows proportionally to elapsed time
- LINEAR_EPOCH: vested amount advances only at whole epoch boundaries

Nothing is releasable before ``start + cliff_duration``. The total allocation
is whatever the schedule holds plus what it has already released, so tokens
transferred in after creation vest on the same curve.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable

from ..core.contracts.token import TokenLedger
from ..core.sale_exceptions import CliffNotEnded

logger = logging.getLogger(__name__)


class VestingStrategy(Enum):
    LINEAR = "linear"
    LINEAR_EPOCH = "linear_epoch"


@dataclass(frozen=True)
class VestingTerms:
    """Vesting terms a sale applies to every claimed allocation."""

    strategy: VestingStrategy
    duration: int
    cliff_duration: int = 0
    epoch_duration: int = 0
    epoch_count: int = 0
    # Share of each allocation released immediately at claim time
    tge_release_bps: int = 0


def _system_time() -> int:
    return int(time.time())


@dataclass
class VestingSchedule:
    address: str
    beneficiary: str
    token: TokenLedger
    start: int
    duration: int
    cliff_duration: int = 0
    released: int = 0
    time_provider: Callable[[], int] = field(default=_system_time, repr=False)

    strategy = VestingStrategy.LINEAR

    @property
    def cliff_end(self) -> int:
        return self.start + self.cliff_duration

    @property
    def end(self) -> int:
        return self.start + self.duration

    def _now(self, ts: int | None) -> int:
        return int(self.time_provider() if ts is None else ts)

    def total_allocation(self) -> int:
        return self.token.balance_of(self.address) + self.released

    def vested_amount(self, ts: int | None = None) -> int:
        now = self._now(ts)
        if now < self.cliff_end:
            return 0
        return self._vesting_curve(self.total_allocation(), now)

    def _vesting_curve(self, total: int, now: int) -> int:
        if now >= self.end:
            return total
        return total * (now - self.start) // self.duration

    def releasable(self, ts: int | None = None) -> int:
        return max(0, self.vested_amount(ts) - self.released)

    def release(self, ts: int | None = None) -> int:
        """
        Transfer everything vested but not yet released to the beneficiary.

        Returns:
            The amount released (0 when nothing new has vested)

        Raises:
            CliffNotEnded: Before ``start + cliff_duration``
        """
        now = self._now(ts)
        if now < self.cliff_end:
            logger.warning(
                "Vesting release before cliff",
                extra={"event": "vesting.cliff_not_ended", "schedule": self.address, "cliff_end": self.cliff_end},
            )
            raise CliffNotEnded(details={"schedule": self.address, "cliff_end": self.cliff_end, "now": now})

        amount = self.releasable(now)
        if amount == 0:
            return 0

        self.token.transfer(self.address, self.beneficiary, amount)
        self.released += amount
        self._after_release(now)

        logger.info(
            "Vested tokens released",
            extra={
                "event": "vesting.released",
                "schedule": self.address,
                "beneficiary": self.beneficiary[:10],
                "amount": amount,
                "released_total": self.released,
            },
        )
        return amount

    def _after_release(self, now: int) -> None:
        pass

    def to_dict(self) -> dict:
        return {
            "address": self.address,
            "beneficiary": self.beneficiary,
            "token": self.token.address,
            "strategy": self.strategy.value,
            "start": self.start,
            "duration": self.duration,
            "cliff_duration": self.cliff_duration,
            "released": self.released,
        }


class LinearVestingSchedule(VestingSchedule):
    """Continuous release between ``start`` and ``start + duration``."""

    strategy = VestingStrategy.LINEAR


@dataclass
class EpochVestingSchedule(VestingSchedule):
    """Step release: one ``1/epoch_count`` share per completed epoch."""

    epoch_duration: int = 0
    epoch_count: int = 0
    last_released_epoch: int = 0

    strategy = VestingStrategy.LINEAR_EPOCH

    def current_epoch(self, ts: int | None = None) -> int:
        now = self._now(ts)
        if now <= self.start:
            return 0
        return min((now - self.start) // self.epoch_duration, self.epoch_count)

    def _vesting_curve(self, total: int, now: int) -> int:
        return total * self.current_epoch(now) // self.epoch_count

    def _after_release(self, now: int) -> None:
        self.last_released_epoch = self.current_epoch(now)

    def to_dict(self) -> dict:
        data = super().to_dict()
        data.update(
            epoch_duration=self.epoch_duration,
            epoch_count=self.epoch_count,
            last_released_epoch=self.last_released_epoch,
        )
        return data
