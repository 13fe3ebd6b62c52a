from __future__ import annotations

import logging
import time
from typing import Callable

from ..core.contracts.token import TokenLedger, derive_address, normalize_address
from ..core.sale_exceptions import InvalidVestingConfig
from .vesting_schedule import (
    EpochVestingSchedule,
    LinearVestingSchedule,
    VestingSchedule,
    VestingStrategy,
    VestingTerms,
)

logger = logging.getLogger(__name__)

MAX_BPS = 10_000


class VestingManager:
    """
    Factory and arena for per-investor vesting schedules.

    Each schedule gets its own address; the caller funds it by transferring
    the allocation to ``schedule.address`` after creation.
    """

    def __init__(
        self,
        time_provider: Callable[[], int] | None = None,
        max_vesting_duration: int | None = None,
    ):
        self.schedules: dict[str, VestingSchedule] = {}
        self._schedule_id_counter = 0
        self._time_provider = time_provider or (lambda: int(time.time()))
        self.max_vesting_duration = max_vesting_duration
        logger.info("VestingManager initialized with deterministic time provider: %s", bool(time_provider))

    def _current_time(self) -> int:
        timestamp = self._time_provider()
        try:
            return int(timestamp)
        except (TypeError, ValueError) as exc:
            raise ValueError("time_provider must return an integer timestamp") from exc

    def validate_terms(
        self,
        strategy: VestingStrategy | str,
        duration: int,
        cliff_duration: int,
        epoch_duration: int = 0,
        epoch_count: int = 0,
    ) -> VestingStrategy:
        """
        Check schedule parameters and return the resolved strategy.

        Raises:
            InvalidVestingConfig: If any parameter is out of bounds
        """
        try:
            resolved = VestingStrategy(strategy)
        except ValueError as exc:
            raise InvalidVestingConfig(f"Unknown vesting strategy: {strategy!r}") from exc

        if not isinstance(duration, int) or duration <= 0:
            raise InvalidVestingConfig(f"Vesting duration must be a positive integer: {duration!r}")
        if self.max_vesting_duration is not None and duration > self.max_vesting_duration:
            raise InvalidVestingConfig(
                f"Vesting duration {duration} exceeds maximum {self.max_vesting_duration}"
            )
        if not isinstance(cliff_duration, int) or cliff_duration < 0:
            raise InvalidVestingConfig(f"Cliff duration cannot be negative: {cliff_duration!r}")
        if cliff_duration > duration:
            raise InvalidVestingConfig(
                f"Cliff duration {cliff_duration} exceeds vesting duration {duration}"
            )

        if resolved is VestingStrategy.LINEAR_EPOCH:
            if epoch_duration <= 0 or epoch_count <= 0:
                raise InvalidVestingConfig("Epoch duration and epoch count must be positive")
            if epoch_duration * epoch_count != duration:
                raise InvalidVestingConfig(
                    f"Epochs ({epoch_count} x {epoch_duration}) must exactly cover duration {duration}"
                )
        return resolved

    def validate_vesting_terms(self, terms: VestingTerms) -> None:
        self.validate_terms(
            terms.strategy,
            terms.duration,
            terms.cliff_duration,
            terms.epoch_duration,
            terms.epoch_count,
        )
        if not 0 <= terms.tge_release_bps <= MAX_BPS:
            raise InvalidVestingConfig(f"TGE release must be between 0 and {MAX_BPS} bps")

    def create_schedule(
        self,
        strategy: VestingStrategy | str,
        beneficiary: str,
        token: TokenLedger,
        start: int,
        duration: int,
        cliff_duration: int = 0,
        epoch_duration: int = 0,
        epoch_count: int = 0,
    ) -> VestingSchedule:
        """
        Create a new vesting schedule for ``beneficiary``.

        Raises:
            InvalidVestingConfig: If the parameters do not validate
        """
        resolved = self.validate_terms(strategy, duration, cliff_duration, epoch_duration, epoch_count)
        if not beneficiary:
            raise InvalidVestingConfig("Beneficiary address cannot be empty")

        self._schedule_id_counter += 1
        address = derive_address("vesting", self._schedule_id_counter, beneficiary, token.address)
        beneficiary = normalize_address(beneficiary)

        schedule: VestingSchedule
        if resolved is VestingStrategy.LINEAR_EPOCH:
            schedule = EpochVestingSchedule(
                address=address,
                beneficiary=beneficiary,
                token=token,
                start=start,
                duration=duration,
                cliff_duration=cliff_duration,
                time_provider=self._current_time,
                epoch_duration=epoch_duration,
                epoch_count=epoch_count,
            )
        else:
            schedule = LinearVestingSchedule(
                address=address,
                beneficiary=beneficiary,
                token=token,
                start=start,
                duration=duration,
                cliff_duration=cliff_duration,
                time_provider=self._current_time,
            )

        self.schedules[address] = schedule
        logger.info(
            "Vesting schedule created",
            extra={
                "event": "vesting.created",
                "schedule": address,
                "beneficiary": beneficiary[:10],
                "strategy": resolved.value,
                "start": start,
                "duration": duration,
                "cliff_duration": cliff_duration,
            },
        )
        return schedule

    def create_from_terms(
        self, terms: VestingTerms, beneficiary: str, token: TokenLedger, start: int
    ) -> VestingSchedule:
        return self.create_schedule(
            terms.strategy,
            beneficiary,
            token,
            start,
            terms.duration,
            terms.cliff_duration,
            terms.epoch_duration,
            terms.epoch_count,
        )

    def get_schedule(self, address: str) -> VestingSchedule | None:
        return self.schedules.get(normalize_address(address))

    def schedules_for(self, beneficiary: str) -> list[VestingSchedule]:
        beneficiary = normalize_address(beneficiary)
        return [s for s in self.schedules.values() if s.beneficiary == beneficiary]
