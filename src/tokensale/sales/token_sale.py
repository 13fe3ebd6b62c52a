"""
Token sale state machine.

One engine drives every sale variant through its lifecycle::

    PENDING -> ACTIVE -> ENDED [-> CANCEL_LOCKED] -> RESULTS_PUBLISHED -> FINALIZED
                  \\__________________ CANCELED __________________/

The engine holds investor capital in custody at ``sale.address`` on the bid
token ledger, and ask tokens supplied by the project on the ask token ledger.
Variant-specific rules live in a ``SalePolicy``.

Every entry point samples the clock once, runs all guards, and only then moves
tokens and updates bookkeeping. A raised ``SaleError`` therefore leaves the
sale untouched.
"""

from __future__ import annotations

import functools
import logging
import time
from dataclasses import asdict, dataclass, field, replace
from enum import Enum
from typing import Any, Callable, Optional, Sequence

from ..blockchain.merkle import allocation_leaf, verify_merkle_proof
from ..blockchain.vesting_manager import VestingManager
from ..blockchain.vesting_schedule import VestingTerms
from ..config_manager import FeeConfig, SaleLimitsConfig
from ..core.contracts.address_registry import (
    ELIGIBILITY_SIGNER,
    FEE_RECEIVER,
    SALE_ADMIN,
    AddressRegistry,
)
from ..core.contracts.token import TokenLedger, normalize_address
from ..core.crypto_utils import verify_eligibility
from ..core.sale_exceptions import (
    AlreadyClaimed,
    AlreadyRefunded,
    AlreadyWithdrawn,
    CancelNotLocked,
    CapitalNotRaised,
    CapitalRaisedAlreadyPublished,
    InvalidAcceptedCapitalProof,
    InvalidClaimProof,
    InvalidInvestAmount,
    InvalidRefundAmount,
    InvalidSaleConfig,
    InvalidSignature,
    InvalidTokenAmountSupplied,
    InvalidWithdrawAmount,
    NotCalledByAdmin,
    NotCalledByProject,
    PrivateKeyAlreadyPublished,
    RefundPeriodIsNotOver,
    RefundPeriodIsOver,
    ResultsAlreadyPublished,
    ResultsNotPublished,
    SaleError,
    SaleHasEnded,
    SaleHasNotEnded,
    SaleHasNotStarted,
    SaleIsCanceled,
    SaleIsCancelLocked,
    SaleIsFinalized,
    SaleIsNotCanceled,
    SaleIsPaused,
    TokenTransferError,
    TokensAlreadySupplied,
    TokensNotSupplied,
    UnsupportedSaleOperation,
)
from . import events as ev
from .policies import SalePolicy
from .sealed_bid import SealedBid

logger = logging.getLogger(__name__)

BPS_DENOMINATOR = 10_000

EligibilityOracle = Callable[[str, str, int, str, str], bool]


class SalePhase(Enum):
    PENDING = "pending"
    ACTIVE = "active"
    ENDED = "ended"
    CANCEL_LOCKED = "cancel_locked"
    RESULTS_PUBLISHED = "results_published"
    FINALIZED = "finalized"
    CANCELED = "canceled"


@dataclass(frozen=True)
class SaleConfiguration:
    """Immutable parameters of one sale."""

    bid_token: TokenLedger
    project_admin: str
    start_time: int
    refund_period: int
    # 0 means the sale runs until end_sale() is called
    sale_period: int = 0
    ask_token: Optional[TokenLedger] = None
    capital_fee_bps: int = 250
    token_fee_bps: int = 100
    vesting: Optional[VestingTerms] = None
    name: str = ""


@dataclass
class SaleState:
    ended: bool = False
    end_time: Optional[int] = None
    refund_end_time: Optional[int] = None
    paused: bool = False
    canceled: bool = False
    cancel_locked: bool = False
    capital_raised_published: bool = False
    results_published: bool = False
    tokens_supplied: bool = False
    capital_withdrawn: bool = False
    total_invested: int = 0
    capital_raised: int = 0
    capital_withdrawn_amount: int = 0
    tokens_allocated: int = 0
    claims: int = 0
    accepted_merkle_root: str = ""
    claim_merkle_root: str = ""
    vesting_start_time: Optional[int] = None
    ask_token: Optional[TokenLedger] = None


@dataclass
class InvestorPosition:
    investor: str
    invested: int = 0
    refunded: bool = False
    claimed: bool = False
    excess_withdrawn: bool = False
    token_allocation: int = 0
    vesting_schedule: str = ""
    sealed_bid: Optional[SealedBid] = None


def sale_operation(func):
    """Log guard failures of a sale entry point before propagating them."""

    @functools.wraps(func)
    def wrapper(self, *args, **kwargs):
        try:
            return func(self, *args, **kwargs)
        except SaleError as exc:
            logger.warning(
                "Sale operation rejected: %s",
                exc.message,
                extra={
                    "event": "sale.rejected",
                    "sale": self.address,
                    "operation": func.__name__,
                    "code": exc.code,
                    "kind": exc.kind,
                },
            )
            raise

    return wrapper


class TokenSale:
    """
    A single sale instance.

    Args:
        address: Custody address of this sale on the token ledgers
        config: Immutable sale parameters
        policy: Variant rules (fixed price, sealed-bid auction, pre-liquid)
        registry: Source of admin, fee receiver and eligibility signer
        vesting_manager: Issues per-investor vesting schedules at claim time
        time_provider: Returns the current ledger timestamp
        limits: Protocol bounds on sale periods
        fees: Protocol fee bounds; per-sale fees may not exceed ``max_fee_bps``
        verifier: Eligibility oracle ``(signer, investor, amount, sale, signature) -> bool``
    """

    def __init__(
        self,
        address: str,
        config: SaleConfiguration,
        policy: SalePolicy,
        registry: AddressRegistry,
        vesting_manager: VestingManager,
        time_provider: Callable[[], int] | None = None,
        limits: SaleLimitsConfig | None = None,
        verifier: EligibilityOracle | None = None,
        fees: FeeConfig | None = None,
    ):
        self.address = normalize_address(address)
        self.config = replace(config, project_admin=normalize_address(config.project_admin))
        self.policy = policy
        self.registry = registry
        self.vesting_manager = vesting_manager
        self.limits = limits or SaleLimitsConfig()
        self.fees = fees or FeeConfig()
        self._time_provider = time_provider or (lambda: int(time.time()))
        self._verifier = verifier or verify_eligibility

        self.state = SaleState(ask_token=config.ask_token)
        self.positions: dict[str, InvestorPosition] = {}
        self.events: list[ev.SaleEvent] = []

        self.admin = ""
        self.fee_receiver = ""
        self.signer = ""

        self._validate_configuration(self._now())
        self._load_protocol_addresses()

        logger.info(
            "Sale created",
            extra={
                "event": "sale.created",
                "sale": self.address,
                "kind": policy.kind,
                "start_time": self.config.start_time,
                "refund_period": self.config.refund_period,
            },
        )

    # ==================== Setup ====================

    def _now(self) -> int:
        return int(self._time_provider())

    def _validate_configuration(self, now: int) -> None:
        config = self.config
        if not config.project_admin:
            raise InvalidSaleConfig("project_admin is required")
        if config.start_time < now:
            raise InvalidSaleConfig(
                "Sale start time is in the past", {"start_time": config.start_time, "now": now}
            )
        if not self.limits.min_refund_period <= config.refund_period <= self.limits.max_refund_period:
            raise InvalidSaleConfig(
                f"refund_period must be between {self.limits.min_refund_period} "
                f"and {self.limits.max_refund_period} seconds",
                {"refund_period": config.refund_period},
            )
        for name in ("capital_fee_bps", "token_fee_bps"):
            value = getattr(config, name)
            if not 0 <= value <= self.fees.max_fee_bps:
                raise InvalidSaleConfig(f"{name} must be between 0 and {self.fees.max_fee_bps}", {name: value})
        if config.vesting is not None:
            self.vesting_manager.validate_vesting_terms(config.vesting)
        self.policy.validate_config(config, self.limits)

    def _load_protocol_addresses(self) -> None:
        admin = self.registry.get_address(SALE_ADMIN)
        fee_receiver = self.registry.get_address(FEE_RECEIVER)
        signer = self.registry.get_address(ELIGIBILITY_SIGNER)
        missing = [
            key
            for key, value in ((SALE_ADMIN, admin), (FEE_RECEIVER, fee_receiver), (ELIGIBILITY_SIGNER, signer))
            if not value
        ]
        if missing:
            raise InvalidSaleConfig("Address registry is missing protocol entries", {"missing": missing})
        self.admin, self.fee_receiver, self.signer = admin, fee_receiver, signer

    # ==================== Guards ====================

    def _only_admin(self, caller: str) -> None:
        if normalize_address(caller) != self.admin:
            raise NotCalledByAdmin(details={"caller": caller})

    def _only_project(self, caller: str) -> None:
        if normalize_address(caller) != self.config.project_admin:
            raise NotCalledByProject(details={"caller": caller})

    def _only_admin_or_project(self, caller: str) -> None:
        if normalize_address(caller) not in (self.admin, self.config.project_admin):
            raise NotCalledByProject(
                "Caller is neither the sale administrator nor the project admin",
                {"caller": caller},
            )

    def _require_not_paused(self) -> None:
        if self.state.paused:
            raise SaleIsPaused()

    def _require_not_canceled(self) -> None:
        if self.state.canceled:
            raise SaleIsCanceled()

    def _require_started(self, now: int) -> None:
        if now < self.config.start_time:
            raise SaleHasNotStarted(details={"start_time": self.config.start_time, "now": now})

    def _require_ended(self, now: int) -> None:
        if not self.is_ended(now):
            raise SaleHasNotEnded(details={"now": now})

    def _require_refund_period_over(self, now: int) -> None:
        refund_end = self.refund_end_time(now)
        if refund_end is None or now < refund_end:
            raise RefundPeriodIsNotOver(details={"refund_end_time": refund_end, "now": now})

    def _require_custody(self, token: TokenLedger, amount: int) -> None:
        balance = token.balance_of(self.address)
        if balance < amount:
            raise TokenTransferError(
                f"Sale holds {balance} {token.symbol}, needs {amount}",
                {"sale": self.address, "token": token.address},
            )

    def _require_sealed_bids(self):
        if self.policy.sealed_bids is None:
            raise UnsupportedSaleOperation(f"{self.policy.kind} sales have no sealed bids")
        return self.policy.sealed_bids

    # ==================== Timing ====================

    def end_time(self, now: Optional[int] = None) -> Optional[int]:
        """Actual end time, or the scheduled one once it has passed."""
        if self.state.ended:
            return self.state.end_time
        scheduled = self.policy.scheduled_end(self.config)
        now = self._now() if now is None else now
        if scheduled is not None and now >= scheduled:
            return scheduled
        return None

    def is_ended(self, now: Optional[int] = None) -> bool:
        return self.end_time(now) is not None

    def refund_end_time(self, now: Optional[int] = None) -> Optional[int]:
        if self.state.refund_end_time is not None:
            return self.state.refund_end_time
        end = self.end_time(now)
        return None if end is None else end + self.config.refund_period

    def phase(self, now: Optional[int] = None) -> SalePhase:
        now = self._now() if now is None else now
        if self.state.canceled:
            return SalePhase.CANCELED
        if self.state.claims > 0:
            return SalePhase.FINALIZED
        if self.state.results_published:
            return SalePhase.RESULTS_PUBLISHED
        if self.state.cancel_locked:
            return SalePhase.CANCEL_LOCKED
        if self.is_ended(now):
            return SalePhase.ENDED
        if now < self.config.start_time:
            return SalePhase.PENDING
        return SalePhase.ACTIVE

    # ==================== Bookkeeping ====================

    def _emit(self, name: str, now: int, **data: Any) -> None:
        self.events.append(ev.SaleEvent(name=name, timestamp=now, data=data))

    def _log(self, message: str, event: str, **data: Any) -> None:
        logger.info(message, extra={"event": event, "sale": self.address, **data})

    def _position(self, investor: str) -> InvestorPosition:
        position = self.positions.get(investor)
        if position is None:
            position = InvestorPosition(investor=investor)
            self.positions[investor] = position
        return position

    # ==================== Investing ====================

    @sale_operation
    def invest(
        self,
        caller: str,
        amount: int,
        signature: str,
        sealed_bid: Optional[SealedBid] = None,
    ) -> InvestorPosition:
        """
        Deposit ``amount`` bid tokens into the sale.

        The investor must have approved the sale address on the bid token.
        ``signature`` is the eligibility signer's approval of
        ``(investor, amount, sale address)``.
        """
        now = self._now()
        investor = normalize_address(caller)

        self._require_not_paused()
        self._require_not_canceled()
        self._require_started(now)
        if self.is_ended(now):
            raise SaleHasEnded(details={"end_time": self.end_time(now)})
        if not isinstance(amount, int) or isinstance(amount, bool) or amount <= 0:
            raise InvalidInvestAmount(details={"amount": amount})
        self.policy.check_invest(self, investor, amount, now, sealed_bid)
        if not self._verifier(self.signer, investor, amount, self.address, signature):
            raise InvalidSignature(details={"investor": investor, "amount": amount})

        self.config.bid_token.transfer_from(self.address, investor, self.address, amount)

        position = self._position(investor)
        position.invested += amount
        position.refunded = False
        self.state.total_invested += amount
        self.policy.record_invest(position, sealed_bid)

        self._emit(ev.CAPITAL_INVESTED, now, investor=investor, amount=amount)
        self._log(
            "Capital invested",
            "sale.invest",
            investor=investor[:10],
            amount=amount,
            total_invested=self.state.total_invested,
        )
        return position

    @sale_operation
    def refund(self, caller: str) -> int:
        """Return the investor's full position while refunds are still open."""
        now = self._now()
        investor = normalize_address(caller)

        self._require_not_paused()
        self._require_not_canceled()
        refund_end = self.refund_end_time(now)
        if refund_end is not None and now >= refund_end:
            raise RefundPeriodIsOver(details={"refund_end_time": refund_end, "now": now})
        # The audited capital raised is backed by the positions it counted
        if self.state.capital_raised_published:
            raise RefundPeriodIsOver(
                "Refunds are closed once capital raised is published",
                {"capital_raised": self.state.capital_raised, "now": now},
            )
        position = self.positions.get(investor)
        if position is not None and position.claimed:
            raise AlreadyClaimed()
        if position is None or position.invested == 0:
            if position is not None and position.refunded:
                raise AlreadyRefunded()
            raise InvalidRefundAmount(details={"investor": investor})

        amount = position.invested
        self.config.bid_token.transfer(self.address, investor, amount)

        position.invested = 0
        position.refunded = True
        self.state.total_invested -= amount

        self._emit(ev.CAPITAL_REFUNDED, now, investor=investor, amount=amount)
        self._log("Capital refunded", "sale.refund", investor=investor[:10], amount=amount)
        return amount

    # ==================== Ending & results ====================

    @sale_operation
    def end_sale(self, caller: str) -> int:
        """End the sale now; the refund period starts counting from here."""
        now = self._now()
        self._only_admin_or_project(caller)
        self._require_not_paused()
        self._require_not_canceled()
        self._require_started(now)
        if self.is_ended(now):
            raise SaleHasEnded(details={"end_time": self.end_time(now)})

        self.state.ended = True
        self.state.end_time = now
        self.state.refund_end_time = now + self.config.refund_period

        self._emit(ev.SALE_ENDED, now, end_time=now, refund_end_time=self.state.refund_end_time)
        self._log("Sale ended", "sale.ended", end_time=now, refund_end_time=self.state.refund_end_time)
        return self.state.refund_end_time

    @sale_operation
    def publish_capital_raised(self, caller: str, capital_raised: int, accepted_merkle_root: str) -> None:
        """Record the audited capital raised and the accepted-capital merkle root."""
        now = self._now()
        self._only_admin(caller)
        if not self.policy.supports_capital_raised_publication:
            raise UnsupportedSaleOperation("Capital raised is published with the sale results")
        self._require_not_canceled()
        if self.state.capital_raised_published:
            raise CapitalRaisedAlreadyPublished()
        self._require_ended(now)
        if not isinstance(capital_raised, int) or capital_raised < 0:
            raise InvalidSaleConfig("capital_raised must be a non-negative integer")
        if capital_raised > self.state.total_invested:
            raise InvalidSaleConfig(
                "Capital raised exceeds total invested",
                {"capital_raised": capital_raised, "total_invested": self.state.total_invested},
            )

        self.state.capital_raised = capital_raised
        self.state.accepted_merkle_root = accepted_merkle_root
        self.state.capital_raised_published = True

        self._emit(ev.CAPITAL_RAISED_PUBLISHED, now, capital_raised=capital_raised, accepted_merkle_root=accepted_merkle_root)
        self._log("Capital raised published", "sale.capital_raised_published", capital_raised=capital_raised)

    @sale_operation
    def publish_sale_results(
        self,
        caller: str,
        claim_merkle_root: str,
        tokens_allocated: int,
        ask_token: Optional[TokenLedger] = None,
        vesting_start_time: Optional[int] = None,
        capital_raised: Optional[int] = None,
        private_key_hex: Optional[str] = None,
        accepted_merkle_root: Optional[str] = None,
    ) -> None:
        """
        Publish the claim merkle root and total tokens allocated. One-shot.

        Auctions also pass ``capital_raised`` and, unless already revealed,
        the bid ``private_key_hex``.
        """
        now = self._now()
        self._only_admin(caller)
        if self.state.results_published:
            raise ResultsAlreadyPublished()
        self._require_not_canceled()
        self._require_ended(now)
        self.policy.validate_results(self, capital_raised, private_key_hex)

        resolved_ask_token = ask_token or self.state.ask_token
        if resolved_ask_token is None:
            raise InvalidSaleConfig("An ask token is required to publish results")
        if (
            ask_token is not None
            and self.config.ask_token is not None
            and ask_token.address != self.config.ask_token.address
        ):
            raise InvalidSaleConfig("Ask token differs from the configured ask token")
        if not isinstance(tokens_allocated, int) or tokens_allocated < 0:
            raise InvalidTokenAmountSupplied(details={"tokens_allocated": tokens_allocated})
        if not claim_merkle_root:
            raise InvalidSaleConfig("claim_merkle_root is required")

        key_was_published = self.policy.sealed_bids is not None and self.policy.sealed_bids.private_key_published
        self.policy.apply_results(self, capital_raised, private_key_hex, accepted_merkle_root)
        if self.policy.sealed_bids is not None and not key_was_published:
            self._emit(ev.PRIVATE_KEY_PUBLISHED, now, public_key=self.policy.sealed_bids.public_key)

        self.state.claim_merkle_root = claim_merkle_root
        self.state.tokens_allocated = tokens_allocated
        self.state.ask_token = resolved_ask_token
        if vesting_start_time is None:
            vesting_start_time = max(now, self.refund_end_time(now) or now)
        self.state.vesting_start_time = vesting_start_time
        self.state.results_published = True

        self._emit(
            ev.SALE_RESULTS_PUBLISHED,
            now,
            claim_merkle_root=claim_merkle_root,
            tokens_allocated=tokens_allocated,
            ask_token=resolved_ask_token.address,
            vesting_start_time=vesting_start_time,
            capital_raised=self.state.capital_raised,
        )
        self._log(
            "Sale results published",
            "sale.results_published",
            tokens_allocated=tokens_allocated,
            capital_raised=self.state.capital_raised,
        )

    # ==================== Sealed bids ====================

    @sale_operation
    def initialize_publish_sale_results(self, caller: str) -> None:
        """Lock cancellation before the bid key is revealed."""
        now = self._now()
        self._only_admin(caller)
        scheme = self._require_sealed_bids()
        self._require_not_canceled()
        if self.state.cancel_locked:
            if scheme.private_key_published:
                raise PrivateKeyAlreadyPublished()
            raise SaleIsCancelLocked()
        self._require_ended(now)

        self.state.cancel_locked = True

        self._emit(ev.PUBLISH_RESULTS_INITIALIZED, now)
        self._log("Result publication initialized", "sale.cancel_locked")

    @sale_operation
    def publish_private_key(self, caller: str, private_key_hex: str) -> None:
        """Reveal the bid decryption key. Irreversible."""
        now = self._now()
        self._only_admin(caller)
        scheme = self._require_sealed_bids()
        self._require_not_canceled()
        if scheme.private_key_published:
            raise PrivateKeyAlreadyPublished()
        if not self.state.cancel_locked:
            raise CancelNotLocked()

        scheme.publish_private_key(private_key_hex)

        self._emit(ev.PRIVATE_KEY_PUBLISHED, now, public_key=scheme.public_key)
        self._log("Bid private key published", "sale.private_key_published")

    def decrypt_sealed_bid(self, encrypted_amount_out: int, salt: int, ephemeral_public_key: str) -> int:
        """Recover a bid amount once the private key is public."""
        scheme = self._require_sealed_bids()
        return scheme.decrypt(SealedBid(encrypted_amount_out, salt, ephemeral_public_key))

    # ==================== Settlement ====================

    @sale_operation
    def supply_tokens(self, caller: str, amount: int) -> None:
        """
        Project deposits exactly ``tokens_allocated`` ask tokens for distribution.

        The token fee is pulled on top and forwarded to the fee receiver, so
        the project must approve ``amount + fee``.
        """
        now = self._now()
        self._only_project(caller)
        self._require_not_paused()
        self._require_not_canceled()
        if not self.state.results_published:
            raise ResultsNotPublished()
        if self.state.tokens_supplied:
            raise TokensAlreadySupplied()
        if amount != self.state.tokens_allocated:
            raise InvalidTokenAmountSupplied(
                details={"amount": amount, "tokens_allocated": self.state.tokens_allocated}
            )

        ask_token = self.state.ask_token
        fee = amount * self.config.token_fee_bps // BPS_DENOMINATOR
        if amount + fee > 0:
            ask_token.transfer_from(self.address, self.config.project_admin, self.address, amount + fee)
        if fee:
            ask_token.transfer(self.address, self.fee_receiver, fee)

        self.state.tokens_supplied = True

        self._emit(ev.TOKENS_SUPPLIED, now, amount=amount, fee=fee)
        self._log("Tokens supplied for distribution", "sale.tokens_supplied", amount=amount, fee=fee)

    @sale_operation
    def claim_token_allocation(self, caller: str, amount: int, proof: Sequence[str]) -> Optional[str]:
        """
        Claim an allocation proven against the claim merkle root.

        Returns:
            The vesting schedule address, or None when tokens were paid out directly
        """
        now = self._now()
        investor = normalize_address(caller)

        self._require_not_paused()
        self._require_not_canceled()
        if not self.state.results_published:
            raise ResultsNotPublished()
        if not self.state.tokens_supplied:
            raise TokensNotSupplied()
        self._require_refund_period_over(now)
        position = self.positions.get(investor)
        if position is not None and position.claimed:
            raise AlreadyClaimed()
        if position is not None and position.refunded:
            raise AlreadyRefunded()
        if not isinstance(amount, int) or amount <= 0:
            raise InvalidClaimProof(details={"amount": amount})
        if not verify_merkle_proof(allocation_leaf(investor, amount), self.state.claim_merkle_root, proof):
            raise InvalidClaimProof(details={"investor": investor, "amount": amount})

        ask_token = self.state.ask_token
        self._require_custody(ask_token, amount)

        terms = self.config.vesting
        schedule_address = None
        if terms is None:
            ask_token.transfer(self.address, investor, amount)
        else:
            immediate = amount * terms.tge_release_bps // BPS_DENOMINATOR
            vested = amount - immediate
            if vested:
                schedule = self.vesting_manager.create_from_terms(
                    terms, investor, ask_token, self.state.vesting_start_time
                )
                schedule_address = schedule.address
                ask_token.transfer(self.address, schedule_address, vested)
            if immediate:
                ask_token.transfer(self.address, investor, immediate)

        position = self._position(investor)
        position.claimed = True
        position.token_allocation = amount
        position.vesting_schedule = schedule_address or ""
        self.state.claims += 1

        self._emit(ev.TOKEN_ALLOCATION_CLAIMED, now, investor=investor, amount=amount, vesting_schedule=schedule_address)
        self._log("Token allocation claimed", "sale.claim", investor=investor[:10], amount=amount, vesting_schedule=schedule_address)
        return schedule_address

    @sale_operation
    def withdraw_raised_capital(self, caller: str) -> int:
        """
        Pay the audited capital raised, minus the capital fee, to the project.

        Returns:
            The net amount sent to the project
        """
        now = self._now()
        self._only_project(caller)
        self._require_not_paused()
        self._require_not_canceled()
        if not self.state.capital_raised_published:
            raise CapitalNotRaised()
        self._require_refund_period_over(now)
        if self.state.capital_withdrawn:
            raise AlreadyWithdrawn()

        capital = self.state.capital_raised
        fee = capital * self.config.capital_fee_bps // BPS_DENOMINATOR
        net = capital - fee
        bid_token = self.config.bid_token
        self._require_custody(bid_token, capital)

        if net:
            bid_token.transfer(self.address, self.config.project_admin, net)
        if fee:
            bid_token.transfer(self.address, self.fee_receiver, fee)

        self.state.capital_withdrawn = True
        self.state.capital_withdrawn_amount = capital

        self._emit(ev.CAPITAL_WITHDRAWN, now, amount=net, fee=fee)
        self._log("Raised capital withdrawn", "sale.capital_withdrawn", amount=net, fee=fee)
        return net

    @sale_operation
    def withdraw_excess_invested_capital(self, caller: str, accepted_amount: int, proof: Sequence[str]) -> int:
        """Return capital that was invested but not accepted into the raise."""
        now = self._now()
        investor = normalize_address(caller)

        self._require_not_paused()
        self._require_not_canceled()
        if not self.state.capital_raised_published:
            raise CapitalNotRaised()
        position = self.positions.get(investor)
        if position is not None and position.excess_withdrawn:
            raise AlreadyWithdrawn()
        if position is None or position.invested == 0:
            raise InvalidWithdrawAmount(details={"investor": investor})
        if not verify_merkle_proof(
            allocation_leaf(investor, accepted_amount), self.state.accepted_merkle_root, proof
        ):
            raise InvalidAcceptedCapitalProof(details={"investor": investor, "accepted_amount": accepted_amount})
        excess = position.invested - accepted_amount
        if excess <= 0:
            raise InvalidWithdrawAmount(details={"invested": position.invested, "accepted": accepted_amount})

        self.config.bid_token.transfer(self.address, investor, excess)

        position.invested = accepted_amount
        position.excess_withdrawn = True
        self.state.total_invested -= excess

        self._emit(ev.EXCESS_CAPITAL_WITHDRAWN, now, investor=investor, amount=excess)
        self._log("Excess capital withdrawn", "sale.excess_withdrawn", investor=investor[:10], amount=excess)
        return excess

    # ==================== Cancellation ====================

    @sale_operation
    def cancel_sale(self, caller: str) -> None:
        """
        Cancel the sale; investors then withdraw their capital.

        Capital already withdrawn is pulled back from the project (which must
        approve the sale for it) and supplied ask tokens are returned.
        """
        now = self._now()
        self._only_project(caller)
        if self.state.canceled:
            raise SaleIsCanceled()
        if self.state.claims > 0:
            raise SaleIsFinalized()
        if self.state.cancel_locked:
            raise SaleIsCancelLocked()

        returned_tokens = 0
        if self.state.tokens_supplied:
            returned_tokens = self.state.tokens_allocated
            self._require_custody(self.state.ask_token, returned_tokens)

        reclaimed = self.state.capital_withdrawn_amount
        if reclaimed:
            self.config.bid_token.transfer_from(
                self.address, self.config.project_admin, self.address, reclaimed
            )
        if returned_tokens:
            self.state.ask_token.transfer(self.address, self.config.project_admin, returned_tokens)

        self.state.canceled = True
        self.state.capital_withdrawn = False
        self.state.capital_withdrawn_amount = 0
        self.state.tokens_supplied = False

        self._emit(ev.SALE_CANCELED, now, reclaimed_capital=reclaimed, returned_tokens=returned_tokens)
        self._log("Sale canceled", "sale.canceled", reclaimed_capital=reclaimed, returned_tokens=returned_tokens)

    @sale_operation
    def withdraw_invested_capital_if_canceled(self, caller: str) -> int:
        now = self._now()
        investor = normalize_address(caller)

        self._require_not_paused()
        if not self.state.canceled:
            raise SaleIsNotCanceled()
        position = self.positions.get(investor)
        if position is None or position.invested == 0:
            raise InvalidWithdrawAmount(details={"investor": investor})

        amount = position.invested
        self.config.bid_token.transfer(self.address, investor, amount)

        position.invested = 0
        self.state.total_invested -= amount

        self._emit(ev.CAPITAL_REFUNDED_AFTER_CANCEL, now, investor=investor, amount=amount)
        self._log("Capital withdrawn after cancel", "sale.cancel_withdraw", investor=investor[:10], amount=amount)
        return amount

    # ==================== Administration ====================

    @sale_operation
    def pause(self, caller: str) -> None:
        self._only_admin(caller)
        self.state.paused = True
        self._emit(ev.SALE_PAUSED, self._now())
        self._log("Sale paused", "sale.paused")

    @sale_operation
    def unpause(self, caller: str) -> None:
        self._only_admin(caller)
        self.state.paused = False
        self._emit(ev.SALE_UNPAUSED, self._now())
        self._log("Sale unpaused", "sale.unpaused")

    @sale_operation
    def sync_protocol_addresses(self, caller: str) -> None:
        """Re-read admin, fee receiver and signer from the registry."""
        self._only_admin(caller)
        self._load_protocol_addresses()
        self._emit(
            ev.PROTOCOL_ADDRESSES_SYNCED,
            self._now(),
            admin=self.admin,
            fee_receiver=self.fee_receiver,
        )
        self._log("Protocol addresses synced", "sale.addresses_synced", admin=self.admin[:10])

    @sale_operation
    def emergency_withdraw(self, caller: str, receiver: str, token: TokenLedger, amount: int) -> None:
        self._only_admin(caller)
        token.transfer(self.address, receiver, amount)
        self._emit(ev.EMERGENCY_WITHDRAW, self._now(), receiver=normalize_address(receiver), token=token.address, amount=amount)
        logger.warning(
            "Emergency withdrawal",
            extra={"event": "sale.emergency_withdraw", "sale": self.address, "token": token.symbol, "amount": amount},
        )

    # ==================== Views ====================

    def expected_allocation(self, capital: int) -> int:
        return self.policy.expected_allocation(capital, self.config.bid_token.decimals)

    def get_investor_position(self, investor: str) -> Optional[InvestorPosition]:
        position = self.positions.get(normalize_address(investor))
        return replace(position) if position is not None else None

    def get_sale_status(self) -> dict:
        now = self._now()
        status = asdict(replace(self.state, ask_token=None))
        status.update(
            address=self.address,
            kind=self.policy.kind,
            phase=self.phase(now).value,
            end_time=self.end_time(now),
            refund_end_time=self.refund_end_time(now),
            ask_token=self.state.ask_token.address if self.state.ask_token else None,
            policy=self.policy.describe(),
        )
        return status
