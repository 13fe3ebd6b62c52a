"""
Sale-specific exception hierarchy for tokensale.

Every guard in the sale state machine, the sealed-bid scheme and the vesting
layer raises one of these typed exceptions. Errors are grouped into four kinds
so that off-chain tooling can present a precise remediation:

- phase: the call happened outside its valid window
- authorization: the caller lacks the required role
- integrity: a proof, signature, key or configuration is invalid
- double_action: the action was already performed
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class SaleError(Exception):
    """Base exception for all sale-related errors.

    Attributes:
        message: Human-readable error description
        details: Additional context about the error
    """

    kind = "sale"

    def __init__(self, message: str = "", details: Optional[Dict[str, Any]] = None) -> None:
        message = message or self.__class__.__doc__.strip().splitlines()[0]
        super().__init__(message)
        self.message = message
        self.details = details or {}

    @property
    def code(self) -> str:
        return self.__class__.__name__

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code,
            "kind": self.kind,
            "message": self.message,
            "details": dict(self.details),
        }


class PhaseViolation(SaleError):
    """Raised when an action is attempted outside its valid window."""

    kind = "phase"


class AuthorizationViolation(SaleError):
    """Raised when the caller lacks the required role."""

    kind = "authorization"


class IntegrityViolation(SaleError):
    """Raised when a proof, signature, key or configuration fails validation."""

    kind = "integrity"


class DoubleActionViolation(SaleError):
    """Raised when a one-shot action is attempted a second time."""

    kind = "double_action"


# ==================== Phase Violations ====================


class SaleHasNotStarted(PhaseViolation):
    """Sale has not started yet."""
    pass


class SaleHasEnded(PhaseViolation):
    """Sale has already ended."""
    pass


class SaleHasNotEnded(PhaseViolation):
    """Sale has not ended yet."""
    pass


class SaleIsCanceled(PhaseViolation):
    """Sale is canceled."""
    pass


class SaleIsNotCanceled(PhaseViolation):
    """Sale is not canceled."""
    pass


class SaleIsPaused(PhaseViolation):
    """Sale is paused."""
    pass


class SaleIsCancelLocked(PhaseViolation):
    """Sale cancellation is locked while results are being published."""
    pass


class CancelNotLocked(PhaseViolation):
    """Result publication has not been initialized."""
    pass


class SaleIsFinalized(PhaseViolation):
    """Sale is finalized; allocations have already been claimed."""
    pass


class PrefundAllocationPeriodNotEnded(PhaseViolation):
    """Investing is closed until the prefund allocation period ends."""
    pass


class CapitalNotRaised(PhaseViolation):
    """Capital raised has not been published."""
    pass


class ResultsNotPublished(PhaseViolation):
    """Sale results have not been published."""
    pass


class RefundPeriodIsOver(PhaseViolation):
    """Refund period is over."""
    pass


class RefundPeriodIsNotOver(PhaseViolation):
    """Refund period is not over yet."""
    pass


class PrivateKeyNotPublished(PhaseViolation):
    """Bid decryption private key has not been published."""
    pass


class TokensNotSupplied(PhaseViolation):
    """Ask tokens have not been supplied by the project."""
    pass


class CliffNotEnded(PhaseViolation):
    """Vesting cliff has not ended yet."""
    pass


# ==================== Authorization Violations ====================


class NotCalledByAdmin(AuthorizationViolation):
    """Caller is not the sale administrator."""
    pass


class NotCalledByProject(AuthorizationViolation):
    """Caller is not the project admin."""
    pass


class NotCalledByOwner(AuthorizationViolation):
    """Caller is not the owner."""
    pass


# ==================== Integrity Violations ====================


class InvalidSignature(IntegrityViolation):
    """Eligibility signature does not verify against the configured signer."""
    pass


class InvalidClaimProof(IntegrityViolation):
    """Merkle proof does not authorize this token claim."""
    pass


class InvalidAcceptedCapitalProof(IntegrityViolation):
    """Merkle proof does not authorize this accepted capital amount."""
    pass


class InvalidBidPublicKey(IntegrityViolation):
    """Bid public key is invalid."""
    pass


class InvalidBidPrivateKey(IntegrityViolation):
    """Private key does not match the auction public key."""
    pass


InvalidPrivateKey = InvalidBidPrivateKey


class InvalidSalt(IntegrityViolation):
    """Sealed bid salt does not belong to the investor."""
    pass


class InvalidSealedBid(IntegrityViolation):
    """Sealed bid is missing or malformed."""
    pass


class InvalidVestingConfig(IntegrityViolation):
    """Vesting configuration is invalid."""
    pass


class InvalidSaleConfig(IntegrityViolation):
    """Sale configuration is invalid."""
    pass


class InvalidInvestAmount(IntegrityViolation):
    """Invested amount is invalid."""
    pass


class InvalidTokenAmountSupplied(IntegrityViolation):
    """Supplied token amount does not match the allocation."""
    pass


class InvalidWithdrawAmount(IntegrityViolation):
    """Nothing to withdraw."""
    pass


class InvalidRefundAmount(IntegrityViolation):
    """Nothing to refund."""
    pass


class UnsupportedSaleOperation(IntegrityViolation):
    """Operation is not supported by this sale variant."""
    pass


class TokenTransferError(IntegrityViolation):
    """Token transfer failed."""
    pass


# ==================== Double-Action Violations ====================


class AlreadyClaimed(DoubleActionViolation):
    """Token allocation already claimed."""
    pass


class AlreadyWithdrawn(DoubleActionViolation):
    """Capital already withdrawn."""
    pass


class AlreadyRefunded(DoubleActionViolation):
    """Investment already refunded."""
    pass


class ResultsAlreadyPublished(DoubleActionViolation):
    """Sale results already published."""
    pass


class CapitalRaisedAlreadyPublished(DoubleActionViolation):
    """Capital raised already published."""
    pass


class PrivateKeyAlreadyPublished(DoubleActionViolation):
    """Bid decryption private key already published."""
    pass


class TokensAlreadySupplied(DoubleActionViolation):
    """Ask tokens already supplied."""
    pass
