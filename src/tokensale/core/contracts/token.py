"""
Fungible token ledger used for raise (bid) and allocation (ask) tokens.

Sales, vesting schedules and the protocol fee receiver all hold balances on
these ledgers. The sale engine only relies on the ``TokenLedger`` protocol,
so any object offering the same transfer primitives can be plugged in.

Features:
- Balances, allowances and transfer/transferFrom semantics
- Owner-gated minting
- Transfer and Approval event log
"""

from __future__ import annotations

import hashlib
import itertools
import logging
from dataclasses import dataclass, field
from typing import Protocol

from ..sale_exceptions import NotCalledByOwner, TokenTransferError

logger = logging.getLogger(__name__)

ZERO_ADDRESS = "0x" + "0" * 40

_token_nonce = itertools.count(1)


def normalize_address(address: str) -> str:
    return address.lower() if address else address


def derive_address(*parts: object) -> str:
    """Deterministic 20-byte address from arbitrary seed parts."""
    seed = ":".join(str(part) for part in parts).encode()
    return "0x" + hashlib.sha3_256(seed).digest()[-20:].hex()


class TokenLedger(Protocol):
    """Transfer primitives the sale engine consumes."""

    address: str
    symbol: str
    decimals: int

    def balance_of(self, account: str) -> int: ...

    def transfer(self, sender: str, recipient: str, amount: int) -> bool: ...

    def transfer_from(self, spender: str, from_addr: str, to_addr: str, amount: int) -> bool: ...


@dataclass
class TokenEvent:
    """A Transfer or Approval record."""

    event_type: str
    from_address: str
    to_address: str
    value: int


@dataclass
class FungibleToken:
    """
    In-memory fungible token.

    Amounts are integers in the token's smallest unit. A failed operation
    raises ``TokenTransferError`` and leaves balances untouched.
    """

    name: str
    symbol: str
    decimals: int = 18
    owner: str = ""
    address: str = ""
    total_supply: int = 0

    balances: dict[str, int] = field(default_factory=dict)
    allowances: dict[str, dict[str, int]] = field(default_factory=dict)
    events: list[TokenEvent] = field(default_factory=list)

    UNLIMITED_ALLOWANCE: int = 2**256 - 1

    def __post_init__(self) -> None:
        if not self.address:
            self.address = derive_address("token", self.name, self.symbol, next(_token_nonce))
        self.address = normalize_address(self.address)
        self.owner = normalize_address(self.owner)
        if not 0 <= self.decimals <= 36:
            raise TokenTransferError(
                f"Unsupported decimals: {self.decimals}", {"symbol": self.symbol}
            )

    # ==================== Views ====================

    def balance_of(self, account: str) -> int:
        return self.balances.get(normalize_address(account), 0)

    def allowance(self, owner: str, spender: str) -> int:
        return self.allowances.get(normalize_address(owner), {}).get(normalize_address(spender), 0)

    # ==================== Transfers ====================

    def approve(self, owner: str, spender: str, amount: int) -> bool:
        owner_norm = normalize_address(owner)
        spender_norm = normalize_address(spender)
        self._validate_address(spender_norm, "spender")
        self._validate_amount(amount, allow_zero=True)

        self.allowances.setdefault(owner_norm, {})[spender_norm] = amount
        self.events.append(TokenEvent("Approval", owner_norm, spender_norm, amount))
        return True

    def transfer(self, sender: str, recipient: str, amount: int) -> bool:
        """
        Move ``amount`` from ``sender`` to ``recipient``.

        Raises:
            TokenTransferError: If the recipient is invalid or the balance is short
        """
        sender_norm = normalize_address(sender)
        recipient_norm = normalize_address(recipient)
        self._validate_address(recipient_norm, "recipient")
        self._validate_amount(amount)
        self._require_balance(sender_norm, amount)

        self._move(sender_norm, recipient_norm, amount)
        return True

    def transfer_from(self, spender: str, from_addr: str, to_addr: str, amount: int) -> bool:
        """
        Move ``amount`` out of ``from_addr`` using the allowance granted to ``spender``.

        Raises:
            TokenTransferError: If the allowance or balance is insufficient
        """
        spender_norm = normalize_address(spender)
        from_norm = normalize_address(from_addr)
        to_norm = normalize_address(to_addr)
        self._validate_address(to_norm, "recipient")
        self._validate_amount(amount)

        current_allowance = self.allowance(from_norm, spender_norm)
        if current_allowance < amount:
            raise TokenTransferError(
                f"{self.symbol}: insufficient allowance ({current_allowance} < {amount})",
                {"owner": from_norm, "spender": spender_norm},
            )
        self._require_balance(from_norm, amount)

        if current_allowance != self.UNLIMITED_ALLOWANCE:
            self.allowances[from_norm][spender_norm] = current_allowance - amount
        self._move(from_norm, to_norm, amount)
        return True

    def mint(self, minter: str, to: str, amount: int) -> bool:
        """Mint new tokens; only the owner may mint."""
        if normalize_address(minter) != self.owner:
            raise NotCalledByOwner(details={"token": self.symbol, "caller": minter})
        to_norm = normalize_address(to)
        self._validate_address(to_norm, "recipient")
        self._validate_amount(amount)

        self.total_supply += amount
        self.balances[to_norm] = self.balances.get(to_norm, 0) + amount
        self.events.append(TokenEvent("Transfer", ZERO_ADDRESS, to_norm, amount))

        logger.info(
            "Token mint",
            extra={
                "event": "token.mint",
                "token": self.symbol,
                "to": to_norm[:10],
                "amount": amount,
                "new_supply": self.total_supply,
            },
        )
        return True

    # ==================== Internals ====================

    def _move(self, from_norm: str, to_norm: str, amount: int) -> None:
        self.balances[from_norm] = self.balances.get(from_norm, 0) - amount
        self.balances[to_norm] = self.balances.get(to_norm, 0) + amount
        self.events.append(TokenEvent("Transfer", from_norm, to_norm, amount))

        logger.debug(
            "Token transfer",
            extra={
                "event": "token.transfer",
                "token": self.symbol,
                "from": from_norm[:10],
                "to": to_norm[:10],
                "amount": amount,
            },
        )

    def _require_balance(self, account: str, amount: int) -> None:
        balance = self.balances.get(account, 0)
        if balance < amount:
            raise TokenTransferError(
                f"{self.symbol}: transfer amount exceeds balance ({amount} > {balance})",
                {"account": account},
            )

    def _validate_address(self, address: str, role: str) -> None:
        if not address or address == ZERO_ADDRESS:
            raise TokenTransferError(f"{self.symbol}: invalid {role} address")

    def _validate_amount(self, amount: int, allow_zero: bool = False) -> None:
        if not isinstance(amount, int) or isinstance(amount, bool):
            raise TokenTransferError(f"{self.symbol}: amount must be an integer")
        if amount < 0 or (amount == 0 and not allow_zero):
            raise TokenTransferError(f"{self.symbol}: amount must be positive ({amount})")
        if amount > self.UNLIMITED_ALLOWANCE:
            raise TokenTransferError(f"{self.symbol}: amount exceeds uint256")
