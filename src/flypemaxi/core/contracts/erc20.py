"""
ERC20 ledger for vault assets and vault shares.

The pool's two tokens are deployed with :meth:`ERC20Token.deploy`. A vault's
share token is an unregistered ``ERC20Token`` that shares the vault's address
and is owned by the vault, so only the vault can mint shares.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, ClassVar, Dict, List

from ..chain import NULL_ADDRESS, derive_address, normalize_address
from ..exceptions import AccessDenied, InsufficientAllowance, InsufficientBalance, InvalidParameter

if TYPE_CHECKING:
    from ..chain import Chain

logger = logging.getLogger(__name__)


@dataclass
class TokenEvent:
    """Transfer or Approval log entry; mints come from and burns go to the null address."""

    event_type: str
    from_address: str
    to_address: str
    value: int


@dataclass
class ERC20Token:
    """
    Balances, allowances and supply of one token.

    State-changing methods take the acting address first. Amounts are
    integers in the token's smallest unit.
    """

    UINT256_MAX: ClassVar[int] = 2**256 - 1

    name: str
    symbol: str
    decimals: int = 18
    address: str = ""
    owner: str = NULL_ADDRESS
    total_supply: int = 0

    balances: Dict[str, int] = field(default_factory=dict)
    allowances: Dict[str, Dict[str, int]] = field(default_factory=dict)
    events: List[TokenEvent] = field(default_factory=list)

    def __post_init__(self) -> None:
        self.address = normalize_address(self.address or derive_address("ERC20", self.symbol, id(self)))
        self.owner = normalize_address(self.owner)

    @classmethod
    def deploy(
        cls,
        chain: "Chain",
        deployer: str,
        name: str,
        symbol: str,
        decimals: int = 18,
        initial_supply: int = 0,
    ) -> "ERC20Token":
        """Register a token owned by ``deployer``, minting ``initial_supply`` to it."""
        token = cls(
            name=name,
            symbol=symbol,
            decimals=decimals,
            address=chain.next_address(f"ERC20:{symbol}", deployer),
            owner=deployer,
        )
        chain.register(token)
        if initial_supply:
            token.mint(deployer, deployer, initial_supply)
        return token

    # ==================== Views ====================

    def balance_of(self, account: str) -> int:
        return self.balances.get(normalize_address(account), 0)

    def allowance(self, owner: str, spender: str) -> int:
        return self.allowances.get(normalize_address(owner), {}).get(normalize_address(spender), 0)

    # ==================== Transfers ====================

    def transfer(self, sender: str, recipient: str, amount: int) -> bool:
        """
        Move ``amount`` from ``sender`` to ``recipient``.

        Raises:
            InvalidParameter: For a null recipient or an out-of-range amount
            InsufficientBalance: If the sender holds less than ``amount``
        """
        self._move(normalize_address(sender), self._recipient(recipient), self._checked(amount))
        return True

    def approve(self, owner: str, spender: str, amount: int) -> bool:
        """Set ``spender``'s allowance over ``owner``'s balance (``UINT256_MAX`` never decreases)."""
        owner = normalize_address(owner)
        spender = self._recipient(spender, "spender")
        self.allowances.setdefault(owner, {})[spender] = self._checked(amount)
        self.events.append(TokenEvent("Approval", owner, spender, amount))
        return True

    def transfer_from(self, spender: str, from_addr: str, to_addr: str, amount: int) -> bool:
        """
        Move ``amount`` out of ``from_addr`` on its allowance to ``spender``.

        Raises:
            InsufficientAllowance: If the allowance does not cover ``amount``
            InsufficientBalance: If ``from_addr`` holds less than ``amount``
        """
        spender = normalize_address(spender)
        source = normalize_address(from_addr)
        recipient = self._recipient(to_addr)
        amount = self._checked(amount)

        allowed = self.allowance(source, spender)
        if allowed < amount:
            raise InsufficientAllowance(
                f"{self.symbol}: allowance {allowed} below {amount}",
                details={"owner": source, "spender": spender, "amount": amount},
            )

        self._move(source, recipient, amount)
        if allowed != self.UINT256_MAX:
            self.allowances[source][spender] = allowed - amount
        return True

    # ==================== Supply ====================

    def mint(self, minter: str, to: str, amount: int) -> bool:
        """Create ``amount`` for ``to``; only the owner may mint."""
        if normalize_address(minter) != self.owner:
            raise AccessDenied(f"{self.symbol}: only the owner can mint")
        recipient = self._recipient(to)
        amount = self._checked(amount)

        self.total_supply += amount
        self.balances[recipient] = self.balances.get(recipient, 0) + amount
        self.events.append(TokenEvent("Transfer", NULL_ADDRESS, recipient, amount))
        return True

    def burn(self, holder: str, amount: int) -> bool:
        """Destroy ``amount`` of ``holder``'s own balance."""
        holder = normalize_address(holder)
        amount = self._checked(amount)
        self._debit(holder, amount)
        self.total_supply -= amount
        self.events.append(TokenEvent("Transfer", holder, NULL_ADDRESS, amount))
        return True

    def to_dict(self) -> Dict:
        return {
            "name": self.name,
            "symbol": self.symbol,
            "decimals": self.decimals,
            "address": self.address,
            "owner": self.owner,
            "total_supply": self.total_supply,
            "balances": dict(self.balances),
            "allowances": {owner: dict(spenders) for owner, spenders in self.allowances.items()},
        }

    # ==================== Helpers ====================

    def _move(self, source: str, recipient: str, amount: int) -> None:
        self._debit(source, amount)
        self.balances[recipient] = self.balances.get(recipient, 0) + amount
        self.events.append(TokenEvent("Transfer", source, recipient, amount))
        logger.debug(
            "Token transfer",
            extra={
                "event": "erc20.transfer",
                "token": self.symbol,
                "from": source[:10],
                "to": recipient[:10],
                "amount": amount,
            },
        )

    def _debit(self, account: str, amount: int) -> None:
        balance = self.balances.get(account, 0)
        if balance < amount:
            raise InsufficientBalance(
                f"{self.symbol}: balance {balance} below {amount}",
                details={"account": account, "balance": balance, "amount": amount},
            )
        self.balances[account] = balance - amount

    def _recipient(self, address: str, role: str = "recipient") -> str:
        address = normalize_address(address)
        if address == NULL_ADDRESS:
            raise InvalidParameter(f"{self.symbol}: {role} is the null address")
        return address

    def _checked(self, amount: int) -> int:
        if not 0 <= amount <= self.UINT256_MAX:
            raise InvalidParameter(
                f"{self.symbol}: amount out of range", details={"amount": amount}
            )
        return amount
