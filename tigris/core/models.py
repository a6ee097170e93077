from __future__ import annotations

from dataclasses import dataclass, fields
from typing import Any, Optional, Union

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"
ZERO_BYTES32 = "0x" + "00" * 32
ZERO_SIGNATURE = "0x" + "00" * 65

# Raw venue event name -> name published to application callbacks.
EVENT_NAME_MAP: dict[str, str] = {
    "PositionOpened": "PositionOpened",
    "PositionClosed": "TradeClosed",
    "PositionLiquidated": "PositionLiquidated",
    "LimitOrderExecuted": "LimitOrderExecuted",
    "UpdateTPSL": "UpdateTPSL",
    "LimitCancelled": "LimitCancelled",
    "MarginModified": "MarginModified",
    "AddToPosition": "AddToPosition",
}


@dataclass(frozen=True)
class PriceQuote:
    """One signed oracle price for one asset, in contract parameter order."""
    provider: Optional[str] = None
    is_closed: Optional[bool] = None
    asset: Any = None
    price: Any = None
    spread: Any = None
    timestamp: Any = None
    signature: Optional[str] = None

    @classmethod
    def from_payload(cls, payload: Any) -> "PriceQuote":
        if not isinstance(payload, dict):
            return cls()
        return cls(
            provider=payload.get("provider"),
            is_closed=payload.get("is_closed"),
            asset=payload.get("asset"),
            price=payload.get("price"),
            spread=payload.get("spread"),
            timestamp=payload.get("timestamp"),
            signature=payload.get("signature"),
        )

    def as_tuple(self) -> tuple:
        return tuple(getattr(self, f.name) for f in fields(self))


FALLBACK_QUOTE = PriceQuote(
    provider=ZERO_ADDRESS,
    is_closed=False,
    asset=0,
    price=0,
    spread=0,
    timestamp=0,
    signature=ZERO_SIGNATURE,
)


@dataclass
class TradeRequest:
    margin: float
    leverage: float
    asset: Any       # asset id as understood by the oracle and the contract
    is_long: bool
    tp: int = 0      # 0 means unset
    sl: int = 0


@dataclass(frozen=True)
class Permit:
    deadline: int = 0
    amount: int = 0
    v: int = 0
    r: str = ZERO_BYTES32
    s: str = ZERO_BYTES32
    use_permit: bool = False

    def as_tuple(self) -> tuple:
        return (self.deadline, self.amount, self.v, self.r, self.s, self.use_permit)


@dataclass(frozen=True)
class TigrisAddresses:
    trading: str
    usdt: str
    vault: str
    position_nft: str


# ---------------------------------------------------------------------------
# Trade results
#
# open/close never raise to signal failure. Callers must branch on the
# returned variant (or its truth value); treating every return as success
# silently hides failed submissions.
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Success:
    tx_hash: Optional[str] = None
    ok = True

    def __bool__(self) -> bool:
        return True


@dataclass(frozen=True)
class RemoteFailure:
    error: BaseException
    ok = False

    def __bool__(self) -> bool:
        return False


@dataclass(frozen=True)
class PreconditionFailure:
    reason: str
    ok = False

    def __bool__(self) -> bool:
        return False


TradeResult = Union[Success, RemoteFailure, PreconditionFailure]
