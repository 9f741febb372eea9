"""
Decoder for loosely-typed Move event payloads.

Payload shapes are matched in a fixed priority order:

    1. TypedTokenPair  - token_x / token_y objects with symbol and name
    2. CoinTypePair    - coin_type_a / coin_type_b strings
    3. SingleCoinType  - coin_type string
    4. BarePoolId      - pool_id string or UID object

If none match, a synthetic symbol is derived from the event type path and
the transaction digest. Every matcher returns a PayloadMatch or None.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Optional


@dataclass(frozen=True)
class PayloadMatch:
    """Symbol, name and address extracted from one event."""
    shape: str
    symbol: str
    name: str
    address: str


Matcher = Callable[[dict, dict], Optional[PayloadMatch]]


def _tail(coin_type: str, default: str) -> str:
    """Last '::' segment of a coin type, e.g. '0x2::sui::SUI' -> 'SUI'."""
    return coin_type.split("::")[-1] or default


def event_id(event: dict) -> dict:
    """The event's id object, or {} when absent or malformed."""
    value = event.get("id")
    return value if isinstance(value, dict) else {}


def object_id(value: Any) -> Optional[str]:
    """
    Normalize a Move object reference to an address string.

    Accepts a bare string or a UID wrapper such as {"id": "0x.."} (possibly
    nested); anything else yields None.
    """
    while isinstance(value, dict):
        value = value.get("id")
    if isinstance(value, str) and value:
        return value
    return None


def _digest(event: dict) -> str:
    digest = event_id(event).get("txDigest")
    return digest if isinstance(digest, str) else ""


def match_typed_token_pair(event: dict, payload: dict) -> Optional[PayloadMatch]:
    token_x, token_y = payload.get("token_x"), payload.get("token_y")
    if not token_x or not token_y:
        return None
    x = token_x if isinstance(token_x, dict) else {}
    y = token_y if isinstance(token_y, dict) else {}
    return PayloadMatch(
        shape="typed_token_pair",
        symbol=f"{x.get('symbol') or 'UNK'}/{y.get('symbol') or 'UNK'}",
        name=f"{x.get('name') or 'Unknown'} / {y.get('name') or 'Unknown'}",
        address=object_id(payload.get("pair")) or _digest(event),
    )


def match_coin_type_pair(event: dict, payload: dict) -> Optional[PayloadMatch]:
    coin_a, coin_b = payload.get("coin_type_a"), payload.get("coin_type_b")
    if not coin_a or not coin_b:
        return None
    symbol_a, symbol_b = _tail(str(coin_a), "UNK"), _tail(str(coin_b), "UNK")
    return PayloadMatch(
        shape="coin_type_pair",
        symbol=f"{symbol_a}/{symbol_b}",
        name=f"{symbol_a} / {symbol_b}",
        address=object_id(payload.get("pool_id")) or _digest(event),
    )


def match_single_coin_type(event: dict, payload: dict) -> Optional[PayloadMatch]:
    coin_type = payload.get("coin_type")
    if not coin_type:
        return None
    symbol = _tail(str(coin_type), "UNKNOWN")
    return PayloadMatch(
        shape="single_coin_type",
        symbol=symbol,
        name=symbol,
        address=str(coin_type),
    )


def match_bare_pool_id(event: dict, payload: dict) -> Optional[PayloadMatch]:
    pool_id = object_id(payload.get("pool_id"))
    if pool_id is None:
        return None
    suffix = pool_id[-8:]
    return PayloadMatch(
        shape="bare_pool_id",
        symbol=f"POOL_{suffix}",
        name=f"Pool {suffix}",
        address=pool_id,
    )


def synthetic_match(event: dict) -> PayloadMatch:
    """Fallback: '{event}_{digest[-6:]}' from the type path; address is the digest."""
    digest = _digest(event)
    parts = str(event.get("type") or "").split("::")
    if len(parts) >= 3:
        # Strip generic parameters, e.g. 'PoolCreated<0x2::sui::SUI>'
        label = parts[2].split("<")[0]
        return PayloadMatch(
            shape="synthetic",
            symbol=f"{label}_{digest[-6:]}",
            name=f"{label} Event",
            address=digest,
        )
    return PayloadMatch(shape="synthetic", symbol="UNKNOWN", name="Unknown Token", address=digest)


PAYLOAD_MATCHERS: tuple[Matcher, ...] = (
    match_typed_token_pair,
    match_coin_type_pair,
    match_single_coin_type,
    match_bare_pool_id,
)


def decode_payload(event: dict, matchers: tuple[Matcher, ...] = PAYLOAD_MATCHERS) -> PayloadMatch:
    """Apply matchers in priority order, then the synthetic fallback."""
    payload = event.get("parsedJson")
    if isinstance(payload, dict):
        for matcher in matchers:
            match = matcher(event, payload)
            if match is not None:
                return match
    return synthetic_match(event)
