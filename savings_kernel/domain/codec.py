"""
Packed Config Codec -- fixed-width records for per-user state.

Responsibility:
    Encodes a user's savings configuration and the per-call swap context
    into single integer words, so the ledger touches one storage slot per
    record regardless of how many fields it carries.

Architecture position:
    Kernel > Domain -- pure functions, zero I/O.

Bit layout (bit 0 is least significant):

    UserConfig (64 bits)
        bits  0-15  percentage            basis points, <= 10000
        bits 16-31  auto_increment        basis points added per save
        bits 32-47  max_percentage        basis points cap
        bit     48  round_up
        bit     49  enable_dca
        bits 50-51  savings_token_type    INPUT=0 OUTPUT=1 SPECIFIC=2
        bits 52-63  reserved

    SwapContext (256 bits)
        bits   0-127  pending_amount
        bits 128-143  current_percentage
        bit      144  has_strategy
        bits 145-146  savings_token_type
        bit      147  round_up
        bit      148  enable_dca
        bits 149-255  unused (always zero when packed)

Invariants enforced:
    - pack_* rejects a field value wider than its declared width with
      InvalidInputError.  Range checks stricter than the width (e.g.
      percentage <= 10000) belong to the caller.
    - unpack_* is total: any non-negative int decodes.  Bits above the
      record width are ignored; the reserved token-type ordinal 3 decodes
      as INPUT.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from savings_kernel.domain.values import SavingsTokenType, SwapContext, UserConfig
from savings_kernel.exceptions import InvalidInputError


@dataclass(frozen=True)
class BitField:
    """One field of a packed record."""

    name: str
    offset: int
    width: int

    @property
    def mask(self) -> int:
        return (1 << self.width) - 1

    @property
    def max_value(self) -> int:
        return self.mask


USER_CONFIG_BITS = 64
USER_CONFIG_LAYOUT: tuple[BitField, ...] = (
    BitField("percentage", 0, 16),
    BitField("auto_increment", 16, 16),
    BitField("max_percentage", 32, 16),
    BitField("round_up", 48, 1),
    BitField("enable_dca", 49, 1),
    BitField("savings_token_type", 50, 2),
    BitField("reserved", 52, 12),
)

SWAP_CONTEXT_BITS = 256
SWAP_CONTEXT_LAYOUT: tuple[BitField, ...] = (
    BitField("pending_amount", 0, 128),
    BitField("current_percentage", 128, 16),
    BitField("has_strategy", 144, 1),
    BitField("savings_token_type", 145, 2),
    BitField("round_up", 147, 1),
    BitField("enable_dca", 148, 1),
)

# Largest amount the pending field holds; prepare rejects larger exchanges.
MAX_EXCHANGE_AMOUNT = SWAP_CONTEXT_LAYOUT[0].max_value


def pack_fields(layout: tuple[BitField, ...], values: dict[str, int]) -> int:
    """
    Pack integer field values into one word.

    Raises:
        InvalidInputError: If a value is negative or wider than its field.
    """
    word = 0
    for field in layout:
        value = int(values[field.name])
        if value < 0 or value > field.max_value:
            raise InvalidInputError(
                field.name, value, f"does not fit in {field.width} bits"
            )
        word |= value << field.offset
    return word


def unpack_fields(layout: tuple[BitField, ...], word: int) -> dict[str, int]:
    """Unpack a word into integer field values.  Never raises for word >= 0."""
    if word < 0:
        raise InvalidInputError("word", word, "packed records are unsigned")
    return {field.name: (word >> field.offset) & field.mask for field in layout}


def _token_type(ordinal: int) -> SavingsTokenType:
    try:
        return SavingsTokenType(ordinal)
    except ValueError:
        return SavingsTokenType.INPUT


def _as_int(value: Any) -> int:
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, int):
        return value
    raise InvalidInputError("field", value, "must be an int or bool")


# =============================================================================
# UserConfig
# =============================================================================


def pack_user_config(config: UserConfig) -> int:
    """Encode a UserConfig into its 64-bit word."""
    return pack_fields(
        USER_CONFIG_LAYOUT,
        {
            "percentage": _as_int(config.percentage),
            "auto_increment": _as_int(config.auto_increment),
            "max_percentage": _as_int(config.max_percentage),
            "round_up": _as_int(config.round_up),
            "enable_dca": _as_int(config.enable_dca),
            "savings_token_type": int(config.savings_token_type),
            "reserved": _as_int(config.reserved),
        },
    )


def unpack_user_config(word: int) -> UserConfig:
    """Decode a 64-bit word into a UserConfig."""
    f = unpack_fields(USER_CONFIG_LAYOUT, word)
    return UserConfig(
        percentage=f["percentage"],
        auto_increment=f["auto_increment"],
        max_percentage=f["max_percentage"],
        round_up=bool(f["round_up"]),
        enable_dca=bool(f["enable_dca"]),
        savings_token_type=_token_type(f["savings_token_type"]),
        reserved=f["reserved"],
    )


# =============================================================================
# SwapContext
# =============================================================================


def pack_swap_context(context: SwapContext) -> int:
    """Encode a SwapContext into its 256-bit word."""
    return pack_fields(
        SWAP_CONTEXT_LAYOUT,
        {
            "pending_amount": _as_int(context.pending_amount),
            "current_percentage": _as_int(context.current_percentage),
            "has_strategy": _as_int(context.has_strategy),
            "savings_token_type": int(context.savings_token_type),
            "round_up": _as_int(context.round_up),
            "enable_dca": _as_int(context.enable_dca),
        },
    )


def unpack_swap_context(word: int) -> SwapContext:
    """Decode a 256-bit word into a SwapContext."""
    f = unpack_fields(SWAP_CONTEXT_LAYOUT, word)
    return SwapContext(
        pending_amount=f["pending_amount"],
        current_percentage=f["current_percentage"],
        has_strategy=bool(f["has_strategy"]),
        savings_token_type=_token_type(f["savings_token_type"]),
        round_up=bool(f["round_up"]),
        enable_dca=bool(f["enable_dca"]),
    )
