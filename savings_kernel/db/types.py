"""
Module: savings_kernel.db.types
Responsibility: Unit constants and validators shared by models,
    domain and services.  Centralizes basis-point precision and address
    normalization so every layer agrees on units.
Architecture position: Kernel > DB.  May be imported by models/, domain/,
    and services/.  MUST NOT import from any of those layers.

Invariants enforced:
    - Percentages and fees are integer basis points in [0, BPS_DENOMINATOR].
    - Addresses (users, modules, assets) are non-empty strings compared
      case-insensitively; normalize_address() is the one canonical form.
    CRITICAL: No floats anywhere.  All arithmetic is integer with explicit
    floor division.
"""

from savings_kernel.exceptions import InvalidInputError

# Address-like identifiers (user, module, asset, treasury) column width
ADDRESS_LENGTH = 66

BPS_DENOMINATOR = 10_000
ONE_DAY = 86_400


def validate_bps(field: str, value: int, maximum: int = BPS_DENOMINATOR) -> int:
    """
    Validate a basis-point value.

    Raises:
        InvalidInputError: If value is not an int in [0, maximum].
    """
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidInputError(field, value, "must be an integer number of basis points")
    if value < 0 or value > maximum:
        raise InvalidInputError(field, value, f"must be between 0 and {maximum}")
    return value


def validate_amount(field: str, value: int, *, allow_zero: bool = True) -> int:
    """
    Validate a token amount.

    Raises:
        InvalidInputError: If value is not a non-negative int (positive when
            allow_zero is False).
    """
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidInputError(field, value, "must be an integer amount")
    if value < 0:
        raise InvalidInputError(field, value, "must not be negative")
    if not allow_zero and value == 0:
        raise InvalidInputError(field, value, "must be greater than zero")
    return value


def normalize_address(value: str, field: str = "address") -> str:
    """
    Return the canonical (lowercase, trimmed) form of an address.

    Raises:
        InvalidInputError: If value is empty or not a string.
    """
    if not isinstance(value, str) or not value.strip():
        raise InvalidInputError(field, value, "must be a non-empty string")
    return value.strip().lower()
