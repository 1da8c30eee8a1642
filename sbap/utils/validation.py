"""
Field checks for data arriving in contract messages.

Each validator returns an ``(ok, reason)`` pair so callers can either
branch on it or hand it to :func:`checked` inside a pydantic validator,
which turns a failure into the ValueError pydantic reports per field.

Bounds follow the wire types: token amounts are uint128, timestamps are
uint64 seconds.
"""

import re
from typing import Any, Optional, Tuple

Result = Tuple[bool, str]

OK: Result = (True, "")

MAX_AMOUNT = 2**128 - 1
MAX_TIMESTAMP = 2**64 - 1
MAX_UINT32 = 2**32 - 1

MAX_LABEL_LENGTH = 128
MAX_DESCRIPTION_LENGTH = 1024
MAX_SYMBOL_LENGTH = 16
MAX_PAGE_SIZE = 1000
MAX_ENTROPY_LENGTH = 256

ADDRESS_PATTERN = re.compile(r"^0x[0-9a-f]{40}$")
CODE_HASH_PATTERN = re.compile(r"^[0-9a-f]{64}$")
SYMBOL_PATTERN = re.compile(r"^[A-Za-z0-9]+$")


def _kind(value: Any) -> str:
    return type(value).__name__


def _bounded_int(value: Any, field: str, low: int, high: int) -> Result:
    # bool is an int subclass; True is not a valid amount
    if isinstance(value, bool) or not isinstance(value, int):
        return False, f"{field} must be int, got {_kind(value)}"
    if not low <= value <= high:
        return False, f"{field} must be within [{low}, {high}], got {value}"
    return OK


def _text(value: Any, field: str, limit: int, required: bool) -> Result:
    if not isinstance(value, str):
        return False, f"{field} must be str, got {_kind(value)}"
    if required and value == "":
        return False, f"{field} must not be empty"
    if len(value) > limit:
        return False, f"{field} is {len(value)} characters, limit is {limit}"
    return OK


def _matches(value: Any, field: str, pattern: "re.Pattern[str]", expected: str) -> Result:
    if not isinstance(value, str):
        return False, f"{field} must be str, got {_kind(value)}"
    if pattern.match(value) is None:
        return False, f"{field} must be {expected}, got {value!r}"
    return OK


# -- numbers -----------------------------------------------------------------


def validate_amount(value: Any, name: str = "amount") -> Result:
    return _bounded_int(value, name, 0, MAX_AMOUNT)


def validate_timestamp(value: Any, name: str = "timestamp") -> Result:
    return _bounded_int(value, name, 0, MAX_TIMESTAMP)


def validate_page_size(page_size: Any) -> Result:
    """A requested page holds at least one entry; larger requests are clamped to MAX_PAGE_SIZE."""
    return _bounded_int(page_size, "page_size", 1, MAX_UINT32)


# -- identifiers -------------------------------------------------------------


def validate_address(address: Any, name: str = "address") -> Result:
    """Addresses are canonical: "0x" and 40 lowercase hex digits."""
    return _matches(address, name, ADDRESS_PATTERN, "a 0x-prefixed lowercase 20-byte hex address")


def validate_code_hash(code_hash: Any) -> Result:
    return _matches(code_hash, "code_hash", CODE_HASH_PATTERN, "64 lowercase hex characters")


def validate_symbol(symbol: Any) -> Result:
    ok, reason = _text(symbol, "symbol", MAX_SYMBOL_LENGTH, required=True)
    if not ok:
        return ok, reason
    return _matches(symbol, "symbol", SYMBOL_PATTERN, "letters and digits only")


# -- free text ---------------------------------------------------------------


def validate_label(label: Any) -> Result:
    return _text(label, "label", MAX_LABEL_LENGTH, required=True)


def validate_description(description: Optional[Any]) -> Result:
    """A missing description is fine; a present one is bounded."""
    if description is None:
        return OK
    return _text(description, "description", MAX_DESCRIPTION_LENGTH, required=False)


def checked(result: Result) -> None:
    """Raise ValueError carrying the reason of a failed check."""
    ok, reason = result
    if not ok:
        raise ValueError(reason)
