"""
Input Validation - Sanitization for everything a client sends.

Provides validation for command inputs before they reach the engine:
- Identifier and name formats
- Bid amounts (finite, positive, bounded)
- Timer adjustments
- Command envelope shape
"""

import math
import re
from typing import Tuple, Any, Optional

# =============================================================================
# Constants
# =============================================================================

# Maximum sizes
MAX_IDENTIFIER_LENGTH = 64
MAX_STRING_LENGTH = 1024
MAX_COMMAND_ARGS = 32

# Field bounds
MAX_BID_AMOUNT = 200
MAX_TIME_ADJUSTMENT = 3600

IDENTIFIER_PATTERN = r"^[A-Za-z0-9_\-]+$"
COMMAND_PATTERN = r"^[a-z_]+(\.[a-z_]+)?$"


# =============================================================================
# Validation Functions
# =============================================================================


def validate_string(
    value: Any,
    name: str,
    max_length: int = MAX_STRING_LENGTH,
    min_length: int = 0,
    pattern: Optional[str] = None,
) -> Tuple[bool, str]:
    """
    Validate string input.

    Args:
        value: Value to validate
        name: Field name for error messages
        max_length: Maximum string length
        min_length: Minimum string length after stripping whitespace
        pattern: Optional regex pattern

    Returns:
        (is_valid, error_message)
    """
    if not isinstance(value, str):
        return False, f"{name} must be str, got {type(value).__name__}"

    if len(value.strip()) < min_length:
        return False, f"{name} must be at least {min_length} characters"

    if len(value) > max_length:
        return False, f"{name} exceeds max length {max_length}"

    if pattern and not re.match(pattern, value):
        return False, f"{name} does not match required pattern"

    return True, ""


def validate_identifier(value: Any, name: str = "id") -> Tuple[bool, str]:
    """Validate a record or user identifier."""
    return validate_string(
        value, name, max_length=MAX_IDENTIFIER_LENGTH, min_length=1,
        pattern=IDENTIFIER_PATTERN,
    )


def validate_integer(
    value: Any,
    name: str,
    min_val: Optional[int] = None,
    max_val: Optional[int] = None,
) -> Tuple[bool, str]:
    """
    Validate integer within bounds.

    Returns:
        (is_valid, error_message)
    """
    # bool is an int subclass
    if isinstance(value, bool) or not isinstance(value, int):
        return False, f"{name} must be int, got {type(value).__name__}"

    if min_val is not None and value < min_val:
        return False, f"{name} must be >= {min_val}, got {value}"

    if max_val is not None and value > max_val:
        return False, f"{name} must be <= {max_val}, got {value}"

    return True, ""


def validate_amount(amount: Any, max_amount: float = MAX_BID_AMOUNT) -> Tuple[bool, str]:
    """Validate a bid amount."""
    if isinstance(amount, bool) or not isinstance(amount, (int, float)):
        return False, f"amount must be a number, got {type(amount).__name__}"

    if not math.isfinite(amount):
        return False, "amount must be finite"

    if amount <= 0:
        return False, "amount must be positive"

    if amount > max_amount:
        return False, f"amount must be <= {max_amount}, got {amount}"

    return True, ""


def validate_seconds(seconds: Any) -> Tuple[bool, str]:
    """Validate a timer adjustment in whole seconds (sign allowed)."""
    return validate_integer(
        seconds, "seconds", -MAX_TIME_ADJUSTMENT, MAX_TIME_ADJUSTMENT
    )


# =============================================================================
# Composite Validators
# =============================================================================


def validate_command(data: Any) -> Tuple[bool, str]:
    """Validate a client command envelope: {"command": str, "args": dict}."""
    if not isinstance(data, dict):
        return False, "Command must be dict"

    if "command" not in data:
        return False, "Missing required field: command"

    valid, err = validate_string(data["command"], "command", max_length=64, pattern=COMMAND_PATTERN)
    if not valid:
        return False, err

    args = data.get("args", {})
    if not isinstance(args, dict):
        return False, "args must be dict"

    if len(args) > MAX_COMMAND_ARGS:
        return False, f"args exceeds max length {MAX_COMMAND_ARGS}"

    return True, ""


# =============================================================================
# Module Exports
# =============================================================================

__all__ = [
    "validate_string",
    "validate_identifier",
    "validate_integer",
    "validate_amount",
    "validate_seconds",
    "validate_command",
    "MAX_BID_AMOUNT",
    "MAX_IDENTIFIER_LENGTH",
    "MAX_TIME_ADJUSTMENT",
]
