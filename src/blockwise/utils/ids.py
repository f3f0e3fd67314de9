"""Block ID generation for Blockwise."""

import secrets
import string
import time

# Prefix that marks a string as a block address
BLOCK_ID_PREFIX = "blk_"

_BASE36 = string.digits + string.ascii_lowercase


def to_base36(value: int) -> str:
    """
    Encode a non-negative integer in lowercase base 36.

    Example:
        >>> to_base36(1295)
        "zz"
    """
    if value < 0:
        raise ValueError("value must be non-negative")
    if value == 0:
        return "0"
    digits = []
    while value:
        value, remainder = divmod(value, 36)
        digits.append(_BASE36[remainder])
    return "".join(reversed(digits))


def generate_block_id() -> str:
    """
    Generate a new block ID.

    Combines the current time in milliseconds with six random base-36
    characters from a CSPRNG, so IDs minted in independent documents are
    practically collision free.

    Returns:
        ID such as "blk_m1x2k3l4a9f0qz"

    Example:
        >>> generate_block_id().startswith(BLOCK_ID_PREFIX)
        True
    """
    clock = to_base36(time.time_ns() // 1_000_000)
    suffix = "".join(secrets.choice(_BASE36) for _ in range(6))
    return f"{BLOCK_ID_PREFIX}{clock}{suffix}"

