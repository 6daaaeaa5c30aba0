"""Utility functions for generating IDs."""

import secrets
import string
import time

BASE36_ALPHABET = string.digits + string.ascii_lowercase


def generate_transaction_id(prefix: str = "TXN", random_length: int = 9) -> str:
    """Generate a transaction ID of the form ``TXN-<timestamp>-<random>``.

    The timestamp part is the current time in milliseconds, base36 encoded,
    so IDs sort roughly by creation time. The random suffix keeps collisions
    negligible for IDs created within the same millisecond.

    Args:
        prefix: Leading tag of the ID (default: ``TXN``)
        random_length: Number of random base36 characters in the suffix

    Returns:
        The generated transaction ID
    """
    timestamp = to_base36(int(time.time() * 1000))
    suffix = "".join(secrets.choice(BASE36_ALPHABET) for _ in range(random_length))
    return f"{prefix}-{timestamp}-{suffix}"


def to_base36(number: int) -> str:
    """Convert a number to base36 representation.

    Args:
        number: The number to convert

    Returns:
        A string containing the base36 representation
    """
    base36 = ""

    while number:
        number, i = divmod(number, 36)
        base36 = BASE36_ALPHABET[i] + base36

    return base36 or "0"
