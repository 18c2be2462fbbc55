"""Formatting helpers for log output."""

from __future__ import annotations


def format_token(value: str | None) -> str:
    """
    Mask a token or account id for logging.

    Keeps (length // 100) * 10 leading and trailing characters, capped at 8,
    and replaces the middle with "...". Values of 6 to 99 characters therefore
    mask to a bare "...", and values shorter than 6 characters are returned
    unchanged.

    Args:
        value: Token, account id, or None

    Returns:
        Masked representation safe to write to logs
    """
    if value is None:
        return "None"

    length = len(value)
    if length < 6:
        return value

    part_length = min((length // 100) * 10, 8)
    return f"{value[:part_length]}...{value[length - part_length:]}"
