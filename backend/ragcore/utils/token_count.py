"""Rough token estimation helpers (about 4 characters per token for English)."""
import math

AVG_CHARS_PER_TOKEN = 4


def estimate_token_count(text: str) -> int:
    """Estimate the number of model tokens in a text."""
    if not text:
        return 0
    return math.ceil(len(text) / AVG_CHARS_PER_TOKEN)


def format_token_count(tokens: int) -> str:
    """Format a token count for display, e.g. ``1.5k tokens``."""
    if tokens < 1000:
        return f"{tokens} tokens"
    if tokens < 1_000_000:
        return f"{tokens / 1000:.1f}k tokens"
    return f"{tokens / 1_000_000:.1f}M tokens"
