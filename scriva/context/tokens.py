"""Token estimation and bounded text projection."""
import math

ELLIPSIS = "…"


def estimate_tokens(text: str) -> int:
    """Approximate token count: one token per four characters, rounded up.

    Budgets and section costs are both computed with this function, so only
    consistency matters, not agreement with any real tokenizer.
    """
    if not text:
        return 0
    return math.ceil(len(text) / 4)


def clip(text: str, limit: int) -> str:
    """Return *text* cut to at most *limit* characters, marked with ``…`` when cut."""
    if text is None:
        return ""
    if len(text) <= limit:
        return text
    return text[:limit] + ELLIPSIS
