MAX_BACKOFF_SECONDS = 3600.0


def next_delay(retry_count: int, base_delay_seconds: float) -> float:
    """Delay before retry number ``retry_count``: ``base * 2**retry_count``, capped at an hour."""
    if retry_count < 0:
        raise ValueError("retry_count must be >= 0")
    return min(base_delay_seconds * (2**retry_count), MAX_BACKOFF_SECONDS)
