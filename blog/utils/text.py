import math
import re
import time

WORDS_PER_MINUTE = 200


def slugify(value: str) -> str:
    """Turn a title or name into a URL slug.

    Lower-cases the value, drops anything that is not a word character or
    whitespace, and collapses whitespace runs into single hyphens.

    Args:
        value: The text to slugify

    Returns:
        The slug
    """
    cleaned = re.sub(r"[^\w\s]", "", value.strip().lower())
    return re.sub(r"\s+", "-", cleaned)


def timestamped_slug(value: str) -> str:
    """Slugify a post title and append the last four digits of the current
    millisecond timestamp so that posts with equal titles stay unique."""
    suffix = str(int(time.time() * 1000))[-4:]
    return f"{slugify(value)}-{suffix}"


def read_time(content: str) -> int:
    """Estimated reading time in minutes, never less than one."""
    word_count = len(content.split())
    return max(1, math.ceil(word_count / WORDS_PER_MINUTE))
