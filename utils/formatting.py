"""
Formatting utilities.
"""


def format_percent(value: float, decimals: int = 1) -> str:
    """
    Format a number as a percentage.

    Args:
        value: The percentage value.
        decimals: Number of decimal places.

    Returns:
        Formatted percentage string.
    """
    return f"{value:.{decimals}f}%"


def format_confidence(score: float) -> str:
    """
    Format a 0-1 mapping confidence as a whole percentage.

    Args:
        score: Similarity score in [0, 1].

    Returns:
        Formatted string, e.g. "95%".
    """
    return format_percent(score * 100, decimals=0)


def format_count(count: int, noun: str, plural: str = "") -> str:
    """
    Format a count with a singular or plural noun.

    Args:
        count: Number of items.
        noun: Singular noun.
        plural: Plural form (defaults to noun + "s").

    Returns:
        Formatted string, e.g. "1 file", "3 records".
    """
    word = noun if count == 1 else (plural or noun + "s")
    return f"{count:,} {word}"
