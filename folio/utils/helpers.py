"""
Common utility functions and helpers.
"""
from typing import Any, Iterable, Optional
import re
import unicodedata


def normalize_text(text: str) -> str:
    """
    Collapse whitespace for length checks and comparisons.

    Args:
        text: Raw text string

    Returns:
        Text with runs of whitespace replaced by single spaces, stripped
    """
    text = unicodedata.normalize('NFKC', text or '')
    return re.sub(r'\s+', ' ', text).strip()


def safe_str(value: Any, max_length: int = 2000) -> str:
    """
    Coerce an untrusted value to a trimmed string of bounded length.

    Args:
        value: Anything (None becomes empty string)
        max_length: Hard cap on the returned length

    Returns:
        Cleaned string
    """
    if value is None:
        return ''
    text = str(value).strip()
    return text[:max_length]


def safe_enum(value: Any, allowed: Iterable[str], default: str) -> str:
    """
    Return *value* lower-cased if it is one of *allowed*, otherwise *default*.
    """
    text = safe_str(value, 100).lower()
    return text if text in set(allowed) else default


def normalize_lang(value: Any) -> str:
    """Only English and French are supported; anything not English is French."""
    return 'en' if safe_str(value, 10).lower().startswith('en') else 'fr'


def sanitize_filename(name: str, default: str = 'document') -> str:
    """
    Make *name* safe to use in a Content-Disposition filename.

    Args:
        name: Free text (company or project name)
        default: Used when nothing survives cleaning

    Returns:
        ASCII filename stem using only letters, digits, dash and underscore
    """
    ascii_name = unicodedata.normalize('NFKD', name or '').encode('ascii', 'ignore').decode('ascii')
    cleaned = re.sub(r'[^A-Za-z0-9_-]+', '_', ascii_name).strip('_')
    return cleaned[:80] or default


def clean_markdown(text: str) -> str:
    """
    Strip the markdown decorations models like to add to prose.

    Removes bold/italic markers, inline code ticks, heading hashes and
    horizontal rules; bullets are normalised to "- ".
    """
    if not text:
        return ''
    out = text.replace('\r\n', '\n')
    out = re.sub(r'^\s*#{1,6}\s*', '', out, flags=re.MULTILINE)
    out = re.sub(r'\*\*(.+?)\*\*', r'\1', out)
    out = re.sub(r'__(.+?)__', r'\1', out)
    out = re.sub(r'(?<!\w)\*(?!\s)(.+?)(?<!\s)\*(?!\w)', r'\1', out)
    out = re.sub(r'`([^`]*)`', r'\1', out)
    out = re.sub(r'^\s*[-*_]{3,}\s*$', '', out, flags=re.MULTILINE)
    out = re.sub(r'^\s*[*•]\s+', '- ', out, flags=re.MULTILINE)
    out = re.sub(r'\n{3,}', '\n\n', out)
    return out.strip()


def is_heading_line(line: str, max_length: int = 90) -> bool:
    """
    Heuristic: a short line with no terminal punctuation that is numbered
    ("1.", "2.3") or ends with a colon reads as a sub-heading.
    """
    text = line.strip()
    if not text or len(text) > max_length:
        return False
    if re.match(r'^\d+(\.\d+)*[.)]?\s+\S', text) and not text.endswith(('.', '!', '?')):
        return True
    return text.endswith(':') and len(text.split()) <= 10


def safe_divide(numerator: float, denominator: float, default: float = 0.0) -> float:
    """
    Safely divide two numbers, returning default if denominator is zero.

    Args:
        numerator: Numerator
        denominator: Denominator
        default: Default value if division fails

    Returns:
        Result of division or default
    """
    return numerator / denominator if denominator != 0 else default


def truncate_text(text: str, max_length: int = 200, suffix: str = "...") -> str:
    """
    Truncate text to maximum length.

    Args:
        text: Text to truncate
        max_length: Maximum length
        suffix: Suffix to add if truncated

    Returns:
        Truncated text
    """
    if len(text) <= max_length:
        return text
    return text[:max_length - len(suffix)] + suffix


def first_non_empty(*values: Optional[str]) -> str:
    """Return the first value that is a non-blank string, else empty string."""
    for value in values:
        if isinstance(value, str) and value.strip():
            return value.strip()
    return ''
