"""
Text chunking for speech synthesis.

Assistant replies arrive as markdown. Before they are sent to TTS they are
reduced to plain speakable text and split into chunks no longer than the
per-request limit, preferring sentence boundaries, then clause boundaries,
then word boundaries.
"""
import re
from typing import List, Optional, Tuple

DEFAULT_MAX_CHUNK_LENGTH = 200

_MARKDOWN_RULES = (
    (re.compile(r'#{1,6}\s+'), ''),                    # headings
    (re.compile(r'\*\*([^*]+)\*\*'), r'\1'),           # bold
    (re.compile(r'\*([^*]+)\*'), r'\1'),               # italic
    (re.compile(r'`([^`]+)`'), r'\1'),                 # inline code
    (re.compile(r'\[([^\]]+)\]\([^)]+\)'), r'\1'),     # links
    (re.compile(r'^[-*•]\s+', re.MULTILINE), ''),        # bullets
    (re.compile(r'^\d+\.\s+', re.MULTILINE), ''),      # numbered lists
    (re.compile(r'\n{2,}'), '\n'),
)

# A chunk must not open with something the bullet/numbering rules would eat.
_LIST_PREFIX = re.compile(r'\s*(?:[-*•]|\d+\.)\s')

SENTENCE_ENDERS = ('. ', '! ', '? ')
CLAUSE_DELIMITER = ', '


def strip_markdown(text: str) -> str:
    """Reduce markdown to the text a listener should hear."""
    clean = text
    while True:
        previous = clean
        for pattern, replacement in _MARKDOWN_RULES:
            clean = pattern.sub(replacement, clean)
        clean = clean.strip()
        if clean == previous:
            return clean


def _last_safe_split(remaining: str, window: str, delimiter: str, keep: int) -> Optional[Tuple[int, int]]:
    """Latest occurrence of delimiter in window that leaves a clean next chunk.

    Returns (chunk_end, next_start); ``keep`` is how many delimiter
    characters stay with the left chunk.
    """
    idx = window.rfind(delimiter)
    while idx > 0:
        next_start = idx + len(delimiter)
        if not _LIST_PREFIX.match(remaining, next_start):
            return idx + keep, next_start
        idx = window.rfind(delimiter, 0, idx)
    return None


def _find_split(remaining: str, max_len: int) -> Optional[Tuple[int, int]]:
    # A delimiter may end exactly at max_len; its punctuation then sits at max_len - 1.
    window = remaining[:max_len + 1]

    best = None
    for ender in SENTENCE_ENDERS:
        split = _last_safe_split(remaining, window, ender, 1)
        if split is not None and (best is None or split[0] > best[0]):
            best = split
    if best is not None:
        return best

    return (
        _last_safe_split(remaining, window, CLAUSE_DELIMITER, 1)
        or _last_safe_split(remaining, window, ' ', 0)
    )


def _hard_cut(remaining: str, max_len: int) -> int:
    """Cut inside an unbroken run, stepping back so the rest does not open with a list marker."""
    for cut in range(max_len, 0, -1):
        if not _LIST_PREFIX.match(remaining, cut):
            return cut
    return max_len


def chunk_text(text: str, max_len: int = DEFAULT_MAX_CHUNK_LENGTH) -> List[str]:
    """Split text into speakable chunks of at most ``max_len`` characters.

    Args:
        text: Raw (possibly markdown) text
        max_len: Maximum characters per chunk

    Returns:
        Ordered list of non-empty chunks; empty when the text is blank
    """
    if max_len < 1:
        raise ValueError("max_len must be at least 1")

    clean = strip_markdown(text)
    if len(clean) <= max_len:
        return [clean] if clean else []

    chunks: List[str] = []
    remaining = clean
    while remaining:
        if len(remaining) <= max_len:
            chunks.append(remaining)
            break

        split = _find_split(remaining, max_len)
        if split is None:
            chunk_end = next_start = _hard_cut(remaining, max_len)
        else:
            chunk_end, next_start = split

        chunk = remaining[:chunk_end].strip()
        if chunk:
            chunks.append(chunk)
        remaining = remaining[next_start:].strip()

    return [chunk for chunk in chunks if chunk]


__all__ = ["chunk_text", "strip_markdown", "DEFAULT_MAX_CHUNK_LENGTH"]
