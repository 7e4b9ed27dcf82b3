"""Fuzzy matching for typo-tolerant search.

Two independent scorers live here:

- :func:`fuzzy_score` aligns the query as an ordered (not necessarily
  contiguous) subsequence of the target and rewards tight alignments. It
  returns ``None`` when the query is not a subsequence at all or when the
  normalized score falls below the acceptance floor; short queries align
  almost anywhere, so the floor keeps them honest.
- :func:`bounded_levenshtein` is a classic edit distance that refuses to do
  any work once the length gap alone exceeds the typo window.

:func:`typo_score` combines the second into partial credit and is only used
when fuzzy alignment fails outright.
"""

from __future__ import annotations


NO_MATCH_DISTANCE = 999
MAX_LENGTH_GAP = 3

MATCH_SCORE = 10.0
# Gap between consecutive matched characters in the target -> bonus
PROXIMITY_BONUS = {1: 15.0, 2: 5.0, 3: 2.0}
EXACT_BONUS = 100.0
PREFIX_BONUS = 50.0
SUBSTRING_BONUS = 30.0
DEFAULT_ACCEPTANCE = 0.30

TYPO_RATIO = 0.3


def fuzzy_score(query: str, target: str, *, acceptance: float = DEFAULT_ACCEPTANCE) -> float | None:
    """Score how well ``query`` aligns with ``target``.

    Args:
        query: Text typed by the user.
        target: Title, body or heading text to compare against.
        acceptance: Minimum normalized score; lower scores count as no match.

    Returns:
        A score in ``[0, 1]``, or ``None`` when there is no acceptable match.

    Examples:
        >>> fuzzy_score("xyz", "abc") is None
        True
        >>> fuzzy_score("install", "install")
        1.0
    """
    query_lower = query.lower()
    target_lower = target.lower()
    if not query_lower or not target_lower:
        return None

    raw = 0.0
    query_index = 0
    last_match = -1
    query_length = len(query_lower)

    for target_index, char in enumerate(target_lower):
        if query_index < query_length and char == query_lower[query_index]:
            raw += MATCH_SCORE
            if last_match >= 0:
                raw += PROXIMITY_BONUS.get(target_index - last_match, 0.0)
            last_match = target_index
            query_index += 1

    if query_index != query_length:
        return None

    raw *= query_length / len(target_lower)

    if target_lower == query_lower:
        raw += EXACT_BONUS
    elif target_lower.startswith(query_lower):
        raw += PREFIX_BONUS
    elif query_lower in target_lower:
        raw += SUBSTRING_BONUS

    normalized = raw / (query_length * 15 + 100)
    if normalized < acceptance:
        return None
    return min(normalized, 1.0)


def bounded_levenshtein(a: str, b: str) -> int:
    """Edit distance between ``a`` and ``b`` with a length-gap short circuit.

    When the lengths differ by more than three characters the strings can
    never fall inside the typo window, so :data:`NO_MATCH_DISTANCE` is
    returned without building the DP table.

    Examples:
        >>> bounded_levenshtein("kitten", "sitting")
        3
        >>> bounded_levenshtein("a", "abcdefg")
        999
    """
    if abs(len(a) - len(b)) > MAX_LENGTH_GAP:
        return NO_MATCH_DISTANCE
    if not a:
        return len(b)
    if not b:
        return len(a)

    # Shorter string as columns; two rows are enough
    if len(a) > len(b):
        a, b = b, a

    m, n = len(a), len(b)
    prev_row = list(range(m + 1))
    curr_row = [0] * (m + 1)

    for j in range(1, n + 1):
        curr_row[0] = j
        for i in range(1, m + 1):
            cost = 0 if a[i - 1] == b[j - 1] else 1
            curr_row[i] = min(
                prev_row[i] + 1,  # deletion
                curr_row[i - 1] + 1,  # insertion
                prev_row[i - 1] + cost,  # substitution
            )
        prev_row, curr_row = curr_row, prev_row

    return prev_row[m]


def max_typo_distance(query_length: int) -> int:
    """Largest edit distance still treated as a typo for a query of this length."""
    return max(1, int(query_length * TYPO_RATIO))


def typo_score(query: str, target: str, weight: float) -> float:
    """Partial credit for a likely typo of ``target``; ``0.0`` when not close enough.

    Examples:
        >>> typo_score("configures", "configured", 50.0)
        45.0
        >>> typo_score("abc", "xyz", 50.0)
        0.0
    """
    query_lower = query.lower()
    if not query_lower:
        return 0.0
    distance = bounded_levenshtein(query_lower, target.lower())
    query_length = len(query_lower)
    if distance <= max_typo_distance(query_length) and distance < query_length:
        return (1 - distance / query_length) * weight
    return 0.0
