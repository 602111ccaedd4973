from rapidfuzz.distance import Levenshtein


def string_similarity(a: str, b: str) -> float:
    """Return ``1 - edit_distance / max_len`` on case-folded, trimmed strings."""
    s1 = (a or "").lower().strip()
    s2 = (b or "").lower().strip()
    if s1 == s2:
        return 1.0
    if not s1 or not s2:
        return 0.0
    max_len = max(len(s1), len(s2))
    return 1.0 - Levenshtein.distance(s1, s2) / max_len
