def levenshtein_distance(a: str, b: str) -> int:
    """Classic edit distance with unit cost for insert, delete and substitute."""
    if len(a) < len(b):
        a, b = b, a
    if not b:
        return len(a)

    previous = list(range(len(b) + 1))
    for i, ca in enumerate(a, start=1):
        current = [i]
        for j, cb in enumerate(b, start=1):
            cost = 0 if ca == cb else 1
            current.append(
                min(
                    previous[j] + 1,  # deletion
                    current[j - 1] + 1,  # insertion
                    previous[j - 1] + cost,  # substitution
                )
            )
        previous = current
    return previous[-1]


def score(a: str, b: str) -> float:
    """
    Case-insensitive similarity in [0, 1].

    1 - distance / max(len(a), len(b)); two empty strings are identical (1.0).
    """
    a = (a or "").lower()
    b = (b or "").lower()
    longest = max(len(a), len(b))
    if longest == 0:
        return 1.0
    return 1.0 - levenshtein_distance(a, b) / longest


def weighted_score(pairs) -> float:
    """Blend of (weight, query, candidate) similarity triples."""
    return sum(weight * score(query, candidate) for weight, query, candidate in pairs)
