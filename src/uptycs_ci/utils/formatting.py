"""Text forms of CVSS scores."""


def format_score(score: float) -> str:
    """Exact text of ``score``: ``8`` for whole numbers, ``repr`` otherwise."""
    score = float(score)
    if score.is_integer():
        return str(int(score))
    return repr(score)
