# ballot_custody/voting/tally.py

from collections import defaultdict
from typing import Dict, Iterable


def tally_votes(candidates: Iterable[str]) -> Dict[str, int]:
    """Count votes per candidate identifier.

    Read-only and order independent; candidates with no votes are absent.
    """
    counts = defaultdict(int)
    for candidate in candidates:
        counts[candidate] += 1
    return dict(counts)
