# ranking/comparator.py

import math
from dataclasses import dataclass, replace
from typing import Optional, Tuple

from ranking.constants import ANSWERS, PREFER_NEW, SKIP
from ranking.errors import SessionAbortedError, ValidationError


def parse_answer(answer):
    value = str(answer or '').strip().lower()
    if value not in ANSWERS:
        raise ValidationError(f"Malformed comparison answer '{answer}' (expected one of {', '.join(ANSWERS)})")
    return value


def max_comparisons(population):
    """Upper bound on questions needed to place an item among `population` tier-mates."""
    return math.ceil(math.log2(population + 1)) if population > 0 else 0


@dataclass(frozen=True)
class SearchWindow:
    """
    Half-open window [low, high) over the tier-mates, best first.

    Never mutated: every answer produces a new window, so dropping a
    window on the floor is all it takes to abandon a session.
    """
    low: int
    high: int
    tier_mates: Tuple[dict, ...]
    comparisons: int = 0
    resolved: Optional[int] = None

    @property
    def mid(self):
        return (self.low + self.high) // 2

    @property
    def done(self):
        return self.resolved is not None or self.low >= self.high

    @property
    def opponent(self):
        if self.done:
            return None
        return self.tier_mates[self.mid]

    @property
    def final_index(self):
        if not self.done:
            raise ValidationError("Comparison session has not resolved yet")
        return self.resolved if self.resolved is not None else self.low


def open_window(tier_mates):
    mates = tuple(tier_mates)
    return SearchWindow(low=0, high=len(mates), tier_mates=mates)


def apply_answer(window, answer):
    if window.done:
        raise ValidationError("Comparison session already resolved")
    choice = parse_answer(answer)
    if choice == SKIP:
        # Too close to call: settle on the middle of what is still uncertain
        return replace(window, resolved=window.mid)
    if choice == PREFER_NEW:
        return replace(window, high=window.mid, comparisons=window.comparisons + 1)
    return replace(window, low=window.mid + 1, comparisons=window.comparisons + 1)


def binary_insert(tier_mates):
    """
    Generator form of the session: yields the tier-mate to compare against,
    expects the answer via send(), returns the 0-based intra-tier index.
    """
    window = open_window(tier_mates)
    while not window.done:
        answer = yield window.opponent
        window = apply_answer(window, answer)
    return window.final_index


def run_session(new_entry, tier_mates, judge):
    """
    Drive binary_insert with judge(new_entry, existing_entry) -> answer.
    Returns (intra_tier_index, comparisons_asked).
    """
    session = binary_insert(tier_mates)
    asked = 0
    try:
        opponent = next(session)
        while True:
            answer = judge(new_entry, opponent)
            if parse_answer(answer) != SKIP:
                asked += 1
            opponent = session.send(answer)
    except StopIteration as e:
        return e.value, asked
    except SessionAbortedError:
        session.close()
        raise

