# ranking/allocator.py

from ranking.constants import TIERS
from ranking.errors import ValidationError
from ranking.tiers import classify


def _ordered(entries):
    return sorted(entries, key=lambda e: e['rank_position'])


def tier_mates(entries, tier, exclude_key=None):
    """Entries sharing `tier`, best first, optionally leaving one book out."""
    tier, _ = classify(tier)
    return [
        e for e in _ordered(entries)
        if e['tier'] == tier and (exclude_key is None or e.get('book_key') != exclude_key)
    ]


def better_tier_count(entries, tier):
    tier, _ = classify(tier)
    better = set(TIERS[:TIERS.index(tier)])
    return sum(1 for e in entries if e['tier'] in better)


def insertion_position(entries, tier, intra_tier_index):
    """Absolute 1-based slot for a new entry at `intra_tier_index` within its tier."""
    population = len(tier_mates(entries, tier))
    if not isinstance(intra_tier_index, int) or not 0 <= intra_tier_index <= population:
        raise ValidationError(
            f"Intra-tier index {intra_tier_index!r} outside 0..{population} for tier '{tier}'"
        )
    return better_tier_count(entries, tier) + intra_tier_index + 1


def normalize_positions(entries):
    """
    Stable-sort by (tier, current rank_position) and reassign 1..N.
    Returns (entry_id, new_position) for every row whose position changes.
    """
    ordered = sorted(
        entries,
        key=lambda e: (TIERS.index(e['tier']), e['rank_position'])
    )
    changes = []
    for pos, entry in enumerate(ordered, start=1):
        if entry['rank_position'] != pos:
            changes.append((entry['id'], pos))
    return changes


def find_violations(entries):
    problems = []
    positions = sorted(e['rank_position'] for e in entries)
    if positions != list(range(1, len(entries) + 1)):
        problems.append(f"rank positions {positions} are not exactly 1..{len(entries)}")

    worst_seen = -1
    for entry in _ordered(entries):
        order = TIERS.index(entry['tier'])
        if order < worst_seen:
            problems.append(
                f"'{entry.get('title', entry['id'])}' ({entry['tier']}) at position "
                f"{entry['rank_position']} sits below a worse tier"
            )
        worst_seen = max(worst_seen, order)
    return problems


def parse_tier_position(value):
    """1-based position inside a tier; whole numbers only ('2', 2, 2.0)."""
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise ValidationError(f"tier_position {value!r} is not a number")
    if not number.is_integer() or number < 1:
        raise ValidationError(f"tier_position {value!r} must be a whole number, 1 or more")
    return int(number)
