# ranking/scoring.py

from decimal import Decimal, ROUND_HALF_UP

from ranking.constants import SCORE_FORMULAS, SCORE_PRECISION, TIERS
from ranking.errors import ValidationError
from ranking.tiers import band_for

# Every entry is rescored on every structural change: O(N) per operation,
# fine for personal shelves of a few hundred books.


def round_score(value):
    """One decimal, half-up: 8.35 -> 8.4."""
    return float(Decimal(str(value)).quantize(Decimal(SCORE_PRECISION), rounding=ROUND_HALF_UP))


def validate_formula(formula):
    name = str(formula or '').strip().lower()
    if name not in SCORE_FORMULAS:
        raise ValidationError(f"Unknown score formula '{formula}' (expected one of {', '.join(SCORE_FORMULAS)})")
    return name


def _linear(band_min, band_max, position_in_tier, population):
    if population == 1:
        return (band_min + band_max) / 2
    ratio = Decimal(population - position_in_tier) / Decimal(population - 1)
    return band_min + ratio * (band_max - band_min)


def _spread(band_min, band_max, position_in_tier, population):
    # Bottom of a tier stops short of the band floor by width/population
    if population == 1:
        return band_max
    fraction = Decimal(position_in_tier - 1) / Decimal(population - 1)
    spread = Decimal(population - 1) / Decimal(population)
    return band_max - fraction * (band_max - band_min) * spread


_FORMULAS = {'linear': _linear, 'spread': _spread}


def score_for(tier, position_in_tier, tier_population, formula='linear'):
    if not 1 <= position_in_tier <= tier_population:
        raise ValidationError(
            f"Position {position_in_tier} outside tier population {tier_population}"
        )
    band = band_for(tier)
    raw = _FORMULAS[validate_formula(formula)](
        Decimal(str(band.min)), Decimal(str(band.max)), position_in_tier, tier_population
    )
    return round_score(raw)


def recalculate_scores(entries, formula='linear'):
    """
    Score every entry from the ordered list alone.
    Returns [(entry_id, score), ...] in rank order. Pure, so safe to rerun.
    """
    ordered = sorted(entries, key=lambda e: e['rank_position'])
    populations = {tier: 0 for tier in TIERS}
    for entry in ordered:
        populations[entry['tier']] += 1

    seen = {tier: 0 for tier in TIERS}
    results = []
    for entry in ordered:
        seen[entry['tier']] += 1
        score = score_for(entry['tier'], seen[entry['tier']], populations[entry['tier']], formula)
        results.append((entry['id'], score))
    return results


def find_score_violations(entries):
    problems = []
    previous = None
    for entry in sorted(entries, key=lambda e: e['rank_position']):
        band = band_for(entry['tier'])
        score = entry['score']
        if not band.contains(score):
            problems.append(
                f"score {score} at position {entry['rank_position']} is outside the "
                f"{entry['tier']} band [{band.min}, {band.max}]"
            )
        if previous is not None and score > previous:
            problems.append(
                f"score rises from {previous} to {score} at position {entry['rank_position']}"
            )
        previous = score
    return problems
