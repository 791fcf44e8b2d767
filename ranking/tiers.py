# ranking/tiers.py

from collections import namedtuple

from ranking.constants import CATEGORIES, TIERS, TIER_BANDS
from ranking.errors import ValidationError


class TierBand(namedtuple('TierBand', ['min', 'max'])):
    __slots__ = ()

    @property
    def width(self):
        return self.max - self.min

    @property
    def midpoint(self):
        return (self.min + self.max) / 2

    def contains(self, score):
        return self.min <= score <= self.max


BANDS = {tier: TierBand(*TIER_BANDS[tier]) for tier in TIERS}


def _normalize(value):
    return str(value or '').strip().lower()


def classify(verdict):
    """
    Map a qualitative verdict onto its tier and fixed score band.
    Returns (tier, TierBand). Raises ValidationError for anything else.
    """
    tier = _normalize(verdict)
    if tier not in BANDS:
        raise ValidationError(f"Unknown tier '{verdict}' (expected one of {', '.join(TIERS)})")
    return tier, BANDS[tier]


def band_for(tier):
    return classify(tier)[1]


def tier_order(tier):
    """0 for the best tier, increasing toward the worst."""
    return TIERS.index(classify(tier)[0])


def validate_category(category):
    cat = _normalize(category)
    if cat not in CATEGORIES:
        raise ValidationError(f"Unknown category '{category}' (expected one of {', '.join(CATEGORIES)})")
    return cat


def parse_rating(rating):
    """Star count from a rating cell; blank means unrated (0)."""
    if rating is None or str(rating).strip() == '':
        return 0
    try:
        return int(float(rating))
    except (TypeError, ValueError, OverflowError):
        raise ValidationError(f"Rating '{rating}' is not a number")


def tier_for_rating(rating):
    """Coarse 1-5 star rating → tier, as used when importing a rated shelf."""
    stars = parse_rating(rating)
    if not 1 <= stars <= 5:
        raise ValidationError(f"Rating {stars} is outside 1-5")
    if stars >= 4:
        return 'liked'
    if stars == 3:
        return 'fine'
    return 'disliked'
