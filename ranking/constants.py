# ranking/constants.py

CATEGORIES = ('fiction', 'nonfiction')

# Best tier first. Order matters: it drives tier grouping of rank positions.
TIERS = ('liked', 'fine', 'disliked')

# Closed score bands, disjoint and ordered best-highest
TIER_BANDS = {
    'liked':    (6.7, 10.0),
    'fine':     (3.4, 6.6),
    'disliked': (0.0, 3.3),
}

# Comparison answers
PREFER_NEW      = 'new'
PREFER_EXISTING = 'existing'
SKIP            = 'skip'
ANSWERS = (PREFER_NEW, PREFER_EXISTING, SKIP)

SCORE_FORMULAS = ('linear', 'spread')
SCORE_PRECISION = '0.1'
