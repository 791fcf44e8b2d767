import os

import pandas as pd

from ranking.constants import TIERS

EXPORT_COLUMNS = [
    'rank_position', 'tier', 'score', 'title', 'author',
    'book_key', 'category', 'finished_at', 'review_text',
]


def export_ranked_list(entries, filepath: str):
    """
    Export a category's ranking as a .csv and its key statistics as a .txt.

    Args:
        entries: Ordered entry dicts, as returned by RankingSystem.get_ordered_list.
        filepath: Target filepath WITHOUT extension.
    """
    # Ensure output directory exists
    output_dir = os.path.dirname(filepath)
    if output_dir and not os.path.exists(output_dir):
        os.makedirs(output_dir)

    df = pd.DataFrame(entries, columns=EXPORT_COLUMNS)

    stats = {'Books': len(df)}
    for tier in TIERS:
        scores = df.loc[df['tier'] == tier, 'score']
        stats[tier.capitalize()] = (
            f"{len(scores)} (scores {scores.min()}-{scores.max()})" if len(scores) else "0"
        )

    try:
        df.to_csv(filepath + ".csv", index=False)

        with open(filepath + ".txt", "w", encoding="utf-8") as f:
            f.write("Key Statistics:\n\n")
            for key, value in stats.items():
                f.write(f"{key}: {value}\n")

    except OSError as e:
        raise RuntimeError(f"Export failed: {str(e)}")

    return stats
