import os
import re
from html import unescape

import pandas as pd

from ranking.errors import ValidationError
from ranking.allocator import parse_tier_position
from ranking.tiers import classify, parse_rating, tier_for_rating, validate_category


class DataProcessor:
    def __init__(self, logger=None):
        self.logger = logger or (lambda msg: print(msg))

    def clean_imported_data(self, value):
        """Clean individual values, preserving quotes and decoding entities."""
        # Handle missing or NaN values
        try:
            if value is None or pd.isna(value):
                return ''
        except (TypeError, ValueError):
            pass

        # Convert to string and decode HTML entities
        text = str(value)
        prev = None
        while text != prev:
            prev = text
            text = unescape(text)
        # Strip control chars
        text = re.sub(r'[\x00-\x1f\x7f-\x9f]', '', text)
        return text.strip()

    def _read_frame(self, filepath):
        ext = os.path.splitext(filepath)[1].lower()
        if ext == '.csv':
            df = pd.read_csv(filepath, quotechar='"', escapechar='\\', dtype=str)
        elif ext in ('.xls', '.xlsx'):
            df = pd.read_excel(filepath, dtype=str)
        else:
            raise ValidationError(f"Unsupported file type: {ext}")
        # Normalize header names
        df.columns = df.columns.str.strip().str.lower().str.replace(' ', '_')
        return df

    def load_ranked_import(self, filepath, default_category='fiction'):
        """
        Load an already-sorted shelf from CSV or Excel and shape it for
        RankingSystem.bulk_import.

        Recognized columns: key (or book_key), title, author, cover_url,
        category, tier or rating (1-5 stars), tier_position, review_text,
        finished_at. Rows with neither a tier nor a rating (blank or 0) are
        unrated and skipped. Without tier_position, books are ordered by
        rating, highest first, then by their order in the file.
        """
        df = self._read_frame(filepath)
        if 'key' in df.columns and 'book_key' not in df.columns:
            df = df.rename(columns={'key': 'book_key'})
        if 'tier' not in df.columns and 'rating' not in df.columns:
            raise ValidationError("Import needs a 'tier' or 'rating' column")

        # Clean every cell
        for col in df.columns:
            df[col] = df[col].apply(self.clean_imported_data)

        default_category = validate_category(default_category)
        rows = []
        for line, row in enumerate(df.to_dict(orient='records'), start=2):
            key, title = row.get('book_key', ''), row.get('title', '')
            if not key or not title:
                self.logger(f"Skipping line {line}: missing key or title")
                continue
            if row.get('tier'):
                rows.append((line, row, None))
                continue
            try:
                stars = parse_rating(row.get('rating'))
            except ValidationError as e:
                raise ValidationError(f"Line {line}: {e}") from e
            if stars == 0:
                self.logger(f"Skipping line {line}: '{title}' is unrated")
                continue
            rows.append((line, row, stars))

        if 'tier' not in df.columns and 'tier_position' not in df.columns:
            # Highest rating first; file order breaks ties
            rows.sort(key=lambda item: -item[2])

        counters = {}
        records = []
        for line, row, stars in rows:
            try:
                category = validate_category(row.get('category') or default_category)
                if row.get('tier'):
                    tier, _ = classify(row['tier'])
                else:
                    tier = tier_for_rating(stars)
                group = (category, tier)
                counters[group] = counters.get(group, 0) + 1
                position = parse_tier_position(row.get('tier_position') or counters[group])
            except ValidationError as e:
                raise ValidationError(f"Line {line}: {e}") from e

            records.append({
                'book_key':      row['book_key'],
                'title':         row['title'],
                'author':        row.get('author') or None,
                'cover_url':     row.get('cover_url') or None,
                'review_text':   row.get('review_text') or None,
                'finished_at':   row.get('finished_at') or None,
                'category':      category,
                'tier':          tier,
                'tier_position': position,
            })

        self.logger(f"Loaded {len(records)} book(s) from {os.path.basename(filepath)}")
        return records
