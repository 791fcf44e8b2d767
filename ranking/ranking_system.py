# ranking/ranking_system.py

import sqlite3
from collections import defaultdict

from ranking.allocator import (
    find_violations,
    insertion_position,
    normalize_positions,
    parse_tier_position,
    tier_mates,
)
from ranking.comparator import binary_insert, max_comparisons, run_session
from ranking.constants import TIERS
from ranking.errors import PersistenceError, ValidationError
from ranking.scoring import find_score_violations, recalculate_scores, validate_formula
from ranking.tiers import classify, validate_category

METADATA_FIELDS = ('title', 'author', 'cover_url', 'review_text', 'finished_at')


class RankingSystem:
    """
    Places books into a user's per-category ranking and keeps positions and
    scores consistent. Structural changes (insert, remove, rerank, import)
    each run as one store transaction followed by a full rescore.

    Only one structural operation may run per (user, category) at a time;
    callers serialize that, nothing here locks.
    """

    def __init__(self, database, score_formula='linear', logger=None):
        self.database = database
        self.score_formula = validate_formula(score_formula)
        # Logger for GUI/console or other output
        self.logger = logger or (lambda msg: print(msg))

    # -- reads ---------------------------------------------------------------

    def get_ordered_list(self, user_id, category):
        return self.database.fetch_category(user_id, validate_category(category))

    def summarize(self, user_id, category):
        """Per-tier counts and score ranges for one category."""
        entries = self.get_ordered_list(user_id, category)
        summary = {}
        for tier in TIERS:
            scores = [e['score'] for e in entries if e['tier'] == tier]
            summary[tier] = {
                'count': len(scores),
                'high':  max(scores) if scores else None,
                'low':   min(scores) if scores else None,
            }
        summary['total'] = len(entries)
        return summary

    # -- comparison ----------------------------------------------------------

    def _validated_entry(self, entry):
        if not isinstance(entry, dict):
            raise ValidationError("Entry must be a mapping of book fields")
        missing = [f for f in ('user_id', 'category', 'book_key', 'title') if not entry.get(f)]
        if missing:
            raise ValidationError(f"Entry is missing {', '.join(missing)}")
        clean = dict(entry)
        clean['category'] = validate_category(entry['category'])
        clean['book_key'] = str(entry['book_key']).strip()
        return clean

    def comparison_session(self, user_id, category, tier, book_key=None):
        """
        Generator over the current tier-mates: yields the entry to compare
        against, takes answers through send(), returns the intra-tier index.
        An earlier entry for `book_key` is left out since it is being replaced.
        Nothing is written; close() the generator to abandon it.
        """
        tier, _ = classify(tier)
        entries = self.database.fetch_category(user_id, validate_category(category))
        return binary_insert(tier_mates(entries, tier, exclude_key=book_key))

    def resolve_index(self, entry, tier, judge=None):
        """Run a comparison session to completion. Returns (index, questions asked)."""
        entry = self._validated_entry(entry)
        tier, _ = classify(tier)
        entries = self.database.fetch_category(entry['user_id'], entry['category'])
        mates = tier_mates(entries, tier, exclude_key=entry['book_key'])
        if not mates:
            return 0, 0
        if judge is None:
            raise ValidationError(
                f"{len(mates)} {tier} book(s) already ranked; a judge is needed to compare"
            )
        self.logger(
            f"Comparing '{entry['title']}' against {len(mates)} {tier} book(s) "
            f"(at most {max_comparisons(len(mates))} questions)"
        )
        return run_session(entry, mates, judge)

    # -- structural operations -------------------------------------------------

    def insert(self, entry, tier, judge=None):
        """
        Rank a book: compare it against its tier-mates with `judge`, then
        place it. Returns the stored entry, its position and score, and the
        full updated list for the category.
        """
        index, asked = self.resolve_index(entry, tier, judge)
        if asked:
            self.logger(f"Resolved intra-tier index {index} after {asked} comparison(s)")
        return self.place(entry, tier, index)

    def place(self, entry, tier, intra_tier_index):
        """Insert at a known intra-tier index, shifting and rescoring the category."""
        entry = self._validated_entry(entry)
        tier, _ = classify(tier)
        user_id, category = entry['user_id'], entry['category']

        def apply():
            existing = self.database.find_entry_by_key(user_id, category, entry['book_key'])
            if existing:
                self.logger(f"Overwriting earlier ranking of '{existing['title']}'")
                self._remove_row(existing)
            position = self._insert_row(entry, tier, intra_tier_index)
            self._rescore(user_id, category)
            return position

        position = self._structural(user_id, category, apply)
        stored = self.database.find_entry_by_key(user_id, category, entry['book_key'])
        self.logger(f"Ranked '{stored['title']}' #{position} in {category} ({tier}, {stored['score']})")
        return self._result(stored)

    def remove(self, entry_id):
        existing = self.database.fetch_entry(entry_id)
        if not existing:
            raise ValidationError(f"No ranked entry with id {entry_id}")
        user_id, category = existing['user_id'], existing['category']

        def apply():
            self._remove_row(existing)
            self._rescore(user_id, category)

        self._structural(user_id, category, apply)
        self.logger(f"Removed '{existing['title']}' from {category}")
        return self.database.fetch_category(user_id, category)

    def rerank(self, entry_id, tier, judge=None):
        """
        Move an existing entry, possibly into another tier. The old row is
        out of the comparisons and the rescore; it is deleted in the same
        transaction as the new insert.
        """
        existing = self.database.fetch_entry(entry_id)
        if not existing:
            raise ValidationError(f"No ranked entry with id {entry_id}")
        entry = {f: existing[f] for f in ('user_id', 'category', 'book_key') + METADATA_FIELDS}
        return self.insert(entry, tier, judge)

    def bulk_import(self, user_id, records):
        """
        Place pre-ordered records without comparisons. Each record names its
        category, tier and 1-based tier_position; books already ranked are
        overwritten. Every record is validated before anything is written.
        Returns {category: ordered entries}.
        """
        by_category = defaultdict(list)
        for i, record in enumerate(records, start=1):
            try:
                entry = self._validated_entry(dict(record, user_id=user_id))
                tier, _ = classify(record.get('tier'))
                tier_position = parse_tier_position(record.get('tier_position'))
            except (TypeError, ValueError, ValidationError) as e:
                raise ValidationError(f"Import record {i}: {e}") from e
            by_category[entry['category']].append((TIERS.index(tier), tier_position, i, tier, entry))

        results = {}
        for category, items in by_category.items():
            items.sort(key=lambda item: item[:3])

            def apply():
                for _, tier_position, _, tier, entry in items:
                    existing = self.database.find_entry_by_key(user_id, category, entry['book_key'])
                    if existing:
                        self._remove_row(existing)
                    entries = self.database.fetch_category(user_id, category)
                    index = min(tier_position - 1, len(tier_mates(entries, tier)))
                    self._insert_row(entry, tier, index)
                self._rescore(user_id, category)

            self._structural(user_id, category, apply)
            self.logger(f"Imported {len(items)} book(s) into {category} for {user_id}")
            results[category] = self.database.fetch_category(user_id, category)
        return results

    # -- maintenance ----------------------------------------------------------

    def recalculate(self, user_id, category):
        """Rescore a whole category from a fresh read. Idempotent."""
        category = validate_category(category)
        try:
            with self.database.transaction():
                self._rescore(user_id, category)
        except sqlite3.Error as e:
            raise PersistenceError(user_id, category, str(e)) from e
        return self.database.fetch_category(user_id, category)

    def check_consistency(self, user_id, category):
        entries = self.get_ordered_list(user_id, category)
        problems = find_violations(entries)
        expected = dict(recalculate_scores(entries, self.score_formula)) if not problems else {}
        for e in entries:
            if e['id'] in expected and e['score'] != expected[e['id']]:
                problems.append(
                    f"'{e['title']}' scored {e['score']}, expected {expected[e['id']]}"
                )
        problems.extend(find_score_violations(entries))
        return problems

    def repair(self, user_id, category):
        """Reassign contiguous positions grouped by tier, then rescore."""
        category = validate_category(category)

        def apply():
            entries = self.database.fetch_category(user_id, category)
            changes = normalize_positions(entries)
            if changes:
                self.logger(f"Repairing {len(changes)} position(s) in {category} for {user_id}")
                self.database.update_positions(changes)
            self._rescore(user_id, category)

        self._structural(user_id, category, apply)
        return self.database.fetch_category(user_id, category)

    # -- internals ------------------------------------------------------------

    def _structural(self, user_id, category, apply):
        """
        Run `apply` as one transaction. On a write failure the partial work
        is rolled back and the category is rescored from a fresh read before
        the failure is reported.
        """
        try:
            with self.database.transaction():
                return apply()
        except sqlite3.Error as e:
            self.logger(f"Write failed for {user_id}/{category}: {e}; recalculating")
            try:
                self.recalculate(user_id, category)
            except PersistenceError as retry_error:
                self.logger(f"Recalculation also failed: {retry_error.reason}")
            raise PersistenceError(user_id, category, str(e)) from e

    def _insert_row(self, entry, tier, intra_tier_index):
        user_id, category = entry['user_id'], entry['category']
        entries = self.database.fetch_category(user_id, category)
        position = insertion_position(entries, tier, intra_tier_index)
        self.database.shift_positions(user_id, category, position, 1)
        record = {f: entry.get(f) for f in METADATA_FIELDS}
        record.update(user_id=user_id, category=category, book_key=entry['book_key'],
                      tier=tier, rank_position=position, score=0.0)
        self.database.insert_entry(record)
        return position

    def _remove_row(self, existing):
        self.database.delete_entry(existing['id'])
        self.database.shift_positions(
            existing['user_id'], existing['category'], existing['rank_position'] + 1, -1
        )

    def _rescore(self, user_id, category):
        entries = self.database.fetch_category(user_id, category)
        if entries:
            self.database.update_scores(recalculate_scores(entries, self.score_formula))

    def _result(self, stored):
        return {
            'entry':         stored,
            'rank_position': stored['rank_position'],
            'score':         stored['score'],
            'entries':       self.database.fetch_category(stored['user_id'], stored['category']),
        }
