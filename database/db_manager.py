import os
import sqlite3
from contextlib import contextmanager
from datetime import datetime

from ranking.errors import ConflictError

ENTRY_COLUMNS = (
    'user_id', 'book_key', 'title', 'author', 'cover_url', 'category',
    'tier', 'rank_position', 'score', 'review_text', 'finished_at',
)


def _now():
    return datetime.now().isoformat(timespec='seconds')


class DatabaseManager:
    def __init__(self, db_name='bookfolio.db', table_name='ranked_books', db_dir='database'):
        # Ensure the database directory exists
        os.makedirs(db_dir, exist_ok=True)
        self.db_name = os.path.join(db_dir, db_name)
        self.table_name = table_name
        self.conn = None
        self.connect()
        self.create_tables()

    def connect(self):
        self.conn = sqlite3.connect(self.db_name)
        self.conn.row_factory = sqlite3.Row
        self.cursor = self.conn.cursor()

    def disconnect(self):
        if self.conn:
            self.conn.close()
            self.conn = None

    def rollback(self):
        if self.conn:
            self.conn.rollback()

    def _ensure_connection(self):
        try:
            self.conn.execute("SELECT 1")
        except (AttributeError, sqlite3.ProgrammingError, sqlite3.OperationalError):
            self.connect()

    @contextmanager
    def transaction(self):
        """Commit everything written inside the block, or none of it."""
        self._ensure_connection()
        try:
            yield self.cursor
            self.conn.commit()
        except Exception:
            self.conn.rollback()
            raise

    def create_tables(self):
        # One row per ranked book; a book appears once per user and category
        self.cursor.execute(f"""
        CREATE TABLE IF NOT EXISTS {self.table_name} (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            user_id TEXT NOT NULL,
            book_key TEXT NOT NULL,
            title TEXT NOT NULL,
            author TEXT,
            cover_url TEXT,
            category TEXT NOT NULL,
            tier TEXT NOT NULL,
            rank_position INTEGER NOT NULL,
            score REAL NOT NULL DEFAULT 0,
            review_text TEXT,
            finished_at TEXT,
            created_at TEXT NOT NULL,
            updated_at TEXT NOT NULL,
            UNIQUE(user_id, category, book_key)
        )"""
        )
        self.cursor.execute(
            f"CREATE INDEX IF NOT EXISTS idx_{self.table_name}_user_category "
            f"ON {self.table_name}(user_id, category, rank_position)"
        )
        self.conn.commit()

    def fetch_category(self, user_id, category):
        """Entries for one user+category ordered by rank_position."""
        rows = self.conn.execute(
            f"SELECT * FROM {self.table_name} WHERE user_id=? AND category=? ORDER BY rank_position, id",
            (user_id, category)
        ).fetchall()
        return [dict(r) for r in rows]

    def fetch_entry(self, entry_id):
        row = self.conn.execute(
            f"SELECT * FROM {self.table_name} WHERE id=?", (entry_id,)
        ).fetchone()
        return dict(row) if row else None

    def find_entry_by_key(self, user_id, category, book_key):
        row = self.conn.execute(
            f"SELECT * FROM {self.table_name} WHERE user_id=? AND category=? AND book_key=?",
            (user_id, category, book_key)
        ).fetchone()
        return dict(row) if row else None

    def list_categories(self, user_id):
        rows = self.conn.execute(
            f"SELECT DISTINCT category FROM {self.table_name} WHERE user_id=? ORDER BY category",
            (user_id,)
        ).fetchall()
        return [r[0] for r in rows]

    def insert_entry(self, entry):
        record = {c: entry.get(c) for c in ENTRY_COLUMNS}
        if record['score'] is None:
            record['score'] = 0.0
        record['created_at'] = record['updated_at'] = _now()

        cols = list(record)
        placeholders = ", ".join("?" for _ in cols)
        sql = f"INSERT INTO {self.table_name} ({', '.join(cols)}) VALUES ({placeholders})"
        try:
            self.cursor.execute(sql, [record[c] for c in cols])
        except sqlite3.IntegrityError:
            raise ConflictError(record['user_id'], record['category'], record['book_key'])
        return self.cursor.lastrowid

    def delete_entry(self, entry_id):
        self.cursor.execute(f"DELETE FROM {self.table_name} WHERE id=?", (entry_id,))
        return self.cursor.rowcount

    def shift_positions(self, user_id, category, from_position, delta):
        """
        Move every entry at or after `from_position` by `delta`.
        +1 opens a slot for an insert; -1 closes the slot left by a removal.
        """
        self.cursor.execute(
            f"UPDATE {self.table_name} SET rank_position = rank_position + ?, updated_at = ? "
            f"WHERE user_id=? AND category=? AND rank_position >= ?",
            (delta, _now(), user_id, category, from_position)
        )
        return self.cursor.rowcount

    def update_scores(self, scores):
        now = _now()
        self.cursor.executemany(
            f"UPDATE {self.table_name} SET score=?, updated_at=? WHERE id=?",
            [(score, now, entry_id) for entry_id, score in scores]
        )

    def update_positions(self, positions):
        now = _now()
        self.cursor.executemany(
            f"UPDATE {self.table_name} SET rank_position=?, updated_at=? WHERE id=?",
            [(pos, now, entry_id) for entry_id, pos in positions]
        )
