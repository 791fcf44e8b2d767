"""
Tests for the sqlite ranked-list store.
"""

import sqlite3

import pytest

from conftest import USER, make_book
from ranking.errors import ConflictError


def row(key, position, tier='liked', **extra):
    book = make_book(key, tier=tier, rank_position=position, score=5.0)
    book.update(extra)
    return book


class TestStore:
    def test_insert_and_fetch(self, database):
        with database.transaction():
            entry_id = database.insert_entry(row('a', 1, review_text='great'))
        stored = database.fetch_entry(entry_id)
        assert stored['book_key'] == 'a'
        assert stored['review_text'] == 'great'
        assert stored['created_at'] == stored['updated_at']
        assert database.find_entry_by_key(USER, 'fiction', 'a')['id'] == entry_id
        assert database.fetch_entry(entry_id + 1) is None

    def test_same_book_twice_conflicts(self, database):
        with database.transaction():
            database.insert_entry(row('a', 1))
        with pytest.raises(ConflictError) as err:
            with database.transaction():
                database.insert_entry(row('a', 2))
        assert err.value.book_key == 'a'
        assert len(database.fetch_category(USER, 'fiction')) == 1

    def test_same_book_in_other_category_is_fine(self, database):
        with database.transaction():
            database.insert_entry(row('a', 1))
            database.insert_entry(row('a', 1, category='nonfiction'))
        assert database.list_categories(USER) == ['fiction', 'nonfiction']

    def test_shift_positions(self, database):
        with database.transaction():
            for i, key in enumerate('abcd', start=1):
                database.insert_entry(row(key, i))
            moved = database.shift_positions(USER, 'fiction', 3, 1)
        assert moved == 2
        assert [e['rank_position'] for e in database.fetch_category(USER, 'fiction')] == [1, 2, 4, 5]

    def test_shift_is_scoped_to_user_and_category(self, database):
        with database.transaction():
            database.insert_entry(row('a', 1))
            database.insert_entry(row('a', 1, category='nonfiction'))
            database.insert_entry(row('a', 1, user_id='other'))
            database.shift_positions(USER, 'fiction', 1, 1)
        assert database.fetch_category(USER, 'nonfiction')[0]['rank_position'] == 1
        assert database.fetch_category('other', 'fiction')[0]['rank_position'] == 1

    def test_transaction_rolls_back_everything(self, database):
        with database.transaction():
            database.insert_entry(row('a', 1))
        with pytest.raises(sqlite3.OperationalError):
            with database.transaction():
                database.shift_positions(USER, 'fiction', 1, 1)
                database.insert_entry(row('b', 1))
                database.conn.execute("SELECT * FROM missing_table")
        entries = database.fetch_category(USER, 'fiction')
        assert [(e['book_key'], e['rank_position']) for e in entries] == [('a', 1)]

    def test_updates(self, database):
        with database.transaction():
            a = database.insert_entry(row('a', 1))
            b = database.insert_entry(row('b', 2))
            database.update_scores([(a, 9.0), (b, 7.0)])
            database.update_positions([(a, 2), (b, 1)])
            assert database.delete_entry(999) == 0
        entries = database.fetch_category(USER, 'fiction')
        assert [(e['book_key'], e['score']) for e in entries] == [('b', 7.0), ('a', 9.0)]

    def test_reconnects_after_disconnect(self, database):
        database.disconnect()
        with database.transaction():
            database.insert_entry(row('a', 1))
        assert len(database.fetch_category(USER, 'fiction')) == 1
