import pytest

from database.db_manager import DatabaseManager
from ranking.ranking_system import RankingSystem

USER = 'reader-1'


@pytest.fixture
def database(tmp_path):
    db = DatabaseManager(db_name='test.db', db_dir=str(tmp_path))
    yield db
    db.disconnect()


@pytest.fixture
def log():
    return []


@pytest.fixture
def ranker(database, log):
    return RankingSystem(database, logger=log.append)


def make_book(key, title=None, category='fiction', user=USER, **extra):
    book = {
        'user_id':  user,
        'category': category,
        'book_key': key,
        'title':    title or key.title(),
        'author':   'Someone',
    }
    book.update(extra)
    return book


def scripted(*answers):
    """Judge that replays answers in order and records who it was shown."""
    queue = list(answers)
    shown = []

    def judge(new_entry, existing):
        shown.append(existing['book_key'])
        return queue.pop(0)

    judge.shown = shown
    return judge


def always(answer):
    def judge(new_entry, existing):
        return answer
    return judge
