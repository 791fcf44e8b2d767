# ranking/errors.py


class RankingError(Exception):
    """Base class for ranking engine failures."""


class ValidationError(RankingError):
    """Bad tier, category, answer or record. Raised before any state change."""


class ConflictError(RankingError):
    """An entry for the same (user, category, book) already exists."""

    def __init__(self, user_id, category, book_key):
        self.user_id = user_id
        self.category = category
        self.book_key = book_key
        super().__init__(f"'{book_key}' is already ranked in {category} for {user_id}")


class PersistenceError(RankingError):
    """A write failed while shifting positions or rescoring a category."""

    def __init__(self, user_id, category, reason):
        self.user_id = user_id
        self.category = category
        self.reason = reason
        super().__init__(f"Write failed for {user_id}/{category}: {reason}")


class SessionAbortedError(RankingError):
    """The caller closed a comparison session before it resolved."""
