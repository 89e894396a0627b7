"""
Unit of work over the SQLAlchemy session.

Engines hand ``UnitOfWork.run`` a closure that reads through
``uow.profiles`` / ``uow.ledger`` / ``uow.session`` and stages writes. The
unit of work commits them as one transaction, retries on write conflicts
and gives up with AbortedError.

    def work(uow):
        profile, _ = uow.profiles.get_or_create(user_id)
        return apply_points_delta(uow, profile, 50, 'earned', 'Order 1001')

    change = UnitOfWork().run(work)
"""
import logging
from typing import Callable, List, TypeVar

from flask import current_app
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db
from ..utils.exceptions import AbortedError, LoyaltyError
from .ledger import TransactionLedger
from .profile_store import ProfileStore

logger = logging.getLogger(__name__)

T = TypeVar('T')

# Optimistic version mismatch, duplicate insert race, serialization failure/lock
CONFLICT_ERRORS = (StaleDataError, IntegrityError, OperationalError)


class UnitOfWork:
    """One atomic, retried transaction against the loyalty store."""

    def __init__(self, session=None, max_attempts: int = None):
        self.session = session or db.session
        if max_attempts is None:
            max_attempts = current_app.config.get('LEDGER_TRANSACTION_RETRIES', 3)
        self.max_attempts = max(1, max_attempts)
        self.profiles = ProfileStore(self.session)
        self.ledger = TransactionLedger(self.session)
        self._after_commit: List[Callable[[], None]] = []

    def after_commit(self, callback: Callable[[], None]) -> None:
        """Queue a side effect that only runs once the transaction commits."""
        self._after_commit.append(callback)

    def run(self, work: Callable[['UnitOfWork'], T]) -> T:
        last_error = None

        for attempt in range(1, self.max_attempts + 1):
            self._after_commit = []
            try:
                result = work(self)
                self.session.commit()
            except LoyaltyError:
                self.session.rollback()
                raise
            except CONFLICT_ERRORS as e:
                self.session.rollback()
                last_error = e
                logger.warning(
                    f"Write conflict on attempt {attempt}/{self.max_attempts}: {type(e).__name__}"
                )
                continue
            except Exception:
                self.session.rollback()
                raise

            self._run_after_commit()
            return result

        logger.error(f"Transaction aborted after {self.max_attempts} attempts: {last_error}")
        raise AbortedError()

    def _run_after_commit(self) -> None:
        callbacks, self._after_commit = self._after_commit, []
        for callback in callbacks:
            try:
                callback()
            except Exception as e:
                # Committed work stands; post-commit hooks are best effort
                logger.warning(f"Post-commit hook failed: {e}")
