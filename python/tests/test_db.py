"""Database smoke tests and transaction helper behavior."""

import pytest
from sqlalchemy import func, select, text
from sqlalchemy.orm import Session

from rendezvous.db.models import Account
from rendezvous.db.session import transaction


class TestDatabaseConnectivity:
    def test_session_opens_and_executes_query(self, db_session: Session):
        row = db_session.execute(text("SELECT 1 AS value")).fetchone()

        assert row is not None
        assert row[0] == 1


class TestTransaction:
    def _account_count(self, db_session: Session) -> int:
        return db_session.scalar(select(func.count()).select_from(Account))

    def test_commits_on_success(self, db_session: Session):
        with transaction(db_session):
            db_session.add(Account(username="dave", credential_hash="a" * 64))

        db_session.rollback()
        assert self._account_count(db_session) == 1

    def test_rolls_back_and_reraises(self, db_session: Session):
        with pytest.raises(RuntimeError):
            with transaction(db_session):
                db_session.add(Account(username="erin", credential_hash="b" * 64))
                db_session.flush()
                raise RuntimeError("boom")

        assert self._account_count(db_session) == 0
