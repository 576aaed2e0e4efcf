from __future__ import annotations

import unittest
from datetime import datetime, timezone

from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from cycle_count.models import Base
from cycle_count.seed_example import seed_database
from cycle_count.services.mock_item_master_provider import MockItemMasterProvider

NOW = datetime(2026, 3, 2, 9, 30, tzinfo=timezone.utc)


def make_session_factory():
    engine = create_engine(
        'sqlite://',
        connect_args={'check_same_thread': False},
        poolclass=StaticPool,
    )

    @event.listens_for(engine, 'connect')
    def _foreign_keys(dbapi_connection, connection_record) -> None:
        cursor = dbapi_connection.cursor()
        cursor.execute('PRAGMA foreign_keys=ON')
        cursor.close()

    Base.metadata.create_all(bind=engine)
    return engine, sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


class DatabaseTestCase(unittest.TestCase):
    def setUp(self) -> None:
        self.engine, self.SessionLocal = make_session_factory()
        self.db = self.SessionLocal()
        seed_database(self.db)
        self.db.commit()
        self.provider = MockItemMasterProvider()

    def tearDown(self) -> None:
        self.db.close()
        Base.metadata.drop_all(bind=self.engine)
        self.engine.dispose()
