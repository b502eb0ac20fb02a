from __future__ import annotations

import os
import sys
from pathlib import Path

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

ROOT = Path(__file__).resolve().parent
sys.path.append(str(ROOT))

os.environ["DATABASE_URL"] = "sqlite+pysqlite:///:memory:"
os.environ["DATABASE_WRITE_URL"] = "sqlite+pysqlite:///:memory:"
os.environ["SECRET_KEY"] = "test-secret-key"
os.environ["SCHOOL_TIMEZONE"] = "UTC"

from flightops.database import Base  # noqa: E402
from flightops.apps.audit import models as audit_models  # noqa: E402
from flightops.apps.finance import models as finance_models  # noqa: E402
from flightops.apps.fleet import models as fleet_models  # noqa: E402
from flightops.apps.scheduling import models as scheduling_models  # noqa: E402


@pytest.fixture()
def db_session():
    engine = create_engine("sqlite+pysqlite:///:memory:")
    Base.metadata.create_all(
        bind=engine,
        tables=[
            fleet_models.Aircraft.__table__,
            scheduling_models.Instructor.__table__,
            scheduling_models.RosterRule.__table__,
            scheduling_models.Booking.__table__,
            finance_models.Invoice.__table__,
            finance_models.InvoiceItem.__table__,
            finance_models.InvoicePayment.__table__,
            audit_models.AuditEvent.__table__,
        ],
    )
    TestingSession = sessionmaker(
        bind=engine,
        autoflush=False,
        autocommit=False,
        expire_on_commit=False,
    )
    session = TestingSession()
    try:
        yield session
    finally:
        session.close()
