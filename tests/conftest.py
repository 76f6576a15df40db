"""Shared fixtures: in-memory database, seeded catalogue, stub notifier."""
import os
from datetime import date
from decimal import Decimal

os.environ.setdefault("DATABASE_URL", "sqlite://")

import pytest
from sqlalchemy.orm import sessionmaker

from hanami.database import build_engine, init_db
from hanami.models import Service, Therapist, TherapistService


class StubNotifier:
    """Records notifications instead of calling Telegram."""

    def __init__(self):
        self.created = []
        self.status_changes = []
        self.reminder_runs = []

    async def notify_appointment_created(self, appointment, service_name, db=None):
        self.created.append((appointment.id, service_name))
        return True

    async def notify_status_changed(self, appointment, previous_status, db=None):
        self.status_changes.append((appointment.id, previous_status, appointment.status))
        return True

    async def send_reminders(self, db, target_date=None):
        self.reminder_runs.append(target_date)
        return 0


@pytest.fixture
def engine():
    engine = build_engine("sqlite://")
    init_db(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db(engine):
    """Session bound to a fresh in-memory database."""
    Session = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    session = Session()
    yield session
    session.close()


@pytest.fixture
def catalogue(db):
    """One therapist offering a 60 minute massage and a 30 minute express massage."""
    massage = Service(name="Classic massage", duration_minutes=60, price=Decimal("200.00"), is_active=True)
    express = Service(name="Express massage", duration_minutes=30, price=Decimal("110.00"), is_active=True)
    anna = Therapist(name="Anna", is_active=True)
    marta = Therapist(name="Marta", is_active=True)
    db.add_all([massage, express, anna, marta])
    db.flush()
    db.add_all([
        TherapistService(therapist_id=anna.id, service_id=massage.id),
        TherapistService(therapist_id=anna.id, service_id=express.id),
    ])
    db.commit()
    return {"massage": massage, "express": express, "anna": anna, "marta": marta}


@pytest.fixture
def notifier():
    return StubNotifier()


@pytest.fixture
def day():
    return date(2030, 5, 14)
