"""Shared fixtures: a throwaway SQLite database per test and seeded actors."""

import os
from datetime import date, time, timedelta

os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("ENABLE_SCHEDULER", "false")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker

from dentcare.core.security import Actor, ActorRole, create_access_token, get_password_hash
from dentcare.database import Base, build_engine, get_db
from dentcare.main import app
from dentcare.models.clinic import Clinic, ClinicStatus
from dentcare.models.service import Service
from dentcare.models.user import User, UserRole
from dentcare.models.working_hours import DayOfWeek, WorkingHours


@pytest.fixture
def engine(tmp_path):
    """File-backed SQLite so several sessions (and threads) share one database."""
    engine = build_engine(f"sqlite:///{tmp_path / 'dentcare_test.db'}")
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def client(session_factory):
    """TestClient bound to the test database; lifespan (and the scheduler) is not started."""

    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()


def make_user(db, email, role=UserRole.PATIENT, full_name=None, password="password123"):
    user = User(
        email=email,
        hashed_password=get_password_hash(password),
        full_name=full_name or email.split("@")[0].title(),
        role=role,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def auth_headers(user):
    return {"Authorization": f"Bearer {create_access_token(data={'sub': user.email})}"}


@pytest.fixture
def patient(db):
    return make_user(db, "alice@example.com", full_name="Alice Tan")


@pytest.fixture
def other_patient(db):
    return make_user(db, "bob@example.com", full_name="Bob Lim")


@pytest.fixture
def owner(db):
    return make_user(db, "owner@smiles.example.com", role=UserRole.CLINIC_OWNER, full_name="Dr. Wong")


@pytest.fixture
def admin(db):
    return make_user(db, "admin@example.com", role=UserRole.ADMIN, full_name="Site Admin")


@pytest.fixture
def clinic(db, owner):
    """Approved clinic open Monday 09:00-17:00 on a 30 minute grid."""
    clinic = Clinic(
        owner_id=owner.id,
        name="Bright Smiles Dental",
        address="12 Jalan Ampang, Kuala Lumpur",
        phone="03-1234 5678",
        status=ClinicStatus.APPROVED,
    )
    db.add(clinic)
    db.commit()
    db.add(WorkingHours(
        clinic_id=clinic.id,
        day=DayOfWeek.MONDAY,
        open_time=time(9, 0),
        close_time=time(17, 0),
        slot_duration=30,
    ))
    db.commit()
    db.refresh(clinic)
    return clinic


@pytest.fixture
def service(db, clinic):
    service = Service(
        clinic_id=clinic.id,
        name="Scaling & Polishing",
        description="Routine cleaning",
        price=150.0,
        duration_minutes=30,
        category="Preventive",
    )
    db.add(service)
    db.commit()
    db.refresh(service)
    return service


@pytest.fixture
def long_service(db, clinic):
    service = Service(
        clinic_id=clinic.id,
        name="Root Canal",
        price=900.0,
        duration_minutes=60,
        category="Endodontics",
    )
    db.add(service)
    db.commit()
    db.refresh(service)
    return service


@pytest.fixture
def monday():
    """The next Monday strictly after today."""
    today = date.today()
    return today + timedelta(days=(7 - today.weekday()) or 7)


@pytest.fixture
def staff(clinic, owner):
    return Actor(user_id=owner.id, role=ActorRole.CLINIC_STAFF, clinic_id=clinic.id)


@pytest.fixture
def patient_actor(patient):
    return Actor(user_id=patient.id, role=ActorRole.PATIENT)
