"""Pytest configuration and shared fixtures."""

from collections.abc import Generator
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from main import app
from motocare.core.config import Settings
from motocare.core.enums import AppointmentStatus, GarageStatus, UserRole
from motocare.db.init_db import init_db
from motocare.db.models import Appointment, Bike, Garage, User
from motocare.db.session import get_db
from motocare.routes.deps import get_app_settings

TEST_SETTINGS = Settings(
    database_url="sqlite://",
    max_per_slot=2,
    request_expiry_hours=6,
    scheduler_enabled=False,
)


@pytest.fixture()
def engine():
    """Fresh in-memory database per test."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture()
def session_factory(engine) -> sessionmaker[Session]:
    return sessionmaker(autocommit=False, autoflush=False, bind=engine, class_=Session)


@pytest.fixture()
def db(session_factory) -> Generator[Session, None, None]:
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def customer(db: Session) -> User:
    user = User(full_name="Asha Rai", email="asha@example.com", role=UserRole.CUSTOMER)
    db.add(user)
    db.commit()
    return user


@pytest.fixture()
def other_customer(db: Session) -> User:
    user = User(full_name="Bikash Thapa", email="bikash@example.com", role=UserRole.CUSTOMER)
    db.add(user)
    db.commit()
    return user


@pytest.fixture()
def admin(db: Session) -> User:
    user = User(full_name="Admin", email="admin@example.com", role=UserRole.ADMIN)
    db.add(user)
    db.commit()
    return user


@pytest.fixture()
def garage(db: Session) -> Garage:
    garage = Garage(name="Valley Moto Works", status=GarageStatus.APPROVED)
    db.add(garage)
    db.commit()
    return garage


@pytest.fixture()
def bike(db: Session, customer: User) -> Bike:
    bike = Bike(
        user_id=customer.id,
        company="Royal Enfield",
        model="Classic 350",
        registration_no="BA 12 PA 3456",
    )
    db.add(bike)
    db.commit()
    return bike


@pytest.fixture()
def tomorrow() -> date:
    return date.today() + timedelta(days=1)


@pytest.fixture()
def make_user(db: Session):
    counter = {"n": 0}

    def _make(role: UserRole = UserRole.CUSTOMER) -> User:
        counter["n"] += 1
        user = User(
            full_name=f"Rider {counter['n']}",
            email=f"rider{counter['n']}@example.com",
            role=role,
        )
        db.add(user)
        db.commit()
        return user

    return _make


@pytest.fixture()
def make_bike(db: Session):
    def _make(user: User) -> Bike:
        bike = Bike(user_id=user.id, company="Honda", model="CB Shine", registration_no="BA 1 PA 1")
        db.add(bike)
        db.commit()
        return bike

    return _make


@pytest.fixture()
def make_appointment(db: Session, garage: Garage, tomorrow: date):
    """Persist an appointment directly, bypassing admission checks."""

    def _make(
        user: User,
        bike: Bike,
        status: AppointmentStatus = AppointmentStatus.REQUESTED,
        *,
        time_slot: str = "10:00",
        preferred_date: date | None = None,
        quoted_price: Decimal | None = None,
        created_at: datetime | None = None,
    ) -> Appointment:
        appointment = Appointment(
            user_id=user.id,
            bike_id=bike.id,
            garage_id=garage.id,
            km_running=12000,
            preferred_date=preferred_date or tomorrow,
            time_slot=time_slot,
            status=status,
            status_history=[],
            quoted_price=quoted_price,
            created_at=created_at or datetime.now(timezone.utc),
        )
        db.add(appointment)
        db.commit()
        db.refresh(appointment)
        return appointment

    return _make


@pytest.fixture()
def client(session_factory) -> Generator[TestClient, None, None]:
    def _get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_app_settings] = lambda: TEST_SETTINGS
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


@pytest.fixture()
def auth_headers():
    def _headers(user: User) -> dict[str, str]:
        return {"X-User-Id": str(user.id), "X-User-Role": user.role.value}

    return _headers
