from types import SimpleNamespace
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from src.database import Base, get_db
from src.main import app
from src.models import StaffUser, Location, TransportRoute, CancellationPolicy, ServiceConfig
from src.auth.dependencies import get_current_user
from src.applicants.schemas import RegistrationRequest
from src.applicants.service import ApplicantService


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def make_user(db):
    """Create a staff user detached from the session with all attributes loaded"""

    def factory(role="ADMIN", username=None):
        user = StaffUser(
            username=username or role.lower(),
            email=f"{(username or role).lower()}@agency-ye.com",
            full_name=role.title(),
            role=role,
            password_hash="not-used",
            is_active=True,
        )
        db.add(user)
        db.commit()
        db.refresh(user)
        db.expunge(user)
        return user

    return factory


@pytest.fixture
def admin(make_user):
    return make_user("ADMIN", username="admin")


@pytest.fixture
def catalog(db):
    """Three locations, priced routes, fee policies and the global config"""
    sanaa = Location(name="Sanaa", code="SAN", is_active=True)
    aden = Location(name="Aden", code="ADE", is_active=True)
    taiz = Location(name="Taiz", code="TAI", is_active=True)
    db.add_all([sanaa, aden, taiz])
    db.flush()

    taiz_aden = TransportRoute(from_location_id=taiz.id, to_location_id=aden.id,
                               one_way_price=Decimal("15000"), round_trip_price=Decimal("28000"), is_active=True)
    aden_sanaa = TransportRoute(from_location_id=aden.id, to_location_id=sanaa.id,
                                one_way_price=Decimal("30000"), round_trip_price=Decimal("55000"), is_active=True)
    taiz_sanaa = TransportRoute(from_location_id=taiz.id, to_location_id=sanaa.id,
                                one_way_price=Decimal("20000"), round_trip_price=Decimal("38000"), is_active=True)
    db.add_all([taiz_aden, aden_sanaa, taiz_sanaa])

    db.add_all([
        CancellationPolicy(name="Late cancellation", category="CANCELLATION", hours_trigger=24,
                           condition="LESS_THAN", fee_amount=Decimal("10000"), is_active=True),
        CancellationPolicy(name="Cancellation 24h+", category="CANCELLATION", hours_trigger=24,
                           condition="GREATER_THAN", fee_amount=Decimal("5000"), is_active=True),
        CancellationPolicy(name="Cancellation 48h+", category="CANCELLATION", hours_trigger=48,
                           condition="GREATER_THAN", fee_amount=Decimal("2000"), is_active=True),
        CancellationPolicy(name="Late modification", category="MODIFICATION", hours_trigger=24,
                           condition="LESS_THAN", fee_amount=Decimal("7000"), is_active=True),
        CancellationPolicy(name="Modification 24h+", category="MODIFICATION", hours_trigger=24,
                           condition="GREATER_THAN", fee_amount=Decimal("3000"), is_active=True),
        CancellationPolicy(name="No-show fine", category="NO_SHOW", hours_trigger=0,
                           fee_amount=Decimal("20000"), is_active=True),
    ])
    db.add(ServiceConfig(id="global", registration_price=Decimal("16000"),
                         exam_change_fee=Decimal("16000"), max_free_changes=1))
    db.commit()

    return SimpleNamespace(
        sanaa=sanaa.id,
        aden=aden.id,
        taiz=taiz.id,
        taiz_aden=taiz_aden.id,
        aden_sanaa=aden_sanaa.id,
        taiz_sanaa=taiz_sanaa.id,
    )


@pytest.fixture
def register(db, catalog):
    """Register an applicant through the ledger and return the commit result"""

    def factory(**overrides):
        data = {
            "full_name": "Ahmed Saleh",
            "phone": "777123456",
            "location_id": catalog.aden,
        }
        data.update(overrides)
        return ApplicantService(db).register(RegistrationRequest(**data))

    return factory


@pytest.fixture
def acting_user(admin):
    return {"user": admin}


@pytest.fixture
def client(session_factory, acting_user, catalog):
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_current_user] = lambda: acting_user["user"]
    yield TestClient(app)
    app.dependency_overrides.clear()
