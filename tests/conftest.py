import pytest
from fastapi.testclient import TestClient
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine

from taskengine.dependencies import get_session
from taskengine.main import app
from taskengine.models.enums import ServiceType
from taskengine.models.service_config import ServiceConfiguration


@pytest.fixture(name="engine")
def engine_fixture():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(engine)
    yield engine
    SQLModel.metadata.drop_all(engine)


@pytest.fixture(name="session")
def session_fixture(engine):
    with Session(engine) as session:
        yield session


@pytest.fixture(name="session_factory")
def session_factory_fixture(engine):
    return lambda: Session(engine)


@pytest.fixture(name="client")
def client_fixture(session):
    app.dependency_overrides[get_session] = lambda: session
    client = TestClient(app)
    yield client
    app.dependency_overrides.clear()


@pytest.fixture
def weather_config(session):
    config = ServiceConfiguration(
        service_name="Weather Service",
        service_type=ServiceType.MOCK,
        mock_template_id="weather_service_mock",
        timeout_seconds=30,
    )
    session.add(config)
    session.commit()
    session.refresh(config)
    return config


@pytest.fixture
def http_config(session):
    config = ServiceConfiguration(
        service_name="Credit Check",
        service_type=ServiceType.REAL,
        endpoint_url="http://credit.example.com/check",
        http_method="POST",
        timeout_seconds=5,
        authentication={"type": "api_key", "api_key": "secret-key"},
    )
    session.add(config)
    session.commit()
    session.refresh(config)
    return config
