import os
import tempfile
from datetime import datetime, timezone

# Configuração precisa existir antes do primeiro import do pacote
_tmp_dir = tempfile.mkdtemp(prefix="reservas-tests-")
os.environ["DATABASE_URL"] = f"sqlite:///{_tmp_dir}/test.db"
os.environ["RATE_LIMIT"] = "10000/minute"
os.environ["LOGIN_RATE_LIMIT"] = "10000/minute"
os.environ["MAIL_ENABLED"] = "false"
os.environ["TIMEZONE"] = "UTC"
os.environ["LOG_DIR"] = f"{_tmp_dir}/logs"

import pytest
from fastapi.testclient import TestClient

from reservas.core.config import settings
from reservas.db import schemas
from reservas.db.models import Base
from reservas.db.session import SessionLocal, engine
from reservas.main import app
from reservas.services.booking_service import BookingService
from reservas.services.store import EntityStore

# "Agora" fixo para os testes de serviço: as reservas de março de 2024 estão no futuro
NOW = datetime(2024, 2, 1, 12, 0, tzinfo=timezone.utc)
PASSWORD = "senha-segura"


def at(day: int, hour: int, minute: int = 0, month: int = 3, year: int = 2024) -> datetime:
    return datetime(year, month, day, hour, minute, tzinfo=timezone.utc)


@pytest.fixture(autouse=True)
def database():
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def store(db):
    return EntityStore(db)


@pytest.fixture
def booking(store):
    return BookingService(store, clock=lambda: NOW, tz=timezone.utc)


@pytest.fixture
def make_user(store):
    def _make(name="Prof. Diego", role="professor", email=None):
        email = email or f"{name.lower().replace(' ', '.').replace('..', '.')}@estacio.br"
        return store.create_user(schemas.UserAdminCreate(name=name, email=email, password=PASSWORD, role=role))
    return _make


@pytest.fixture
def environment_type(store):
    return store.create_environment_type("Laboratório")


@pytest.fixture
def make_environment(store, environment_type):
    def _make(name, resource_ids=()):
        return store.create_environment(schemas.EnvironmentCreate(
            name=name, location="Bloco C", type_id=environment_type.id, resource_ids=list(resource_ids)))
    return _make


@pytest.fixture
def client():
    with TestClient(app) as c:
        yield c


@pytest.fixture
def auth_headers(client, make_user):
    """Cria um usuário com o perfil pedido e devolve (usuário, cabeçalhos com o token)."""
    def _login(role="professor", name=None):
        user = make_user(name=name or f"Usuario {role}", role=role)
        response = client.post(f"{settings.API_V1_STR}/auth/token",
                               data={"username": user.email, "password": PASSWORD})
        assert response.status_code == 200, response.text
        return user, {"Authorization": f"Bearer {response.json()['access_token']}"}
    return _login
