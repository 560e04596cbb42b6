import os

# before importing logistics: the engine is built at import time
os.environ.setdefault("secret_key", "test_secret")
os.environ.setdefault("database_url", "sqlite://")
os.environ.setdefault("log_json", "false")

import pytest
from fastapi.testclient import TestClient
from sqlmodel import SQLModel, create_engine
from sqlalchemy.pool import StaticPool

from logistics.db import get_session, new_session
from logistics.main import app
from logistics.models import StockItem, User
from logistics.roles import Actor
from logistics.security import create_access_token


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session(engine):
    with new_session(engine) as session:
        yield session


@pytest.fixture
def client(engine):
    def override_get_session():
        with new_session(engine) as session:
            yield session

    app.dependency_overrides[get_session] = override_get_session
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


def _user(session, username, role):
    user = User(username=username, name=username.title(), role=role)
    session.add(user)
    session.commit()
    session.refresh(user)
    return user


@pytest.fixture
def requester(session):
    return _user(session, "private", "User")


@pytest.fixture
def admin(session):
    return _user(session, "captain", "Admin")


@pytest.fixture
def officer(session):
    return _user(session, "quartermaster", "LogisticsOfficer")


@pytest.fixture
def sysadmin(session):
    return _user(session, "root", "SystemAdmin")


def actor(user):
    return Actor.of(user.id, user.role)


def auth(user):
    return {"Authorization": f"Bearer {create_access_token(user.id)}"}


def add_stock(session, name="Rifle", quantity=50, min_quantity=10, unit="pcs", location="Armory"):
    item = StockItem(
        name=name,
        category="equipment",
        quantity=quantity,
        min_quantity=min_quantity,
        unit=unit,
        location=location,
    )
    session.add(item)
    session.commit()
    session.refresh(item)
    return item
