"""Shared fixtures: in-memory database, scripted Gemini transport, API client."""

import json
import os

os.environ.setdefault("GEMINI_API_KEY", "test-key")
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("JWT_SECRET_KEY", "test-secret")
os.environ["ADMIN_USERNAME"] = "admin"
os.environ["ADMIN_PASSWORD"] = "admin123"

import httpx
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from compasses.db import get_db, init_db
from compasses.gateway import EvaluationGateway, get_gateway
from compasses.gemini_client import GeminiClient
from compasses.main import app


def gemini_json(payload):
	"""A generateContent response whose text part is ``payload`` as JSON."""
	return httpx.Response(200, json={"candidates": [{"content": {"parts": [{"text": json.dumps(payload)}]}}]})


def gemini_text(text):
	return httpx.Response(200, json={"candidates": [{"content": {"parts": [{"text": text}]}}]})


def gemini_quota():
	return httpx.Response(
		429,
		json={"error": {"code": 429, "message": "Resource has been exhausted (e.g. check quota).", "status": "RESOURCE_EXHAUSTED"}},
	)


class FakeGemini:
	"""Records Gemini requests and answers them with ``self.handler``."""

	def __init__(self):
		self.requests = []
		self.handler = lambda request: gemini_quota()

	def _handle(self, request):
		self.requests.append(json.loads(request.content))
		return self.handler(request)

	def client(self):
		return GeminiClient(api_key="test-key", transport=httpx.MockTransport(self._handle))

	def gateway(self):
		return EvaluationGateway(client_factory=self.client)


@pytest.fixture
def gemini():
	return FakeGemini()


@pytest.fixture
def db_engine():
	engine = create_engine(
		"sqlite://",
		connect_args={"check_same_thread": False},
		poolclass=StaticPool,
		future=True,
	)
	init_db(engine)
	yield engine
	engine.dispose()


@pytest.fixture
def db_factory(db_engine):
	return sessionmaker(autocommit=False, autoflush=False, bind=db_engine, future=True)


@pytest.fixture
def db(db_factory):
	session = db_factory()
	yield session
	session.close()


@pytest.fixture
def client(db_factory, gemini):
	def _get_test_db():
		session = db_factory()
		try:
			yield session
		finally:
			session.close()

	app.dependency_overrides[get_db] = _get_test_db
	app.dependency_overrides[get_gateway] = gemini.gateway
	yield TestClient(app)
	app.dependency_overrides.clear()


def login(client, username, experience_years=3, password="secret"):
	r = client.post(
		"/api/auth/login",
		json={"username": username, "password": password, "experienceYears": experience_years},
	)
	assert r.status_code == 200, r.text
	return {"Authorization": f"Bearer {r.json()['token']}"}


def admin_headers(client):
	r = client.post("/api/auth/admin/login", json={"username": "admin", "password": "admin123"})
	assert r.status_code == 200, r.text
	return {"Authorization": f"Bearer {r.json()['token']}"}
