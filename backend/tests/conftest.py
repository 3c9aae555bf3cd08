"""
Test configuration and fixtures for the editorial workflow backend.

The record store is an in-memory ``mongomock-motor`` database; the notifier,
DOI registrar and blob store collaborators are mocks injected through
``EditorialServices.build``.
"""

from datetime import datetime
from typing import Any, AsyncGenerator, Dict, List, Optional
from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio
from faker import Faker
from httpx import ASGITransport, AsyncClient
from mongomock_motor import AsyncMongoMockClient

from editorial.main import app
from editorial.core.config import Settings
from editorial.core.error_handling import ExternalFailureError
from editorial.models import (
    Author,
    EditorialDecision,
    ManuscriptCreate,
    ManuscriptFile,
    ManuscriptInDB,
    NotificationType,
    Role,
    UserCreate,
    UserInDB,
)
from editorial.services.container import EditorialServices
from editorial.services.doi_registrar import MockDoiRegistrar

# Initialize faker for test data generation
fake = Faker()

TEST_DATABASE_NAME = "editorial_workflow_test"


class ScriptedRegistrar:
    """
    DOI registrar whose outcomes can be scripted per manuscript.

    Manuscripts listed in ``failures`` get an ``ExternalFailureError``;
    ``forced`` maps a manuscript to the DOI the registrar will hand back.
    Everything else is minted by the mock registrar.
    """

    def __init__(self):
        self.minter = MockDoiRegistrar(prefix="10.12345", slug="pujms")
        self.failures: Dict[str, str] = {}
        self.forced: Dict[str, str] = {}
        self.calls: List[Dict[str, Any]] = []

    def fail_for(self, manuscript_id: str, message: str = "Registrar unavailable") -> None:
        self.failures[manuscript_id] = message

    async def assign_doi(self, metadata: Dict[str, Any]) -> str:
        self.calls.append(metadata)
        manuscript_id = metadata["manuscript_id"]
        if manuscript_id in self.failures:
            raise ExternalFailureError(self.failures[manuscript_id], service="doi_registrar")
        if manuscript_id in self.forced:
            return self.forced[manuscript_id]
        return await self.minter.assign_doi(metadata)


@pytest.fixture
def test_settings() -> Settings:
    return Settings(
        journal_prefix="PUJMS",
        client_url="https://journal.example.org",
        doi_prefix="10.12345",
        review_due_days=14,
        min_reviewers=2,
        bulk_retry_limit=50,
    )


@pytest.fixture
def db():
    """Fresh in-memory database for each test."""
    client = AsyncMongoMockClient()
    return client[TEST_DATABASE_NAME]


@pytest.fixture
def notifier() -> MagicMock:
    mock_notifier = MagicMock()
    mock_notifier.notify = AsyncMock(return_value=None)
    return mock_notifier


@pytest.fixture
def registrar() -> ScriptedRegistrar:
    return ScriptedRegistrar()


@pytest.fixture
def blob_store() -> MagicMock:
    """Mock blob store for testing."""
    mock_store = MagicMock()
    mock_store.delete_file = AsyncMock(return_value=None)
    mock_store.open_stream = AsyncMock()
    return mock_store


@pytest.fixture
def services(db, notifier, registrar, blob_store, test_settings) -> EditorialServices:
    return EditorialServices.build(
        db,
        notifier=notifier,
        registrar=registrar,
        blob_store=blob_store,
        config=test_settings,
    )


@pytest.fixture
def make_user(services: EditorialServices):
    """Factory for persisted users with the given roles."""

    async def _make_user(*roles: Role, is_active: bool = True) -> UserInDB:
        user = await services.users.create_user(UserCreate(
            email=fake.unique.email(),
            first_name=fake.first_name(),
            last_name=fake.last_name(),
            affiliation=fake.company(),
            roles=[Role(r).value for r in (roles or (Role.AUTHOR,))],
        ))
        if not is_active:
            await services.users._get_collection().update_one({"_id": user.id}, {"$set": {"is_active": False}})
            user.is_active = False
        return user

    return _make_user


@pytest_asyncio.fixture
async def author(make_user) -> UserInDB:
    return await make_user(Role.AUTHOR)


@pytest_asyncio.fixture
async def editor(make_user) -> UserInDB:
    return await make_user(Role.EDITOR)


@pytest_asyncio.fixture
async def admin(make_user) -> UserInDB:
    return await make_user(Role.ADMIN)


@pytest_asyncio.fixture
async def reviewers(make_user) -> List[UserInDB]:
    return [await make_user(Role.REVIEWER) for _ in range(3)]


def make_file(original_name: str = None, size: int = 1024, upload_date: datetime = None,
              file_type: str = "manuscript") -> ManuscriptFile:
    original_name = original_name or f"{fake.word()}.pdf"
    return ManuscriptFile(
        file_id=f"manuscripts/{fake.uuid4()}/{original_name}",
        filename=original_name.lower().replace(" ", "_"),
        original_name=original_name,
        file_type=file_type,
        size=size,
        upload_date=upload_date or datetime(2026, 1, 5, 12, 0, 0),
    )


def make_submission(**overrides) -> ManuscriptCreate:
    data = {
        "title": fake.sentence(nb_words=8),
        "abstract": fake.paragraph(nb_sentences=5),
        "keywords": [fake.word(), fake.word()],
        "authors": [
            Author(
                first_name=fake.first_name(),
                last_name=fake.last_name(),
                email=fake.email(),
                affiliation=fake.company(),
                is_corresponding=True,
            ),
            Author(
                first_name=fake.first_name(),
                last_name=fake.last_name(),
                email=fake.email(),
                affiliation=fake.company(),
                orcid="0000-0002-1825-0097",
            ),
        ],
        "files": [make_file("main.pdf")],
    }
    data.update(overrides)
    return ManuscriptCreate(**data)


@pytest.fixture
def submit(services: EditorialServices, author: UserInDB):
    """Submit a manuscript as the default author."""

    async def _submit(actor: Optional[UserInDB] = None, **overrides) -> ManuscriptInDB:
        return await services.manuscripts.create_manuscript(make_submission(**overrides), actor or author)

    return _submit


@pytest.fixture
def accepted_manuscript(services: EditorialServices, submit, editor: UserInDB):
    """Drive a fresh submission straight to Accepted."""

    async def _accepted(**overrides) -> ManuscriptInDB:
        manuscript = await submit(**overrides)
        await services.manuscripts.assign_editor(manuscript.id, editor.id, editor)
        return await services.manuscripts.make_decision(
            manuscript.id, EditorialDecision.ACCEPT.value, "Well argued.", editor
        )

    return _accepted


def notification_types(notifier: MagicMock) -> List[str]:
    return [NotificationType(call.args[1]).value for call in notifier.notify.call_args_list]


@pytest_asyncio.fixture
async def async_client(services: EditorialServices) -> AsyncGenerator[AsyncClient, None]:
    """Create async test client bound to the test services."""
    app.state.services = services
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test"
    ) as ac:
        yield ac


def headers_for(user: UserInDB) -> Dict[str, str]:
    return {"X-User-Id": str(user.id)}
