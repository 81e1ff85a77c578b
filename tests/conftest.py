"""Shared fixtures.

Each test gets its own SQLite database file under tmp_path, an in-memory undo
slot and freshly wired components.
"""
import pytest

from ideaflow_core.attachments import LocalAttachmentStorage
from ideaflow_core.config import Settings
from ideaflow_core.database import create_engine, create_session_factory, init_models
from ideaflow_core.models import IdeaStatus
from ideaflow_core.permissions import Role
from ideaflow_core.schemas import Actor, IdeaCreate, TaskCreate, UserRef
from ideaflow_core.services import build_services
from ideaflow_core.store import SqlAlchemyEntityStore
from ideaflow_core.undo import MemoryKeyValueStore


# ===== Settings & database =====


@pytest.fixture
def test_settings(tmp_path) -> Settings:
    return Settings(
        _env_file=None,
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'ideaflow_test.db'}",
        attachment_dir=str(tmp_path / "attachments"),
        undo_state_path=str(tmp_path / "state.json"),
    )


@pytest.fixture
async def test_engine(test_settings: Settings):
    engine = create_engine(test_settings.database_url)
    await init_models(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def store(test_engine, test_settings: Settings) -> SqlAlchemyEntityStore:
    return SqlAlchemyEntityStore(
        create_session_factory(test_engine),
        attachment_storage=LocalAttachmentStorage(test_settings.attachment_dir, test_settings.attachment_base_url),
    )


@pytest.fixture
def kv() -> MemoryKeyValueStore:
    return MemoryKeyValueStore()


@pytest.fixture
def services(test_settings, store, kv):
    return build_services(test_settings, store, kv=kv)


@pytest.fixture
def workflow(services):
    return services.workflow


@pytest.fixture
def coordinator(services):
    return services.approvals


# ===== Actors =====


@pytest.fixture
def admin() -> Actor:
    return Actor(id=1, name="Alex Admin", email="alex@example.com", roles=[Role.ADMIN])


@pytest.fixture
def approver() -> Actor:
    return Actor(id=2, name="Riley Reviewer", email="riley@example.com", roles=[Role.APPROVER])


@pytest.fixture
def contributor() -> Actor:
    return Actor(id=3, name="Casey Contributor", email="casey@example.com", roles=[Role.CONTRIBUTOR])


@pytest.fixture
def outsider() -> Actor:
    return Actor(id=9, name="No Roles", roles=[])


# ===== Data =====


@pytest.fixture
async def pending_idea(workflow, contributor):
    return await workflow.submit_idea(
        IdeaCreate(title="Reduce onboarding time", description="Shorter setup guide", category="Process"),
        contributor,
    )


@pytest.fixture
async def approved_idea(workflow, pending_idea, approver):
    idea = await workflow.transition(pending_idea.id, IdeaStatus.APPROVED, approver)
    assert idea.status == IdeaStatus.APPROVED
    return idea


@pytest.fixture
def task_data(contributor) -> TaskCreate:
    return TaskCreate(
        title="Write setup checklist",
        assigned_to=[UserRef(id=contributor.id, name=contributor.name, email=contributor.email)],
    )
