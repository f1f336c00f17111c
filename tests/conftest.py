"""
Pytest fixtures for the workflow engine test suite.

Provides:
- In-memory SQLite database sessions (tables created per test)
- An in-memory entity adapter standing in for the host system
- The editorial workflow used across service tests
- Engine, command and scheduler wiring with a deterministic clock
"""

import json
import logging
from dataclasses import dataclass, field
from io import StringIO
from typing import Any

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from workflow_kernel.db.base import Base
from workflow_kernel.db.engine import enable_sqlite_savepoints
from workflow_kernel.db.immutability import (
    register_immutability_listeners,
    unregister_immutability_listeners,
)
from workflow_kernel.domain.clock import DeterministicClock
from workflow_kernel.domain.entity import EntityRef
from workflow_kernel.domain.observers import ObserverRegistry
from workflow_kernel.domain.workflow import (
    ConfigTransition,
    State,
    WorkflowRegistry,
    WorkflowSettings,
    WorkflowType,
)
from workflow_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from workflow_kernel.services.authorization import (
    AuthorizationEngine,
    StaticCapabilityProvider,
)
from workflow_kernel.services.commands import WorkflowCommands
from workflow_kernel.services.definition import WorkflowDefinition
from workflow_kernel.services.execution_engine import ExecutionEngine

import workflow_kernel.models.transition  # noqa: F401

from workflow_batch.services.scheduler import Scheduler

AUTHOR_ID = "100"
EDITOR_ID = "200"
ADMIN_ID = "1"
STRANGER_ID = "300"

ENTITY_TYPE = "article"


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "slow: runs the scheduler's background thread"
    )


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture workflow_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, engine):
            engine.execute(...)
            logs = captured_logs()
            assert any(r["message"] == "workflow_transition" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("workflow_kernel")
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)


# =============================================================================
# Database fixtures
# =============================================================================


@pytest.fixture
def db_engine():
    # One shared connection so every session (and the scheduler thread) sees
    # the same in-memory database
    eng = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    enable_sqlite_savepoints(eng)
    Base.metadata.create_all(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session_factory(db_engine):
    return sessionmaker(bind=db_engine, expire_on_commit=False)


@pytest.fixture
def session(session_factory) -> Session:
    s = session_factory()
    try:
        yield s
    finally:
        s.close()


@pytest.fixture(autouse=True)
def _immutability_listeners():
    register_immutability_listeners()
    yield
    unregister_immutability_listeners()


@pytest.fixture
def clock():
    return DeterministicClock()


# =============================================================================
# Host system stand-ins
# =============================================================================


@dataclass
class Article:
    """A host entity with one or more workflow fields."""

    entity_id: str | None
    owner_id: str | None = None
    fields: dict[str, Any] = field(default_factory=dict)
    is_new: bool = False
    changed: int | None = None
    save_count: int = 0


class InMemoryEntityAdapter:
    """EntityAdapter over a dict of articles."""

    def __init__(self, entity_type: str = ENTITY_TYPE):
        self.entity_type = entity_type
        self.articles: dict[str, Article] = {}
        self.set_calls: list[tuple[str | None, str, str | None]] = []
        self._next_id = 1

    def add(self, article: Article) -> Article:
        if article.entity_id is not None:
            self.articles[article.entity_id] = article
        return article

    def remove(self, entity_id: str) -> None:
        self.articles.pop(entity_id, None)

    def load(self, ref: EntityRef) -> Article | None:
        if ref.entity_type != self.entity_type or ref.entity_id is None:
            return None
        return self.articles.get(str(ref.entity_id))

    def ref_of(self, entity: Article) -> EntityRef:
        return EntityRef(self.entity_type, entity.entity_id)

    def get_current_state_value(self, entity: Article, field_name: str) -> str | None:
        return entity.fields.get(field_name)

    def set_state_value(self, entity: Article, field_name: str, state_id: str | None) -> None:
        self.set_calls.append((entity.entity_id, field_name, state_id))
        entity.fields[field_name] = state_id

    def get_owner_id(self, entity: Article) -> str | None:
        return entity.owner_id

    def get_id(self, entity: Article) -> str | None:
        return entity.entity_id

    def is_new(self, entity: Article) -> bool:
        return entity.is_new

    def save(self, entity: Article) -> None:
        if entity.entity_id is None:
            entity.entity_id = f"a{self._next_id}"
            self._next_id += 1
        entity.is_new = False
        entity.save_count += 1
        self.articles[entity.entity_id] = entity

    def set_changed_time(self, entity: Article, timestamp: int) -> None:
        entity.changed = timestamp


@pytest.fixture
def entities():
    return InMemoryEntityAdapter()


@pytest.fixture
def article(entities):
    """A saved article owned by AUTHOR_ID, still in the creation state."""
    return entities.add(Article(entity_id="42", owner_id=AUTHOR_ID, fields={"": "draft"}))


@pytest.fixture
def capabilities():
    return StaticCapabilityProvider({
        AUTHOR_ID: {"submit"},
        EDITOR_ID: {"submit", "publish"},
    })


# =============================================================================
# Workflow definitions
# =============================================================================


def make_editorial(**settings: Any) -> WorkflowType:
    """draft (creation) -> review -> published, plus an inactive archive."""
    return WorkflowType(
        workflow_id="editorial",
        label="Editorial",
        states=(
            State("draft", "Draft", weight=0, is_creation_state=True),
            State("review", "Review", weight=1),
            State("published", "Published", weight=2),
            State("archived", "Archived", weight=3, is_active=False),
        ),
        config_transitions=(
            ConfigTransition("editorial", "draft", "draft", ("submit",), author_may=True),
            ConfigTransition("editorial", "draft", "review", ("submit",)),
            ConfigTransition("editorial", "review", "published", ("publish",)),
            ConfigTransition("editorial", "review", "draft", ("publish",)),
            ConfigTransition("editorial", "published", "review", ("publish",)),
        ),
        settings=WorkflowSettings(**settings),
    )


def make_support() -> WorkflowType:
    return WorkflowType(
        workflow_id="support",
        label="Support",
        states=(
            State("open", "Open", is_creation_state=True),
            State("closed", "Closed", weight=1),
        ),
        config_transitions=(
            ConfigTransition("support", "open", "closed", author_may=True),
        ),
    )


@pytest.fixture
def editorial():
    return make_editorial()


@pytest.fixture
def registry(editorial):
    return WorkflowRegistry([editorial, make_support()])


# =============================================================================
# Service wiring
# =============================================================================


@pytest.fixture
def authorization(registry, capabilities, entities):
    return AuthorizationEngine(registry, capabilities, entities)


@pytest.fixture
def observers():
    return ObserverRegistry()


@pytest.fixture
def outcome_records():
    return []


@pytest.fixture
def engine(session, registry, authorization, entities, observers, clock, outcome_records):
    return ExecutionEngine(
        session,
        registry,
        authorization,
        entities,
        observers=observers,
        clock=clock,
        outcome_sink=outcome_records.append,
    )


@pytest.fixture
def definition(registry, authorization):
    return WorkflowDefinition(registry, authorization)


@pytest.fixture
def commands(engine, definition, authorization, entities):
    return WorkflowCommands(engine, definition, authorization, entities)


@pytest.fixture
def scheduler(session_factory, registry, authorization, entities, clock):
    def engine_factory(s: Session) -> ExecutionEngine:
        return ExecutionEngine(s, registry, authorization, entities, clock=clock)

    return Scheduler(
        session_factory=session_factory,
        engine_factory=engine_factory,
        clock=clock,
        tick_interval_seconds=1,
    )
