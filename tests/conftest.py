"""Shared pytest fixtures for LinkUp tests."""

import pytest
from pathlib import Path

from linkup.config import GroupConfig, LinkUpConfig, Member
from linkup.engine import PlanningEngine
from linkup.storage import MemoryStore, SessionStore

from tests.fixtures import AYAH, BALAWAL, CHAT, FakeClock, InMemoryTransport, ScriptedDecisionService


# =============================================================================
# Configuration
# =============================================================================

@pytest.fixture
def group() -> GroupConfig:
    """A two-member group."""
    return GroupConfig(
        chat_id=CHAT,
        name="The Besties",
        members=(
            Member(name="Ayah", contact=AYAH),
            Member(name="Balawal", contact=BALAWAL),
        ),
    )


@pytest.fixture
def config(tmp_path: Path, group: GroupConfig) -> LinkUpConfig:
    return LinkUpConfig(data_dir=tmp_path / "data", groups=(group,))


# =============================================================================
# Collaborators
# =============================================================================

@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store(config: LinkUpConfig) -> SessionStore:
    return SessionStore(config.state_path)


@pytest.fixture
def service() -> ScriptedDecisionService:
    return ScriptedDecisionService()


@pytest.fixture
def transport() -> InMemoryTransport:
    return InMemoryTransport()


@pytest.fixture
def memory() -> MemoryStore:
    """A memory store with no database: every query answers 'no history'."""
    return MemoryStore(None)


@pytest.fixture
def engine(config, store, service, transport, memory, clock) -> PlanningEngine:
    return PlanningEngine(config, store, service, transport, memory, clock=clock)
