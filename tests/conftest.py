"""Pytest fixtures for the library sync tests."""

import pytest
from library_fakes import (
    FakeLibraryGateway,
    ListenerRecorder,
    RecordingDerivedCache,
    RecordingLibraryStore,
)


@pytest.fixture
def journal() -> list[str]:
    """Shared write journal of the store and the derived cache, in call order."""
    return []


@pytest.fixture
def gateway() -> FakeLibraryGateway:
    return FakeLibraryGateway()


@pytest.fixture
def store(journal: list[str]) -> RecordingLibraryStore:
    return RecordingLibraryStore(journal)


@pytest.fixture
def derived_cache(journal: list[str]) -> RecordingDerivedCache:
    return RecordingDerivedCache(journal)


@pytest.fixture
def recorder() -> ListenerRecorder:
    return ListenerRecorder()
