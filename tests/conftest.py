"""Shared pytest fixtures for all tests."""

import pytest

from app.assembly import AssemblyCoordinator
from app.chunk_store import ChunkStore
from app.session import UploadSession


@pytest.fixture
def upload_dir(tmp_path):
    path = tmp_path / "uploads"
    path.mkdir()
    return path


@pytest.fixture
def store():
    return ChunkStore()


@pytest.fixture
def coordinator(store, upload_dir):
    return AssemblyCoordinator(store, str(upload_dir))


@pytest.fixture
def new_session(store, coordinator):
    """Sessions sharing one store and coordinator."""
    def factory(max_chunk_size: int = 1024):
        return UploadSession(store, coordinator, max_chunk_size)

    return factory
