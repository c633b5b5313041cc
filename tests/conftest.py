import sys
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

ROOT = Path(__file__).resolve().parents[1]
root_str = str(ROOT)
if root_str not in sys.path:
    sys.path.insert(0, root_str)

from codebuilder import main  # noqa: E402
from codebuilder.code_generator import CodeGenerator  # noqa: E402
from codebuilder.file_store import FileStore  # noqa: E402
from codebuilder.kv_store import MemoryKeyValueStore  # noqa: E402

from .utils import sequential_ids  # noqa: E402


@pytest.fixture
def backend():
    return MemoryKeyValueStore()


@pytest.fixture
def store(backend):
    return FileStore(backend, id_factory=sequential_ids())


@pytest.fixture
def client(monkeypatch, store):
    """TestClient wired to a fresh in-memory store and a stub-mode generator."""
    monkeypatch.setattr(main, "file_store", store)
    monkeypatch.setattr(main, "code_generator", CodeGenerator(api_key=None, base_url=None))
    return TestClient(main.app)
