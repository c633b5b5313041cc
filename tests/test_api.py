import httpx
import pytest

from codebuilder import main
from codebuilder.code_generator import CodeGenerator
from codebuilder.file_store import INDEX_KEY, FileStore
from codebuilder.kv_store import StoreUnavailableError


def test_file_lifecycle_scenario(client):
    resp = client.post("/api/files", json={"name": "a.js", "language": "javascript", "content": "x"})
    assert resp.status_code == 200
    assert resp.json() == {"success": True, "id": "id1"}

    resp = client.get("/api/files")
    assert resp.status_code == 200
    assert resp.json() == {
        "files": [{"id": "id1", "name": "a.js", "language": "javascript", "content": "x"}]
    }

    resp = client.post(
        "/api/files",
        json={"id": "id1", "name": "a.js", "language": "javascript", "content": "y"},
    )
    assert resp.json() == {"success": True, "id": "id1"}
    files = client.get("/api/files").json()["files"]
    assert len(files) == 1
    assert files[0]["content"] == "y"

    resp = client.request("DELETE", "/api/files", json={"id": "id1"})
    assert resp.status_code == 200
    assert resp.json() == {"success": True}
    assert client.get("/api/files").json() == {"files": []}

    # Second delete is a no-op success
    resp = client.request("DELETE", "/api/files", json={"id": "id1"})
    assert resp.status_code == 200


def test_omitted_content_lists_as_empty(client):
    client.post("/api/files", json={"name": "empty.py", "language": "python"})
    assert client.get("/api/files").json()["files"][0]["content"] == ""


def test_upsert_without_name_is_rejected(client, backend):
    client.post("/api/files", json={"name": "a.js", "language": "javascript"})
    before = backend._data[INDEX_KEY]

    resp = client.post("/api/files", json={"language": "javascript", "content": "z"})
    assert resp.status_code == 400
    assert "name" in resp.json()["error"]
    assert backend._data[INDEX_KEY] == before


def test_upsert_without_language_is_rejected(client):
    resp = client.post("/api/files", json={"name": "a.js"})
    assert resp.status_code == 400
    assert "language" in resp.json()["error"]


def test_delete_without_id_is_rejected(client):
    resp = client.request("DELETE", "/api/files", json={})
    assert resp.status_code == 400
    assert "id" in resp.json()["error"]


def test_malformed_body_is_rejected(client):
    resp = client.post("/api/files", content=b"not json", headers={"Content-Type": "application/json"})
    assert resp.status_code == 400
    assert resp.json()["error"] == "Invalid request body"


def test_unsupported_method(client):
    resp = client.put("/api/files", json={"name": "a.js", "language": "javascript"})
    assert resp.status_code == 405
    assert resp.json()["error"] == "Method Not Allowed"


def test_strict_mode_unknown_id_is_404(client, monkeypatch, backend):
    monkeypatch.setattr(main, "file_store", FileStore(backend, strict_updates=True))
    resp = client.post("/api/files", json={"id": "ghost", "name": "a.js", "language": "javascript"})
    assert resp.status_code == 404
    assert resp.json()["error"] == "File not found"


def test_backend_failure_is_500(client, monkeypatch, store):
    async def unreachable(key):
        raise StoreUnavailableError("Redis get failed for files:index: connection refused")

    monkeypatch.setattr(store.backend, "get", unreachable)
    resp = client.get("/api/files")
    assert resp.status_code == 500
    assert "connection refused" in resp.json()["error"]

    resp = client.post("/api/files", json={"name": "a.js", "language": "javascript"})
    assert resp.status_code == 500


def test_serverless_path_alias(client):
    client.post("/.netlify/functions/api/files", json={"name": "a.js", "language": "javascript"})
    assert len(client.get("/api/files").json()["files"]) == 1


def test_generate_stub_for_python(client):
    resp = client.post(
        "/api/generate",
        json={"prompt": "hello world", "language": "python", "context": "existing code"},
    )
    assert resp.status_code == 200
    body = resp.json()
    assert body["success"] is True
    assert body["code"].startswith("// Generated stub for: hello world\n")
    assert "def main():" in body["code"]
    assert "# Context (truncated):\n# existing code\n" in body["code"]


@pytest.mark.parametrize("payload", [
    {"language": "python"},
    {"prompt": "x"},
    {"prompt": "", "language": "python"},
])
def test_generate_requires_prompt_and_language(client, payload):
    resp = client.post("/api/generate", json=payload)
    assert resp.status_code == 400
    assert resp.json()["error"] == "Missing required parameters: prompt and language"


def test_generate_upstream_failure_is_500(client, monkeypatch):
    transport = httpx.MockTransport(lambda request: httpx.Response(502, json={"error": "bad gateway"}))
    generator = CodeGenerator(api_key="k", base_url="https://llm.example.com", transport=transport)
    monkeypatch.setattr(main, "code_generator", generator)

    resp = client.post("/api/generate", json={"prompt": "x", "language": "python"})
    assert resp.status_code == 500
    assert resp.json()["error"] == "Error generating code: bad gateway"


def test_health(client):
    resp = client.get("/health")
    assert resp.status_code == 200
    assert resp.json()["status"] == "ok"


def test_build_file_store_from_config(monkeypatch):
    monkeypatch.setattr(main, "STORE_BACKEND", "memory")
    monkeypatch.setattr(main, "ID_SCHEME", "time")
    monkeypatch.setattr(main, "CONSISTENCY_MODE", "optimistic")
    store = main.build_file_store()
    assert store.consistency == "optimistic"
    assert store.id_factory().isdigit()

    monkeypatch.setattr(main, "ID_SCHEME", "sequential")
    with pytest.raises(ValueError):
        main.build_file_store()


def test_malformed_index_entry_is_500(client, backend):
    backend._data[INDEX_KEY] = '[{"name": "a.js"}]'
    resp = client.get("/api/files")
    assert resp.status_code == 500
    assert "malformed" in resp.json()["error"]


def test_exhausted_id_factory_is_500(client, monkeypatch, backend):
    monkeypatch.setattr(main, "file_store", FileStore(backend, id_factory=lambda: "same"))
    assert client.post("/api/files", json={"name": "a.js", "language": "javascript"}).status_code == 200

    resp = client.post("/api/files", json={"name": "b.js", "language": "javascript"})
    assert resp.status_code == 500
    assert "No unused file id" in resp.json()["error"]
