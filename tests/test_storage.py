from pathlib import Path

import pytest
import requests

from civicsync.core.config import settings
from civicsync.core.errors import DependencyError
from civicsync.services import storage


@pytest.fixture
def local_storage(tmp_path, monkeypatch):
    monkeypatch.setattr(settings, "supabase_url", None)
    monkeypatch.setattr(settings, "upload_dir", str(tmp_path))
    monkeypatch.setattr(settings, "public_base_url", "http://cdn.local/")
    return tmp_path


@pytest.fixture
def supabase(monkeypatch):
    monkeypatch.setattr(settings, "supabase_url", "https://proj.supabase.co")
    monkeypatch.setattr(settings, "supabase_service_role", "service-key")
    monkeypatch.setattr(settings, "supabase_bucket", "issue-images")


class FakeResponse:
    def __init__(self, status_code):
        self.status_code = status_code
        self.ok = 200 <= status_code < 300

    def raise_for_status(self):
        if not self.ok:
            raise requests.HTTPError(f"HTTP {self.status_code}")


def test_local_store_and_delete(local_storage):
    stored = storage.store(b"img", "photo.JPG", "image/jpeg", folder="issues")

    assert stored["public_id"].startswith("issues/")
    assert stored["public_id"].endswith(".jpg")
    assert stored["url"] == f"http://cdn.local/uploads/{stored['public_id']}"
    assert (Path(local_storage) / stored["public_id"]).read_bytes() == b"img"

    assert storage.delete(stored["public_id"])["result"] == "ok"
    assert storage.delete(stored["public_id"])["result"] == "not found"


def test_local_paths_stay_inside_upload_dir(local_storage):
    with pytest.raises(DependencyError):
        storage.delete("../../etc/passwd")


def test_supabase_store_posts_object(supabase, monkeypatch):
    calls = []

    def fake_post(url, headers=None, data=None, timeout=None):
        calls.append((url, headers))
        return FakeResponse(200)

    monkeypatch.setattr(storage.requests, "post", fake_post)
    stored = storage.store(b"img", "a.png", "image/png")

    url, headers = calls[0]
    assert url == f"https://proj.supabase.co/storage/v1/object/issue-images/{stored['public_id']}"
    assert headers["Authorization"] == "Bearer service-key"
    assert stored["url"] == f"https://proj.supabase.co/storage/v1/object/public/issue-images/{stored['public_id']}"


def test_supabase_store_failure_is_a_dependency_error(supabase, monkeypatch):
    monkeypatch.setattr(storage.requests, "post", lambda *a, **kw: FakeResponse(500))
    with pytest.raises(DependencyError):
        storage.store(b"img", "a.png", "image/png")


@pytest.mark.parametrize("status, result", [(200, "ok"), (400, "not found"), (404, "not found")])
def test_supabase_delete_results(supabase, monkeypatch, status, result):
    monkeypatch.setattr(storage.requests, "delete", lambda *a, **kw: FakeResponse(status))
    assert storage.delete("issues/x.png")["result"] == result


def test_discard_swallows_failures(supabase, monkeypatch):
    monkeypatch.setattr(storage.requests, "delete", lambda *a, **kw: FakeResponse(503))
    storage.discard(["issues/a.png", "issues/b.png"])
