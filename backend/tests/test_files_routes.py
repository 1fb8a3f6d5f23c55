"""Tests for the file routes."""

import pytest
from httpx import AsyncClient


@pytest.fixture
def tree(root):
    (root / "docs").mkdir()
    (root / "docs" / "report.txt").write_text("hello report")
    (root / "docs" / "Archive").mkdir()
    (root / "inbox").mkdir()
    return root


class TestList:
    @pytest.mark.asyncio
    async def test_list_directories_first(self, client: AsyncClient, tree):
        resp = await client.get("/api/files/list", params={"path": "/docs"})
        assert resp.status_code == 200
        data = resp.json()
        assert data["path"] == "docs"
        assert data["stale"] is False
        assert data["generation"] >= 1
        assert [e["name"] for e in data["entries"]] == ["Archive", "report.txt"]
        report = data["entries"][1]
        assert report["isDirectory"] is False
        assert report["size"] == 12
        assert report["kind"] == "text"
        assert report["path"] == "docs/report.txt"

    @pytest.mark.asyncio
    async def test_list_missing_is_404(self, client: AsyncClient, tree):
        resp = await client.get("/api/files/list", params={"path": "nope"})
        assert resp.status_code == 404
        assert resp.json()["kind"] == "NotFound"

    @pytest.mark.asyncio
    async def test_traversal_is_400(self, client: AsyncClient, tree):
        resp = await client.get("/api/files/list", params={"path": "../../etc"})
        assert resp.status_code == 400
        body = resp.json()
        assert body["kind"] == "InvalidPath"
        assert body["detail"] == "Path escapes the storage root"

    @pytest.mark.asyncio
    async def test_file_is_not_a_directory(self, client: AsyncClient, tree):
        resp = await client.get("/api/files/list", params={"path": "docs/report.txt"})
        assert resp.status_code == 400
        assert resp.json()["kind"] == "NotADirectory"


class TestMutations:
    @pytest.mark.asyncio
    async def test_create_folder(self, client: AsyncClient, tree):
        await client.get("/api/files/list")
        resp = await client.post("/api/files/folder", json={"path": "new/nested"})
        assert resp.status_code == 201
        assert resp.json()["isDirectory"] is True
        assert (tree / "new" / "nested").is_dir()

        listing = await client.get("/api/files/list")
        assert "new" in [e["name"] for e in listing.json()["entries"]]

        again = await client.post("/api/files/folder", json={"path": "new/nested"})
        assert again.status_code == 409
        assert again.json()["kind"] == "AlreadyExists"

    @pytest.mark.asyncio
    async def test_rename(self, client: AsyncClient, tree):
        resp = await client.post(
            "/api/files/rename", json={"oldPath": "docs/report.txt", "newPath": "docs/final.txt"}
        )
        assert resp.status_code == 200
        assert resp.json()["name"] == "final.txt"
        assert (tree / "docs" / "final.txt").exists()

    @pytest.mark.asyncio
    async def test_delete_reports_per_item(self, client: AsyncClient, tree):
        resp = await client.post("/api/files/delete", json={"paths": ["docs", "ghost"]})
        assert resp.status_code == 200
        data = resp.json()
        assert data["deleted"] == ["docs"]
        assert data["errors"][0]["source"] == "ghost"
        assert data["errors"][0]["kind"] == "NotFound"
        assert not (tree / "docs").exists()

    @pytest.mark.asyncio
    async def test_paste_copy(self, client: AsyncClient, tree):
        resp = await client.post(
            "/api/files/paste",
            json={"operation": "copy", "sources": ["docs/report.txt"], "targetDir": "inbox"},
        )
        assert resp.status_code == 200
        assert resp.json()["processed"] == ["inbox/report.txt"]
        assert (tree / "inbox" / "report.txt").read_text() == "hello report"

    @pytest.mark.asyncio
    async def test_paste_rejects_unknown_operation(self, client: AsyncClient, tree):
        resp = await client.post(
            "/api/files/paste",
            json={"operation": "link", "sources": ["docs/report.txt"], "targetDir": "inbox"},
        )
        assert resp.status_code == 422


class TestTransfersOverHttp:
    @pytest.mark.asyncio
    async def test_upload_creates_tracked_transfer(self, client: AsyncClient, tree):
        resp = await client.post(
            "/api/files/upload",
            files=[
                ("files", ("a.txt", b"hello", "text/plain")),
                ("files", ("b.txt", b"world!", "text/plain")),
            ],
            data={"path": "inbox", "batchId": "batch-1"},
        )
        assert resp.status_code == 201
        data = resp.json()
        assert data["batchId"] == "batch-1"
        assert [f["path"] for f in data["files"]] == ["inbox/a.txt", "inbox/b.txt"]
        assert (tree / "inbox" / "b.txt").read_bytes() == b"world!"

        transfer = await client.get(f"/api/transfers/{data['files'][0]['transferId']}")
        assert transfer.status_code == 200
        body = transfer.json()
        assert body["status"] == "completed"
        assert body["progress"] == 100
        assert body["bytesWritten"] == 5
        assert body["batchId"] == "batch-1"

        batch = await client.get("/api/transfers/batch/batch-1")
        assert batch.json()["completed"] == 2

    @pytest.mark.asyncio
    async def test_upload_strips_client_directories(self, client: AsyncClient, tree):
        resp = await client.post(
            "/api/files/upload",
            files=[("files", ("..\\..\\evil.txt", b"x", "text/plain"))],
            data={"path": "inbox"},
        )
        assert resp.status_code == 201
        assert resp.json()["files"][0]["path"] == "inbox/evil.txt"

    @pytest.mark.asyncio
    async def test_upload_into_missing_directory(self, client: AsyncClient, tree):
        resp = await client.post(
            "/api/files/upload",
            files=[("files", ("a.txt", b"hello", "text/plain"))],
            data={"path": "missing"},
        )
        assert resp.status_code == 404
        stats = (await client.get("/api/transfers/stats")).json()
        assert stats["failed"] == 1

    @pytest.mark.asyncio
    async def test_download(self, client: AsyncClient, tree):
        resp = await client.get("/api/files/download", params={"path": "docs/report.txt"})
        assert resp.status_code == 200
        assert resp.content == b"hello report"
        assert "attachment" in resp.headers["content-disposition"]
        assert resp.headers["content-type"].startswith("text/plain")

        transfer = await client.get(f"/api/transfers/{resp.headers['x-transfer-id']}")
        assert transfer.json()["status"] == "completed"

    @pytest.mark.asyncio
    async def test_download_directory_rejected(self, client: AsyncClient, tree):
        resp = await client.get("/api/files/download", params={"path": "docs"})
        assert resp.status_code == 400
        assert resp.json()["kind"] == "IsADirectory"


class TestSearch:
    @pytest.mark.asyncio
    async def test_search_cached_directories(self, client: AsyncClient, tree):
        await client.post("/api/cache/refresh", json={"strategy": "full", "wait": True})
        resp = await client.get("/api/files/search", params={"q": "REP"})
        assert resp.status_code == 200
        data = resp.json()
        assert data["count"] == 1
        assert data["results"][0]["path"] == "docs/report.txt"

    @pytest.mark.asyncio
    async def test_search_limit_capped(self, client: AsyncClient, services, tree):
        services.settings.search_max_results = 1
        await client.post("/api/cache/refresh", json={"strategy": "full", "wait": True})
        resp = await client.get("/api/files/search", params={"q": "o", "limit": 50})
        assert resp.json()["count"] == 1

    @pytest.mark.asyncio
    async def test_search_requires_query(self, client: AsyncClient, tree):
        resp = await client.get("/api/files/search")
        assert resp.status_code == 422
