"""
API Tests for file upload and serving
"""
import pytest
from httpx import AsyncClient
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import ForbiddenError
from app.models.catalog import Book, BookEdition
from app.services.storage_service import storage_service


class TestUpload:
    """POST /api/v1/files/upload"""

    @pytest.mark.asyncio
    async def test_all_files_accepted(self, client: AsyncClient, reader_headers: dict):
        response = await client.post(
            "/api/v1/files/upload",
            headers=reader_headers,
            files=[
                ("files", ("cover.png", b"\x89PNG fake", "image/png")),
                ("files", ("notes.txt", b"chapter notes", "text/plain")),
            ],
        )

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["uploaded"] == 2
        assert data["failed"] == 0

        served = await client.get(data["results"][1]["url"])
        assert served.content == b"chapter notes"
        assert served.headers["content-type"].startswith("text/plain")
        assert served.headers["cache-control"] == "public, max-age=3600"

    @pytest.mark.asyncio
    async def test_partial_success(self, client: AsyncClient, reader_headers: dict):
        response = await client.post(
            "/api/v1/files/upload",
            headers=reader_headers,
            files=[
                ("files", ("cover.png", b"\x89PNG fake", "image/png")),
                ("files", ("script.exe", b"MZ", "application/octet-stream")),
            ],
        )

        assert response.status_code == 207
        data = response.json()["data"]
        assert data["uploaded"] == 1
        assert data["errors"][0]["filename"] == "script.exe"

    @pytest.mark.asyncio
    async def test_nothing_uploaded(self, client: AsyncClient, reader_headers: dict):
        response = await client.post(
            "/api/v1/files/upload",
            headers=reader_headers,
            files=[("files", ("empty.pdf", b"", "application/pdf"))],
        )

        assert response.status_code == 400
        body = response.json()
        assert body["code"] == "UPLOAD_FAILED"
        assert body["details"]["errors"][0]["error"] == "File is empty"

    @pytest.mark.asyncio
    async def test_requires_authentication(self, client: AsyncClient):
        response = await client.post(
            "/api/v1/files/upload",
            files=[("files", ("cover.png", b"\x89PNG", "image/png"))],
        )

        assert response.status_code == 401


class TestServe:
    """GET /api/v1/files/{path}"""

    @pytest.mark.asyncio
    async def test_missing_file(self, client: AsyncClient):
        response = await client.get("/api/v1/files/nope/missing.pdf")

        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_ebook_directory_not_served(self, client: AsyncClient, ebook: Book, db_session: AsyncSession):
        edition = (await db_session.execute(select(BookEdition).where(BookEdition.book_id == ebook.id))).scalar_one()

        response = await client.get(edition.storage_url)
        dotted = await client.get("/api/v1/files/covers/../ebooks/" + edition.storage_url.rsplit("/", 1)[-1])

        assert response.status_code == 403
        assert response.json()["code"] == "FORBIDDEN"
        assert dotted.status_code == 403

    def test_ebooks_are_protected(self):
        assert storage_service.is_protected("ebooks/book.pdf")
        assert storage_service.is_protected("./ebooks/../ebooks/book.pdf")
        assert not storage_service.is_protected("ebooks-cover.png")

    def test_traversal_rejected(self):
        with pytest.raises(ForbiddenError):
            storage_service.resolve("../../etc/passwd")

    def test_safe_filename_strips_unsafe_characters(self):
        name = storage_service.safe_filename("../My Report (final).PDF")

        assert name.endswith("-My-Report-final.pdf")
        assert "/" not in name
