"""
API Tests for authors, categories and books
"""
import pytest
from httpx import AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.catalog import Author, Category, Book
from app.models.review import Review
from app.models.user import User


class TestAuthors:
    """/api/v1/authors"""

    @pytest.mark.asyncio
    async def test_create_and_get(self, client: AsyncClient, librarian_headers: dict):
        created = await client.post(
            "/api/v1/authors",
            headers=librarian_headers,
            json={"full_name": "George Orwell", "nationality": "British", "birth_date": "1903-06-25"},
        )

        assert created.status_code == 201
        author_id = created.json()["data"]["id"]

        fetched = await client.get(f"/api/v1/authors/{author_id}", headers=librarian_headers)
        assert fetched.json()["data"]["birth_date"] == "1903-06-25"

    @pytest.mark.asyncio
    async def test_blank_name_rejected(self, client: AsyncClient, librarian_headers: dict):
        response = await client.post("/api/v1/authors", headers=librarian_headers, json={"full_name": "   "})

        assert response.status_code == 400
        assert response.json()["code"] == "VALIDATION_ERROR"

    @pytest.mark.asyncio
    async def test_reader_cannot_create(self, client: AsyncClient, reader_headers: dict):
        response = await client.post("/api/v1/authors", headers=reader_headers, json={"full_name": "Someone"})

        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_list_search_and_sort(self, client: AsyncClient, reader_headers: dict, db_session: AsyncSession):
        db_session.add_all([
            Author(full_name="Haruki Murakami", nationality="Japanese"),
            Author(full_name="Banana Yoshimoto", nationality="Japanese"),
            Author(full_name="Leo Tolstoy", nationality="Russian"),
        ])
        await db_session.commit()

        response = await client.get(
            "/api/v1/authors",
            headers=reader_headers,
            params={"search": "japan", "sort_by": "full_name", "sort_order": "asc"},
        )

        names = [a["full_name"] for a in response.json()["data"]["authors"]]
        assert names == ["Banana Yoshimoto", "Haruki Murakami"]

    @pytest.mark.asyncio
    async def test_update(self, client: AsyncClient, librarian_headers: dict, author: Author):
        response = await client.put(
            f"/api/v1/authors/{author.id}",
            headers=librarian_headers,
            json={"bio": "Essayist and novelist"},
        )

        assert response.status_code == 200
        assert response.json()["data"]["bio"] == "Essayist and novelist"

    @pytest.mark.asyncio
    async def test_delete_author_with_books_conflicts(self, client: AsyncClient, librarian_headers: dict, book: Book):
        response = await client.delete(f"/api/v1/authors/{book.author_id}", headers=librarian_headers)

        assert response.status_code == 409
        assert response.json()["code"] == "AUTHOR_HAS_BOOKS"

    @pytest.mark.asyncio
    async def test_deleted_author_hidden(self, client: AsyncClient, librarian_headers: dict, author: Author):
        deleted = await client.delete(f"/api/v1/authors/{author.id}", headers=librarian_headers)
        assert deleted.status_code == 200

        response = await client.get(f"/api/v1/authors/{author.id}", headers=librarian_headers)
        assert response.status_code == 404

        listing = await client.get("/api/v1/authors/all", headers=librarian_headers)
        assert listing.json()["data"]["authors"] == []


class TestCategories:
    """/api/v1/categories"""

    @pytest.mark.asyncio
    async def test_duplicate_name_case_insensitive(self, client: AsyncClient, librarian_headers: dict, category: Category):
        response = await client.post(
            "/api/v1/categories",
            headers=librarian_headers,
            json={"name": category.name.upper()},
        )

        assert response.status_code == 409
        assert response.json()["code"] == "CATEGORY_EXISTS"

    @pytest.mark.asyncio
    async def test_rename(self, client: AsyncClient, librarian_headers: dict, category: Category):
        response = await client.put(
            f"/api/v1/categories/{category.id}",
            headers=librarian_headers,
            json={"name": "Literary Fiction"},
        )

        assert response.status_code == 200
        assert response.json()["data"]["name"] == "Literary Fiction"

    @pytest.mark.asyncio
    async def test_all_returns_briefs(self, client: AsyncClient, reader_headers: dict, category: Category):
        response = await client.get("/api/v1/categories/all", headers=reader_headers)

        assert response.json()["data"]["categories"] == [{"id": category.id, "name": category.name}]


class TestBooks:
    """/api/v1/books"""

    @pytest.mark.asyncio
    async def test_create_with_categories(
        self, client: AsyncClient, librarian_headers: dict, author: Author, category: Category
    ):
        response = await client.post(
            "/api/v1/books",
            headers=librarian_headers,
            json={
                "author_id": author.id,
                "title": "Homage to Catalonia",
                "price": 120000,
                "publish_year": 1938,
                "category_ids": [category.id],
            },
        )

        assert response.status_code == 201
        data = response.json()["data"]
        assert data["author"]["id"] == author.id
        assert [c["id"] for c in data["categories"]] == [category.id]

    @pytest.mark.asyncio
    async def test_unknown_author(self, client: AsyncClient, librarian_headers: dict):
        response = await client.post(
            "/api/v1/books",
            headers=librarian_headers,
            json={"author_id": 999, "title": "Ghost Book"},
        )

        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_unknown_category(self, client: AsyncClient, librarian_headers: dict, author: Author):
        response = await client.post(
            "/api/v1/books",
            headers=librarian_headers,
            json={"author_id": author.id, "title": "Ghost Book", "category_ids": [404]},
        )

        assert response.status_code == 400
        assert response.json()["details"]["field"] == "category_ids"

    @pytest.mark.asyncio
    async def test_list_includes_availability(
        self, client: AsyncClient, reader_headers: dict, book: Book, book_items, ebook: Book
    ):
        response = await client.get("/api/v1/books", headers=reader_headers, params={"sort_by": "title", "sort_order": "asc"})

        books = response.json()["data"]["books"]
        assert [b["title"] for b in books] == ["Animal Farm", "Nineteen Eighty-Four"]
        assert books[0]["has_ebook"] is True
        assert books[1]["available_count"] == 2
        assert books[1]["total_items"] == 2

    @pytest.mark.asyncio
    async def test_filter_by_category(
        self, client: AsyncClient, librarian_headers: dict, reader_headers: dict, book: Book, category: Category
    ):
        await client.put(f"/api/v1/books/{book.id}", headers=librarian_headers, json={"category_ids": [category.id]})

        response = await client.get("/api/v1/books", headers=reader_headers, params={"category_id": category.id})

        assert [b["id"] for b in response.json()["data"]["books"]] == [book.id]

    @pytest.mark.asyncio
    async def test_detail_includes_rating(
        self, client: AsyncClient, reader_headers: dict, db_session: AsyncSession, book: Book, reader_user: User, other_reader: User
    ):
        db_session.add_all([
            Review(user_id=reader_user.id, book_id=book.id, rating=5),
            Review(user_id=other_reader.id, book_id=book.id, rating=4),
        ])
        await db_session.commit()

        response = await client.get(f"/api/v1/books/{book.id}", headers=reader_headers)

        data = response.json()["data"]
        assert data["average_rating"] == 4.5
        assert data["review_count"] == 2

    @pytest.mark.asyncio
    async def test_delete_book(self, client: AsyncClient, librarian_headers: dict, book: Book):
        deleted = await client.delete(f"/api/v1/books/{book.id}", headers=librarian_headers)
        assert deleted.status_code == 200

        response = await client.get(f"/api/v1/books/{book.id}", headers=librarian_headers)
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_browsing_is_public(self, client: AsyncClient, book: Book):
        response = await client.get("/api/v1/books")

        assert response.status_code == 200
        assert response.json()["data"]["pagination"]["total"] == 1
