"""
API Tests for borrow requests and the hold queue
"""
import pytest
from datetime import date, timedelta
from httpx import AsyncClient
from unittest.mock import patch, AsyncMock
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.catalog import Book
from app.models.notification import Notification
from app.models.user import User
from tests.factories import make_auth_headers


def request_payload(book_id: int, start_in: int = 1, days: int = 7, quantity: int = 1) -> dict:
    start = date.today() + timedelta(days=start_in)
    return {
        "start_date": start.isoformat(),
        "end_date": (start + timedelta(days=days)).isoformat(),
        "items": [{"book_id": book_id, "quantity": quantity}],
    }


class TestCreateRequest:
    """POST /api/v1/borrow-requests"""

    @pytest.mark.asyncio
    async def test_approved_when_copy_available(self, client: AsyncClient, reader_headers: dict, book: Book, book_items):
        response = await client.post("/api/v1/borrow-requests", headers=reader_headers, json=request_payload(book.id))

        assert response.status_code == 201
        data = response.json()["data"]
        assert data["borrow_request"]["status"] == "APPROVED"
        assert data["queue_position"] is None
        assert data["message"].startswith("Borrow request approved")

    @pytest.mark.asyncio
    async def test_pending_when_all_copies_reserved(
        self, client: AsyncClient, user_factory, reader_headers: dict, other_reader_headers: dict, book: Book, book_items
    ):
        await client.post("/api/v1/borrow-requests", headers=reader_headers, json=request_payload(book.id))
        await client.post("/api/v1/borrow-requests", headers=other_reader_headers, json=request_payload(book.id))

        third = make_auth_headers(await user_factory())
        fourth = make_auth_headers(await user_factory())
        queued = await client.post("/api/v1/borrow-requests", headers=third, json=request_payload(book.id))
        behind = await client.post("/api/v1/borrow-requests", headers=fourth, json=request_payload(book.id))

        assert queued.json()["data"]["borrow_request"]["status"] == "PENDING"
        assert queued.json()["data"]["queue_position"] == 1
        assert behind.json()["data"]["queue_position"] == 2
        assert "position #2" in behind.json()["message"]

    @pytest.mark.asyncio
    async def test_duplicate_request(self, client: AsyncClient, reader_headers: dict, book: Book, book_items):
        await client.post("/api/v1/borrow-requests", headers=reader_headers, json=request_payload(book.id))
        response = await client.post("/api/v1/borrow-requests", headers=reader_headers, json=request_payload(book.id))

        assert response.status_code == 409
        assert response.json()["code"] == "DUPLICATE_REQUEST"

    @pytest.mark.asyncio
    async def test_only_one_book_per_request(self, client: AsyncClient, reader_headers: dict, book: Book, ebook: Book):
        payload = request_payload(book.id)
        payload["items"].append({"book_id": ebook.id})

        response = await client.post("/api/v1/borrow-requests", headers=reader_headers, json=payload)

        assert response.status_code == 400
        assert response.json()["details"]["field"] == "items"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("start_in,days,field", [
        (-1, 3, "start_date"),
        (1, -1, "end_date"),
        (1, 400, "end_date"),
    ])
    async def test_date_rules(self, client: AsyncClient, reader_headers: dict, book: Book, start_in, days, field):
        response = await client.post(
            "/api/v1/borrow-requests",
            headers=reader_headers,
            json=request_payload(book.id, start_in=start_in, days=days),
        )

        assert response.status_code == 400
        assert response.json()["details"]["field"] == field

    @pytest.mark.asyncio
    async def test_staff_cannot_request(self, client: AsyncClient, librarian_headers: dict, book: Book):
        response = await client.post("/api/v1/borrow-requests", headers=librarian_headers, json=request_payload(book.id))

        assert response.status_code == 403


class TestListing:

    @pytest.mark.asyncio
    async def test_reader_sees_own_requests(
        self, client: AsyncClient, reader_headers: dict, other_reader_headers: dict, book: Book, book_items
    ):
        await client.post("/api/v1/borrow-requests", headers=reader_headers, json=request_payload(book.id))
        await client.post("/api/v1/borrow-requests", headers=other_reader_headers, json=request_payload(book.id))

        response = await client.get("/api/v1/borrow-requests", headers=reader_headers)

        assert response.json()["data"]["pagination"]["total"] == 1

    @pytest.mark.asyncio
    async def test_librarian_searches_all(
        self, client: AsyncClient, librarian_headers: dict, reader_headers: dict, reader_user: User, book: Book, book_items
    ):
        await client.post("/api/v1/borrow-requests", headers=reader_headers, json=request_payload(book.id))

        by_title = await client.get("/api/v1/borrow-requests/all", headers=librarian_headers, params={"search": "eighty"})
        by_user = await client.get(
            "/api/v1/borrow-requests/all", headers=librarian_headers, params={"user_id": reader_user.id + 100}
        )

        assert by_title.json()["data"]["pagination"]["total"] == 1
        assert by_user.json()["data"]["borrow_requests"] == []

    @pytest.mark.asyncio
    async def test_other_reader_cannot_view(
        self, client: AsyncClient, reader_headers: dict, other_reader_headers: dict, book: Book, book_items
    ):
        created = await client.post("/api/v1/borrow-requests", headers=reader_headers, json=request_payload(book.id))
        request_id = created.json()["data"]["borrow_request"]["id"]

        response = await client.get(f"/api/v1/borrow-requests/{request_id}", headers=other_reader_headers)

        assert response.status_code == 403


class TestManageAndCancel:

    @pytest.mark.asyncio
    async def test_approve_pending_request(
        self, client: AsyncClient, db_session: AsyncSession, librarian_headers: dict, reader_headers: dict,
        reader_user: User, book: Book
    ):
        # No copies yet, so the request waits
        created = await client.post("/api/v1/borrow-requests", headers=reader_headers, json=request_payload(book.id))
        request_id = created.json()["data"]["borrow_request"]["id"]

        response = await client.put(
            f"/api/v1/borrow-requests/{request_id}/manage",
            headers=librarian_headers,
            json={"status": "APPROVED"},
        )

        assert response.status_code == 200
        assert response.json()["data"]["status"] == "APPROVED"

        titles = (await db_session.execute(
            select(Notification.title).where(Notification.user_id == reader_user.id)
        )).scalars().all()
        assert "Borrow Request Approved" in titles

    @pytest.mark.asyncio
    async def test_cannot_approve_twice(self, client: AsyncClient, librarian_headers: dict, reader_headers: dict, book: Book, book_items):
        created = await client.post("/api/v1/borrow-requests", headers=reader_headers, json=request_payload(book.id))
        request_id = created.json()["data"]["borrow_request"]["id"]

        response = await client.put(
            f"/api/v1/borrow-requests/{request_id}/manage",
            headers=librarian_headers,
            json={"status": "APPROVED"},
        )

        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_rejecting_approved_request_promotes_queue(
        self, client: AsyncClient, librarian_headers: dict, reader_headers: dict, other_reader_headers: dict,
        book: Book, item_factory
    ):
        await item_factory(book, 1)
        first = await client.post("/api/v1/borrow-requests", headers=reader_headers, json=request_payload(book.id))
        second = await client.post("/api/v1/borrow-requests", headers=other_reader_headers, json=request_payload(book.id))
        assert second.json()["data"]["borrow_request"]["status"] == "PENDING"

        await client.put(
            f"/api/v1/borrow-requests/{first.json()['data']['borrow_request']['id']}/manage",
            headers=librarian_headers,
            json={"status": "REJECTED"},
        )

        promoted = await client.get(
            f"/api/v1/borrow-requests/{second.json()['data']['borrow_request']['id']}",
            headers=other_reader_headers,
        )
        assert promoted.json()["data"]["status"] == "APPROVED"

    @pytest.mark.asyncio
    async def test_cancel_approved_request_promotes_queue(
        self, client: AsyncClient, reader_headers: dict, other_reader_headers: dict, book: Book, item_factory
    ):
        await item_factory(book, 1)
        first = await client.post("/api/v1/borrow-requests", headers=reader_headers, json=request_payload(book.id))
        second = await client.post("/api/v1/borrow-requests", headers=other_reader_headers, json=request_payload(book.id))

        response = await client.put(
            f"/api/v1/borrow-requests/{first.json()['data']['borrow_request']['id']}",
            headers=reader_headers,
            json={"status": "CANCELLED"},
        )
        assert response.json()["data"]["status"] == "CANCELLED"

        promoted = await client.get(
            f"/api/v1/borrow-requests/{second.json()['data']['borrow_request']['id']}",
            headers=other_reader_headers,
        )
        assert promoted.json()["data"]["status"] == "APPROVED"

    @pytest.mark.asyncio
    async def test_cancel_requires_cancelled_status(self, client: AsyncClient, reader_headers: dict, book: Book):
        created = await client.post("/api/v1/borrow-requests", headers=reader_headers, json=request_payload(book.id))

        response = await client.put(
            f"/api/v1/borrow-requests/{created.json()['data']['borrow_request']['id']}",
            headers=reader_headers,
            json={"status": "REJECTED"},
        )

        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_cannot_cancel_someone_elses_request(
        self, client: AsyncClient, reader_headers: dict, other_reader_headers: dict, book: Book
    ):
        created = await client.post("/api/v1/borrow-requests", headers=reader_headers, json=request_payload(book.id))

        response = await client.put(
            f"/api/v1/borrow-requests/{created.json()['data']['borrow_request']['id']}",
            headers=other_reader_headers,
            json={"status": "CANCELLED"},
        )

        assert response.status_code == 403


class TestReservationEmails:
    """Readers hear about their place in the queue and when a copy is set aside"""

    @pytest.mark.asyncio
    async def test_pending_request_emails_queue_position(
        self, client: AsyncClient, reader_headers: dict, other_reader_headers: dict, other_reader: User,
        book: Book, item_factory
    ):
        await item_factory(book, 1)
        await client.post("/api/v1/borrow-requests", headers=reader_headers, json=request_payload(book.id))

        with patch("app.services.borrow_service.queue_email", new=AsyncMock()) as mock_email:
            await client.post("/api/v1/borrow-requests", headers=other_reader_headers, json=request_payload(book.id))

        template, email, context = mock_email.call_args.args
        assert (template, email) == ("reservation_confirmation", other_reader.email)
        assert context["book_title"] == book.title
        assert context["queue_position"] == 1

    @pytest.mark.asyncio
    async def test_approved_request_sends_no_queue_email(
        self, client: AsyncClient, reader_headers: dict, book: Book, book_items
    ):
        with patch("app.services.borrow_service.queue_email", new=AsyncMock()) as mock_email:
            await client.post("/api/v1/borrow-requests", headers=reader_headers, json=request_payload(book.id))

        mock_email.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_promotion_emails_pickup_deadline(
        self, client: AsyncClient, reader_headers: dict, other_reader_headers: dict, other_reader: User,
        book: Book, item_factory
    ):
        await item_factory(book, 1)
        first = await client.post("/api/v1/borrow-requests", headers=reader_headers, json=request_payload(book.id))
        second = await client.post("/api/v1/borrow-requests", headers=other_reader_headers, json=request_payload(book.id))

        with patch("app.services.borrow_service.queue_email", new=AsyncMock()) as mock_email:
            await client.put(
                f"/api/v1/borrow-requests/{first.json()['data']['borrow_request']['id']}",
                headers=reader_headers,
                json={"status": "CANCELLED"},
            )

        template, email, context = mock_email.call_args.args
        assert (template, email) == ("reservation_ready", other_reader.email)
        assert context["book_titles"] == [book.title]
        assert context["pickup_deadline"].isoformat() == second.json()["data"]["borrow_request"]["end_date"]
