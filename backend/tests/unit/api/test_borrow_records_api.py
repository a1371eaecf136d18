"""
API Tests for loans: lending, renewal and check-in with violations
"""
import pytest
from datetime import date, timedelta
from httpx import AsyncClient
from unittest.mock import patch, AsyncMock
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.catalog import Book, BookItem, ItemStatus
from app.models.notification import Notification
from app.models.user import User


async def lend(client: AsyncClient, headers: dict, reader: User, items, borrowed_ago: int = 0, days: int = 14, **extra):
    borrow_date = date.today() - timedelta(days=borrowed_ago)
    payload = {
        "user_id": reader.id,
        "book_item_ids": [item.id for item in items],
        "borrow_date": borrow_date.isoformat(),
        "return_date": (borrow_date + timedelta(days=days)).isoformat(),
    }
    payload.update(extra)
    return await client.post("/api/v1/borrow-records", headers=headers, json=payload)


class TestCreateRecord:
    """POST /api/v1/borrow-records"""

    @pytest.mark.asyncio
    async def test_lend_copies(
        self, client: AsyncClient, db_session: AsyncSession, librarian_headers: dict, reader_user: User, book_items
    ):
        with patch("app.services.borrow_service.queue_email", new=AsyncMock()) as mock_email:
            response = await lend(client, librarian_headers, reader_user, book_items)

        assert response.status_code == 201
        record = response.json()["data"]["borrow_record"]
        assert record["status"] == "BORROWED"
        assert len(record["books"]) == 2
        assert all(b["book_item"]["status"] == "ON_BORROW" for b in record["books"])

        titles = (await db_session.execute(
            select(Notification.title).where(Notification.user_id == reader_user.id)
        )).scalars().all()
        assert titles == ["Books Borrowed"]

        template, email, context = mock_email.call_args.args
        assert (template, email) == ("loan", reader_user.email)
        assert len(context["book_titles"]) == 2
        assert context["due_date"].isoformat() == record["return_date"]

    @pytest.mark.asyncio
    async def test_fulfils_approved_request(
        self, client: AsyncClient, librarian_headers: dict, reader_headers: dict, reader_user: User, book: Book, book_items
    ):
        start = date.today() + timedelta(days=1)
        created = await client.post(
            "/api/v1/borrow-requests",
            headers=reader_headers,
            json={
                "start_date": start.isoformat(),
                "end_date": (start + timedelta(days=7)).isoformat(),
                "items": [{"book_id": book.id}],
            },
        )
        request_id = created.json()["data"]["borrow_request"]["id"]

        response = await lend(client, librarian_headers, reader_user, book_items[:1], request_ids=[request_id])

        assert response.json()["data"]["requests"] == [{"request_id": request_id, "fulfilled": True}]
        fetched = await client.get(f"/api/v1/borrow-requests/{request_id}", headers=reader_headers)
        assert fetched.json()["data"]["status"] == "FULFILLED"

    @pytest.mark.asyncio
    async def test_unavailable_copy(self, client: AsyncClient, librarian_headers: dict, reader_user: User, book: Book, item_factory):
        items = await item_factory(book, 1, status=ItemStatus.MAINTENANCE)

        response = await lend(client, librarian_headers, reader_user, items)

        assert response.status_code == 400
        assert items[0].code in response.json()["error"]

    @pytest.mark.asyncio
    async def test_missing_copy(self, client: AsyncClient, librarian_headers: dict, reader_user: User):
        response = await client.post(
            "/api/v1/borrow-records",
            headers=librarian_headers,
            json={
                "user_id": reader_user.id,
                "book_item_ids": [4242],
                "borrow_date": date.today().isoformat(),
                "return_date": (date.today() + timedelta(days=7)).isoformat(),
            },
        )

        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_only_readers_borrow(self, client: AsyncClient, librarian_headers: dict, librarian_user: User, book_items):
        response = await lend(client, librarian_headers, librarian_user, book_items)

        assert response.status_code == 400
        assert response.json()["details"]["field"] == "user_id"

    @pytest.mark.asyncio
    async def test_reader_cannot_lend(self, client: AsyncClient, reader_headers: dict, reader_user: User, book_items):
        response = await lend(client, reader_headers, reader_user, book_items)

        assert response.status_code == 403


class TestRenew:
    """POST /api/v1/borrow-records/{id}/renew"""

    @pytest.mark.asyncio
    async def test_renew_extends_return_date(self, client: AsyncClient, librarian_headers: dict, reader_headers: dict, reader_user: User, book_items):
        created = await lend(client, librarian_headers, reader_user, book_items[:1])
        record = created.json()["data"]["borrow_record"]

        response = await client.post(f"/api/v1/borrow-records/{record['id']}/renew", headers=reader_headers)

        assert response.status_code == 200
        data = response.json()["data"]
        expected = date.fromisoformat(record["return_date"]) + timedelta(days=14)
        assert data["return_date"] == expected.isoformat()
        assert data["renewal_count"] == 1

    @pytest.mark.asyncio
    async def test_max_renewals(self, client: AsyncClient, librarian_headers: dict, reader_headers: dict, reader_user: User, book_items):
        created = await lend(client, librarian_headers, reader_user, book_items[:1], days=1)
        record_id = created.json()["data"]["borrow_record"]["id"]

        for _ in range(3):
            ok = await client.post(f"/api/v1/borrow-records/{record_id}/renew", headers=reader_headers)
            assert ok.status_code == 200

        response = await client.post(f"/api/v1/borrow-records/{record_id}/renew", headers=reader_headers)

        assert response.status_code == 400
        assert "Maximum number of renewals" in response.json()["error"]

    @pytest.mark.asyncio
    async def test_renewal_capped_at_max_duration(
        self, client: AsyncClient, librarian_headers: dict, reader_headers: dict, reader_user: User, book_items
    ):
        created = await lend(client, librarian_headers, reader_user, book_items[:1], borrowed_ago=25, days=30)
        record = created.json()["data"]["borrow_record"]

        first = await client.post(f"/api/v1/borrow-records/{record['id']}/renew", headers=reader_headers)
        second = await client.post(f"/api/v1/borrow-records/{record['id']}/renew", headers=reader_headers)
        third = await client.post(f"/api/v1/borrow-records/{record['id']}/renew", headers=reader_headers)

        cap = date.fromisoformat(record["borrow_date"]) + timedelta(days=60)
        assert first.json()["data"]["return_date"] == (cap - timedelta(days=16)).isoformat()
        assert second.json()["data"]["return_date"] == (cap - timedelta(days=2)).isoformat()
        assert third.json()["data"]["return_date"] == cap.isoformat()

    @pytest.mark.asyncio
    async def test_overdue_cannot_renew(self, client: AsyncClient, librarian_headers: dict, reader_headers: dict, reader_user: User, book_items):
        created = await lend(client, librarian_headers, reader_user, book_items[:1], borrowed_ago=10, days=5)
        record_id = created.json()["data"]["borrow_record"]["id"]

        response = await client.post(f"/api/v1/borrow-records/{record_id}/renew", headers=reader_headers)

        assert response.status_code == 400
        assert "Overdue" in response.json()["error"]

    @pytest.mark.asyncio
    async def test_waiting_readers_block_renewal(
        self, client: AsyncClient, librarian_headers: dict, reader_headers: dict, other_reader_headers: dict,
        reader_user: User, book: Book, book_items
    ):
        created = await lend(client, librarian_headers, reader_user, book_items)
        record_id = created.json()["data"]["borrow_record"]["id"]
        start = date.today() + timedelta(days=1)
        await client.post(
            "/api/v1/borrow-requests",
            headers=other_reader_headers,
            json={"start_date": start.isoformat(), "end_date": start.isoformat(), "items": [{"book_id": book.id}]},
        )

        response = await client.post(f"/api/v1/borrow-records/{record_id}/renew", headers=reader_headers)

        assert response.status_code == 400
        assert "waiting" in response.json()["error"]

    @pytest.mark.asyncio
    async def test_only_owner_renews(self, client: AsyncClient, librarian_headers: dict, other_reader_headers: dict, reader_user: User, book_items):
        created = await lend(client, librarian_headers, reader_user, book_items[:1])
        record_id = created.json()["data"]["borrow_record"]["id"]

        response = await client.post(f"/api/v1/borrow-records/{record_id}/renew", headers=other_reader_headers)

        assert response.status_code == 403


class TestReturn:
    """POST /api/v1/borrow-records/{id}/return"""

    @pytest.mark.asyncio
    async def test_clean_return(self, client: AsyncClient, librarian_headers: dict, reader_user: User, book_items, policies):
        created = await lend(client, librarian_headers, reader_user, book_items)
        record_id = created.json()["data"]["borrow_record"]["id"]

        response = await client.post(f"/api/v1/borrow-records/{record_id}/return", headers=librarian_headers, json={})

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["borrow_record"]["status"] == "RETURNED"
        assert data["borrow_record"]["actual_return_date"] == date.today().isoformat()
        assert data["payments"] == []

    @pytest.mark.asyncio
    async def test_condition_violations(
        self, client: AsyncClient, db_session: AsyncSession, librarian_headers: dict, reader_user: User,
        book_items, policies
    ):
        worn, lost = book_items
        created = await lend(client, librarian_headers, reader_user, book_items)
        record_id = created.json()["data"]["borrow_record"]["id"]

        response = await client.post(
            f"/api/v1/borrow-records/{record_id}/return",
            headers=librarian_headers,
            json={"items": [
                {"book_item_id": worn.id, "condition": "WORN"},
                {"book_item_id": lost.id, "condition": "LOST"},
            ]},
        )

        payments = {p["policy_id"]: p for p in response.json()["data"]["payments"]}
        # price 150000: WORN is 50%, LOST is 100%
        assert payments["WORN_BOOK"]["amount"] == 75000
        assert payments["LOST_BOOK"]["amount"] == 150000
        assert payments["LOST_BOOK"]["due_date"] == (date.today() + timedelta(days=3)).isoformat()

        await db_session.refresh(reader_user)
        assert reader_user.violation_points == 4

        statuses = {
            item.id: item.status
            for item in (await db_session.execute(
                select(BookItem).where(BookItem.id.in_([worn.id, lost.id])).execution_options(populate_existing=True)
            )).scalars()
        }
        assert statuses == {worn.id: ItemStatus.AVAILABLE, lost.id: ItemStatus.LOST}

        titles = (await db_session.execute(
            select(Notification.title).where(Notification.user_id == reader_user.id)
        )).scalars().all()
        assert "Violation Recorded" in titles

    @pytest.mark.asyncio
    async def test_late_return_fee(self, client: AsyncClient, librarian_headers: dict, reader_user: User, book_items, policies):
        created = await lend(client, librarian_headers, reader_user, book_items[:1], borrowed_ago=20, days=15)
        record_id = created.json()["data"]["borrow_record"]["id"]

        response = await client.post(f"/api/v1/borrow-records/{record_id}/return", headers=librarian_headers, json={})

        payments = response.json()["data"]["payments"]
        assert [(p["policy_id"], p["amount"]) for p in payments] == [("LATE_RETURN", 50000)]

    @pytest.mark.asyncio
    async def test_return_promotes_hold_queue(
        self, client: AsyncClient, librarian_headers: dict, other_reader_headers: dict, reader_user: User,
        book: Book, book_items, policies
    ):
        created = await lend(client, librarian_headers, reader_user, book_items)
        record_id = created.json()["data"]["borrow_record"]["id"]
        start = date.today() + timedelta(days=1)
        waiting = await client.post(
            "/api/v1/borrow-requests",
            headers=other_reader_headers,
            json={"start_date": start.isoformat(), "end_date": start.isoformat(), "items": [{"book_id": book.id}]},
        )
        request_id = waiting.json()["data"]["borrow_request"]["id"]
        assert waiting.json()["data"]["borrow_request"]["status"] == "PENDING"

        response = await client.post(f"/api/v1/borrow-records/{record_id}/return", headers=librarian_headers, json={})

        assert response.json()["data"]["processed_books"] == [{"book_id": book.id, "approved_request_id": request_id}]

    @pytest.mark.asyncio
    async def test_cannot_return_twice(self, client: AsyncClient, librarian_headers: dict, reader_user: User, book_items, policies):
        created = await lend(client, librarian_headers, reader_user, book_items[:1])
        record_id = created.json()["data"]["borrow_record"]["id"]
        await client.post(f"/api/v1/borrow-records/{record_id}/return", headers=librarian_headers, json={})

        response = await client.post(f"/api/v1/borrow-records/{record_id}/return", headers=librarian_headers, json={})

        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_item_not_in_record(
        self, client: AsyncClient, librarian_headers: dict, reader_user: User, book: Book, book_items, item_factory, policies
    ):
        created = await lend(client, librarian_headers, reader_user, book_items[:1])
        record_id = created.json()["data"]["borrow_record"]["id"]
        stranger = (await item_factory(book, 1))[0]

        response = await client.post(
            f"/api/v1/borrow-records/{record_id}/return",
            headers=librarian_headers,
            json={"items": [{"book_item_id": stranger.id, "condition": "DAMAGED"}]},
        )

        assert response.status_code == 400
        assert response.json()["details"]["field"] == "items"


class TestListing:

    @pytest.mark.asyncio
    async def test_overdue_filter(
        self, client: AsyncClient, librarian_headers: dict, reader_user: User, other_reader: User, book_items
    ):
        await lend(client, librarian_headers, reader_user, book_items[:1], borrowed_ago=10, days=3)
        await lend(client, librarian_headers, other_reader, book_items[1:])

        response = await client.get("/api/v1/borrow-records/all", headers=librarian_headers, params={"overdue": "true"})

        records = response.json()["data"]["borrow_records"]
        assert [r["user_id"] for r in records] == [reader_user.id]

    @pytest.mark.asyncio
    async def test_reader_sees_own_records(
        self, client: AsyncClient, librarian_headers: dict, reader_headers: dict, reader_user: User, other_reader: User, book_items
    ):
        await lend(client, librarian_headers, reader_user, book_items[:1])
        await lend(client, librarian_headers, other_reader, book_items[1:])

        response = await client.get("/api/v1/borrow-records", headers=reader_headers)

        assert response.json()["data"]["pagination"]["total"] == 1
