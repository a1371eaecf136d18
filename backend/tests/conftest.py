"""
Library Management - Test Configuration and Fixtures
"""
import os
import tempfile
from typing import AsyncGenerator, List

import pytest
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import NullPool

# Set testing environment
UPLOAD_ROOT = tempfile.mkdtemp(prefix="library-uploads-")
os.environ['ENVIRONMENT'] = 'test'
os.environ['DATABASE_URL'] = 'sqlite+aiosqlite:///./test.db'
os.environ['SECRET_KEY'] = 'test-secret-key-for-testing-only'
os.environ['JWT_SECRET_KEY'] = 'test-jwt-secret-key-for-testing'
os.environ['TASK_QUEUE_ENABLED'] = 'false'
os.environ['NOTIFICATION_PUBSUB_ENABLED'] = 'false'
os.environ['RATE_LIMIT_ENABLED'] = 'false'
os.environ['SEED_ON_STARTUP'] = 'false'
os.environ['BCRYPT_ROUNDS'] = '4'
os.environ['UPLOAD_DIR_STR'] = UPLOAD_ROOT

from app.main import app
from app.core.database import Base, get_db
from app.core.security import get_password_hash
from app.db.seed_data import seed_policies
from app.models.catalog import Author, Category, Book, BookItem, BookEdition, BookType, FileFormat, ItemStatus
from app.models.payment import Policy
from app.models.user import User, Role, UserStatus
from app.services.storage_service import storage_service
from tests.factories import PASSWORD, fake, make_auth_headers

# Test database setup
TEST_DATABASE_URL = 'sqlite+aiosqlite:///./test.db'
test_engine = create_async_engine(TEST_DATABASE_URL, echo=False, poolclass=NullPool)
TestSessionLocal = async_sessionmaker(
    bind=test_engine,
    class_=AsyncSession,
    expire_on_commit=False
)


@pytest.fixture(scope='function')
async def db_session() -> AsyncGenerator[AsyncSession, None]:
    """Create a fresh database session for each test"""
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with TestSessionLocal() as session:
        yield session
        await session.rollback()

    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest.fixture
async def client(db_session: AsyncSession) -> AsyncGenerator[AsyncClient, None]:
    """Create test client with database override"""
    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url='http://test') as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest.fixture
def user_factory(db_session: AsyncSession):
    """Create users with a known password"""
    async def create(role: Role = Role.READER, **overrides) -> User:
        user = User(
            email=overrides.pop('email', None) or fake.unique.email(),
            full_name=overrides.pop('full_name', None) or fake.name(),
            password_hash=get_password_hash(overrides.pop('password', PASSWORD)),
            role=role,
            status=overrides.pop('status', UserStatus.ACTIVE),
            **overrides,
        )
        db_session.add(user)
        await db_session.commit()
        await db_session.refresh(user)
        return user
    return create


@pytest.fixture
async def admin_user(user_factory) -> User:
    return await user_factory(Role.ADMIN)


@pytest.fixture
async def librarian_user(user_factory) -> User:
    return await user_factory(Role.LIBRARIAN)


@pytest.fixture
async def reader_user(user_factory) -> User:
    return await user_factory(Role.READER)


@pytest.fixture
async def other_reader(user_factory) -> User:
    return await user_factory(Role.READER)


@pytest.fixture
def admin_headers(admin_user: User) -> dict:
    return make_auth_headers(admin_user)


@pytest.fixture
def librarian_headers(librarian_user: User) -> dict:
    return make_auth_headers(librarian_user)


@pytest.fixture
def reader_headers(reader_user: User) -> dict:
    return make_auth_headers(reader_user)


@pytest.fixture
def other_reader_headers(other_reader: User) -> dict:
    return make_auth_headers(other_reader)


# ==================== Catalog fixtures ====================

@pytest.fixture
async def author(db_session: AsyncSession) -> Author:
    author = Author(full_name=fake.name(), nationality='Vietnamese')
    db_session.add(author)
    await db_session.commit()
    await db_session.refresh(author)
    return author


@pytest.fixture
async def category(db_session: AsyncSession) -> Category:
    category = Category(name='Fiction', description='Novels and short stories')
    db_session.add(category)
    await db_session.commit()
    await db_session.refresh(category)
    return category


@pytest.fixture
async def book(db_session: AsyncSession, author: Author) -> Book:
    book = Book(
        author_id=author.id,
        title='Nineteen Eighty-Four',
        isbn='9780451524935',
        publish_year=1949,
        price=150000,
        type=BookType.PRINT,
    )
    db_session.add(book)
    await db_session.commit()
    await db_session.refresh(book)
    return book


@pytest.fixture
def item_factory(db_session: AsyncSession):
    async def create(book: Book, count: int = 1, status: ItemStatus = ItemStatus.AVAILABLE) -> List[BookItem]:
        items = [
            BookItem(book_id=book.id, code=f'BK-{book.id}-{fake.unique.random_int(1000, 99999)}', status=status)
            for _ in range(count)
        ]
        db_session.add_all(items)
        await db_session.commit()
        for item in items:
            await db_session.refresh(item)
        return items
    return create


@pytest.fixture
async def book_items(book: Book, item_factory) -> List[BookItem]:
    return await item_factory(book, 2)


@pytest.fixture
async def policies(db_session: AsyncSession) -> List[Policy]:
    await seed_policies(db_session)
    await db_session.commit()
    return [await db_session.get(Policy, policy_id) for policy_id in (
        'LOST_BOOK', 'DAMAGED_BOOK', 'WORN_BOOK', 'LATE_RETURN', 'LATE_PAYMENT'
    )]


@pytest.fixture
async def ebook(db_session: AsyncSession, author: Author) -> Book:
    """Book with a stored PDF edition"""
    book = Book(author_id=author.id, title='Animal Farm', price=90000, type=BookType.EBOOK)
    db_session.add(book)
    await db_session.commit()

    stored = await storage_service.save(b'%PDF-1.4 animal farm', 'animal-farm.pdf', subdir='ebooks')
    edition = BookEdition(
        book_id=book.id,
        file_format=FileFormat.PDF,
        storage_url=stored.url,
        file_size_bytes=stored.size,
        checksum_sha256=stored.checksum_sha256,
    )
    db_session.add(edition)
    await db_session.commit()
    await db_session.refresh(book)
    return book
