from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_db
from app.models.user import User
from app.modules.auth.dependencies import require_librarian
from app.schemas.catalog import AuthorCreate, AuthorUpdate, AuthorBrief, AuthorResponse
from app.services.catalog_service import author_service
from app.utils.pagination import PaginationParams, pagination_params
from app.utils.responses import success_response, envelope, parse_id

router = APIRouter()


@router.get("")
async def list_authors(
    params: PaginationParams = Depends(pagination_params),
    sort_by: str = Query("created_at"),
    sort_order: str = Query("desc", pattern="^(asc|desc)$"),
    db: AsyncSession = Depends(get_db)
):
    """List authors with search on name and nationality"""
    authors, pagination = await author_service.list_authors(db, params, sort_by, sort_order)
    return success_response({
        "authors": [AuthorResponse.model_validate(a) for a in authors],
        "pagination": pagination,
    })


@router.get("/all")
async def list_all_authors(db: AsyncSession = Depends(get_db)):
    """All authors for pickers"""
    authors = await author_service.list_all(db)
    return success_response({"authors": [AuthorBrief.model_validate(a) for a in authors]})


@router.get("/{author_id}")
async def get_author(author_id: int, db: AsyncSession = Depends(get_db)):
    author = await author_service.get_author(db, parse_id(author_id, "author id"))
    return success_response(AuthorResponse.model_validate(author))


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_author(
    data: AuthorCreate,
    current_user: User = Depends(require_librarian),
    db: AsyncSession = Depends(get_db)
):
    author = await author_service.create_author(db, data)
    return envelope(AuthorResponse.model_validate(author), message="Author created successfully", status_code=201)


@router.put("/{author_id}")
async def update_author(
    author_id: int,
    data: AuthorUpdate,
    current_user: User = Depends(require_librarian),
    db: AsyncSession = Depends(get_db)
):
    author = await author_service.update_author(db, parse_id(author_id, "author id"), data)
    return success_response(AuthorResponse.model_validate(author), message="Author updated successfully")


@router.delete("/{author_id}")
async def delete_author(
    author_id: int,
    current_user: User = Depends(require_librarian),
    db: AsyncSession = Depends(get_db)
):
    """Soft-delete an author that no longer has books"""
    await author_service.delete_author(db, parse_id(author_id, "author id"))
    return success_response(message="Author deleted successfully")
