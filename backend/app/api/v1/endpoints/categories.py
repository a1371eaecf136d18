from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_db
from app.models.user import User
from app.modules.auth.dependencies import require_librarian
from app.schemas.catalog import CategoryCreate, CategoryUpdate, CategoryBrief, CategoryResponse
from app.services.catalog_service import category_service
from app.utils.pagination import PaginationParams, pagination_params
from app.utils.responses import success_response, envelope, parse_id

router = APIRouter()


@router.get("")
async def list_categories(
    params: PaginationParams = Depends(pagination_params),
    sort_by: str = Query("created_at"),
    sort_order: str = Query("desc", pattern="^(asc|desc)$"),
    db: AsyncSession = Depends(get_db)
):
    categories, pagination = await category_service.list_categories(db, params, sort_by, sort_order)
    return success_response({
        "categories": [CategoryResponse.model_validate(c) for c in categories],
        "pagination": pagination,
    })


@router.get("/all")
async def list_all_categories(db: AsyncSession = Depends(get_db)):
    categories = await category_service.list_all(db)
    return success_response({"categories": [CategoryBrief.model_validate(c) for c in categories]})


@router.get("/{category_id}")
async def get_category(category_id: int, db: AsyncSession = Depends(get_db)):
    category = await category_service.get_category(db, parse_id(category_id, "category id"))
    return success_response(CategoryResponse.model_validate(category))


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_category(
    data: CategoryCreate,
    current_user: User = Depends(require_librarian),
    db: AsyncSession = Depends(get_db)
):
    category = await category_service.create_category(db, data)
    return envelope(CategoryResponse.model_validate(category), message="Category created successfully", status_code=201)


@router.put("/{category_id}")
async def update_category(
    category_id: int,
    data: CategoryUpdate,
    current_user: User = Depends(require_librarian),
    db: AsyncSession = Depends(get_db)
):
    category = await category_service.update_category(db, parse_id(category_id, "category id"), data)
    return success_response(CategoryResponse.model_validate(category), message="Category updated successfully")


@router.delete("/{category_id}")
async def delete_category(
    category_id: int,
    current_user: User = Depends(require_librarian),
    db: AsyncSession = Depends(get_db)
):
    await category_service.delete_category(db, parse_id(category_id, "category id"))
    return success_response(message="Category deleted successfully")
