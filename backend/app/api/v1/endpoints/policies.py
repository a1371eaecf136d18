from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_db
from app.models.user import User
from app.modules.auth.dependencies import get_current_user, require_librarian
from app.schemas.payment import PolicyCreate, PolicyUpdate, PolicyResponse
from app.services.payment_service import policy_service
from app.utils.pagination import PaginationParams, pagination_params
from app.utils.responses import success_response, envelope

router = APIRouter()


@router.get("")
async def list_policies(
    params: PaginationParams = Depends(pagination_params),
    current_user: User = Depends(require_librarian),
    db: AsyncSession = Depends(get_db)
):
    policies, pagination = await policy_service.list_policies(db, params)
    return success_response({
        "policies": [PolicyResponse.model_validate(p) for p in policies],
        "pagination": pagination,
    })


@router.get("/all")
async def list_all_policies(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    policies = await policy_service.list_all(db)
    return success_response({"policies": [PolicyResponse.model_validate(p) for p in policies]})


@router.get("/{policy_id}")
async def get_policy(
    policy_id: str,
    current_user: User = Depends(require_librarian),
    db: AsyncSession = Depends(get_db)
):
    policy = await policy_service.get_policy(db, policy_id)
    return success_response(PolicyResponse.model_validate(policy))


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_policy(
    data: PolicyCreate,
    current_user: User = Depends(require_librarian),
    db: AsyncSession = Depends(get_db)
):
    policy = await policy_service.create_policy(db, data)
    return envelope(PolicyResponse.model_validate(policy), message="Policy created successfully", status_code=201)


@router.put("/{policy_id}")
async def update_policy(
    policy_id: str,
    data: PolicyUpdate,
    current_user: User = Depends(require_librarian),
    db: AsyncSession = Depends(get_db)
):
    policy = await policy_service.update_policy(db, policy_id, data)
    return success_response(PolicyResponse.model_validate(policy), message="Policy updated successfully")


@router.delete("/{policy_id}")
async def delete_policy(
    policy_id: str,
    current_user: User = Depends(require_librarian),
    db: AsyncSession = Depends(get_db)
):
    await policy_service.delete_policy(db, policy_id)
    return success_response(message="Policy deleted successfully")
