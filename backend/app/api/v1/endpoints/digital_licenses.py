from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_db
from app.models.user import User
from app.modules.auth.dependencies import require_librarian
from app.schemas.catalog import DigitalLicenseUpdate, DigitalLicenseResponse
from app.schemas.user import BulkDeleteRequest, BulkDeleteResponse
from app.services.inventory_service import digital_license_service
from app.utils.responses import success_response, parse_id

router = APIRouter()


@router.get("/{license_id}")
async def get_digital_license(
    license_id: int,
    current_user: User = Depends(require_librarian),
    db: AsyncSession = Depends(get_db)
):
    license = await digital_license_service.get_license(db, parse_id(license_id, "license id"))
    return success_response(DigitalLicenseResponse.model_validate(license))


@router.put("/{license_id}")
async def update_digital_license(
    license_id: int,
    data: DigitalLicenseUpdate,
    current_user: User = Depends(require_librarian),
    db: AsyncSession = Depends(get_db)
):
    license = await digital_license_service.update_license(db, parse_id(license_id, "license id"), data)
    return success_response(DigitalLicenseResponse.model_validate(license), message="Digital license updated successfully")


@router.delete("/{license_id}")
async def delete_digital_license(
    license_id: int,
    current_user: User = Depends(require_librarian),
    db: AsyncSession = Depends(get_db)
):
    await digital_license_service.delete_license(db, parse_id(license_id, "license id"))
    return success_response(message="Digital license deleted successfully")


@router.post("/bulk-delete")
async def bulk_delete_digital_licenses(
    data: BulkDeleteRequest,
    current_user: User = Depends(require_librarian),
    db: AsyncSession = Depends(get_db)
):
    deleted = await digital_license_service.bulk_delete(db, data.ids)
    return success_response(
        BulkDeleteResponse(deleted_count=len(deleted), deleted_ids=deleted),
        message=f"Deleted {len(deleted)} license(s)",
    )
