"""
Archive and reset API routes - requires authentication
"""

from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ledger.api.deps import get_config
from ledger.core.config import Settings
from ledger.core.db import get_db
from ledger.schemas.archive import ArchiveCreate, ResetRequest
from ledger.services.archive_service import ArchiveService, archive_metadata
from ledger.utils.responses import success_response, xlsx_response
from ledger.utils.security import verify_admin_token

router = APIRouter()

@router.get("/archives")
def list_archives(
    db: Session = Depends(get_db),
    token: str = Depends(verify_admin_token)
):
    return success_response(
        message="Archives retrieved successfully",
        data=ArchiveService.list_archives(db)
    )

@router.post("/archives")
def create_archive(
    archive_data: Optional[ArchiveCreate] = None,
    db: Session = Depends(get_db),
    token: str = Depends(verify_admin_token)
):
    """Snapshot the live data; the year defaults to the detected event year"""
    year = archive_data.year if archive_data else None
    archive = ArchiveService.create_archive(db, year)
    return success_response(
        message=f"Archive for {archive.event_year} created",
        data=archive_metadata(archive),
        status_code=201
    )

@router.get("/archives/event-year")
def get_event_year(
    db: Session = Depends(get_db),
    token: str = Depends(verify_admin_token)
):
    return success_response(
        message="Event year detected",
        data={"year": ArchiveService.detect_event_year(db)}
    )

@router.post("/archives/check-expiration")
def check_expiration(
    db: Session = Depends(get_db),
    token: str = Depends(verify_admin_token)
):
    """Anonymize archives past their retention date"""
    result = ArchiveService.check_expiration(db)
    return success_response(
        message=f"{result['updated']} archive(s) anonymized",
        data=result
    )

@router.get("/archives/{year}")
def get_archive(
    year: int,
    db: Session = Depends(get_db),
    token: str = Depends(verify_admin_token)
):
    return success_response(
        message="Archive retrieved successfully",
        data=ArchiveService.get_archive(db, year)
    )

@router.get("/archives/{year}/export")
def export_archive(
    year: int,
    db: Session = Depends(get_db),
    token: str = Depends(verify_admin_token)
):
    """Bundle of metadata, statistics, both tables and a readme"""
    return success_response(
        message="Archive export generated",
        data=ArchiveService.export_archive(db, year)
    )

@router.get("/archives/{year}/export.xlsx")
def export_archive_workbook(
    year: int,
    db: Session = Depends(get_db),
    token: str = Depends(verify_admin_token)
):
    content = ArchiveService.export_archive_workbook(db, year)
    return xlsx_response(content, f"ndi-{year}-archive.xlsx")

@router.get("/reset/check")
def reset_check(
    db: Session = Depends(get_db),
    token: str = Depends(verify_admin_token)
):
    return success_response(
        message="Reset safety checked",
        data=ArchiveService.reset_check(db)
    )

@router.post("/reset")
def reset(
    reset_data: ResetRequest,
    db: Session = Depends(get_db),
    config: Settings = Depends(get_config),
    token: str = Depends(verify_admin_token)
):
    """Delete all live teams, members and payment events"""
    result = ArchiveService.reset(
        db,
        reset_data.confirmation,
        config,
        force=reset_data.force,
        create_archive_first=reset_data.create_archive_first
    )
    if result.get("warning"):
        return success_response(message=result["message"], data=result)
    return success_response(
        message="Database reset successfully",
        data=result
    )
