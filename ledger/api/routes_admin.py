"""
Admin API routes - requires authentication
"""

from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, Depends, File, Query, UploadFile
from fastapi.concurrency import run_in_threadpool
from sqlalchemy.orm import Session

from ledger.api.deps import get_config
from ledger.core.config import Settings
from ledger.core.db import get_db
from ledger.schemas.member import CheckInRequest, MemberCreate, MemberIds, MemberUpdate
from ledger.schemas.team import BatchRoomAssignment, RoomAssignment, TeamCreate, TeamUpdate
from ledger.services.attendance_service import AttendanceService
from ledger.services.export_service import ExportService
from ledger.services.import_service import ImportService
from ledger.services.payment_service import PaymentService
from ledger.services.settings_service import SettingsService
from ledger.services.team_service import TeamService, member_to_dict, team_to_dict
from ledger.utils.responses import csv_response, success_response
from ledger.utils.security import verify_admin_token

router = APIRouter()

# -------- Members --------

@router.get("/members")
def list_members(
    db: Session = Depends(get_db),
    token: str = Depends(verify_admin_token)
):
    return success_response(
        message="Members retrieved successfully",
        data=TeamService.list_members(db)
    )

@router.post("/members")
def add_member(
    member_data: MemberCreate,
    db: Session = Depends(get_db),
    token: str = Depends(verify_admin_token)
):
    """Add a member by hand: no team password, no capacity check"""
    member = TeamService.add_member(db, member_data)
    return success_response(
        message="Member added successfully",
        data=member_to_dict(member),
        status_code=201
    )

@router.put("/members/{member_id}")
def update_member(
    member_id: int,
    member_data: MemberUpdate,
    db: Session = Depends(get_db),
    token: str = Depends(verify_admin_token)
):
    member = TeamService.update_member(db, member_id, member_data)
    return success_response(
        message="Member updated successfully",
        data=member_to_dict(member)
    )

@router.delete("/members/{member_id}")
def delete_member(
    member_id: int,
    db: Session = Depends(get_db),
    token: str = Depends(verify_admin_token)
):
    TeamService.delete_member(db, member_id)
    return success_response(message="Member deleted successfully")

@router.post("/members/delete-batch")
def delete_members_batch(
    batch: MemberIds,
    db: Session = Depends(get_db),
    token: str = Depends(verify_admin_token)
):
    deleted = TeamService.delete_members(db, batch.member_ids)
    return success_response(
        message=f"{deleted} member(s) deleted",
        data={"deleted": deleted}
    )

# -------- Teams --------

@router.get("/teams")
def list_teams(
    db: Session = Depends(get_db),
    token: str = Depends(verify_admin_token)
):
    """Every team with its full roster"""
    return success_response(
        message="Teams retrieved successfully",
        data=TeamService.list_teams_with_members(db)
    )

@router.post("/teams")
def create_team(
    team_data: TeamCreate,
    db: Session = Depends(get_db),
    token: str = Depends(verify_admin_token)
):
    team = TeamService.create_team(db, team_data)
    return success_response(
        message="Team created successfully",
        data=team_to_dict(team),
        status_code=201
    )

@router.put("/teams/{team_id}")
def update_team(
    team_id: int,
    team_data: TeamUpdate,
    db: Session = Depends(get_db),
    token: str = Depends(verify_admin_token)
):
    team = TeamService.update_team(db, team_id, team_data)
    return success_response(
        message="Team updated successfully",
        data=team_to_dict(team)
    )

@router.delete("/teams/{team_id}")
def delete_team(
    team_id: int,
    db: Session = Depends(get_db),
    token: str = Depends(verify_admin_token)
):
    """Deletes the team and, by cascade, its members"""
    result = TeamService.delete_team(db, team_id)
    return success_response(
        message=f"Team {result['name']} deleted",
        data=result
    )

# -------- Stats and exports --------

@router.get("/stats")
def admin_stats(
    db: Session = Depends(get_db),
    config: Settings = Depends(get_config),
    token: str = Depends(verify_admin_token)
):
    return success_response(
        message="Statistics retrieved successfully",
        data=TeamService.admin_stats(db, config)
    )

@router.get("/export")
def export_all(
    db: Session = Depends(get_db),
    token: str = Depends(verify_admin_token)
):
    export = ExportService.standard_csv(db)
    return csv_response(export["content"], export["filename"])

@router.get("/export/{team_id}")
def export_team(
    team_id: int,
    db: Session = Depends(get_db),
    token: str = Depends(verify_admin_token)
):
    export = ExportService.standard_csv(db, team_id)
    return csv_response(export["content"], export["filename"])

@router.get("/export-official")
def export_official(
    db: Session = Depends(get_db),
    config: Settings = Depends(get_config),
    token: str = Depends(verify_admin_token)
):
    """Seven-column export in the organisers' upload format"""
    export = ExportService.official_csv(db, config)
    return csv_response(export["content"], export["filename"])

@router.get("/export-official/{team_id}")
def export_team_official(
    team_id: int,
    db: Session = Depends(get_db),
    config: Settings = Depends(get_config),
    token: str = Depends(verify_admin_token)
):
    export = ExportService.official_csv(db, config, team_id)
    return csv_response(export["content"], export["filename"])

@router.post("/import")
async def import_participants(
    file: UploadFile = File(...),
    db: Session = Depends(get_db),
    token: str = Depends(verify_admin_token)
):
    """Bulk import from a CSV or Excel file"""
    content = await file.read()
    stats = await run_in_threadpool(ImportService.import_upload, db, content, file.filename or "")
    return success_response(
        message=f"Import completed: {stats['membersImported']} member(s) imported",
        data=stats
    )

# -------- Settings --------

@router.get("/settings")
def get_settings(
    db: Session = Depends(get_db),
    token: str = Depends(verify_admin_token)
):
    return success_response(
        message="Settings retrieved successfully",
        data=SettingsService.get_all(db)
    )

@router.put("/settings")
def update_settings(
    updates: Dict[str, Any] = Body(...),
    db: Session = Depends(get_db),
    token: str = Depends(verify_admin_token)
):
    """Every value is validated before anything is written"""
    updated = SettingsService.update(db, updates)
    return success_response(
        message="Settings updated successfully",
        data={"updated": updated, "settings": SettingsService.get_all(db)}
    )

# -------- Attendance --------

@router.get("/attendance")
def get_attendance(
    db: Session = Depends(get_db),
    token: str = Depends(verify_admin_token)
):
    return success_response(
        message="Attendance retrieved successfully",
        data=AttendanceService.attendance_overview(db)
    )

@router.get("/attendance/tiers")
def get_onsite_tiers(
    db: Session = Depends(get_db),
    config: Settings = Depends(get_config),
    token: str = Depends(verify_admin_token)
):
    """On-site tiers that can be collected right now"""
    return success_response(
        message="On-site tiers retrieved successfully",
        data=AttendanceService.onsite_options(db, event_timezone=config.EVENT_TIMEZONE)
    )

@router.post("/attendance/check-in/{member_id}")
def check_in_member(
    member_id: int,
    check_in: Optional[CheckInRequest] = None,
    db: Session = Depends(get_db),
    config: Settings = Depends(get_config),
    token: str = Depends(verify_admin_token)
):
    check_in = check_in or CheckInRequest()
    member = AttendanceService.check_in(
        db,
        member_id,
        payment_tier=check_in.payment_tier,
        payment_amount=check_in.payment_amount,
        skip_payment=check_in.skip_payment,
        event_timezone=config.EVENT_TIMEZONE
    )
    return success_response(
        message="Member checked in",
        data=member_to_dict(member)
    )

@router.post("/attendance/check-out/{member_id}")
def check_out_member(
    member_id: int,
    db: Session = Depends(get_db),
    token: str = Depends(verify_admin_token)
):
    member = AttendanceService.check_out(db, member_id)
    return success_response(
        message="Member checked out",
        data=member_to_dict(member)
    )

@router.post("/attendance/check-in-batch")
def check_in_batch(
    batch: MemberIds,
    db: Session = Depends(get_db),
    token: str = Depends(verify_admin_token)
):
    result = AttendanceService.check_in_batch(db, batch.member_ids)
    return success_response(
        message=f"{result['checked_in']} member(s) checked in",
        data=result
    )

@router.post("/attendance/check-out-batch")
def check_out_batch(
    batch: MemberIds,
    db: Session = Depends(get_db),
    token: str = Depends(verify_admin_token)
):
    count = AttendanceService.check_out_batch(db, batch.member_ids)
    return success_response(
        message=f"{count} member(s) checked out",
        data={"checked_out": count}
    )

# -------- Pizza --------

@router.get("/pizza")
def get_pizza(
    db: Session = Depends(get_db),
    token: str = Depends(verify_admin_token)
):
    return success_response(
        message="Pizza distribution retrieved successfully",
        data=AttendanceService.pizza_overview(db)
    )

@router.post("/pizza/give/{member_id}")
def give_pizza(
    member_id: int,
    db: Session = Depends(get_db),
    token: str = Depends(verify_admin_token)
):
    member = AttendanceService.set_pizza(db, member_id, True)
    return success_response(
        message="Pizza given",
        data=member_to_dict(member, include_payment=False)
    )

@router.post("/pizza/revoke/{member_id}")
def revoke_pizza(
    member_id: int,
    db: Session = Depends(get_db),
    token: str = Depends(verify_admin_token)
):
    member = AttendanceService.set_pizza(db, member_id, False)
    return success_response(
        message="Pizza revoked",
        data=member_to_dict(member, include_payment=False)
    )

@router.post("/pizza/give-batch")
def give_pizza_batch(
    batch: MemberIds,
    db: Session = Depends(get_db),
    token: str = Depends(verify_admin_token)
):
    count = AttendanceService.set_pizza_batch(db, batch.member_ids, True)
    return success_response(
        message=f"Pizza given to {count} member(s)",
        data={"updated": count}
    )

@router.post("/pizza/revoke-batch")
def revoke_pizza_batch(
    batch: MemberIds,
    db: Session = Depends(get_db),
    token: str = Depends(verify_admin_token)
):
    count = AttendanceService.set_pizza_batch(db, batch.member_ids, False)
    return success_response(
        message=f"Pizza revoked from {count} member(s)",
        data={"updated": count}
    )

# -------- Rooms --------

@router.get("/rooms")
def get_rooms(
    db: Session = Depends(get_db),
    token: str = Depends(verify_admin_token)
):
    return success_response(
        message="Rooms retrieved successfully",
        data=AttendanceService.room_overview(db)
    )

@router.put("/rooms/{team_id}")
def set_room(
    team_id: int,
    assignment: RoomAssignment,
    db: Session = Depends(get_db),
    token: str = Depends(verify_admin_token)
):
    """An empty or null room clears the assignment"""
    team = AttendanceService.set_room(db, team_id, assignment.room)
    return success_response(
        message="Room updated",
        data=team_to_dict(team)
    )

@router.post("/rooms/batch")
def set_rooms_batch(
    assignment: BatchRoomAssignment,
    db: Session = Depends(get_db),
    token: str = Depends(verify_admin_token)
):
    count = AttendanceService.set_rooms_batch(db, assignment.team_ids, assignment.room)
    return success_response(
        message=f"Room updated for {count} team(s)",
        data={"updated": count}
    )

# -------- Payments --------

@router.get("/payments/events")
def list_payment_events(
    limit: int = Query(100, ge=1, le=1000),
    db: Session = Depends(get_db),
    token: str = Depends(verify_admin_token)
):
    """Payment event log, most recent first"""
    return success_response(
        message="Payment events retrieved successfully",
        data=PaymentService.list_events(db, limit)
    )

@router.get("/payments/pending")
def list_pending_payments(
    db: Session = Depends(get_db),
    token: str = Depends(verify_admin_token)
):
    return success_response(
        message="Pending payments retrieved successfully",
        data=PaymentService.pending_payments(db)
    )

@router.get("/payments/summary")
def payment_summary(
    db: Session = Depends(get_db),
    token: str = Depends(verify_admin_token)
):
    return success_response(
        message="Payment summary retrieved successfully",
        data=PaymentService.totals(db)
    )

@router.get("/payments/members/{member_id}")
def member_payment(
    member_id: int,
    db: Session = Depends(get_db),
    token: str = Depends(verify_admin_token)
):
    return success_response(
        message="Member payment retrieved successfully",
        data=PaymentService.member_payment(db, member_id)
    )
