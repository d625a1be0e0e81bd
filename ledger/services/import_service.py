"""
Bulk import of teams and members from CSV or Excel uploads
"""

import io
import logging
from typing import Any, Dict, List, Optional

import pandas as pd
from sqlalchemy.orm import Session

from ledger.core.db import atomic
from ledger.core.errors import ValidationError
from ledger.models import Member, Team
from ledger.services.repositories import MemberRepo
from ledger.services.team_directory import TeamDirectory
from ledger.utils.validation import parse_bac_level, sanitize_string

logger = logging.getLogger(__name__)

REQUIRED_COLUMNS = ["teamname", "firstname", "lastname", "email"]
OPTIONAL_COLUMNS = ["baclevel", "ismanager", "fooddiet"]
LEADER_VALUES = {"Yes", "yes", "1"}
MAX_REPORTED_ERRORS = 10
DEFAULT_TEAM_NAME = "Sans équipe"


def _cell(row: pd.Series, column: str) -> str:
    if column not in row.index:
        return ""
    value = row[column]
    if pd.isna(value):
        return ""
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    return str(value).strip()


class ImportService:
    """Upload -> DataFrame -> teams and members"""

    @staticmethod
    def read_upload(content: bytes, filename: str = "") -> pd.DataFrame:
        """CSV (comma or semicolon) or Excel; column names are normalized to lowercase"""
        if not content:
            raise ValidationError("CSV data is required")
        try:
            if filename.lower().endswith((".xlsx", ".xls")):
                df = pd.read_excel(io.BytesIO(content), dtype=str)
            else:
                df = pd.read_csv(io.BytesIO(content), sep=None, engine="python", dtype=str,
                                 encoding="utf-8-sig")
        except (ValueError, pd.errors.ParserError, pd.errors.EmptyDataError) as e:
            raise ValidationError(f"Could not read upload: {str(e)}") from e

        df.columns = [str(col).strip().lower().replace(" ", "").replace("_", "") for col in df.columns]
        return df

    @staticmethod
    def validate_structure(df: pd.DataFrame) -> List[str]:
        errors = []
        missing = [col for col in REQUIRED_COLUMNS if col not in df.columns]
        if missing:
            errors.append(f"Missing required columns: {', '.join(missing)}")
        if df.empty:
            errors.append("CSV must have header row and at least one data row")
        return errors

    @staticmethod
    def import_dataframe(db: Session, df: pd.DataFrame) -> Dict[str, Any]:
        errors = ImportService.validate_structure(df)
        if errors:
            raise ValidationError(errors[0], errors=errors)

        stats = {
            "teamsCreated": 0,
            "membersImported": 0,
            "membersSkipped": 0,
            "totalRows": len(df),
            "errors": [],
        }
        teams: Dict[str, Team] = {}
        seen = set()

        with atomic(db):
            for _, row in df.iterrows():
                team_name = sanitize_string(_cell(row, "teamname"), 100) or DEFAULT_TEAM_NAME
                team = ImportService._team_for(db, team_name, teams, stats)

                first_name = sanitize_string(_cell(row, "firstname"), 128)
                last_name = sanitize_string(_cell(row, "lastname"), 128)
                email = sanitize_string(_cell(row, "email"), 256).lower()
                if not first_name or not last_name or not email:
                    stats["membersSkipped"] += 1
                    stats["errors"].append(f"Skipped member: missing name or email ({first_name} {last_name})")
                    continue

                key = (first_name.lower(), last_name.lower())
                if key in seen or MemberRepo.find_person(db, first_name, last_name):
                    stats["membersSkipped"] += 1
                    continue
                seen.add(key)

                db.add(Member(
                    team_id=team.id,
                    first_name=first_name,
                    last_name=last_name,
                    email=email,
                    bac_level=parse_bac_level(_cell(row, "baclevel")) or 0,
                    is_leader=_cell(row, "ismanager") in LEADER_VALUES,
                    food_diet=sanitize_string(_cell(row, "fooddiet"), 64) or "none",
                ))
                stats["membersImported"] += 1
            db.flush()

        stats["errors"] = stats["errors"][:MAX_REPORTED_ERRORS]
        logger.info(
            f"Import: {stats['teamsCreated']} teams created, {stats['membersImported']} members imported, "
            f"{stats['membersSkipped']} skipped"
        )
        return stats

    @staticmethod
    def _team_for(db: Session, name: str, cache: Dict[str, Team], stats: Dict[str, Any]) -> Team:
        key = name.lower()
        team: Optional[Team] = cache.get(key) or TeamDirectory.find_by_name(db, name)
        if team is None:
            # the team name doubles as its initial password
            team = TeamDirectory.create_team(db, name, "", name)
            stats["teamsCreated"] += 1
        cache[key] = team
        return team

    @staticmethod
    def import_upload(db: Session, content: bytes, filename: str = "") -> Dict[str, Any]:
        return ImportService.import_dataframe(db, ImportService.read_upload(content, filename))
