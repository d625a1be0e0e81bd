"""
Export service: delimited participant exports and archive bundles
"""

import io
import json
import re
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Sequence

import pandas as pd
from sqlalchemy.orm import Session

from ledger.core.config import Settings
from ledger.models import Member
from ledger.services.repositories import MemberRepo
from ledger.services.settings_service import SettingsService
from ledger.services.team_directory import TeamDirectory

CSV_BOM = "\ufeff"
DELIMITER = ";"
DEFAULT_SCHOOL_NAME = "Université d'Evry"

# Spreadsheets evaluate cells starting with these as formulas
_FORMULA_PREFIX = re.compile(r"^[=+\-@\t\r|;]")

STANDARD_HEADERS = [
    "ID",
    "Prénom",
    "Nom",
    "Email",
    "Équipe",
    "Niveau BAC",
    "Chef d'équipe",
    "Pizza",
    "Date d'inscription",
]

OFFICIAL_HEADERS = [
    "prenom",
    "nom",
    "mail",
    "niveauBac",
    "equipe",
    "estLeader (0\\1)",
    "ecole (nom exact saisi sur le site)",
]

ARCHIVE_TEAM_HEADERS = ["ID", "Nom", "Description", "Salle", "Membres", "Date de création"]

ARCHIVE_PARTICIPANT_HEADERS = [
    "ID",
    "Équipe ID",
    "Prénom",
    "Nom",
    "Email",
    "Niveau BAC",
    "Chef d'équipe",
    "Pizza",
    "Présent",
    "Statut paiement",
    "Méthode de paiement",
    "Montant",
    "Date d'inscription",
]


def escape_csv(field: Any) -> str:
    """Neutralize formula triggers, then quote when the value needs it"""
    if field is None:
        return ""
    if isinstance(field, bool):
        text = "true" if field else "false"
    else:
        text = str(field)

    if _FORMULA_PREFIX.match(text):
        text = "'" + text

    if ";" in text or '"' in text or "\n" in text or "'" in text:
        return '"' + text.replace('"', '""') + '"'
    return text


def generate_csv(headers: Sequence[str], rows: Iterable[Sequence[Any]], include_bom: bool = True) -> str:
    """Headers are written as they are; every data cell goes through escape_csv"""
    lines = [DELIMITER.join(headers)]
    lines.extend(DELIMITER.join(escape_csv(cell) for cell in row) for row in rows)
    content = "\n".join(lines)
    return CSV_BOM + content if include_bom else content


def format_timestamp(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, datetime):
        return value.strftime("%Y-%m-%d %H:%M:%S")
    return str(value)


def safe_filename(name: str) -> str:
    return re.sub(r"[^a-zA-Z0-9]", "_", name)


def _standard_row(member: Member) -> List[Any]:
    return [
        member.id,
        member.first_name,
        member.last_name,
        member.email,
        member.team.name if member.team else "",
        f"BAC+{member.bac_level or 0}",
        "Oui" if member.is_leader else "Non",
        member.food_diet or "Aucune",
        format_timestamp(member.created_at),
    ]


def _official_row(member: Member, school_name: str) -> List[Any]:
    return [
        member.first_name,
        (member.last_name or "").upper(),
        member.email,
        int(member.bac_level or 0),
        member.team.name if member.team else "",
        1 if member.is_leader else 0,
        school_name,
    ]


class ExportService:
    """CSV exports of the live dataset and of archived snapshots"""

    @staticmethod
    def school_name(db: Session, config: Settings) -> str:
        return SettingsService.get(db, "school_name") or config.SCHOOL_NAME or DEFAULT_SCHOOL_NAME

    @staticmethod
    def _members(db: Session, team_id: Optional[int]) -> tuple:
        if team_id is None:
            return MemberRepo.list_all(db), None
        team = TeamDirectory.get_or_404(db, team_id)
        return list(team.members), team

    @staticmethod
    def standard_csv(db: Session, team_id: Optional[int] = None) -> Dict[str, str]:
        members, team = ExportService._members(db, team_id)
        filename = f"participants_{safe_filename(team.name)}.csv" if team else "participants.csv"
        return {
            "filename": filename,
            "content": generate_csv(STANDARD_HEADERS, [_standard_row(m) for m in members]),
        }

    @staticmethod
    def official_csv(db: Session, config: Settings, team_id: Optional[int] = None) -> Dict[str, str]:
        members, team = ExportService._members(db, team_id)
        school = ExportService.school_name(db, config)
        filename = (
            f"participants_officiel_{safe_filename(team.name)}.csv" if team else "participants_officiel.csv"
        )
        return {
            "filename": filename,
            "content": generate_csv(OFFICIAL_HEADERS, [_official_row(m, school) for m in members]),
        }

    # -------- Archive bundles --------

    @staticmethod
    def archive_teams_csv(teams: List[Dict[str, Any]]) -> str:
        rows = [
            [t.get("id"), t.get("name"), t.get("description"), t.get("room"),
             t.get("member_count", 0), t.get("created_at")]
            for t in teams
        ]
        return generate_csv(ARCHIVE_TEAM_HEADERS, rows)

    @staticmethod
    def archive_participants_csv(members: List[Dict[str, Any]]) -> str:
        rows = [
            [
                m.get("id"),
                m.get("team_id"),
                m.get("first_name"),
                m.get("last_name"),
                m.get("email"),
                f"BAC+{m.get('bac_level') or 0}",
                "Oui" if m.get("is_leader") else "Non",
                m.get("food_diet") or "Aucune",
                "Oui" if m.get("checked_in") else "Non",
                m.get("payment_status"),
                m.get("payment_method"),
                m.get("payment_amount"),
                m.get("created_at"),
            ]
            for m in members
        ]
        return generate_csv(ARCHIVE_PARTICIPANT_HEADERS, rows)

    @staticmethod
    def archive_readme(metadata: Dict[str, Any]) -> str:
        year = metadata["event_year"]
        lines = [
            f"Archive {year}",
            "",
            f"Archived at: {metadata['archived_at']}",
            f"Expires at: {metadata['expiration_date']}",
            f"Anonymized: {'yes' if metadata['is_expired'] else 'no'}",
            f"Teams: {metadata['total_teams']}",
            f"Participants: {metadata['total_participants']}",
            f"Revenue (cents): {metadata['total_revenue']}",
            f"SHA-256 of data: {metadata['data_hash']}",
            "",
            "Files:",
            "  metadata.json    archive metadata",
            "  statistics.json  aggregate statistics",
            "  teams.csv        teams (semicolon separated, UTF-8 with BOM)",
            "  participants.csv participants (semicolon separated, UTF-8 with BOM)",
            "",
            "Personal data is anonymized once the retention period has elapsed.",
        ]
        return "\n".join(lines) + "\n"

    @staticmethod
    def archive_bundle(metadata: Dict[str, Any], stats: Dict[str, Any],
                       teams: List[Dict[str, Any]], members: List[Dict[str, Any]]) -> Dict[str, Any]:
        year = metadata["event_year"]
        return {
            "filename": f"ndi-{year}-archive",
            "files": {
                "metadata.json": json.dumps(metadata, ensure_ascii=False, indent=2),
                "statistics.json": json.dumps(stats, ensure_ascii=False, indent=2),
                "teams.csv": ExportService.archive_teams_csv(teams),
                "participants.csv": ExportService.archive_participants_csv(members),
                "README.txt": ExportService.archive_readme(metadata),
            },
        }

    @staticmethod
    def archive_workbook(stats: Dict[str, Any], teams: List[Dict[str, Any]],
                         members: List[Dict[str, Any]]) -> bytes:
        """Teams / Participants / Statistics sheets"""
        teams_df = pd.DataFrame(teams)
        members_df = pd.DataFrame(members)
        stats_rows = []
        for key, value in stats.items():
            if isinstance(value, dict):
                for sub_key, sub_value in value.items():
                    stats_rows.append({"metric": f"{key}.{sub_key}", "value": sub_value})
            else:
                stats_rows.append({"metric": key, "value": value})
        stats_df = pd.DataFrame(stats_rows, columns=["metric", "value"])

        buffer = io.BytesIO()
        with pd.ExcelWriter(buffer, engine="openpyxl") as writer:
            teams_df.to_excel(writer, index=False, sheet_name="Teams")
            members_df.to_excel(writer, index=False, sheet_name="Participants")
            stats_df.to_excel(writer, index=False, sheet_name="Statistics")

        return buffer.getvalue()
