"""
Tests for delimited exports
"""

from datetime import datetime

import pytest

from conftest import make_member, make_team
from ledger.core.errors import NotFoundError
from ledger.services.export_service import (
    CSV_BOM, ExportService, escape_csv, format_timestamp, generate_csv, safe_filename,
)
from ledger.services.settings_service import SettingsService


@pytest.mark.parametrize("value,expected", [
    (None, ""),
    ("plain", "plain"),
    (42, "42"),
    (True, "true"),
    ("=SUM(A1:A2)", "\"'=SUM(A1:A2)\""),
    ("+33 6 12", "\"'+33 6 12\""),
    ("-1", "\"'-1\""),
    ("@cmd", "\"'@cmd\""),
    ("a;b", '"a;b"'),
    ('say "hi"', '"say ""hi"""'),
    ("two\nlines", '"two\nlines"'),
    ("O'Brien", "\"O'Brien\""),
    ("=1;2", "\"'=1;2\""),
])
def test_escape_csv(value, expected):
    assert escape_csv(value) == expected


def test_generate_csv_layout():
    content = generate_csv(["A", "B"], [["1", "x;y"], [None, "=2"]])
    assert content == CSV_BOM + 'A;B\n1;"x;y"\n;"\'=2"'
    assert generate_csv(["A"], [], include_bom=False) == "A"


def test_helpers():
    assert format_timestamp(datetime(2025, 11, 3, 9, 5, 7)) == "2025-11-03 09:05:07"
    assert format_timestamp(None) == ""
    assert safe_filename("Les Devs #1") == "Les_Devs__1"


def test_standard_csv(db_session):
    team = make_team(db_session, "Les Devs")
    make_member(db_session, team, "Ada", "Lovelace", email="ada@example.com", bac_level=3,
                is_leader=True, food_diet="reine", created_at=datetime(2025, 11, 3, 9, 5, 7))

    export = ExportService.standard_csv(db_session)

    assert export["filename"] == "participants.csv"
    assert export["content"] == (
        CSV_BOM
        + "ID;Prénom;Nom;Email;Équipe;Niveau BAC;Chef d'équipe;Pizza;Date d'inscription\n"
        + "1;Ada;Lovelace;ada@example.com;Les Devs;BAC+3;Oui;reine;2025-11-03 09:05:07"
    )


def test_official_csv(db_session, config):
    team = make_team(db_session, "Les Devs")
    make_member(db_session, team, "Ada", "Lovelace", email="ada@example.com", bac_level=3, is_leader=True)
    make_member(db_session, team, "Alan", "de Turing", email="alan@example.com", bac_level=0)

    export = ExportService.official_csv(db_session, config, team.id)

    assert export["filename"] == "participants_officiel_Les_Devs.csv"
    lines = export["content"].split("\n")
    assert lines[0] == CSV_BOM + "prenom;nom;mail;niveauBac;equipe;estLeader (0\\1);ecole (nom exact saisi sur le site)"
    assert lines[1] == "Ada;LOVELACE;ada@example.com;3;Les Devs;1;\"Université d'Evry\""
    assert lines[2] == "Alan;DE TURING;alan@example.com;0;Les Devs;0;\"Université d'Evry\""


def test_official_csv_school_setting(db_session, config, member):
    SettingsService.update(db_session, {"school_name": "IUT Evry"})
    content = ExportService.official_csv(db_session, config)["content"]
    assert content.endswith(";IUT Evry")


def test_team_export_unknown_team(db_session):
    with pytest.raises(NotFoundError):
        ExportService.standard_csv(db_session, 9999)


def test_archive_workbook_sheets():
    import io

    import pandas as pd

    content = ExportService.archive_workbook(
        {"total_teams": 1, "payments": {"total_revenue": 500}},
        [{"id": 1, "name": "Les Devs"}],
        [{"id": 1, "first_name": "Ada"}],
    )
    sheets = pd.read_excel(io.BytesIO(content), sheet_name=None)
    assert list(sheets) == ["Teams", "Participants", "Statistics"]
    stats = sheets["Statistics"]
    assert list(stats["metric"]) == ["total_teams", "payments.total_revenue"]
