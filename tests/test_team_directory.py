"""
Tests for team identity and password verification
"""

import pytest

from conftest import make_team
from ledger.core.errors import DuplicateError, NotFoundError
from ledger.models import ORGANISATION_TEAM_NAME, Team
from ledger.services.team_directory import TeamDirectory, check_password, hash_password
from ledger.utils.security import tokens_match


def test_password_hash_round_trip():
    hashed = hash_password("secret")
    assert hashed != "secret"
    assert check_password("secret", hashed)
    assert not check_password("Secret", hashed)


def test_check_password_rejects_empty_and_unknown_hashes():
    assert not check_password("", hash_password("secret"))
    assert not check_password("secret", "")
    assert not check_password("secret", None)
    assert not check_password("secret", "plain-text-not-a-hash")


def test_tokens_match():
    assert tokens_match("abc", "abc")
    assert not tokens_match("abc", "abd")
    assert not tokens_match("", "")
    assert tokens_match("café", "café")


def test_create_team_rejects_duplicate_name_case_insensitive(db_session):
    TeamDirectory.create_team(db_session, "Les Devs", "", "secret")
    db_session.commit()
    with pytest.raises(DuplicateError):
        TeamDirectory.create_team(db_session, "les devs", "", "other")


def test_verify_team_password(db_session):
    team = make_team(db_session, "Les Devs", "secret")
    assert TeamDirectory.verify_team_password(db_session, team.id, "secret")
    assert not TeamDirectory.verify_team_password(db_session, team.id, "wrong")
    assert not TeamDirectory.verify_team_password(db_session, 9999, "secret")


def test_get_or_404(db_session):
    with pytest.raises(NotFoundError) as exc_info:
        TeamDirectory.get_or_404(db_session, 9999)
    assert exc_info.value.message == "Team not found"


def test_ensure_organisation_team_is_idempotent(db_session):
    first = TeamDirectory.ensure_organisation_team(db_session, "staff-only")
    second = TeamDirectory.ensure_organisation_team(db_session, "other")
    assert first.id == second.id
    assert db_session.query(Team).filter(Team.name == ORGANISATION_TEAM_NAME).count() == 1
    assert first.is_organisation
