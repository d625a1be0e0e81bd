"""
Shared fixtures: a throw-away SQLite database per test
"""

import pytest

from ledger.core.config import Settings
from ledger.core.db import Base, build_engine, build_session_factory, init_db
from ledger.models import Member, Team
from ledger.services.settings_service import SettingsService
from ledger.services.sumup_client import CheckoutResult
from ledger.services.team_directory import TeamDirectory, hash_password

ADMIN_TOKEN = "test-admin-token"


@pytest.fixture
def database_url(tmp_path):
    return f"sqlite:///{tmp_path / 'ledger_test.db'}"


@pytest.fixture
def config(database_url):
    return Settings(
        DATABASE_URL=database_url,
        SQLITE_BUSY_TIMEOUT=5.0,
        ADMIN_TOKEN=ADMIN_TOKEN,
        ORGANISATION_PASSWORD="staff-only",
        SITE_URL="https://ndi.example.org",
        SUMUP_API_KEY=None,
        SUMUP_MERCHANT_CODE=None,
        MAIL_ADMIN_EMAIL=None,
        MAIL_REPLY_TO=None,
        MAX_TEAM_SIZE=15,
        MAX_TOTAL_PARTICIPANTS=200,
        MIN_TEAM_SIZE=1,
    )


@pytest.fixture
def engine(database_url):
    engine = build_engine(database_url, busy_timeout=5.0)
    init_db(engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return build_session_factory(engine)


@pytest.fixture
def db_session(session_factory):
    """Create test database session with default settings seeded"""
    db = session_factory()
    SettingsService.seed_defaults(db)
    TeamDirectory.ensure_organisation_team(db, "staff-only")
    db.commit()
    try:
        yield db
    finally:
        db.close()


def make_team(db, name="Les Devs", password="secret", description=""):
    team = Team(name=name, description=description, password_hash=hash_password(password) if password else "")
    db.add(team)
    db.commit()
    return team


def make_member(db, team, first_name="Ada", last_name="Lovelace", **fields):
    fields.setdefault("email", f"{first_name.lower()}.{last_name.lower()}@example.com")
    member = Member(team_id=team.id, first_name=first_name, last_name=last_name, **fields)
    db.add(member)
    db.commit()
    return member


@pytest.fixture
def team(db_session):
    return make_team(db_session)


@pytest.fixture
def member(db_session, team):
    return make_member(db_session, team)


class FakeGateway:
    """Stands in for SumUpClient; statuses are set per checkout id"""

    def __init__(self):
        self.created = []
        self.statuses = {}
        self.amounts = {}
        self.lookups = 0

    def create_checkout(self, checkout_reference, amount_cents, currency, description,
                        return_url=None, redirect_url=None):
        checkout_id = f"chk_{len(self.created) + 1}"
        self.created.append({
            "id": checkout_id,
            "checkout_reference": checkout_reference,
            "amount_cents": amount_cents,
            "currency": currency,
            "description": description,
            "return_url": return_url,
            "redirect_url": redirect_url,
        })
        self.statuses[checkout_id] = "PENDING"
        self.amounts[checkout_id] = amount_cents
        return CheckoutResult(id=checkout_id, status="PENDING", amount_cents=amount_cents,
                              checkout_reference=checkout_reference)

    def get_checkout(self, checkout_id):
        self.lookups += 1
        status = self.statuses.get(checkout_id, "PENDING")
        return CheckoutResult(
            id=checkout_id,
            status=status,
            amount_cents=self.amounts.get(checkout_id),
            transaction_id=f"txn_{checkout_id}" if status == "PAID" else None,
        )

    def close(self):
        pass


@pytest.fixture
def gateway():
    return FakeGateway()
