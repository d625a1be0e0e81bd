"""
Runtime settings store: capacity ceilings, pricing and retention
"""

import json
import logging
import re
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from ledger.core.config import Settings
from ledger.core.db import atomic, utcnow
from ledger.core.errors import ValidationError
from ledger.models import Setting
from ledger.services.pricing import (
    ONSITE_ASSO_MEMBER, ONSITE_LATE, ONSITE_NON_MEMBER, parse_deadline,
)

logger = logging.getLogger(__name__)

DEFAULT_PIZZAS = [
    {"id": "none", "name": "Aucune", "description": ""},
    {"id": "margherita", "name": "Margherita", "description": "Végétarienne, Sauce Tomate, Double Fromage"},
    {"id": "reine", "name": "Reine", "description": "Sauce Tomate, Fromage, Jambon, Champignon Frais"},
    {"id": "4fromages", "name": "4 Fromages", "description": "Végétarienne, Crème Fraîche, Fromage, Brie, Bleu"},
    {"id": "vegetarienne", "name": "Végétarienne", "description": "Sauce Tomate, Fromage, Champignons, Poivrons, Olives"},
    {"id": "orientale", "name": "Orientale", "description": "Sauce Tomate, Fromage, Merguez, Champignons, Oignons"},
]

DEFAULT_BAC_LEVELS = [
    {"value": 0, "label": "Non bachelier"},
    {"value": 1, "label": "BAC+1"},
    {"value": 2, "label": "BAC+2"},
    {"value": 3, "label": "BAC+3 (Licence)"},
    {"value": 4, "label": "BAC+4"},
    {"value": 5, "label": "BAC+5 (Master)"},
    {"value": 6, "label": "BAC+6"},
    {"value": 7, "label": "BAC+7"},
    {"value": 8, "label": "BAC+8 (Doctorat)"},
]

JSON_KEYS = {"pizzas", "bac_levels"}


def _defaults() -> Dict[str, tuple]:
    return {
        "max_team_size": ("15", "Maximum members per team"),
        "max_total_participants": ("200", "Maximum total participants allowed"),
        "min_team_size": ("1", "Minimum members required for team creation"),
        "price_tier1": ("500", "Early bird online price (cents)"),
        "price_tier2": ("700", "Standard online price (cents)"),
        "tier1_cutoff_days": ("7", "Days before the deadline when early bird ends"),
        "registration_deadline": ("", "Registration deadline (ISO date)"),
        "payment_enabled": ("false", "Online payments switch"),
        "price_asso_member": ("500", "On-site price for association members (cents)"),
        "price_non_member": ("800", "On-site price for non-members (cents)"),
        "price_late": ("1000", "On-site price after the late cutoff (cents)"),
        "late_cutoff_time": ("19:00", "Time of day after which late pricing applies"),
        "gdpr_retention_years": ("3", "Years to retain personal data before anonymization"),
        "event_year": ("", "Event year; empty means detected from registrations"),
        "school_name": ("", "School name for the official export"),
        "pizzas": (json.dumps(DEFAULT_PIZZAS, ensure_ascii=False), "Available pizza options (JSON array)"),
        "bac_levels": (json.dumps(DEFAULT_BAC_LEVELS, ensure_ascii=False), "Education level options (JSON array)"),
    }


@dataclass
class CapacitySettings:
    max_team_size: int
    max_total_participants: int
    min_team_size: int


@dataclass
class PricingSettings:
    price_tier1: int
    price_tier2: int
    tier1_cutoff_days: int
    registration_deadline: str
    payment_enabled: bool
    price_asso_member: int
    price_non_member: int
    price_late: int
    late_cutoff_time: str

    @property
    def onsite_prices(self) -> Dict[str, int]:
        return {
            ONSITE_ASSO_MEMBER: self.price_asso_member,
            ONSITE_NON_MEMBER: self.price_non_member,
            ONSITE_LATE: self.price_late,
        }


# -------- Validation --------

def _validate_int(value: Any, low: int, high: int) -> Optional[str]:
    if isinstance(value, bool):
        return f"Must be a number between {low} and {high}"
    try:
        number = int(str(value).strip())
    except (TypeError, ValueError):
        return f"Must be a number between {low} and {high}"
    if number < low or number > high:
        return f"Must be a number between {low} and {high}"
    return None


def _validate_time(value: Any) -> Optional[str]:
    if not isinstance(value, str) or not re.fullmatch(r"([01]\d|2[0-3]):[0-5]\d", value):
        return "Must be a time in HH:MM format"
    return None


def _validate_deadline(value: Any) -> Optional[str]:
    if value in ("", None):
        return None
    if not isinstance(value, str) or parse_deadline(value) is None:
        return "Must be an ISO date (YYYY-MM-DD) or empty"
    return None


def _validate_bool(value: Any) -> Optional[str]:
    if isinstance(value, bool) or str(value).lower() in ("true", "false"):
        return None
    return "Must be true or false"


def _validate_school_name(value: Any) -> Optional[str]:
    if not isinstance(value, str) or len(value) > 256:
        return "Must be a string up to 256 characters"
    return None


def _validate_pizzas(value: Any) -> Optional[str]:
    if not isinstance(value, list):
        return "Must be an array"
    for i, pizza in enumerate(value):
        if not isinstance(pizza, dict) or not isinstance(pizza.get("id"), str) or not pizza["id"]:
            return f"Pizza at index {i} must have a string 'id'"
        if not isinstance(pizza.get("name"), str) or not pizza["name"]:
            return f"Pizza at index {i} must have a string 'name'"
        if "description" in pizza and not isinstance(pizza["description"], str):
            return f"Pizza at index {i} 'description' must be a string"
    return None


def _validate_bac_levels(value: Any) -> Optional[str]:
    if not isinstance(value, list):
        return "Must be an array"
    for i, level in enumerate(value):
        if not isinstance(level, dict) or isinstance(level.get("value"), bool) \
                or not isinstance(level.get("value"), (int, float)):
            return f"BAC level at index {i} must have a numeric 'value'"
        if not isinstance(level.get("label"), str) or not level["label"]:
            return f"BAC level at index {i} must have a string 'label'"
    return None


VALIDATORS = {
    "max_team_size": lambda v: _validate_int(v, 1, 100),
    "max_total_participants": lambda v: _validate_int(v, 1, 10_000),
    "min_team_size": lambda v: _validate_int(v, 1, 50),
    "price_tier1": lambda v: _validate_int(v, 0, 100_000),
    "price_tier2": lambda v: _validate_int(v, 0, 100_000),
    "price_asso_member": lambda v: _validate_int(v, 0, 100_000),
    "price_non_member": lambda v: _validate_int(v, 0, 100_000),
    "price_late": lambda v: _validate_int(v, 0, 100_000),
    "tier1_cutoff_days": lambda v: _validate_int(v, 0, 365),
    "gdpr_retention_years": lambda v: _validate_int(v, 1, 50),
    "event_year": lambda v: None if v in ("", None) else _validate_int(v, 2000, 2100),
    "payment_enabled": _validate_bool,
    "registration_deadline": _validate_deadline,
    "late_cutoff_time": _validate_time,
    "school_name": _validate_school_name,
    "pizzas": _validate_pizzas,
    "bac_levels": _validate_bac_levels,
}


def _serialize(key: str, value: Any) -> str:
    if key in JSON_KEYS:
        return json.dumps(value, ensure_ascii=False)
    if isinstance(value, bool):
        return "true" if value else "false"
    if value is None:
        return ""
    return str(value).strip()


class SettingsService:
    """Typed access to the settings table"""

    @staticmethod
    def seed_defaults(db: Session) -> int:
        """Insert missing keys; existing values are never overwritten"""
        existing = {row.key for row in db.query(Setting.key).all()}
        added = 0
        for key, (value, description) in _defaults().items():
            if key not in existing:
                db.add(Setting(key=key, value=value, description=description))
                added += 1
        db.flush()
        return added

    @staticmethod
    def get(db: Session, key: str) -> Optional[str]:
        row = db.query(Setting).filter(Setting.key == key).first()
        if row is not None:
            return row.value
        default = _defaults().get(key)
        return default[0] if default else None

    @staticmethod
    def get_int(db: Session, key: str, fallback: int) -> int:
        value = SettingsService.get(db, key)
        try:
            return int(value)
        except (TypeError, ValueError):
            return fallback

    @staticmethod
    def get_json(db: Session, key: str) -> Any:
        value = SettingsService.get(db, key)
        if not value:
            return None
        try:
            return json.loads(value)
        except ValueError:
            return None

    @staticmethod
    def set(db: Session, key: str, value: str, description: str = "") -> None:
        row = db.query(Setting).filter(Setting.key == key).first()
        if row is None:
            db.add(Setting(key=key, value=value, description=description))
        else:
            row.value = value
            if description:
                row.description = description
            row.updated_at = utcnow()
        db.flush()

    @staticmethod
    def capacity(db: Session, config: Settings) -> CapacitySettings:
        return CapacitySettings(
            max_team_size=SettingsService.get_int(db, "max_team_size", config.MAX_TEAM_SIZE),
            max_total_participants=SettingsService.get_int(db, "max_total_participants", config.MAX_TOTAL_PARTICIPANTS),
            min_team_size=SettingsService.get_int(db, "min_team_size", config.MIN_TEAM_SIZE),
        )

    @staticmethod
    def pricing(db: Session) -> PricingSettings:
        get_int = SettingsService.get_int
        return PricingSettings(
            price_tier1=get_int(db, "price_tier1", 500),
            price_tier2=get_int(db, "price_tier2", 700),
            tier1_cutoff_days=get_int(db, "tier1_cutoff_days", 7),
            registration_deadline=SettingsService.get(db, "registration_deadline") or "",
            payment_enabled=(SettingsService.get(db, "payment_enabled") or "").lower() == "true",
            price_asso_member=get_int(db, "price_asso_member", 500),
            price_non_member=get_int(db, "price_non_member", 800),
            price_late=get_int(db, "price_late", 1000),
            late_cutoff_time=SettingsService.get(db, "late_cutoff_time") or "19:00",
        )

    @staticmethod
    def get_all(db: Session) -> Dict[str, Any]:
        parsed: Dict[str, Any] = {}
        for key, (value, _) in _defaults().items():
            parsed[key] = value
        for row in db.query(Setting).order_by(Setting.key).all():
            parsed[row.key] = row.value
        for key in JSON_KEYS:
            try:
                parsed[key] = json.loads(parsed[key])
            except (TypeError, ValueError):
                pass
        return parsed

    @staticmethod
    def update(db: Session, updates: Dict[str, Any]) -> List[str]:
        """Validate every key and value first, then write them all"""
        if not updates:
            raise ValidationError("No settings provided")

        invalid_keys = [key for key in updates if key not in VALIDATORS]
        if invalid_keys:
            raise ValidationError(f"Invalid setting keys: {', '.join(invalid_keys)}", errors=invalid_keys)

        errors = []
        for key, value in updates.items():
            problem = VALIDATORS[key](value)
            if problem:
                errors.append(f"Invalid value for {key}: {problem}")
        if errors:
            raise ValidationError(errors[0], errors=errors)

        with atomic(db):
            for key, value in updates.items():
                SettingsService.set(db, key, _serialize(key, value))
        logger.info(f"Settings updated: {', '.join(sorted(updates))}")
        return list(updates)
