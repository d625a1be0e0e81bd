"""
Input sanitization and structural validation for registrations
"""

from dataclasses import dataclass
from typing import Any, List, Optional, Tuple

from email_validator import EmailNotValidError, validate_email

MAX_BAC_LEVEL = 8
TEAM_NAME_MAX = 100
TEAM_NAME_MIN = 2


@dataclass
class CleanMember:
    first_name: str
    last_name: str
    email: str
    bac_level: int
    is_leader: bool
    food_diet: str


def sanitize_string(value: Any, max_length: int = 256) -> str:
    """Trim and truncate; anything that is not a string becomes empty"""
    if not isinstance(value, str):
        return ""
    return value.strip()[:max_length]


def is_valid_email(email: str) -> bool:
    if not email or len(email) > 254:
        return False
    try:
        validate_email(email, check_deliverability=False)
    except EmailNotValidError:
        return False
    return True


def parse_bac_level(value: Any) -> Optional[int]:
    if value is None or value == "":
        return 0
    if isinstance(value, bool):
        return None
    try:
        level = int(str(value).strip())
    except ValueError:
        return None
    if level < 0 or level > MAX_BAC_LEVEL:
        return None
    return level


def validate_team_name(name: Any) -> Tuple[Optional[str], Optional[str]]:
    """Returns (clean name, error)"""
    if isinstance(name, str) and len(name.strip()) > TEAM_NAME_MAX:
        return None, f"Team name must be at most {TEAM_NAME_MAX} characters"
    clean = sanitize_string(name, TEAM_NAME_MAX)
    if not clean:
        return None, "Team name is required"
    if len(clean) < TEAM_NAME_MIN:
        return None, f"Team name must be at least {TEAM_NAME_MIN} characters"
    return clean, None


def validate_member(raw: Any) -> Tuple[Optional[CleanMember], List[str]]:
    errors = []
    first_name = sanitize_string(getattr(raw, "first_name", None), 128)
    last_name = sanitize_string(getattr(raw, "last_name", None), 128)
    email = sanitize_string(getattr(raw, "email", None), 256).lower()
    bac_level = parse_bac_level(getattr(raw, "bac_level", 0))
    food_diet = sanitize_string(getattr(raw, "food_diet", None), 64)

    if not first_name:
        errors.append("First name is required")
    if not last_name:
        errors.append("Last name is required")
    if not email:
        errors.append("Email is required")
    elif not is_valid_email(email):
        errors.append("Invalid email format")
    if bac_level is None:
        errors.append("Invalid BAC level")

    if errors:
        return None, errors

    return CleanMember(
        first_name=first_name,
        last_name=last_name,
        email=email,
        bac_level=bac_level,
        is_leader=bool(getattr(raw, "is_leader", False)),
        food_diet=food_diet,
    ), []


def validate_members(raw_members: Optional[list], max_team_size: int) -> Tuple[List[CleanMember], List[str]]:
    """Structural checks shared by every registration mode"""
    errors: List[str] = []
    if not raw_members:
        return [], ["At least one member is required"]

    if len(raw_members) > max_team_size:
        errors.append(f"Maximum {max_team_size} members allowed")

    members: List[CleanMember] = []
    seen = set()
    for index, raw in enumerate(raw_members, start=1):
        member, member_errors = validate_member(raw)
        if member_errors:
            errors.append(f"Member {index}: {', '.join(member_errors)}")
            continue
        key = (member.first_name.lower(), member.last_name.lower())
        if key in seen:
            errors.append(f"Duplicate member: {member.first_name} {member.last_name}")
            continue
        seen.add(key)
        members.append(member)

    return members, errors
