"""
Registration e-mails sent through the MailChannels send API

Best effort: a failed send is logged and never undoes or fails a
registration.
"""

import logging
from typing import Any, Dict, List, Optional

import httpx

from ledger.core.config import Settings

logger = logging.getLogger(__name__)

NO_PIZZA = "none"


def registration_contacts(members) -> List[Dict[str, Any]]:
    """Plain copies of the fields the e-mails need, safe to use after the session closes"""
    return [
        {
            "first_name": m.first_name,
            "last_name": m.last_name,
            "email": m.email,
            "is_leader": bool(m.is_leader),
            "food_diet": m.food_diet or "",
        }
        for m in members
    ]


LEADER_MARK = " [Chef d'équipe]"


def member_list(members: List[Dict[str, Any]]) -> str:
    return "\n".join(
        f"- {m['first_name']} {m['last_name']} ({m['email']})" + (LEADER_MARK if m["is_leader"] else "")
        for m in members
    )


def pizza_list(members: List[Dict[str, Any]]) -> str:
    lines = [
        f"- {m['first_name']} {m['last_name']}: {m['food_diet']}"
        for m in members
        if m["food_diet"] and m["food_diet"] != NO_PIZZA
    ]
    return "\n".join(lines) or "Aucune sélection"


def admin_message(team_name: str, is_new: bool, members: List[Dict[str, Any]]):
    """(subject, body) of the organisers' notification"""
    if is_new:
        subject = f"[NDI] Nouvelle équipe créée: {team_name}"
        opening = f"L'équipe \"{team_name}\" a été créée"
    else:
        subject = f"[NDI] Nouveaux membres: {team_name}"
        opening = f"De nouveaux membres ont rejoint l'équipe \"{team_name}\""
    body = (
        "Bonjour,\n\n"
        f"{opening} pour la Nuit de l'Info.\n\n"
        f"Membres inscrits:\n{member_list(members)}\n\n"
        f"Préférences pizza:\n{pizza_list(members)}\n\n"
        "Cordialement,\nL'équipe d'organisation"
    )
    return subject, body


def participant_message(team_name: str, members: List[Dict[str, Any]]):
    body = (
        "Bonjour,\n\n"
        "Votre inscription à la Nuit de l'Info a été confirmée!\n\n"
        f"Équipe: {team_name}\n"
        f"Membres inscrits: {len(members)}\n\n"
        f"{member_list(members)}\n\n"
        "À bientôt!\nL'équipe d'organisation"
    )
    return "[NDI] Confirmation d'inscription", body


class RegistrationNotifier:
    """Sends the organisers' notification and the participant confirmation"""

    def __init__(
        self,
        admin_email: str,
        sender_email: str,
        sender_name: str = "Nuit de l'Info",
        api_url: str = "https://api.mailchannels.net/tx/v1/send",
        timeout: float = 10.0,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.admin_email = admin_email
        self.sender_email = sender_email
        self.sender_name = sender_name
        self.api_url = api_url
        self._client = httpx.Client(timeout=timeout, transport=transport)

    def send(self, to: str, subject: str, body: str) -> bool:
        payload = {
            "personalizations": [{"to": [{"email": to}]}],
            "from": {"email": self.sender_email, "name": self.sender_name},
            "reply_to": {"email": self.sender_email},
            "subject": subject,
            "content": [{"type": "text/plain", "value": body}],
        }
        try:
            response = self._client.post(self.api_url, json=payload)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            logger.error(f"Mail \"{subject}\" rejected ({e.response.status_code})")
            return False
        except httpx.HTTPError as e:
            logger.error(f"Mail \"{subject}\" failed: {str(e)}")
            return False
        return True

    def notify_registration(self, team_name: str, is_new: bool, members: List[Dict[str, Any]]) -> int:
        """Returns how many of the e-mails were accepted"""
        sent = 0
        subject, body = admin_message(team_name, is_new, members)
        if self.send(self.admin_email, subject, body):
            sent += 1

        first_email = members[0]["email"] if members else None
        if first_email:
            subject, body = participant_message(team_name, members)
            if self.send(first_email, subject, body):
                sent += 1

        logger.info(f"Registration mail for team {team_name}: {sent} sent")
        return sent

    def close(self) -> None:
        self._client.close()


def build_notifier(config: Settings) -> Optional[RegistrationNotifier]:
    """None unless both the organisers' address and the sender address are set"""
    if not config.MAIL_ADMIN_EMAIL or not config.MAIL_REPLY_TO:
        logger.info("Registration mail not configured; no e-mails will be sent")
        return None
    return RegistrationNotifier(
        admin_email=config.MAIL_ADMIN_EMAIL,
        sender_email=config.MAIL_REPLY_TO,
        sender_name=config.MAIL_SENDER_NAME,
        api_url=config.MAIL_API_URL,
        timeout=config.GATEWAY_TIMEOUT_SECONDS,
    )
