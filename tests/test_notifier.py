"""
Tests for the registration e-mail notifier
"""

import json
import logging

import httpx
import pytest
from fastapi.testclient import TestClient

from ledger.services.notifier import (
    RegistrationNotifier, admin_message, build_notifier, pizza_list,
)
from main import create_app

MEMBERS = [
    {"first_name": "Ada", "last_name": "Lovelace", "email": "ada@example.com", "is_leader": True, "food_diet": "reine"},
    {"first_name": "Alan", "last_name": "Turing", "email": "alan@example.com", "is_leader": False, "food_diet": "none"},
]


def make_notifier(handler):
    return RegistrationNotifier(
        admin_email="orga@example.org",
        sender_email="noreply@example.org",
        api_url="https://mail.example.test/send",
        transport=httpx.MockTransport(handler),
    )


def test_admin_message_for_new_and_joined_team():
    subject, body = admin_message("Les Devs", True, MEMBERS)
    assert subject == "[NDI] Nouvelle équipe créée: Les Devs"
    assert "- Ada Lovelace (ada@example.com) [Chef d'équipe]" in body
    assert "- Alan Turing (alan@example.com)\n" in body
    assert "- Ada Lovelace: reine" in body

    subject, _ = admin_message("Les Devs", False, MEMBERS)
    assert subject == "[NDI] Nouveaux membres: Les Devs"


def test_pizza_list_without_choices():
    assert pizza_list(MEMBERS[1:]) == "Aucune sélection"


def test_sends_admin_notice_and_confirmation():
    sent = []

    def handler(request):
        sent.append(json.loads(request.content))
        return httpx.Response(202)

    notifier = make_notifier(handler)
    assert notifier.notify_registration("Les Devs", True, MEMBERS) == 2

    admin, participant = sent
    assert admin["personalizations"] == [{"to": [{"email": "orga@example.org"}]}]
    assert admin["from"] == {"email": "noreply@example.org", "name": "Nuit de l'Info"}
    assert admin["reply_to"] == {"email": "noreply@example.org"}
    assert admin["content"][0]["type"] == "text/plain"

    assert participant["personalizations"][0]["to"][0]["email"] == "ada@example.com"
    assert participant["subject"] == "[NDI] Confirmation d'inscription"
    assert "Membres inscrits: 2" in participant["content"][0]["value"]
    notifier.close()


def test_rejected_send_is_logged_not_raised(caplog):
    def handler(request):
        return httpx.Response(500, json={"errors": ["boom"]})

    notifier = make_notifier(handler)
    with caplog.at_level(logging.ERROR, logger="ledger.services.notifier"):
        assert notifier.notify_registration("Les Devs", True, MEMBERS) == 0
    assert "rejected (500)" in caplog.text


def test_network_error_is_logged_not_raised(caplog):
    def handler(request):
        raise httpx.ConnectError("unreachable", request=request)

    notifier = make_notifier(handler)
    with caplog.at_level(logging.ERROR, logger="ledger.services.notifier"):
        assert notifier.send("ada@example.com", "subject", "body") is False
    assert "unreachable" in caplog.text


@pytest.mark.parametrize("admin, reply_to", [(None, None), ("orga@example.org", None), (None, "noreply@example.org")])
def test_disabled_without_both_addresses(config, admin, reply_to):
    config.MAIL_ADMIN_EMAIL = admin
    config.MAIL_REPLY_TO = reply_to
    assert build_notifier(config) is None


def test_built_when_configured(config):
    config.MAIL_ADMIN_EMAIL = "orga@example.org"
    config.MAIL_REPLY_TO = "noreply@example.org"
    notifier = build_notifier(config)
    assert notifier.admin_email == "orga@example.org"
    assert notifier.api_url == "https://api.mailchannels.net/tx/v1/send"
    notifier.close()


class TestRegistrationMail:
    def register(self, client):
        return client.post("/api/register", json={
            "createNewTeam": True,
            "teamName": "Les Devs",
            "teamPassword": "secret",
            "members": [
                {"firstName": "Ada", "lastName": "Lovelace", "email": "ada@example.com", "isLeader": True},
            ],
        })

    def run_with(self, config, handler):
        app = create_app(config)
        app.state.notifier = make_notifier(handler)
        with TestClient(app) as client:
            response = self.register(client)
            teams = client.get("/api/teams").json()["data"]
        app.state.engine.dispose()
        return response, teams

    def test_mail_sent_after_registration(self, config):
        sent = []

        def handler(request):
            sent.append(json.loads(request.content))
            return httpx.Response(202)

        response, _ = self.run_with(config, handler)
        assert response.status_code == 201
        assert [m["subject"] for m in sent] == [
            "[NDI] Nouvelle équipe créée: Les Devs",
            "[NDI] Confirmation d'inscription",
        ]

    def test_mail_failure_keeps_registration(self, config):
        def handler(request):
            raise httpx.ConnectError("unreachable", request=request)

        response, teams = self.run_with(config, handler)
        assert response.status_code == 201
        assert response.json()["success"] is True
        assert any(t["name"] == "Les Devs" and t["member_count"] == 1 for t in teams)
