"""
Request-scoped handles to the application's config, payment gateway and mail notifier
"""

from typing import Optional

from fastapi import Request

from ledger.core.config import Settings
from ledger.services.notifier import RegistrationNotifier
from ledger.services.sumup_client import SumUpClient


def get_config(request: Request) -> Settings:
    return request.app.state.config


def get_gateway(request: Request) -> Optional[SumUpClient]:
    """None when the gateway credentials are not configured"""
    return request.app.state.gateway


def get_notifier(request: Request) -> Optional[RegistrationNotifier]:
    return request.app.state.notifier
