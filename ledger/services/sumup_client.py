"""
SumUp checkout gateway client
"""

import logging
import secrets
import time
from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, Optional

import httpx

from ledger.core.config import Settings
from ledger.core.errors import PaymentGatewayError

logger = logging.getLogger(__name__)

STATUS_PAID = "PAID"
STATUS_FAILED = "FAILED"
STATUS_EXPIRED = "EXPIRED"
STATUS_PENDING = "PENDING"


def generate_checkout_reference(member_id: int, prefix: str = "ndi") -> str:
    """Unique merchant-side reference: ``<prefix>-<member>-<unix ms>-<random>``"""
    return f"{prefix}-{member_id}-{int(time.time() * 1000)}-{secrets.token_hex(4)}"


def cents_to_amount(cents: int) -> float:
    return float(Decimal(cents) / 100)


def amount_to_cents(amount: Any) -> Optional[int]:
    if amount is None:
        return None
    try:
        return int((Decimal(str(amount)) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))
    except ArithmeticError:
        return None


@dataclass
class CheckoutResult:
    id: str
    status: str
    amount_cents: Optional[int] = None
    transaction_id: Optional[str] = None
    checkout_reference: Optional[str] = None

    @property
    def is_paid(self) -> bool:
        return self.status == STATUS_PAID

    @property
    def is_failed(self) -> bool:
        return self.status == STATUS_FAILED

    @property
    def is_expired(self) -> bool:
        return self.status == STATUS_EXPIRED


def parse_checkout(payload: Dict[str, Any]) -> CheckoutResult:
    """Normalize a checkout document returned by the gateway"""
    transaction_id = payload.get("transaction_id") or payload.get("transaction_code")
    transactions = payload.get("transactions") or []
    if not transaction_id and transactions:
        first = transactions[0]
        transaction_id = first.get("transaction_code") or first.get("id")
    return CheckoutResult(
        id=str(payload.get("id", "")),
        status=str(payload.get("status", STATUS_PENDING)).upper(),
        amount_cents=amount_to_cents(payload.get("amount")),
        transaction_id=transaction_id,
        checkout_reference=payload.get("checkout_reference"),
    )


class SumUpClient:
    """Thin synchronous wrapper over the checkouts endpoints.

    Every request is bounded by ``timeout``; transport failures and non-2xx
    answers surface as ``PaymentGatewayError``. There are no retries.
    """

    def __init__(
        self,
        api_key: str,
        merchant_code: str,
        base_url: str = "https://api.sumup.com",
        timeout: float = 10.0,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.merchant_code = merchant_code
        self._client = httpx.Client(
            base_url=base_url.rstrip("/"),
            timeout=timeout,
            headers={"Authorization": f"Bearer {api_key}"},
            transport=transport,
        )

    def _request(self, method: str, path: str, **kwargs) -> Dict[str, Any]:
        try:
            response = self._client.request(method, path, **kwargs)
            response.raise_for_status()
            return response.json()
        except httpx.HTTPStatusError as e:
            logger.error(f"SumUp {method} {path} answered {e.response.status_code}")
            raise PaymentGatewayError(
                f"Payment gateway error ({e.response.status_code})",
                details={"status": e.response.status_code},
            ) from e
        except httpx.HTTPError as e:
            logger.error(f"SumUp {method} {path} failed: {str(e)}")
            raise PaymentGatewayError("Payment gateway unreachable") from e
        except ValueError as e:
            logger.error(f"SumUp {method} {path} returned invalid JSON")
            raise PaymentGatewayError("Payment gateway returned an invalid response") from e

    def create_checkout(
        self,
        checkout_reference: str,
        amount_cents: int,
        currency: str,
        description: str,
        return_url: Optional[str] = None,
        redirect_url: Optional[str] = None,
    ) -> CheckoutResult:
        """POST /v0.1/checkouts"""
        body: Dict[str, Any] = {
            "checkout_reference": checkout_reference,
            "amount": cents_to_amount(amount_cents),
            "currency": currency,
            "merchant_code": self.merchant_code,
            "description": description,
        }
        if return_url:
            body["return_url"] = return_url
        if redirect_url:
            body["redirect_url"] = redirect_url
        return parse_checkout(self._request("POST", "/v0.1/checkouts", json=body))

    def get_checkout(self, checkout_id: str) -> CheckoutResult:
        """GET /v0.1/checkouts/{id}"""
        return parse_checkout(self._request("GET", f"/v0.1/checkouts/{checkout_id}"))

    def close(self) -> None:
        self._client.close()


def build_gateway(config: Settings) -> Optional[SumUpClient]:
    """None when credentials are missing; checkout then fails as misconfigured"""
    if not config.SUMUP_API_KEY or not config.SUMUP_MERCHANT_CODE:
        logger.warning("SumUp credentials not configured; online payments unavailable")
        return None
    return SumUpClient(
        api_key=config.SUMUP_API_KEY,
        merchant_code=config.SUMUP_MERCHANT_CODE,
        base_url=config.SUMUP_API_URL,
        timeout=config.GATEWAY_TIMEOUT_SECONDS,
    )
