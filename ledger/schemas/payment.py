"""
Payment-related Pydantic schemas
"""

from ledger.schemas.common import CamelModel

class CheckoutRequest(CamelModel):
    member_id: int

class VerifyRequest(CamelModel):
    checkout_id: str

class DelayRequest(CamelModel):
    member_id: int
