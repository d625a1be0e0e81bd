"""
Security utilities and authentication
"""

import hmac

from fastapi import Depends, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from ledger.core.errors import AuthError

security = HTTPBearer(auto_error=False)

def tokens_match(candidate: str, expected: str) -> bool:
    """Constant-time comparison over the UTF-8 bytes"""
    if not candidate or not expected:
        return False
    return hmac.compare_digest(candidate.encode("utf-8"), expected.encode("utf-8"))

def verify_admin_token(
    request: Request,
    credentials: HTTPAuthorizationCredentials = Depends(security)
) -> str:
    """Verify admin authentication token"""
    expected = request.app.state.config.ADMIN_TOKEN
    if credentials is None or not tokens_match(credentials.credentials, expected):
        raise AuthError("Unauthorized")
    return credentials.credentials
