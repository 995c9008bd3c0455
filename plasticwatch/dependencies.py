from fastapi import Depends, Header, HTTPException

from plasticwatch.config import settings
from plasticwatch.services.access_control import Principal


async def verify_api_key(x_api_key: str = Header(default="")) -> None:
    if not settings.api_key:
        return
    if x_api_key != settings.api_key:
        raise HTTPException(status_code=403, detail="Invalid or missing API key")


async def get_principal(x_user_claims: str = Header(default="")) -> Principal:
    """Caller identity as forwarded by the auth gateway; anonymous when absent."""
    try:
        return Principal.from_header(x_user_claims)
    except ValueError:
        raise HTTPException(status_code=401, detail="Malformed user claims")


async def require_principal(principal: Principal = Depends(get_principal)) -> Principal:
    if not principal.is_authenticated:
        raise HTTPException(status_code=401, detail="Authentication required")
    return principal
