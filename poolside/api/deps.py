import secrets

from fastapi import Depends, Header, HTTPException, status

from poolside.core.config import Settings, get_settings


async def require_admin(
    x_admin_key: str | None = Header(None),
    settings: Settings = Depends(get_settings),
) -> str:
    if x_admin_key is None or not secrets.compare_digest(x_admin_key.encode(), settings.admin_key.encode()):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Admin key required",
        )
    return x_admin_key
