from fastapi import Header, HTTPException
from typing import Optional


async def get_current_user_id(x_user_id: Optional[int] = Header(None)) -> int:
    """Simple auth simulation - in real app, use proper authentication"""
    if not x_user_id:
        raise HTTPException(status_code=401, detail="X-User-ID header required")
    return x_user_id


async def get_optional_user_id(x_user_id: Optional[int] = Header(None)) -> Optional[int]:
    return x_user_id or None
