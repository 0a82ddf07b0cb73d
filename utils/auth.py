# utils/auth.py
from typing import Optional

from fastapi import Header


def get_actor_id(x_user_id: Optional[str] = Header(None, alias="X-User-ID")) -> Optional[str]:
    # Access control lives in the gateway; the header only attributes writes (created_by).
    return x_user_id.strip() if x_user_id and x_user_id.strip() else None
