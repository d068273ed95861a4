# -*- coding: utf-8 -*-
"""Caller identity.

Authentication happens upstream; the gateway in front of this service sets
the `x-user-id` header for every authenticated request.
"""

from __future__ import annotations

import re
from typing import Any, Dict, Optional

from fastapi import Header, HTTPException

_USER_ID_RE = re.compile(r"^[A-Za-z0-9._@-]{1,128}$")


def get_current_user(x_user_id: Optional[str] = Header(None, alias="x-user-id")) -> Dict[str, Any]:
    user_id = (x_user_id or "").strip()
    if not user_id:
        raise HTTPException(status_code=401, detail="Not authenticated")
    if not _USER_ID_RE.match(user_id):
        raise HTTPException(status_code=401, detail="Invalid user id")
    return {"id": user_id}
