from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from psycopg.types.json import Jsonb
from starlette.requests import Request

from .rate_limit import client_ip
from .validation import sanitize_for_logging


_log = logging.getLogger("thriftshop.audit")

AUDIT_ACTIONS = (
    "product_created",
    "product_updated",
    "product_deleted",
    "product_images_uploaded",
    "user_promoted_admin",
    "user_demoted_admin",
    "order_status_changed",
    "settings_updated",
    "password_changed",
)


def log_admin_action(
    conn,
    *,
    user_id: str,
    action: str,
    details: Dict[str, Any],
    request: Optional[Request] = None,
) -> None:
    """Record an admin action in audit_logs. Runs inside the caller's transaction."""

    if action not in AUDIT_ACTIONS:
        raise ValueError(f"Unknown audit action: {action}")

    entry = dict(details)
    entry["timestamp"] = datetime.now(timezone.utc).isoformat()
    ip = client_ip(request) if request is not None else None
    ua = request.headers.get("user-agent") if request is not None else None

    _log.info("admin_action action=%s user_id=%s details=%s", action, user_id, sanitize_for_logging(entry))

    with conn.cursor() as cur:
        cur.execute(
            """
            INSERT INTO thriftshop.audit_logs (user_id, action, details, ip_address, user_agent)
            VALUES (%s, %s, %s, %s, %s);
            """,
            (user_id, action, Jsonb(entry), ip, ua),
        )
