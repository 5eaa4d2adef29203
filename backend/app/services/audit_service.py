"""Insert-only audit trail for logins, settlements, syncs and resets.

This module exposes no update or delete operations on audit_logs.
"""

import ipaddress
import logging
from typing import Optional

from fastapi import Request

import app.database as _db
from app.utils import utcnow

logger = logging.getLogger("courtside.audit")


def _anonymize_ip(ip: str) -> str:
    """Keep only the network part of an address.

    IPv4 keeps three octets (``192.168.1.xxx``), IPv6 keeps the /48 prefix.
    Anything unparsable is dropped.
    """
    try:
        addr = ipaddress.ip_address(ip.strip())
    except ValueError:
        return ""
    if addr.version == 4:
        head = str(addr).rsplit(".", 1)[0]
        return f"{head}.xxx"
    network = ipaddress.ip_network(f"{addr}/48", strict=False)
    return str(network)


def _client_ip(request: Optional[Request]) -> str:
    if request is None:
        return ""
    # First hop of X-Forwarded-For when running behind a proxy
    forwarded = request.headers.get("x-forwarded-for", "")
    if forwarded:
        return forwarded.split(",")[0]
    return request.client.host if request.client else ""


async def log_audit(
    *,
    actor_id: str,
    target_id: str,
    action: str,
    metadata: Optional[dict] = None,
    request: Optional[Request] = None,
) -> None:
    """Write an audit record.

    Args:
        actor_id: Who performed the action (user id or "SYSTEM").
        target_id: What was affected (user id, game id).
        action: Action identifier, e.g. "LOGIN_SUCCESS", "GAME_SETTLED".
        metadata: Extra context such as scores or totals.
        request: Optional request for IP extraction.
    """
    doc = {
        "timestamp": utcnow(),
        "actor_id": actor_id,
        "target_id": target_id,
        "action": action,
        "metadata": metadata or {},
        "ip_truncated": _anonymize_ip(_client_ip(request)),
    }

    try:
        await _db.db.audit_logs.insert_one(doc)
    except Exception:
        # Audit logging must never fail the request it describes
        logger.exception("Failed to write audit log: action=%s actor=%s", action, actor_id)
