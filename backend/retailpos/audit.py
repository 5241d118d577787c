# Overview: Post-commit audit logging for engine operations.

from __future__ import annotations

import logging
from dataclasses import dataclass
from functools import wraps
from typing import Callable

from flask import g, has_request_context, request
from sqlalchemy.orm import Session

from .extensions import db
from .models import AuditLog

logger = logging.getLogger(__name__)

ENTITY_SALE = "SALE"
ENTITY_PURCHASE = "PURCHASE"
ENTITY_STOCK_ADJUSTMENT = "STOCK_ADJUSTMENT"

ACTION_CREATE = "CREATE"
ACTION_UPDATE = "UPDATE"
ACTION_VOID = "VOID"
ACTION_ADJUSTMENT = "ADJUSTMENT"


@dataclass(frozen=True)
class AuditContext:
    user_id: int | None
    ip_address: str | None


def capture_audit_context(actor_id: int | None = None) -> AuditContext:
    """
    Snapshot who is acting and from where.

    Must run synchronously on the request thread: the Flask request and g
    are not available once work is handed to another thread.
    """
    ip_address = None
    if has_request_context():
        ip_address = request.remote_addr
        if actor_id is None:
            actor_id = getattr(g, "actor_id", None)
    return AuditContext(user_id=actor_id, ip_address=ip_address)


def record_audit_event(
    *,
    entity_type: str,
    entity_id: int | None,
    action: str,
    description: str | None,
    context: AuditContext,
) -> None:
    """
    Write one audit row in its own session.

    Never raises: a failed audit write is logged and dropped.
    """
    try:
        with Session(db.engine) as session:
            session.add(AuditLog(
                entity_type=entity_type,
                entity_id=entity_id,
                action=action,
                user_id=context.user_id,
                description=description,
                ip_address=context.ip_address,
            ))
            session.commit()
        logger.debug("Audit log created: %s %s on %s (ID: %s)",
                     context.user_id, action, entity_type, entity_id)
    except Exception:
        logger.exception("Failed to create audit log: %s on %s (ID: %s)",
                         action, entity_type, entity_id)


def audited(entity_type: str, action: str, describe: Callable[[object], tuple[int | None, str]]):
    """
    Audit a service operation after it returns successfully.

    describe(result) -> (entity_id, description). The wrapped operation has
    already committed when the audit row is written, so nothing here can roll
    it back. Operations that raise are not audited.
    """
    def decorator(func):
        @wraps(func)
        def wrapper(*args, **kwargs):
            context = capture_audit_context(kwargs.get("actor_id"))
            result = func(*args, **kwargs)
            try:
                entity_id, description = describe(result)
            except Exception:
                logger.exception("Failed to describe %s %s for audit", action, entity_type)
                return result
            record_audit_event(
                entity_type=entity_type,
                entity_id=entity_id,
                action=action,
                description=description,
                context=context,
            )
            return result
        return wrapper
    return decorator
