"""Structured audit and security events.

Each helper emits exactly one record. The structured payload travels in the
record's ``event_data`` attribute so the JSON file handlers can render it; the
console handler only shows the message line.
"""

import logging
from datetime import datetime
from typing import Any, Iterable, Optional

from smartlab.core.logging import audit_logger, security_logger, logger


def _actor(user: Any) -> dict:
    if user is None:
        return {"user_id": None, "user_email": None}
    return {"user_id": str(user.id), "user_email": user.email}


def _emit(
    target: logging.Logger,
    level: int,
    event: str,
    message: str,
    user: Any = None,
    ip: Optional[str] = None,
    **fields: Any,
) -> None:
    event_data = {
        "event": event,
        **_actor(user),
        "ip": ip,
        "at": datetime.utcnow().isoformat(),
        **fields,
    }
    target.log(level, message, extra={"event_data": event_data})


# ============== Authentication ==============

def log_user_login(user, ip: Optional[str] = None) -> None:
    _emit(audit_logger, logging.INFO, "USER_LOGIN", f"User logged in: {user.email}", user, ip)


def log_user_logout(user, ip: Optional[str] = None) -> None:
    _emit(audit_logger, logging.INFO, "USER_LOGOUT", f"User logged out: {user.email}", user, ip)


def log_user_registration(user, ip: Optional[str] = None, registered_by=None) -> None:
    _emit(
        audit_logger,
        logging.INFO,
        "USER_REGISTRATION",
        f"User registered: {user.email} ({user.role.value})",
        registered_by or user,
        ip,
        new_user_id=str(user.id),
        role=user.role.value,
    )


def log_login_failure(email: str, reason: str, ip: Optional[str] = None) -> None:
    _emit(
        security_logger,
        logging.WARNING,
        "LOGIN_FAILURE",
        f"Failed login for {email}: {reason}",
        None,
        ip,
        attempted_email=email,
        reason=reason,
    )


def log_password_change(user, ip: Optional[str] = None) -> None:
    _emit(audit_logger, logging.INFO, "PASSWORD_CHANGE", f"Password changed: {user.email}", user, ip)


# ============== Resource mutations ==============

def log_create(user, resource: str, resource_id: Any, ip: Optional[str] = None) -> None:
    _emit(
        audit_logger,
        logging.INFO,
        "CREATE",
        f"CREATE {resource} {resource_id}",
        user,
        ip,
        resource=resource,
        resource_id=str(resource_id),
    )


def log_update(
    user,
    resource: str,
    resource_id: Any,
    changes: Iterable[str],
    ip: Optional[str] = None,
) -> None:
    """Record an update. Only the names of the changed fields are kept, never values."""
    fields = sorted(changes)
    _emit(
        audit_logger,
        logging.INFO,
        "UPDATE",
        f"UPDATE {resource} {resource_id}",
        user,
        ip,
        resource=resource,
        resource_id=str(resource_id),
        changes=fields,
    )


def log_delete(user, resource: str, resource_id: Any, ip: Optional[str] = None) -> None:
    _emit(
        audit_logger,
        logging.INFO,
        "DELETE",
        f"DELETE {resource} {resource_id}",
        user,
        ip,
        resource=resource,
        resource_id=str(resource_id),
    )


def log_read(user, resource: str, resource_id: Any = None, ip: Optional[str] = None) -> None:
    _emit(
        audit_logger,
        logging.DEBUG,
        "READ",
        f"READ {resource} {resource_id or ''}".rstrip(),
        user,
        ip,
        resource=resource,
        resource_id=str(resource_id) if resource_id is not None else None,
    )


# ============== Security & activity ==============

def log_security_event(event: str, details: dict, user=None, ip: Optional[str] = None) -> None:
    _emit(
        security_logger,
        logging.WARNING,
        "SECURITY_EVENT",
        f"Security event: {event}",
        user,
        ip,
        security_event=event,
        details=details,
    )


def log_activity(user, action: str, details: Optional[dict] = None, ip: Optional[str] = None) -> None:
    _emit(
        audit_logger,
        logging.INFO,
        "USER_ACTIVITY",
        f"User activity: {action}",
        user,
        ip,
        action=action,
        details=details or {},
    )


# ============== System ==============

def log_system_start(port: int, environment: str) -> None:
    logger.info(
        f"Server started on port {port} ({environment})",
        extra={"event_data": {"event": "SYSTEM_START", "port": port, "environment": environment}},
    )


def log_database_connection(database: str, connected: bool) -> None:
    level = logging.INFO if connected else logging.ERROR
    state = "Connected to" if connected else "Disconnected from"
    logger.log(
        level,
        f"{state} MongoDB database: {database}",
        extra={"event_data": {"event": "DATABASE_CONNECTION", "database": database, "connected": connected}},
    )


def log_error(error: BaseException, context: Optional[dict] = None) -> None:
    logger.error(
        f"Unhandled error: {error}",
        exc_info=(type(error), error, error.__traceback__),
        extra={"event_data": {"event": "ERROR", "error_type": type(error).__name__, **(context or {})}},
    )
