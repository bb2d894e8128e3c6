from __future__ import annotations
"""Audit recorder: turns request context into audit records and appends them.

Every ``record_*`` call is fire-and-forget from the caller's point of view: it
returns the written record, or ``None`` if the append failed. Failures are logged
and never raised, so an audit problem cannot fail the audited operation.
"""
import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Mapping, Optional

from flask import current_app, request

from chronicle.constants.actions import (
    LOGIN_FAILED, LOGIN_SUCCESS, RESOURCE_AUTH, RESOURCE_SENSITIVE, SYSTEM_USER,
)
from chronicle.models.audit import AuditRecord
from chronicle.services.log_store import AppendOnlyLogStore
from chronicle.services.policy import ANONYMOUS_PRINCIPAL, Principal, current_principal

logger = logging.getLogger(__name__)

EXTENSION_KEY = 'chronicle.audit'
UNKNOWN_AGENT = 'unknown'
_USER_AGENT_MAX = 500


def is_success_status(status_code: Optional[int]) -> bool:
    return status_code is not None and 200 <= status_code < 300


@dataclass(frozen=True)
class AuditContext:
    """Request provenance captured for an audit record."""
    principal: Principal = ANONYMOUS_PRINCIPAL
    ip: Optional[str] = None
    user_agent: str = UNKNOWN_AGENT
    method: Optional[str] = None
    path: Optional[str] = None
    path_params: Mapping[str, Any] = field(default_factory=dict)
    status_code: Optional[int] = None

    @classmethod
    def from_request(cls, status_code: Optional[int] = None) -> 'AuditContext':
        """Build a context from the active Flask request."""
        full_path = request.full_path
        if full_path.endswith('?'):
            full_path = full_path[:-1]
        return cls(
            principal=current_principal(),
            ip=request.remote_addr,
            user_agent=(request.headers.get('User-Agent') or UNKNOWN_AGENT)[:_USER_AGENT_MAX],
            method=request.method,
            path=full_path,
            path_params=dict(request.view_args or {}),
            status_code=status_code,
        )


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _iso(dt: datetime) -> str:
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).isoformat(timespec='milliseconds').replace('+00:00', 'Z')


class AuditRecorder:
    def __init__(self, store: AppendOnlyLogStore, clock: Callable[[], datetime] = _utcnow):
        self.store = store
        self._clock = clock
        self._lock = threading.Lock()
        self._last_ts: Optional[datetime] = None

    def _timestamp(self) -> str:
        # never step backwards within this process, even if the wall clock does
        with self._lock:
            now = self._clock()
            if now.tzinfo is None:
                now = now.replace(tzinfo=timezone.utc)
            if self._last_ts is not None and now < self._last_ts:
                now = self._last_ts
            self._last_ts = now
        return _iso(now)

    def _write(self, **fields) -> Optional[AuditRecord]:
        try:
            record = AuditRecord(timestamp=self._timestamp(), **fields)
            if self.store.append(record.to_dict()):
                return record
        except Exception:
            logger.exception('Audit record for %s/%s could not be built', fields.get('action'), fields.get('resource'))
        return None

    def record_admin_action(self, context: AuditContext, action: str, resource: str,
                            resource_id_param: str = 'id', resource_id: Optional[Any] = None) -> Optional[AuditRecord]:
        """Record a completed admin request. Non-2xx responses produce nothing."""
        if not is_success_status(context.status_code):
            return None
        if resource_id is None:
            resource_id = context.path_params.get(resource_id_param)
        return self._write(
            action=action,
            resource=resource,
            resource_id=str(resource_id) if resource_id is not None else None,
            user=context.principal.name,
            ip=context.ip,
            user_agent=context.user_agent,
            method=context.method,
            path=context.path,
            status_code=context.status_code,
        )

    def record_auth_attempt(self, username: Optional[str], success: bool, ip: Optional[str] = None,
                            user_agent: Optional[str] = None, reason: Optional[str] = None) -> Optional[AuditRecord]:
        """Record a login attempt; attempts are logged whatever their outcome."""
        details = {'reason': reason} if (reason and not success) else None
        return self._write(
            action=LOGIN_SUCCESS if success else LOGIN_FAILED,
            resource=RESOURCE_AUTH,
            user=Principal(username).name,
            ip=ip,
            user_agent=user_agent or UNKNOWN_AGENT,
            details=details,
        )

    def record_sensitive_operation(self, context: AuditContext, operation_name: str,
                                   details: Optional[Dict[str, Any]] = None) -> Optional[AuditRecord]:
        """Unconditionally record an operation the caller flagged as sensitive."""
        return self._write(
            action=operation_name,
            resource=RESOURCE_SENSITIVE,
            user=context.principal.name,
            ip=context.ip,
            user_agent=context.user_agent,
            details=dict(details or {}),
        )

    def record_system_event(self, action: str, resource: str,
                            details: Optional[Dict[str, Any]] = None,
                            resource_id: Optional[str] = None) -> Optional[AuditRecord]:
        return self._write(
            action=action,
            resource=resource,
            resource_id=resource_id,
            user=SYSTEM_USER,
            ip=SYSTEM_USER,
            user_agent=SYSTEM_USER,
            details=details,
        )


def get_recorder() -> AuditRecorder:
    return current_app.extensions[EXTENSION_KEY]


__all__ = ['AuditRecorder', 'AuditContext', 'get_recorder', 'is_success_status', 'EXTENSION_KEY']
