from __future__ import annotations
from dataclasses import dataclass
from typing import Any, Dict, Optional


@dataclass(frozen=True)
class AuditRecord:
    """One immutable entry of the audit trail.

    ``method``, ``path`` and ``status_code`` are only set for records produced by
    an HTTP request; they are left out of the persisted line otherwise.
    """
    timestamp: str
    action: str
    resource: str
    user: str
    resource_id: Optional[str] = None
    ip: Optional[str] = None
    user_agent: Optional[str] = None
    method: Optional[str] = None
    path: Optional[str] = None
    status_code: Optional[int] = None
    details: Optional[Dict[str, Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {
            'timestamp': self.timestamp,
            'action': self.action,
            'resource': self.resource,
            'resourceId': self.resource_id,
            'user': self.user,
            'ip': self.ip,
            'userAgent': self.user_agent,
        }
        if self.method is not None:
            out['method'] = self.method
        if self.path is not None:
            out['path'] = self.path
        if self.status_code is not None:
            out['statusCode'] = self.status_code
        out['details'] = self.details
        return out
