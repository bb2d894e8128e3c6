from __future__ import annotations
"""Audit logging decorator for admin routes.

Usage examples:

@admin_bp.delete('/persons/<id>')
@require_permissions('FAMILY.PERSON.DELETE')
@audit_log('DELETE', 'persons')
def delete_person(id): ...

@audit_log('CREATE', 'news', entity_id_key='id')
def create_news(): ... return {'id': item.id}, 201

Parameters:
  action: audit action tag (CREATE, UPDATE, DELETE, ...)
  resource: resource class label (persons, news, backup-settings, ...)
  id_arg: name of the path parameter holding the affected entity id (default 'id').
  entity_id_key: key in the returned JSON object used as resourceId when the path has none.

Finalization handling:
  Flask turns whatever the view returned (dict, tuple, Response) into one response
  object, and every path (normal return, abort, error handler) goes through
  process_response before anything is transmitted. The decorator hooks that single
  point with after_this_request and logs from the final status code. A
  ResponseInterceptor flag makes the hook fire at most once, and only after the view
  returned normally: an aborted or raising view produces no record.
"""

from functools import wraps
from typing import Any, Optional

from flask import after_this_request, current_app

from chronicle.services.audit import AuditContext, get_recorder


def _extract_payload(rv: Any):
    """Return the JSON-able dict of a view return value, if there is one."""
    if isinstance(rv, tuple) and rv:
        rv = rv[0]
    if isinstance(rv, dict):
        return rv
    get_json = getattr(rv, 'get_json', None)
    if callable(get_json):
        try:
            data = get_json(silent=True)
        except Exception:
            return None
        return data if isinstance(data, dict) else None
    return None


class ResponseInterceptor:
    """Guards the single audit side effect attached to one response."""

    def __init__(self, action: str, resource: str, id_arg: str = 'id'):
        self.action = action
        self.resource = resource
        self.id_arg = id_arg
        self.resource_id: Optional[Any] = None
        self.completed = False
        self.finalized = False

    def complete(self, resource_id: Optional[Any] = None):
        """Mark the wrapped handler as having returned normally."""
        self.completed = True
        if resource_id is not None:
            self.resource_id = resource_id

    def finalize(self, response, context: Optional[AuditContext] = None):
        """Emit the audit record for ``response``; later calls are no-ops."""
        if self.finalized:
            return response
        self.finalized = True
        if not self.completed:
            return response
        try:
            if context is None:
                context = AuditContext.from_request(status_code=response.status_code)
            get_recorder().record_admin_action(
                context, self.action, self.resource,
                resource_id_param=self.id_arg, resource_id=self.resource_id,
            )
        except Exception:
            # audit must not interfere with the response being sent
            current_app.logger.exception('Audit hook failed for %s %s', self.action, self.resource)
        return response


def audit_log(action: str, resource: str, *, id_arg: str = 'id', entity_id_key: Optional[str] = None):
    def outer(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            interceptor = ResponseInterceptor(action, resource, id_arg=id_arg)
            after_this_request(interceptor.finalize)
            rv = fn(*args, **kwargs)
            resource_id = None
            if entity_id_key and kwargs.get(id_arg) is None:
                data = _extract_payload(rv)
                if data is not None:
                    resource_id = data.get(entity_id_key)
            interceptor.complete(resource_id)
            return rv
        return wrapper
    return outer
