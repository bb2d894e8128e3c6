from __future__ import annotations
from flask import Blueprint, request, abort
from chronicle.config.pagination import normalize_pagination
from chronicle.constants.permissions import AUDIT_READ
from chronicle.decorators.auth import require_permissions
from chronicle.services.audit import get_recorder
from chronicle.services.log_store import read_records, verify_chain

audit_bp = Blueprint('audit_logs', __name__)

# query arg -> record key
FILTERS = {'action': 'action', 'resource': 'resource', 'user': 'user', 'resource_id': 'resourceId'}


@audit_bp.get('/audit-logs')
@require_permissions(AUDIT_READ)
def list_audit_logs():
    try:
        limit, offset = normalize_pagination(request.args.get('limit'), request.args.get('offset'))
    except ValueError as e:
        abort(400, description=str(e))
    wanted = {key: request.args[arg] for arg, key in FILTERS.items() if request.args.get(arg)}
    rows = [
        r for r in read_records(get_recorder().store.path)
        if all(str(r.get(k)) == v for k, v in wanted.items())
    ]
    rows.reverse()  # newest first
    page = rows[offset:offset + limit]
    return {
        'data': page,
        'pagination': {
            'total': len(rows),
            'limit': limit,
            'offset': offset,
            'returned': len(page)
        }
    }


@audit_bp.get('/audit-logs/verify')
@require_permissions(AUDIT_READ)
def verify_audit_logs():
    report = verify_chain(get_recorder().store.path)
    return {
        'ok': report.ok,
        'total': report.total,
        'skipped': report.skipped,
        'broken_at': report.broken_at,
    }
