from __future__ import annotations
from datetime import datetime, timezone
from flask import Blueprint, request, abort
from chronicle.constants.actions import JOB_CMS, JOB_DOCUMENT_KEYS, JOB_FAMILY_TREE, RESOURCE_BACKUP_SETTINGS, UPDATE
from chronicle.constants.permissions import SETTINGS_MANAGE
from chronicle.decorators.audit import audit_log
from chronicle.decorators.auth import require_permissions
from chronicle.services.backup_settings import get_policy_store
from chronicle.services.policy import current_principal
from chronicle.services.scheduler import next_run_after
from chronicle.utils.validation import GLOBAL_KEY, JOB_FIELDS

settings_bp = Blueprint('backup_settings', __name__)

# dashboard segment -> backup job it configures
DASHBOARD_JOBS = {
    'family-tree-dashboard': JOB_FAMILY_TREE,
    'cms-dashboard': JOB_CMS,
}


def _job_for(dashboard: str) -> str:
    job_type = DASHBOARD_JOBS.get(dashboard)
    if job_type is None:
        abort(404)
    return job_type


def _iso(dt):
    return dt.isoformat().replace('+00:00', 'Z') if dt else None


@settings_bp.get('/<dashboard>/backup-settings')
@require_permissions(SETTINGS_MANAGE)
def get_dashboard_settings(dashboard: str):
    job_type = _job_for(dashboard)
    policy = get_policy_store().get_settings()
    now = datetime.now(timezone.utc)
    job = policy.job(job_type)
    return {
        'success': True,
        'data': {
            JOB_DOCUMENT_KEYS[job_type]: job.to_document(),
            GLOBAL_KEY: policy.global_settings.to_document(),
            'nextRunAfter': _iso(next_run_after(policy, job_type, now)) if job.enabled else None,
        }
    }


@settings_bp.put('/<dashboard>/backup-settings')
@require_permissions(SETTINGS_MANAGE)
@audit_log(UPDATE, RESOURCE_BACKUP_SETTINGS, id_arg='dashboard')
def update_dashboard_settings(dashboard: str):
    job_type = _job_for(dashboard)
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        abort(400, description='JSON object body required')
    changes = {k: data[k] for k in JOB_FIELDS if k in data}
    if not changes:
        abort(400, description=f"one of {', '.join(JOB_FIELDS)} required")
    policy = get_policy_store().update_settings(
        {JOB_DOCUMENT_KEYS[job_type]: changes},
        updated_by=current_principal().name,
    )
    return {
        'success': True,
        'message': 'Backup settings updated',
        'data': policy.job(job_type).to_document(),
    }


@settings_bp.get('/admin/backup-settings')
@require_permissions(SETTINGS_MANAGE)
def get_all_settings():
    return {'success': True, 'data': get_policy_store().get_settings().to_document()}


@settings_bp.put('/admin/backup-settings/global')
@require_permissions(SETTINGS_MANAGE)
@audit_log(UPDATE, RESOURCE_BACKUP_SETTINGS)
def update_global_settings():
    data = request.get_json(silent=True)
    if not isinstance(data, dict) or not data:
        abort(400, description='JSON object body required')
    policy = get_policy_store().update_settings({GLOBAL_KEY: data}, updated_by=current_principal().name)
    return {
        'success': True,
        'message': 'Backup settings updated',
        'data': policy.global_settings.to_document(),
    }
