from __future__ import annotations
"""Validation of partial backup settings updates.

Updates arrive in the document shape used by the settings HTTP surface:

    {'familyTreeBackup': {'intervalHours': 72},
     'globalSettings': {'compressionLevel': 2}}

``validate_settings_update`` checks everything before anything is written and
returns column-level changes, so a rejected update leaves the stored document as it
was. ``lastAutoBackup`` and ``nextScheduledBackup`` are not accepted here; only
recorded runs may move them.
"""
import math
import numbers
from typing import Any, Dict, Mapping, Tuple

from chronicle.config.backup import COMPRESSION_LEVELS, MAX_BACKUPS_TO_KEEP, MAX_INTERVAL_HOURS
from chronicle.constants.actions import DOCUMENT_KEY_JOBS
from chronicle.exceptions import InvalidPolicyValue

GLOBAL_KEY = 'globalSettings'

JOB_FIELDS = {
    'enabled': 'enabled',
    'intervalHours': 'interval_hours',
    'maxBackupsToKeep': 'max_backups_to_keep',
}
GLOBAL_FIELDS = {
    'includeMedia': 'include_media',
    'compressionLevel': 'compression_level',
    'emailNotifications': 'email_notifications',
    'notificationEmail': 'notification_email',
}


def _is_number(value: Any) -> bool:
    """Finite real number; bools, NaN and infinities do not count."""
    if not isinstance(value, numbers.Real) or isinstance(value, bool):
        return False
    # huge ints cannot go through float()
    return isinstance(value, numbers.Integral) or math.isfinite(value)


def validate_bool(value: Any, field_name: str) -> bool:
    if not isinstance(value, bool):
        raise InvalidPolicyValue(f"{field_name} must be a boolean", field=field_name)
    return value


def validate_interval(value: Any, field_name: str = 'intervalHours') -> float:
    if not _is_number(value) or value <= 0:
        raise InvalidPolicyValue(f"{field_name} must be a positive number", field=field_name)
    if value > MAX_INTERVAL_HOURS:
        raise InvalidPolicyValue(f"{field_name} must be at most {MAX_INTERVAL_HOURS} hours", field=field_name)
    return value


def validate_retention(value: Any, field_name: str = 'maxBackupsToKeep') -> int:
    if not _is_number(value) or int(value) != value or value < 0:
        raise InvalidPolicyValue(f"{field_name} must be a non-negative integer", field=field_name)
    if value > MAX_BACKUPS_TO_KEEP:
        raise InvalidPolicyValue(f"{field_name} must be at most {MAX_BACKUPS_TO_KEEP}", field=field_name)
    return int(value)


def _validate_job(key: str, body: Any) -> Dict[str, Any]:
    if not isinstance(body, Mapping):
        raise InvalidPolicyValue(f"{key} must be an object", field=key)
    changes: Dict[str, Any] = {}
    for name, value in body.items():
        column = JOB_FIELDS.get(name)
        if column is None:
            raise InvalidPolicyValue(f"{key}.{name} cannot be updated", field=f"{key}.{name}")
        label = f"{key}.{name}"
        if column == 'enabled':
            changes[column] = validate_bool(value, label)
        elif column == 'interval_hours':
            changes[column] = validate_interval(value, label)
        else:
            changes[column] = validate_retention(value, label)
    return changes


def _validate_global(body: Any) -> Dict[str, Any]:
    if not isinstance(body, Mapping):
        raise InvalidPolicyValue(f"{GLOBAL_KEY} must be an object", field=GLOBAL_KEY)
    changes: Dict[str, Any] = {}
    for name, value in body.items():
        column = GLOBAL_FIELDS.get(name)
        label = f"{GLOBAL_KEY}.{name}"
        if column is None:
            raise InvalidPolicyValue(f"{label} cannot be updated", field=label)
        if column in ('include_media', 'email_notifications'):
            changes[column] = validate_bool(value, label)
        elif column == 'compression_level':
            if not _is_number(value) or value not in COMPRESSION_LEVELS:
                raise InvalidPolicyValue(f"{label} must be one of {list(COMPRESSION_LEVELS)}", field=label)
            changes[column] = int(value)
        else:
            if value is not None and not isinstance(value, str):
                raise InvalidPolicyValue(f"{label} must be a string", field=label)
            changes[column] = value or None
    return changes


def validate_settings_update(update: Any) -> Tuple[Dict[str, Dict[str, Any]], Dict[str, Any]]:
    """Return ``(job_changes, global_changes)``; job changes are keyed by job type."""
    if not isinstance(update, Mapping):
        raise InvalidPolicyValue('settings update must be an object')
    job_changes: Dict[str, Dict[str, Any]] = {}
    global_changes: Dict[str, Any] = {}
    for key, body in update.items():
        if key in DOCUMENT_KEY_JOBS:
            changes = _validate_job(key, body)
            if changes:
                job_changes[DOCUMENT_KEY_JOBS[key]] = changes
        elif key == GLOBAL_KEY:
            global_changes = _validate_global(body)
        else:
            raise InvalidPolicyValue(f"{key} cannot be updated", field=key)
    return job_changes, global_changes

__all__ = ['validate_settings_update', 'validate_interval', 'validate_retention', 'validate_bool']
