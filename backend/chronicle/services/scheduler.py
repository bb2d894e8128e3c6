"""Pure backup scheduling decisions.

Nothing here touches storage or the clock unless asked to: every function works on
an already-loaded ``BackupPolicy`` snapshot and an explicit ``now``, which makes the
functions safe to call concurrently from any number of triggers.

``is_due`` is the single source of truth for whether a job should run;
``next_run_after`` only feeds the advisory ``nextScheduledBackup`` field.
"""
from __future__ import annotations
from datetime import datetime, timedelta, timezone
from typing import Any, List, Optional, Sequence

from chronicle.models.backup_settings import BackupPolicy, JobPolicy, as_utc


def _job(policy: Optional[BackupPolicy], job_type: str) -> Optional[JobPolicy]:
    # a policy without this job type is treated as disabled
    if policy is None:
        return None
    return policy.job(job_type)


def _plus_hours(start: datetime, hours: float) -> datetime:
    try:
        return as_utc(start) + timedelta(hours=hours)
    except OverflowError:
        # past the calendar: never due again
        return datetime.max.replace(tzinfo=timezone.utc)


def is_due(policy: Optional[BackupPolicy], job_type: str, now: datetime) -> bool:
    job = _job(policy, job_type)
    if job is None or not job.enabled:
        return False
    if job.last_auto_backup is None:
        return True
    return as_utc(now) >= due_at(job)


def due_at(job: JobPolicy) -> Optional[datetime]:
    """``lastAutoBackup + intervalHours``, or None when the job never ran."""
    if job.last_auto_backup is None:
        return None
    return _plus_hours(job.last_auto_backup, job.interval_hours)


def next_run_after(policy: Optional[BackupPolicy], job_type: str, now: Optional[datetime] = None) -> Optional[datetime]:
    """Advisory next run time. Never-run jobs are due ``now``; unknown jobs have none."""
    job = _job(policy, job_type)
    if job is None:
        return None
    if job.last_auto_backup is None:
        return as_utc(now) if now is not None else datetime.now(timezone.utc)
    return due_at(job)


def stored_next_run(enabled: bool, interval_hours: float, last_auto_backup: Optional[datetime]) -> Optional[datetime]:
    """Value persisted in ``nextScheduledBackup`` for the given inputs."""
    if not enabled or last_auto_backup is None:
        return None
    return _plus_hours(last_auto_backup, interval_hours)


def _created_at(artifact: Any) -> datetime:
    value = artifact.get('created_at') if isinstance(artifact, dict) else getattr(artifact, 'created_at')
    return as_utc(value)


def select_for_removal(artifacts: Sequence[Any], max_keep: int) -> List[Any]:
    """Return the artifacts beyond the retention cap, oldest first.

    Artifacts are objects (or dicts) exposing ``created_at``. Removing the returned
    items leaves exactly ``max_keep`` of the newest ones.
    """
    keep = max(0, int(max_keep))
    excess = len(artifacts) - keep
    if excess <= 0:
        return []
    ordered = sorted(artifacts, key=_created_at)
    return ordered[:excess]


__all__ = ['is_due', 'due_at', 'next_run_after', 'stored_next_run', 'select_for_removal']
