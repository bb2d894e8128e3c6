"""Periodic backup check, driven by an external timer (cron, the looping script).

For each job type the trigger asks the scheduler whether the job is due, lets an
optional claim hook veto the run (so two timer firings cannot both run the same
job), hands the actual backup to the external executor, and reports the outcome
back to the policy store. Retention is enforced right after a successful run.

Failures of one job type never stop the other, and nothing here raises into the
timer loop.
"""
from __future__ import annotations
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Protocol, Sequence

from chronicle.constants.actions import (
    BACKUP_CLEANUP, BACKUP_CREATED, BACKUP_FAILED, JOB_TYPES, RESOURCE_BACKUP,
    SCHEDULED_BACKUP_TRIGGERED,
)
from chronicle.services.audit import AuditRecorder
from chronicle.services.backup_settings import BackupPolicyStore
from chronicle.services.scheduler import is_due, select_for_removal

logger = logging.getLogger(__name__)

# (job_type, now) -> True if this caller may run the job
ClaimHook = Callable[[str, datetime], bool]


@dataclass(frozen=True)
class BackupArtifact:
    backup_id: str
    created_at: datetime


@dataclass(frozen=True)
class BackupResult:
    success: bool
    completed_at: Optional[datetime] = None
    backup_id: Optional[str] = None
    error: Optional[str] = None
    stats: Optional[Dict[str, Any]] = None


class BackupExecutor(Protocol):
    """External collaborator that moves the bytes."""

    def run(self, job_type: str) -> BackupResult: ...

    def list_artifacts(self, job_type: str) -> Sequence[BackupArtifact]: ...

    def delete_artifacts(self, job_type: str, backup_ids: List[str]) -> int: ...


@dataclass(frozen=True)
class CheckOutcome:
    job_type: str
    due: bool
    claimed: bool = False
    result: Optional[BackupResult] = None
    recorded: bool = False
    pruned: int = 0


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def enforce_retention(job_type: str, max_keep: int, executor: BackupExecutor,
                      recorder: Optional[AuditRecorder] = None) -> int:
    """Delete the oldest artifacts beyond ``max_keep``; returns how many went."""
    expired = select_for_removal(list(executor.list_artifacts(job_type)), max_keep)
    if not expired:
        return 0
    ids = [a.backup_id for a in expired]
    deleted = executor.delete_artifacts(job_type, ids)
    logger.info('Pruned %d %s backups beyond retention cap %d', deleted, job_type, max_keep)
    if recorder is not None and deleted:
        recorder.record_system_event(BACKUP_CLEANUP, RESOURCE_BACKUP, details={
            'backupType': job_type, 'deletedCount': deleted, 'backupIds': ids,
        })
    return deleted


def check_and_run(job_type: str, executor: BackupExecutor, store: BackupPolicyStore,
                  recorder: AuditRecorder, now: Optional[datetime] = None,
                  claim: Optional[ClaimHook] = None) -> CheckOutcome:
    now = now or _utcnow()
    policy = store.get_settings()
    if not is_due(policy, job_type, now):
        logger.debug('%s backup not due at %s', job_type, now)
        return CheckOutcome(job_type=job_type, due=False)

    if claim is not None and not claim(job_type, now):
        logger.info('%s backup is due but another trigger holds the claim', job_type)
        return CheckOutcome(job_type=job_type, due=True)

    job = policy.job(job_type)
    logger.info('Running scheduled %s backup', job_type)
    recorder.record_system_event(SCHEDULED_BACKUP_TRIGGERED, RESOURCE_BACKUP, details={
        'backupType': job_type, 'intervalHours': job.interval_hours,
    })

    try:
        result = executor.run(job_type)
    except Exception as e:
        logger.exception('%s backup raised', job_type)
        result = BackupResult(success=False, error=str(e))

    if not result.success:
        logger.error('%s backup failed: %s', job_type, result.error)
        recorder.record_system_event(BACKUP_FAILED, RESOURCE_BACKUP, resource_id=result.backup_id, details={
            'backupType': job_type, 'errorMessage': result.error,
        })
        return CheckOutcome(job_type=job_type, due=True, claimed=True, result=result)

    completed_at = result.completed_at or _utcnow()
    try:
        recorded = store.record_run(job_type, completed_at)
    except Exception:
        # the artifact exists; still prune and audit it
        logger.exception('Could not record %s backup run at %s', job_type, completed_at)
        recorded = False

    pruned = 0
    try:
        pruned = enforce_retention(job_type, job.max_backups_to_keep, executor, recorder)
    except Exception:
        logger.exception('Retention cleanup of %s backups failed', job_type)

    recorder.record_system_event(BACKUP_CREATED, RESOURCE_BACKUP, resource_id=result.backup_id, details={
        'backupType': job_type, 'triggerType': 'auto', 'stats': result.stats, 'runRecorded': recorded,
    })
    logger.info('%s backup completed. ID: %s', job_type, result.backup_id)
    return CheckOutcome(job_type=job_type, due=True, claimed=True, result=result, recorded=recorded, pruned=pruned)


def run_scheduler(executor: BackupExecutor, store: BackupPolicyStore, recorder: AuditRecorder,
                  now: Optional[datetime] = None, claim: Optional[ClaimHook] = None,
                  job_types: Sequence[str] = tuple(JOB_TYPES)) -> List[CheckOutcome]:
    """Check every job type once; a failing job type is logged and skipped."""
    outcomes: List[CheckOutcome] = []
    for job_type in job_types:
        try:
            outcomes.append(check_and_run(job_type, executor, store, recorder, now=now, claim=claim))
        except Exception:
            logger.exception('Error checking %s backup', job_type)
    return outcomes


__all__ = [
    'BackupArtifact', 'BackupResult', 'BackupExecutor', 'CheckOutcome', 'ClaimHook',
    'check_and_run', 'run_scheduler', 'enforce_retention',
]
