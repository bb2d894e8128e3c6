from __future__ import annotations
"""Persistence of the singleton backup settings document.

The document lives in ``backup_settings`` (global part) and ``backup_job_policies``
(one row per job type), all addressed by the fixed ``settings_id``. It is created
lazily on first access; concurrent first accesses converge on the same rows through
the unique constraints (a losing insert rolls back and re-reads).

All writes are UPDATE statements keyed on the singleton id:
  * ``update_settings`` touches only the columns present in the partial update, so
    unrelated fields keep their values (last writer wins per field).
  * ``record_run`` only moves ``last_auto_backup`` forward and derives
    ``next_scheduled_backup`` in the same guarded statement; recording the same run
    twice is a no-op.
"""
import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional

from flask import current_app
from sqlalchemy import or_, select, update
from sqlalchemy.exc import IntegrityError

from chronicle.config.backup import (
    DEFAULT_GLOBAL_SETTINGS, DEFAULT_JOB_POLICY, MAX_UPDATE_ATTEMPTS, SETTINGS_ID,
)
from chronicle.constants.actions import JOB_TYPES, SYSTEM_USER
from chronicle.exceptions import InvalidPolicyValue, PolicyUpdateConflict
from chronicle.models.backup_settings import (
    BackupJobPolicy, BackupPolicy, BackupSettings, GlobalSettings, JobPolicy, as_utc,
)
from chronicle.services.scheduler import stored_next_run
from chronicle.utils.validation import validate_settings_update

logger = logging.getLogger(__name__)

EXTENSION_KEY = 'chronicle.backup_policy'


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class BackupPolicyStore:
    def __init__(self, session_factory: Callable[[], Any], settings_id: str = SETTINGS_ID,
                 clock: Callable[[], datetime] = _utcnow):
        self._session_factory = session_factory
        self.settings_id = settings_id
        self._clock = clock

    # --- public contract ---
    def get_settings(self) -> BackupPolicy:
        """Return the settings document, creating it with defaults if needed."""
        session = self._session_factory()
        try:
            self._ensure_document(session)
            return self._snapshot(session)
        except Exception:
            session.rollback()
            raise

    def update_settings(self, partial_update: Dict[str, Any], updated_by: Optional[str] = None) -> BackupPolicy:
        """Merge a partial document update; invalid values are rejected before any write."""
        job_changes, global_changes = validate_settings_update(partial_update)
        session = self._session_factory()
        try:
            self._ensure_document(session)
            for job_type, changes in job_changes.items():
                session.execute(
                    update(BackupJobPolicy)
                    .where(*self._job_key(job_type))
                    .values(**changes)
                    .execution_options(synchronize_session=False)
                )
                # keep the advisory next run in line with the (possibly) new interval
                row = self._load_job(session, job_type)
                session.execute(
                    update(BackupJobPolicy)
                    .where(*self._job_key(job_type))
                    .values(next_scheduled_backup=stored_next_run(row.enabled, row.interval_hours, row.last_auto_backup))
                    .execution_options(synchronize_session=False)
                )
            session.execute(
                update(BackupSettings)
                .where(BackupSettings.settings_id == self.settings_id)
                .values(updated_at=self._clock(), updated_by=updated_by or SYSTEM_USER, **global_changes)
                .execution_options(synchronize_session=False)
            )
            session.commit()
        except Exception:
            session.rollback()
            raise
        logger.info('Backup settings %s updated by %s: jobs=%s global=%s',
                    self.settings_id, updated_by or SYSTEM_USER, job_changes, global_changes)
        return self._snapshot(session)

    def record_run(self, job_type: str, completed_at: datetime) -> bool:
        """Record a completed run. Returns False when this (or a later) run is already recorded."""
        if job_type not in JOB_TYPES:
            raise InvalidPolicyValue(f"unknown backup job type {job_type!r}", field='jobType')
        completed = as_utc(completed_at)
        session = self._session_factory()
        try:
            self._ensure_document(session)
            for _ in range(MAX_UPDATE_ATTEMPTS):
                row = self._load_job(session, job_type)
                last = as_utc(row.last_auto_backup)
                if last is not None and last >= completed:
                    session.rollback()
                    logger.info('Run of %s at %s already recorded (last=%s)', job_type, completed, last)
                    return False
                result = session.execute(
                    update(BackupJobPolicy)
                    .where(
                        *self._job_key(job_type),
                        BackupJobPolicy.enabled == row.enabled,
                        BackupJobPolicy.interval_hours == row.interval_hours,
                        or_(BackupJobPolicy.last_auto_backup.is_(None), BackupJobPolicy.last_auto_backup < completed),
                    )
                    .values(
                        last_auto_backup=completed,
                        next_scheduled_backup=stored_next_run(row.enabled, row.interval_hours, completed),
                    )
                    .execution_options(synchronize_session=False)
                )
                if result.rowcount == 1:
                    session.commit()
                    logger.info('Recorded %s backup run at %s', job_type, completed)
                    return True
                # policy moved underneath us; re-read and try again
                session.rollback()
        except Exception:
            session.rollback()
            raise
        raise PolicyUpdateConflict(f"could not record {job_type} run after {MAX_UPDATE_ATTEMPTS} attempts")

    # --- internals ---
    def _job_key(self, job_type: str):
        return (BackupJobPolicy.settings_id == self.settings_id, BackupJobPolicy.job_type == job_type)

    def _load_job(self, session, job_type: str) -> BackupJobPolicy:
        return session.execute(
            select(BackupJobPolicy).where(*self._job_key(job_type)).execution_options(populate_existing=True)
        ).scalar_one()

    def _ensure_document(self, session) -> None:
        for _ in range(MAX_UPDATE_ATTEMPTS):
            settings_row = session.execute(
                select(BackupSettings.id).where(BackupSettings.settings_id == self.settings_id)
            ).scalar_one_or_none()
            present = set(session.execute(
                select(BackupJobPolicy.job_type).where(BackupJobPolicy.settings_id == self.settings_id)
            ).scalars())
            missing = [j for j in JOB_TYPES if j not in present]
            if settings_row is not None and not missing:
                return
            if settings_row is None:
                session.add(BackupSettings(
                    settings_id=self.settings_id,
                    updated_at=self._clock(),
                    updated_by=SYSTEM_USER,
                    **DEFAULT_GLOBAL_SETTINGS,
                ))
            for job_type in missing:
                session.add(BackupJobPolicy(settings_id=self.settings_id, job_type=job_type, **DEFAULT_JOB_POLICY))
            try:
                session.commit()
                logger.info('Created backup settings document %s (jobs: %s)', self.settings_id, missing)
                return
            except IntegrityError:
                # another writer created it first
                session.rollback()
        raise PolicyUpdateConflict(f"backup settings {self.settings_id!r} could not be created")

    def _snapshot(self, session) -> BackupPolicy:
        settings_row = session.execute(
            select(BackupSettings)
            .where(BackupSettings.settings_id == self.settings_id)
            .execution_options(populate_existing=True)
        ).scalar_one()
        rows = session.execute(
            select(BackupJobPolicy)
            .where(BackupJobPolicy.settings_id == self.settings_id)
            .execution_options(populate_existing=True)
        ).scalars().all()
        return BackupPolicy(
            settings_id=self.settings_id,
            jobs={r.job_type: JobPolicy.from_row(r) for r in rows},
            global_settings=GlobalSettings.from_row(settings_row),
            updated_at=as_utc(settings_row.updated_at),
            updated_by=settings_row.updated_by,
        )


def get_policy_store() -> BackupPolicyStore:
    return current_app.extensions[EXTENSION_KEY]


__all__ = ['BackupPolicyStore', 'get_policy_store', 'EXTENSION_KEY']
