from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Mapping, Optional

from sqlalchemy import Boolean, DateTime, Float, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, declarative_base, mapped_column

from chronicle.constants.actions import JOB_DOCUMENT_KEYS

Base = declarative_base()


def as_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """Return a tz-aware UTC datetime; naive values are taken to already be UTC."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def _iso(dt: Optional[datetime]) -> Optional[str]:
    return dt.isoformat().replace('+00:00', 'Z') if dt else None


# --- Persistence ---
class BackupSettings(Base):
    """The singleton settings document (one row per ``settings_id``)."""
    __tablename__ = 'backup_settings'
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    settings_id: Mapped[str] = mapped_column(String(32), unique=True, nullable=False, index=True)
    include_media: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    compression_level: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    email_notifications: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    notification_email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    updated_by: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)


class BackupJobPolicy(Base):
    """Per-job-type scheduling and retention policy inside a settings document."""
    __tablename__ = 'backup_job_policies'
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    settings_id: Mapped[str] = mapped_column(String(32), nullable=False, index=True)
    job_type: Mapped[str] = mapped_column(String(32), nullable=False)
    enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    interval_hours: Mapped[float] = mapped_column(Float, nullable=False)
    max_backups_to_keep: Mapped[int] = mapped_column(Integer, nullable=False)
    last_auto_backup: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    next_scheduled_backup: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    __table_args__ = (UniqueConstraint('settings_id', 'job_type', name='uq_backup_job_policy'),)


# --- Read-only snapshots handed to callers ---
@dataclass(frozen=True)
class JobPolicy:
    enabled: bool
    interval_hours: float
    max_backups_to_keep: int
    last_auto_backup: Optional[datetime] = None
    next_scheduled_backup: Optional[datetime] = None

    @classmethod
    def from_row(cls, row: BackupJobPolicy) -> 'JobPolicy':
        return cls(
            enabled=bool(row.enabled),
            interval_hours=row.interval_hours,
            max_backups_to_keep=row.max_backups_to_keep,
            last_auto_backup=as_utc(row.last_auto_backup),
            next_scheduled_backup=as_utc(row.next_scheduled_backup),
        )

    def to_document(self) -> Dict[str, Any]:
        return {
            'enabled': self.enabled,
            'intervalHours': self.interval_hours,
            'maxBackupsToKeep': self.max_backups_to_keep,
            'lastAutoBackup': _iso(self.last_auto_backup),
            'nextScheduledBackup': _iso(self.next_scheduled_backup),
        }


@dataclass(frozen=True)
class GlobalSettings:
    include_media: bool = False
    compression_level: int = 1
    email_notifications: bool = False
    notification_email: Optional[str] = None

    @classmethod
    def from_row(cls, row: BackupSettings) -> 'GlobalSettings':
        return cls(
            include_media=bool(row.include_media),
            compression_level=row.compression_level,
            email_notifications=bool(row.email_notifications),
            notification_email=row.notification_email,
        )

    def to_document(self) -> Dict[str, Any]:
        return {
            'includeMedia': self.include_media,
            'compressionLevel': self.compression_level,
            'emailNotifications': self.email_notifications,
            'notificationEmail': self.notification_email,
        }


@dataclass(frozen=True)
class BackupPolicy:
    """Snapshot of the whole settings document, keyed by job type."""
    settings_id: str
    jobs: Mapping[str, JobPolicy] = field(default_factory=dict)
    global_settings: GlobalSettings = field(default_factory=GlobalSettings)
    updated_at: Optional[datetime] = None
    updated_by: Optional[str] = None

    def job(self, job_type: str) -> Optional[JobPolicy]:
        return self.jobs.get(job_type)

    def to_document(self) -> Dict[str, Any]:
        doc: Dict[str, Any] = {'settingsId': self.settings_id}
        for job_type, key in JOB_DOCUMENT_KEYS.items():
            policy = self.jobs.get(job_type)
            doc[key] = policy.to_document() if policy else None
        doc['globalSettings'] = self.global_settings.to_document()
        doc['updatedAt'] = _iso(self.updated_at)
        doc['updatedBy'] = self.updated_by
        return doc
