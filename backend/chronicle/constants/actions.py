"""Central definitions of audit action tags, resources and backup job types.
Extend cautiously; log review tooling filters on these exact strings.
"""
from __future__ import annotations
from typing import Dict, List

# --- Admin (HTTP) actions ---
CREATE = 'CREATE'
UPDATE = 'UPDATE'
DELETE = 'DELETE'

# --- Authentication ---
LOGIN_SUCCESS = 'LOGIN_SUCCESS'
LOGIN_FAILED = 'LOGIN_FAILED'

# --- Scheduler / backup lifecycle ---
SCHEDULED_BACKUP_TRIGGERED = 'SCHEDULED_BACKUP_TRIGGERED'
BACKUP_CREATED = 'BACKUP_CREATED'
BACKUP_FAILED = 'BACKUP_FAILED'
BACKUP_CLEANUP = 'BACKUP_CLEANUP'

# --- Resources ---
RESOURCE_AUTH = 'auth'
RESOURCE_SENSITIVE = 'sensitive'
RESOURCE_BACKUP = 'backup'
RESOURCE_BACKUP_SETTINGS = 'backup-settings'

# --- Principals ---
ANONYMOUS = 'anonymous'
SYSTEM_USER = 'system'

# --- Backup job types ---
JOB_FAMILY_TREE = 'familyTree'
JOB_CMS = 'cms'
JOB_TYPES: List[str] = [JOB_FAMILY_TREE, JOB_CMS]

# job type -> key of its sub-object in the settings document
JOB_DOCUMENT_KEYS: Dict[str, str] = {
    JOB_FAMILY_TREE: 'familyTreeBackup',
    JOB_CMS: 'cmsBackup',
}
DOCUMENT_KEY_JOBS: Dict[str, str] = {v: k for k, v in JOB_DOCUMENT_KEYS.items()}
