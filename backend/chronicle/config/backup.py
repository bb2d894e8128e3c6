"""Defaults for the singleton backup settings document.

The document is created lazily with these values the first time it is read.
"""
from chronicle.constants.actions import JOB_TYPES

SETTINGS_ID = 'default'

DEFAULT_ENABLED = True
DEFAULT_INTERVAL_HOURS = 48
DEFAULT_MAX_BACKUPS_TO_KEEP = 20

DEFAULT_JOB_POLICY = {
    'enabled': DEFAULT_ENABLED,
    'interval_hours': DEFAULT_INTERVAL_HOURS,
    'max_backups_to_keep': DEFAULT_MAX_BACKUPS_TO_KEEP,
}

DEFAULT_GLOBAL_SETTINGS = {
    'include_media': False,
    # 0 = none, 1 = fast, 2 = balanced, 3 = max
    'compression_level': 1,
    'email_notifications': False,
    'notification_email': None,
}

COMPRESSION_LEVELS = (0, 1, 2, 3)

# Longest accepted interval (about a century); keeps last run + interval representable
MAX_INTERVAL_HOURS = 24 * 366 * 100

# Upper bound of the retention column
MAX_BACKUPS_TO_KEEP = 2 ** 31 - 1

# Optimistic writes against the singleton give up after this many attempts
MAX_UPDATE_ATTEMPTS = 5

__all__ = [
    'SETTINGS_ID', 'JOB_TYPES', 'DEFAULT_JOB_POLICY', 'DEFAULT_GLOBAL_SETTINGS',
    'COMPRESSION_LEVELS', 'MAX_INTERVAL_HOURS', 'MAX_BACKUPS_TO_KEEP', 'MAX_UPDATE_ATTEMPTS',
]
