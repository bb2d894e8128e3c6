"""Permission codes carried in the ``perms`` claim of admin tokens."""
from __future__ import annotations

SETTINGS_MANAGE = 'ADMIN.SETTINGS.MANAGE'
AUDIT_READ = 'ADMIN.AUDIT.READ'
