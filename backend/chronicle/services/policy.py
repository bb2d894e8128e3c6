from __future__ import annotations
from dataclasses import dataclass
from typing import List, Optional, Set
from flask_jwt_extended import get_jwt, get_jwt_identity, verify_jwt_in_request
from chronicle.constants.actions import ANONYMOUS

SUPER_ADMIN_ROLE = 'super-admin'


@dataclass(frozen=True)
class Principal:
    """Who performed an action. ``username=None`` is the anonymous principal."""
    username: Optional[str] = None

    @property
    def name(self) -> str:
        return self.username or ANONYMOUS

    @property
    def is_anonymous(self) -> bool:
        return not self.username


ANONYMOUS_PRINCIPAL = Principal()


def current_principal() -> Principal:
    """Resolve the principal of the current request from its (optional) JWT.

    Prefers the ``username`` claim and falls back to the token identity. Missing,
    expired or malformed tokens resolve to the anonymous principal.
    """
    try:
        verify_jwt_in_request(optional=True)
        claims = get_jwt() or {}
        username = claims.get('username') or get_jwt_identity()
    except Exception:
        return ANONYMOUS_PRINCIPAL
    return Principal(str(username)) if username else ANONYMOUS_PRINCIPAL


def current_permissions() -> Set[str]:
    claims = get_jwt()
    return set(claims.get('perms', []))


def missing_permissions(*codes: str) -> List[str]:
    perms = current_permissions()
    return [c for c in codes if c not in perms]


def is_super_admin() -> bool:
    return get_jwt().get('role') == SUPER_ADMIN_ROLE
