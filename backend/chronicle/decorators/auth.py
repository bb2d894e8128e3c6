from functools import wraps
from flask import abort
from flask_jwt_extended import verify_jwt_in_request
from chronicle.services.policy import is_super_admin, missing_permissions


def require_permissions(*codes: str, allow_super_admin: bool = True):
    """Reject the request unless its token grants every permission in ``codes``.

    A ``super-admin`` role claim passes any check unless ``allow_super_admin`` is off.
    """
    def outer(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            verify_jwt_in_request()
            if not (allow_super_admin and is_super_admin()):
                missing = missing_permissions(*codes)
                if missing:
                    abort(403, description=f"Missing permission: {', '.join(missing)}")
            return fn(*args, **kwargs)
        return wrapper
    return outer
