from functools import wraps
from flask_jwt_extended import verify_jwt_in_request
from freightdesk.services import policy


def require_permission(resource: str, action: str):
    def outer(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            verify_jwt_in_request()
            policy.require_permission(resource, action)
            return fn(*args, **kwargs)
        return wrapper
    return outer


def require_role(*roles: str):
    def outer(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            verify_jwt_in_request()
            policy.require_role(*roles)
            return fn(*args, **kwargs)
        return wrapper
    return outer
