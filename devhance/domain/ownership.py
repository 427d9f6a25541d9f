"""Ownership check shared by every project, comment and like mutation.

Pure functions, no DB access.
"""

from typing import TypeVar

from devhance.core.exceptions import Forbidden, NotFound

T = TypeVar("T")


def require_found(resource: T | None, label: str) -> T:
    """Return ``resource`` or raise NotFound("<label> not found")."""
    if resource is None:
        raise NotFound(f"{label} not found")
    return resource


def ensure_owner(owner_id: str, requester_id: str, action: str) -> None:
    """Raise Forbidden unless the requester owns the resource.

    Args:
        owner_id: Value of the resource's author/user_id column
        requester_id: Authenticated subject id
        action: Human phrase for the message, e.g. "delete your own projects"
    """
    if owner_id != requester_id:
        raise Forbidden(f"You can only {action}")
