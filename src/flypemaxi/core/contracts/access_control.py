"""
Role-based access control shared by vaults and the factory.

Every privileged operation is guarded by :func:`requires_role`, evaluated
before the operation body runs. The guarded object resolves who currently
holds each role through ``_role_holders(*args)``, which receives the same
positional arguments as the guarded method and must return the caller
together with the role -> address mapping. A role held by the null address
(after renouncement) matches nobody.
"""

from __future__ import annotations

import functools
import logging
from enum import Enum
from typing import Any, Callable, Dict, Tuple, TypeVar

from ..chain import NULL_ADDRESS, normalize_address
from ..exceptions import AccessDenied, ReentrancyError

logger = logging.getLogger(__name__)

F = TypeVar("F", bound=Callable[..., Any])


class Role(Enum):
    """Roles recognized by vault and factory operations."""
    MANAGER = "manager"
    REBALANCER = "rebalancer"
    ANY = "any"


def check_role(role: Role, caller: str, holders: Dict[Role, str]) -> None:
    """
    Verify ``caller`` holds ``role``.

    Args:
        role: Required role
        caller: Acting address
        holders: Current holder of each role

    Raises:
        AccessDenied: If the caller does not hold the role
    """
    if role is Role.ANY:
        return

    holder = normalize_address(holders.get(role))
    if holder == NULL_ADDRESS or normalize_address(caller) != holder:
        logger.warning(
            "Access denied",
            extra={
                "event": "access.denied",
                "role": role.value,
                "caller": normalize_address(caller)[:10],
            }
        )
        raise AccessDenied(
            f"Caller is not the {role.value}",
            details={"role": role.value, "caller": normalize_address(caller)},
        )


def requires_role(role: Role) -> Callable[[F], F]:
    """
    Decorator to require a role before the operation runs.

    Usage:
        @requires_role(Role.MANAGER)
        def toggle_restrict_mint(self, vault, caller):
            ...

    Args:
        role: Required role

    Returns:
        Decorator function
    """
    def decorator(func: F) -> F:
        @functools.wraps(func)
        def wrapper(self: Any, *args: Any, **kwargs: Any) -> Any:
            caller, holders = self._role_holders(*args, **kwargs)
            check_role(role, caller, holders)
            return func(self, *args, **kwargs)

        wrapper.required_role = role  # type: ignore[attr-defined]
        return wrapper  # type: ignore[return-value]
    return decorator


RoleHolders = Tuple[str, Dict[Role, str]]


def nonreentrant(func: F) -> F:
    """
    Reject recursive entry into a guarded vault operation.

    The flag lives in the vault's storage, so it is shared by every guarded
    operation of the same vault.
    """

    @functools.wraps(func)
    def wrapper(self: Any, vault: Any, *args: Any, **kwargs: Any) -> Any:
        storage = vault.storage
        if storage.entered:
            raise ReentrancyError(f"Reentrant call into {func.__name__}")
        storage.entered = True
        try:
            return func(self, vault, *args, **kwargs)
        finally:
            storage.entered = False

    return wrapper  # type: ignore[return-value]
