"""
Identity provider interface.

Authentication itself lives in the host application. The reconciliation
engine only needs to know whether identity has resolved and, if so, which
user to fetch rows for.
"""

from abc import ABC, abstractmethod
from typing import Optional


class NotAuthenticatedError(Exception):
    """No authenticated user; the whole reconciliation pass is aborted."""

    def __init__(self, message: str = "Not authenticated"):
        super().__init__(message)


class IdentityProviderInterface(ABC):
    """Yields the current user id once authentication is ready."""

    @property
    @abstractmethod
    def is_ready(self) -> bool:
        """True once the session lookup has finished (successfully or not)."""
        pass

    @abstractmethod
    async def get_user_id(self) -> Optional[str]:
        """The authenticated user's id, or None when signed out."""
        pass

    async def require_user_id(self) -> str:
        """
        Resolve the user id or fail.

        Raises:
            NotAuthenticatedError: If identity is not ready or nobody is signed in
        """
        if not self.is_ready:
            raise NotAuthenticatedError("Authentication is not ready")
        user_id = await self.get_user_id()
        if not user_id:
            raise NotAuthenticatedError()
        return user_id


class StaticIdentityProvider(IdentityProviderInterface):
    """Identity set from code, for tests and scripted runs."""

    def __init__(self, user_id: Optional[str], ready: bool = True):
        self._user_id = user_id
        self._ready = ready

    @property
    def is_ready(self) -> bool:
        return self._ready

    async def get_user_id(self) -> Optional[str]:
        return self._user_id

    def switch_user(self, user_id: Optional[str]) -> None:
        """Sign in as ``user_id``; None signs out."""
        self._user_id = user_id
        self._ready = True
