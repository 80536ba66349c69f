"""API-key availability gate.

Some providers need a key the user picks interactively (a hosted notebook /
studio shell exposes a key picker). The gate hides that difference: adapters
call ``ensure_available()`` before every provider call and ``acquire()`` once
when the provider rejects the key.
"""

from __future__ import annotations

import logging
from typing import Optional, Protocol

from ..errors import CredentialUnavailableError

logger = logging.getLogger(__name__)


class KeySelectionHost(Protocol):
    """Interactive host able to let the user pick an API key."""

    async def has_selected_key(self) -> bool:
        """Return True when a key has already been picked."""

    async def open_select_key(self) -> bool:
        """Show the picker and block until the user confirms (True) or cancels."""

    def selected_key(self) -> Optional[str]:
        """Return the currently picked key, if the host exposes it."""


class ApiKeyGate:
    """
    Resolves the credential for one provider.

    Args:
        ambient_key: Key from settings / environment; may be empty.
        host:        Optional interactive host. Without one the gate can only
                     hand out the ambient key and fails fast when it is empty.
        label:       Provider label used in messages.
    """

    def __init__(
        self,
        ambient_key: str = "",
        host: Optional[KeySelectionHost] = None,
        label: str = "API",
    ) -> None:
        self.ambient_key = ambient_key or ""
        self.host = host
        self.label = label

    @property
    def can_acquire(self) -> bool:
        return self.host is not None

    def is_configured(self) -> bool:
        return bool(self.ambient_key) or self.can_acquire

    def _current_key(self) -> str:
        if self.host is not None:
            selected = self.host.selected_key()
            if selected:
                return selected
        return self.ambient_key

    async def ensure_available(self) -> str:
        """
        Return a usable key, prompting the user first when a host is attached.

        Raises:
            CredentialUnavailableError: no ambient key and either no host or
                the user cancelled the picker.
        """
        if self.host is not None and not await self.host.has_selected_key():
            logger.info("[%s] No key selected, opening key picker", self.label)
            if not await self.host.open_select_key():
                raise CredentialUnavailableError(f"{self.label} key selection is required.")

        key = self._current_key()
        if not key:
            raise CredentialUnavailableError(
                f"{self.label} is not configured. Set its API key in the environment."
            )
        return key

    async def acquire(self) -> str:
        """Force a fresh key selection (after the provider rejected the key)."""
        if self.host is None:
            raise CredentialUnavailableError(
                f"{self.label} key cannot be re-selected in this environment."
            )
        logger.warning("[%s] API key invalid or expired, prompting re-selection", self.label)
        if not await self.host.open_select_key():
            raise CredentialUnavailableError(f"{self.label} key selection is required.")
        key = self._current_key()
        if not key:
            raise CredentialUnavailableError(f"{self.label} key picker returned no key.")
        return key
