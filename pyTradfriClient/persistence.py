"""YAML-based persistence for gateway credentials and client options.

The security code printed on the gateway is only used once: the
``authenticate()`` handshake exchanges it for an identity / PSK pair
which must be kept for every later connection.  :class:`CredentialStore`
keeps that pair (and optionally the client options) in a small,
human-readable YAML file::

    gateway:
      host: 192.168.1.20
      identity: tradfri_1700000000000
      psk: 8aT3...
    options:
      connection_interval: 5
      maximum_connection_attempts: 3

Write strategy (atomic with backup):
  1. If the current YAML file exists, copy it to ``<file>.bak``.
  2. Write a *new* temporary file (``<file>.tmp``) next to the target.
  3. ``os.replace`` the temporary file onto the target.

Load strategy (with fallback):
  1. Try to load the primary YAML file.
  2. If that fails (missing, corrupt, permissions), try ``<file>.bak``.
  3. If the backup also fails, return ``None``.

Usage example::

    from pyTradfriClient.persistence import CredentialStore, Credentials

    store = CredentialStore("~/.config/tradfri/gateway.yaml")
    store.save_credentials("192.168.1.20", Credentials(identity, psk))

    creds = store.load_credentials("192.168.1.20")
"""

from __future__ import annotations

import logging
import os
import shutil
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml

logger = logging.getLogger(__name__)

# Type alias for the persisted document.
StateTree = Dict[str, Any]

_BACKUP_SUFFIX = ".bak"
_TMP_SUFFIX = ".tmp"


@dataclass(frozen=True)
class Credentials:
    """Identity / pre-shared key pair issued by the gateway."""

    identity: str
    psk: str


class CredentialStore:
    """YAML-backed credential store with automatic backup / recovery.

    Parameters
    ----------
    path:
        Path to the primary YAML file.  ``~`` is expanded and parent
        directories are created on first save.
    """

    def __init__(self, path: Union[str, Path]) -> None:
        self._path = Path(path).expanduser()
        self._backup_path = self._path.with_suffix(
            self._path.suffix + _BACKUP_SUFFIX
        )
        self._tmp_path = self._path.with_suffix(
            self._path.suffix + _TMP_SUFFIX
        )

    # ---- public properties -------------------------------------------

    @property
    def path(self) -> Path:
        """The primary YAML file path."""
        return self._path

    @property
    def backup_path(self) -> Path:
        """The backup file path (``<path>.bak``)."""
        return self._backup_path

    # ---- credentials -------------------------------------------------

    def save_credentials(self, host: str, credentials: Credentials) -> None:
        """Store *credentials* for *host*, keeping the other sections."""
        tree = self.load() or {}
        tree["gateway"] = {
            "host": host,
            "identity": credentials.identity,
            "psk": credentials.psk,
        }
        self.save(tree)

    def load_credentials(
        self, host: Optional[str] = None
    ) -> Optional[Credentials]:
        """Return the stored credentials.

        With *host* given, credentials stored for another gateway are
        ignored.
        """
        tree = self.load()
        if tree is None:
            return None
        gateway = tree.get("gateway")
        if not isinstance(gateway, dict):
            return None
        if host is not None and gateway.get("host") != host:
            logger.info(
                "Stored credentials belong to %s, not %s",
                gateway.get("host"),
                host,
            )
            return None
        identity = gateway.get("identity")
        psk = gateway.get("psk")
        if not identity or not psk:
            return None
        return Credentials(str(identity), str(psk))

    # ---- options -----------------------------------------------------

    def save_options(self, options: Dict[str, Any]) -> None:
        tree = self.load() or {}
        tree["options"] = dict(options)
        self.save(tree)

    def load_options(self) -> Optional[Dict[str, Any]]:
        tree = self.load()
        if tree is None:
            return None
        options = tree.get("options")
        return options if isinstance(options, dict) else None

    # ---- save ---------------------------------------------------------

    def save(self, tree: StateTree) -> None:
        """Persist *tree* to the YAML file (with backup).

        Raises
        ------
        OSError
            If the file cannot be written.
        """
        self._path.parent.mkdir(parents=True, exist_ok=True)

        if self._path.is_file():
            try:
                shutil.copy2(str(self._path), str(self._backup_path))
                logger.debug("Backed up %s → %s", self._path, self._backup_path)
            except OSError:
                logger.warning(
                    "Failed to create backup %s, continuing anyway.",
                    self._backup_path,
                )

        try:
            with open(self._tmp_path, "w", encoding="utf-8") as fh:
                yaml.safe_dump(
                    tree,
                    fh,
                    default_flow_style=False,
                    allow_unicode=True,
                    sort_keys=False,
                )
        except OSError:
            logger.error("Failed to write temporary file %s", self._tmp_path)
            raise

        try:
            os.replace(str(self._tmp_path), str(self._path))
        except OSError:
            logger.error(
                "Failed to replace %s with %s", self._path, self._tmp_path
            )
            raise

        logger.info("Saved gateway state to %s", self._path)

    # ---- load ---------------------------------------------------------

    def load(self) -> Optional[StateTree]:
        """Load the document from YAML (primary, then backup).

        Returns
        -------
        StateTree or None
            The stored document, or ``None`` if neither the primary
            file nor the backup could be loaded.
        """
        tree = self._try_load(self._path)
        if tree is not None:
            return tree

        tree = self._try_load(self._backup_path)
        if tree is not None:
            logger.warning(
                "Primary file %s not usable, recovered from backup %s",
                self._path,
                self._backup_path,
            )
            try:
                shutil.copy2(str(self._backup_path), str(self._path))
            except OSError:
                logger.warning("Could not restore primary from backup.")
            return tree

        logger.debug("No persisted gateway state at %s", self._path)
        return None

    # ---- delete -------------------------------------------------------

    def delete(self) -> None:
        """Remove the primary, backup and temporary files (if present)."""
        for p in (self._path, self._backup_path, self._tmp_path):
            try:
                p.unlink(missing_ok=True)
            except OSError:
                logger.warning("Could not remove %s", p)

    # ---- helpers ------------------------------------------------------

    @staticmethod
    def _try_load(path: Path) -> Optional[StateTree]:
        """Load a single YAML file; ``None`` if missing or corrupt."""
        if not path.is_file():
            return None
        try:
            with open(path, "r", encoding="utf-8") as fh:
                data = yaml.safe_load(fh)
        except (OSError, yaml.YAMLError) as exc:
            logger.warning("Failed to load %s: %s", path, exc)
            return None

        if not isinstance(data, dict):
            logger.warning(
                "Expected a mapping at top level in %s, got %s",
                path,
                type(data).__name__,
            )
            return None

        return data

    def __repr__(self) -> str:
        return f"CredentialStore({str(self._path)!r})"
