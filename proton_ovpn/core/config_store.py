"""Persistence of the shell-compatible ``config.env`` settings file."""

from __future__ import annotations

import os
import pwd
import re
import tempfile
from pathlib import Path
from typing import Dict, List, Mapping, Optional

from dotenv import dotenv_values

from ..utils.logging import get_logger

logger = get_logger("config")

NO_VPN_DOMAINS = "NO_VPN_DOMAINS"


def parse_domain_list(raw: Optional[str]) -> List[str]:
    """Split a comma-separated domain list, trimming blanks and keeping order."""
    if not raw:
        return []
    domains: List[str] = []
    for item in raw.split(","):
        item = item.strip()
        if item and item not in domains:
            domains.append(item)
    return domains


class ConfigStore:
    """Key/value settings stored as ``KEY="value"`` lines.

    The file stays sourceable by a shell. Writes are merge-on-write: the
    updated key goes first, every other line is kept verbatim.
    """

    def __init__(self, path: Path, owner: Optional[str] = None) -> None:
        self.path = Path(path)
        self.owner = owner

    def load(self) -> Dict[str, str]:
        if not self.path.exists():
            return {}
        values = dotenv_values(self.path)
        return {key: value for key, value in values.items() if value is not None}

    def get(self, key: str, default: Optional[str] = None) -> Optional[str]:
        return self.load().get(key, default)

    def bypass_domains(self, override: Optional[str] = None, environ: Optional[Mapping[str, str]] = None) -> List[str]:
        """Resolve the bypass list: explicit override, then environment, then file."""
        if override:
            return parse_domain_list(override)
        env = os.environ if environ is None else environ
        if env.get(NO_VPN_DOMAINS):
            return parse_domain_list(env[NO_VPN_DOMAINS])
        return parse_domain_list(self.get(NO_VPN_DOMAINS))

    def set(self, key: str, value: str) -> None:
        if not re.fullmatch(r"[A-Za-z_][A-Za-z0-9_]*", key):
            raise ValueError(f"Invalid configuration key {key!r}")
        escaped = value.replace("\\", "\\\\").replace('"', '\\"')
        lines = [f'{key}="{escaped}"\n']
        if self.path.exists():
            prefix = f"{key}="
            for line in self.path.read_text(encoding="utf-8").splitlines(keepends=True):
                if line.startswith(prefix):
                    continue
                lines.append(line if line.endswith("\n") else line + "\n")
        self._write(lines)
        logger.info("Saved %s to %s", key, self.path)

    def touch(self) -> bool:
        """Create an empty config file if missing. Returns True if one was created."""
        if self.path.exists():
            return False
        self._write([])
        logger.info("Created empty config file %s", self.path)
        return True

    def _write(self, lines: List[str]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=self.path.parent, prefix=".config.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                handle.writelines(lines)
            os.chmod(tmp_name, 0o600)
            os.replace(tmp_name, self.path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise
        if self.owner:
            chown_to_user(self.path, self.owner)
            chown_to_user(self.path.parent, self.owner)


def chown_to_user(path: Path, user: str) -> None:
    """Hand a file created under sudo back to the invoking user."""
    try:
        entry = pwd.getpwnam(user)
    except KeyError:
        logger.warning("Unknown user %s; leaving ownership of %s unchanged", user, path)
        return
    try:
        os.chown(path, entry.pw_uid, entry.pw_gid)
    except PermissionError:
        logger.debug("Not permitted to chown %s to %s", path, user)
