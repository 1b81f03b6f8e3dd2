"""Utility helpers for computing the on-disk paths used by proton-ovpn.

Nothing here is a module-level constant: the CLI builds one :class:`UserPaths`
and one :class:`RuntimePaths` and hands them to every operation.
"""

from __future__ import annotations

import os
import pwd
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional

CONFIG_DIR_NAME = ".openvpn"
CONFIG_FILE_NAME = "config.env"
CREDENTIALS_FILE_NAME = "credentials.txt"
DOWN_SCRIPT = Path("/usr/local/bin/openvpn-down.sh")


def resolve_user_home(environ: Optional[Mapping[str, str]] = None) -> Path:
    """Return the invoking user's home, even when running under sudo."""
    env = os.environ if environ is None else environ
    for variable in ("SUDO_USER", "USER"):
        user = env.get(variable)
        if not user:
            continue
        try:
            return Path(pwd.getpwnam(user).pw_dir)
        except KeyError:
            continue
    return Path.home()


@dataclass(frozen=True)
class UserPaths:
    home: Path

    @classmethod
    def for_current_user(cls, environ: Optional[Mapping[str, str]] = None) -> "UserPaths":
        return cls(home=resolve_user_home(environ))

    @property
    def config_dir(self) -> Path:
        return self.home / CONFIG_DIR_NAME

    @property
    def config_file(self) -> Path:
        return self.config_dir / CONFIG_FILE_NAME

    @property
    def credentials_file(self) -> Path:
        return self.config_dir / CREDENTIALS_FILE_NAME

    @property
    def downloads_dir(self) -> Path:
        return self.home / "Downloads"

    @property
    def desktop_dir(self) -> Path:
        return self.home / "Desktop"

    @property
    def indicator_config(self) -> Path:
        return self.home / ".indicator-sysmonitor.json"


@dataclass(frozen=True)
class RuntimePaths:
    """Per-UID process artifacts, overwritten on every run."""

    uid: int
    tmp_dir: Path

    @classmethod
    def for_uid(cls, uid: Optional[int] = None, tmp_dir: Optional[Path] = None) -> "RuntimePaths":
        return cls(
            uid=os.getuid() if uid is None else uid,
            tmp_dir=Path(tmp_dir or tempfile.gettempdir()),
        )

    @property
    def log_file(self) -> Path:
        return self.tmp_dir / f"openvpn_connect_{self.uid}.log"

    @property
    def pid_file(self) -> Path:
        return self.tmp_dir / f"openvpn_{self.uid}.pid"

    @property
    def lock_file(self) -> Path:
        return self.tmp_dir / f"openvpn_connect_{self.uid}.lock"

    @property
    def interface(self) -> str:
        return f"proton{self.uid}"
