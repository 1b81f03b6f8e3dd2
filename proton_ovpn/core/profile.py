"""OpenVPN profile discovery and the scratch copy routes are appended to."""

from __future__ import annotations

import os
import shutil
import tempfile
from pathlib import Path
from typing import Iterable, Optional

from ..utils.logging import get_logger
from .errors import ProfileNotFoundError

logger = get_logger("profile")

PROFILE_SUFFIX = ".ovpn"


def find_latest_profile(downloads_dir: Path) -> Path:
    """Return the most recently modified ``*.ovpn`` file in ``downloads_dir``."""
    candidates = [path for path in Path(downloads_dir).glob(f"*{PROFILE_SUFFIX}") if path.is_file()]
    if not candidates:
        raise ProfileNotFoundError(f"No {PROFILE_SUFFIX} files found in {downloads_dir}.")
    return max(candidates, key=lambda path: path.stat().st_mtime)


class ProfileCopy:
    """Temporary copy of a profile; the user's file is never written to."""

    def __init__(self, source: Path, tmp_dir: Optional[Path] = None) -> None:
        self.source = Path(source)
        fd, name = tempfile.mkstemp(prefix="openvpn_temp_", suffix=PROFILE_SUFFIX, dir=tmp_dir)
        os.close(fd)
        self.path = Path(name)
        shutil.copyfile(self.source, self.path)
        logger.debug("Copied %s to %s", self.source, self.path)

    def __enter__(self) -> "ProfileCopy":
        return self

    def __exit__(self, *exc_info) -> None:
        self.discard()

    def append_routes(self, directives: Iterable[str]) -> int:
        lines = list(directives)
        if not lines:
            return 0
        with self.path.open("r+", encoding="utf-8") as handle:
            content = handle.read()
            if content and not content.endswith("\n"):
                handle.write("\n")
            for line in lines:
                handle.write(line + "\n")
        return len(lines)

    def discard(self) -> None:
        try:
            self.path.unlink()
        except FileNotFoundError:
            pass
