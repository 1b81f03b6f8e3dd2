"""Process management helpers."""

from __future__ import annotations

import os
import signal
import time
from pathlib import Path
from typing import TYPE_CHECKING, Callable, List, Optional

import psutil

from .logging import get_logger

if TYPE_CHECKING:
    from ..core.privilege import PrivilegeManager

logger = get_logger("processes")

CLIENT_NAME = "openvpn"


def _is_openvpn(cmdline: List[str]) -> bool:
    # same match as ``pgrep -f '^openvpn'``: the full command line starts with it
    return bool(cmdline) and " ".join(cmdline).startswith(CLIENT_NAME)


def find_openvpn_processes() -> List[psutil.Process]:
    """Return every running OpenVPN client process."""

    found: List[psutil.Process] = []
    own_pid = os.getpid()
    for proc in psutil.process_iter(["pid", "cmdline"]):
        try:
            if proc.pid == own_pid:
                continue
            if _is_openvpn(proc.info.get("cmdline") or []):
                found.append(proc)
        except (psutil.NoSuchProcess, psutil.AccessDenied):
            continue
    return found


def read_pid_file(path: Path) -> Optional[int]:
    try:
        text = Path(path).read_text(encoding="utf-8").strip()
    except OSError:
        return None
    if not text:
        return None
    try:
        return int(text.split()[0])
    except ValueError:
        logger.warning("PID file %s holds unexpected content %r", path, text)
        return None


def pid_file_alive(path: Path) -> bool:
    """True when the PID file exists, is non-empty and names a live process."""

    pid = read_pid_file(path)
    return pid is not None and psutil.pid_exists(pid)


def kill_from_pid_file(path: Path, privilege: "PrivilegeManager") -> bool:
    """Best-effort SIGTERM of the process named in ``path``."""

    pid = read_pid_file(path)
    if pid is None or not psutil.pid_exists(pid):
        return False
    logger.info("Terminating OpenVPN pid %s", pid)
    return privilege.signal_pid(pid, signal.SIGTERM)


def terminate_openvpn(
    privilege: "PrivilegeManager",
    grace: float = 2.0,
    sleep: Callable[[float], None] = time.sleep,
) -> int:
    """SIGTERM every OpenVPN process, wait ``grace`` seconds, SIGKILL survivors.

    Returns the number of processes found; zero means nothing was signalled.
    """

    processes = find_openvpn_processes()
    if not processes:
        return 0
    for proc in processes:
        logger.info("Sending SIGTERM to OpenVPN pid %s", proc.pid)
        privilege.signal_pid(proc.pid, signal.SIGTERM)
    sleep(grace)
    for proc in processes:
        if psutil.pid_exists(proc.pid):
            logger.warning("OpenVPN pid %s still running; sending SIGKILL", proc.pid)
            privilege.signal_pid(proc.pid, signal.SIGKILL)
    return len(processes)
