"""OpenVPN launch and log-based connection verification."""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Callable, List, Optional, Sequence, Tuple

from ..utils.logging import get_logger
from ..utils.processes import kill_from_pid_file, pid_file_alive, terminate_openvpn
from .errors import LaunchError, ProfileNotFoundError
from .lock import InstanceLock
from .paths import DOWN_SCRIPT, RuntimePaths, UserPaths
from .privilege import PrivilegeManager
from .profile import ProfileCopy, find_latest_profile
from .routing import BypassRoutePlanner

logger = get_logger("connection")

SUCCESS_MARKER = "Initialization Sequence Completed"
FAILURE_MARKERS = ("AUTH_FAILED", "TLS_ERROR")
NOTIFY_TITLE = "OpenVPN"
CANCELLED_REASON = "VPN connection attempt cancelled."

Notifier = Callable[..., None]


class ConnectionState(str, Enum):
    STARTING = "starting"
    CONNECTED = "connected"
    FAILED = "failed"
    TIMED_OUT = "timed_out"


@dataclass(frozen=True)
class PollPolicy:
    attempts: int = 10
    interval: float = 3.0

    @property
    def budget(self) -> float:
        return self.attempts * self.interval


@dataclass
class ConnectionResult:
    state: ConnectionState
    reason: str
    log_file: Path
    profile: Optional[Path] = None
    routes: List[str] = field(default_factory=list)
    attempts: int = 0

    @property
    def ok(self) -> bool:
        return self.state is ConnectionState.CONNECTED

    @property
    def exit_code(self) -> int:
        return 0 if self.ok else 1


class LogMonitor:
    """Reads the client's log and PID file; never touches the process."""

    def __init__(self, log_file: Path, pid_file: Path) -> None:
        self.log_file = Path(log_file)
        self.pid_file = Path(pid_file)

    def _content(self) -> str:
        try:
            return self.log_file.read_text(encoding="utf-8", errors="replace")
        except OSError:
            return ""

    def saw_success(self) -> bool:
        return SUCCESS_MARKER in self._content()

    def saw_failure(self) -> bool:
        content = self._content()
        return any(marker in content for marker in FAILURE_MARKERS)

    def process_alive(self) -> bool:
        return pid_file_alive(self.pid_file)


def build_openvpn_command(
    config: Path,
    credentials: Path,
    runtime: RuntimePaths,
    down_script: Optional[Path] = None,
) -> List[str]:
    command = [
        "openvpn",
        "--verb", "4",
        "--daemon",
        "--config", str(config),
        "--auth-user-pass", str(credentials),
        "--dev", runtime.interface,
        "--dev-type", "tun",
    ]
    if down_script is not None:
        command.extend(["--down", str(down_script)])
    command.extend(["--log", str(runtime.log_file), "--writepid", str(runtime.pid_file)])
    return command


def _silent(*_args, **_kwargs) -> None:
    return None


class ConnectionOrchestrator:
    """Inject bypass routes into a profile copy, start OpenVPN and verify it.

    ``STARTING`` ends in exactly one of ``CONNECTED``, ``FAILED`` or
    ``TIMED_OUT``. Each poll waits ``policy.interval`` through ``wait``,
    which returns True once the attempt is cancelled (by default it is
    ``stop_event.wait``).
    """

    def __init__(
        self,
        user_paths: UserPaths,
        runtime: RuntimePaths,
        planner: BypassRoutePlanner,
        privilege: PrivilegeManager,
        notifier: Optional[Notifier] = None,
        policy: Optional[PollPolicy] = None,
        stop_event: Optional[threading.Event] = None,
        wait: Optional[Callable[[float], bool]] = None,
        sleep: Callable[[float], None] = time.sleep,
        down_script: Optional[Path] = DOWN_SCRIPT,
        settle: float = 1.0,
    ) -> None:
        self.user_paths = user_paths
        self.runtime = runtime
        self.planner = planner
        self.privilege = privilege
        self.policy = policy or PollPolicy()
        self.stop_event = stop_event or threading.Event()
        self._notify = notifier or _silent
        self._wait = wait or self.stop_event.wait
        self._sleep = sleep
        self._down_script = down_script
        self._settle = settle
        self.state = ConnectionState.STARTING

    def connect(self, domains: Sequence[str], include_identity: bool = True) -> ConnectionResult:
        with InstanceLock(self.runtime.lock_file):
            try:
                source = find_latest_profile(self.user_paths.downloads_dir)
            except ProfileNotFoundError as exc:
                self._notify(NOTIFY_TITLE, str(exc), urgency="critical")
                raise
            logger.info("Using profile %s", source)
            with ProfileCopy(source, tmp_dir=self.runtime.tmp_dir) as copy:
                # routes must be in the profile before the tunnel takes the default route
                plan = self.planner.plan(domains, include_identity=include_identity)
                added = copy.append_routes(plan.directives())
                logger.info("Appended %d bypass route(s) to %s", added, copy.path)
                if self.stop_event.is_set():
                    # nothing stopped or started yet; leave any running tunnel alone
                    state, reason, attempts = ConnectionState.TIMED_OUT, CANCELLED_REASON, 0
                else:
                    self._prepare_runtime_files()
                    self._stop_existing()
                    self._launch(copy.path)
                    self._notify(NOTIFY_TITLE, f"Connecting using {source.name}...", transient=True)
                    state, reason, attempts = self._verify()
        self.state = state
        urgency = "normal" if state is ConnectionState.CONNECTED else "critical"
        self._notify(NOTIFY_TITLE, reason, urgency=urgency)
        log_method = logger.info if state is ConnectionState.CONNECTED else logger.error
        log_method("%s (%s after %d poll(s))", reason, state.value, attempts)
        return ConnectionResult(
            state=state,
            reason=reason,
            log_file=self.runtime.log_file,
            profile=source,
            routes=plan.directives(),
            attempts=attempts,
        )

    def cancel(self) -> None:
        self.stop_event.set()

    def _prepare_runtime_files(self) -> None:
        log_file = str(self.runtime.log_file)
        pid_file = str(self.runtime.pid_file)
        for command in (
            ["rm", "-f", log_file, pid_file],
            ["touch", log_file],
            ["chmod", "644", log_file],
        ):
            code, _stdout, stderr = self.privilege.run_privileged(command)
            if code != 0:
                logger.warning("%s failed: %s", " ".join(command), stderr.strip())

    def _stop_existing(self) -> None:
        stopped = terminate_openvpn(self.privilege, grace=self._settle, sleep=self._sleep)
        if stopped:
            logger.info("Stopped %d previously running OpenVPN process(es)", stopped)

    def _launch(self, config: Path) -> None:
        down_script = self._down_script if self._down_script and self._down_script.exists() else None
        command = build_openvpn_command(
            config,
            self.user_paths.credentials_file,
            self.runtime,
            down_script,
        )
        logger.info("Launching: %s", " ".join(command))
        code, stdout, stderr = self.privilege.run_privileged(command)
        if code != 0:
            message = stderr.strip() or stdout.strip() or f"exit status {code}"
            self.state = ConnectionState.FAILED
            self._notify(
                NOTIFY_TITLE,
                f"VPN connection failed: OpenVPN did not start. Check {self.runtime.log_file}.",
                urgency="critical",
            )
            raise LaunchError(f"OpenVPN failed to start: {message}")

    def _verify(self) -> Tuple[ConnectionState, str, int]:
        monitor = LogMonitor(self.runtime.log_file, self.runtime.pid_file)
        log_file = self.runtime.log_file
        logger.info("Waiting up to %.0fs for the connection to come up", self.policy.budget)
        for attempt in range(1, self.policy.attempts + 1):
            if self._wait(self.policy.interval):
                self._kill()
                return ConnectionState.TIMED_OUT, CANCELLED_REASON, attempt
            if monitor.saw_success():
                return ConnectionState.CONNECTED, "VPN connection established successfully.", attempt
            if monitor.saw_failure():
                self._kill()
                return ConnectionState.FAILED, f"VPN connection failed. Check {log_file} for details.", attempt
            if not monitor.process_alive():
                # the last lines may have landed between the checks above and the exit
                if monitor.saw_success():
                    return (
                        ConnectionState.CONNECTED,
                        "VPN connection established successfully (despite process exit).",
                        attempt,
                    )
                if monitor.saw_failure():
                    return (
                        ConnectionState.FAILED,
                        f"VPN connection failed (process exited). Check {log_file} for details.",
                        attempt,
                    )
                return ConnectionState.TIMED_OUT, f"VPN process exited prematurely. Check {log_file}.", attempt
        self._kill()
        return ConnectionState.TIMED_OUT, f"VPN connection timed out. Check {log_file}.", self.policy.attempts

    def _kill(self) -> None:
        kill_from_pid_file(self.runtime.pid_file, self.privilege)
