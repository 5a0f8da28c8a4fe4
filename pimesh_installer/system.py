from __future__ import annotations

import logging
import os
import shlex
import shutil
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Sequence


EXTRA_BIN_PATHS = ("/usr/local/sbin", "/usr/sbin", "/sbin")

logger = logging.getLogger(__name__)


class InstallerError(Exception):
    """Fatal condition: the run stops and the process exits with status 1."""


class EnvironmentMismatch(InstallerError):
    pass


class PreconditionFailed(InstallerError):
    pass


class CommandFailed(InstallerError):
    def __init__(self, argv: Sequence[str], returncode: int, output: str = "") -> None:
        self.argv = list(argv)
        self.returncode = returncode
        self.output = output
        super().__init__(f"Command failed ({returncode}): {shlex.join(self.argv)}")


@dataclass
class CommandResult:
    returncode: int
    stdout: str

    @property
    def ok(self) -> bool:
        return self.returncode == 0


def find_command(name: str) -> str | None:
    path_entries = [entry for entry in os.environ.get("PATH", "").split(os.pathsep) if entry]
    for extra in EXTRA_BIN_PATHS:
        if extra not in path_entries:
            path_entries.append(extra)
    return shutil.which(name, path=os.pathsep.join(path_entries))


class CommandRunner:
    """Runs external commands, escalating single commands through sudo.

    ``check=True`` gives the immediate-abort behaviour: a non-zero exit raises
    :class:`CommandFailed`. ``stream=True`` leaves stdout attached to the
    terminal, used for long package-manager runs.
    """

    def __init__(self, sudo: str = "sudo") -> None:
        self.sudo = sudo

    def build_argv(
        self,
        command: Sequence[str],
        elevate: bool = False,
        env: Mapping[str, str] | None = None,
    ) -> list[str]:
        argv = list(command)
        if elevate:
            assignments = [f"{key}={value}" for key, value in (env or {}).items()]
            argv = [self.sudo, *assignments, *argv]
        return argv

    def run(
        self,
        command: Sequence[str],
        *,
        elevate: bool = False,
        input_text: str | None = None,
        env: Mapping[str, str] | None = None,
        check: bool = True,
        stream: bool = False,
    ) -> CommandResult:
        argv = self.build_argv(command, elevate=elevate, env=env)
        logger.debug("CMD %s", shlex.join(argv))
        process_env = None if elevate or not env else dict(os.environ, **env)
        try:
            completed = subprocess.run(
                argv,
                check=False,
                text=True,
                errors="surrogateescape",
                input=input_text,
                env=process_env,
                stdout=None if stream else subprocess.PIPE,
                stderr=None if stream else subprocess.STDOUT,
            )
            result = CommandResult(returncode=completed.returncode, stdout=completed.stdout or "")
        except FileNotFoundError:
            result = CommandResult(returncode=127, stdout=f"command not found: {argv[0]}")
        except PermissionError:
            result = CommandResult(returncode=126, stdout=f"permission denied: {argv[0]}")
        if result.stdout.strip():
            logger.debug("OUT %s", result.stdout.strip())
        if check and result.returncode != 0:
            raise CommandFailed(argv, result.returncode, result.stdout)
        return result

    def has_command(self, name: str) -> bool:
        return find_command(name) is not None


def write_file(runner: CommandRunner, path: Path, content: str) -> None:
    runner.run(["tee", str(path)], elevate=True, input_text=content)


def append_file(runner: CommandRunner, path: Path, content: str) -> None:
    runner.run(["tee", "-a", str(path)], elevate=True, input_text=content)


def make_dirs(runner: CommandRunner, *paths: Path) -> None:
    runner.run(["mkdir", "-p", *(str(path) for path in paths)], elevate=True)


def service_enable(runner: CommandRunner, service: str) -> CommandResult:
    return runner.run(["systemctl", "enable", service], elevate=True)


def service_start(runner: CommandRunner, service: str, check: bool = True) -> CommandResult:
    return runner.run(["systemctl", "start", service], elevate=True, check=check)


def service_is_active(runner: CommandRunner, service: str) -> bool:
    return runner.run(["systemctl", "is-active", "--quiet", service], elevate=True, check=False).ok


def service_is_enabled(runner: CommandRunner, service: str) -> bool:
    return runner.run(["systemctl", "is-enabled", "--quiet", service], check=False).ok


def add_user_to_groups(runner: CommandRunner, user: str, groups: Sequence[str]) -> CommandResult:
    return runner.run(["usermod", "-a", "-G", ",".join(groups), user], elevate=True)


def user_groups(runner: CommandRunner, user: str) -> set[str]:
    result = runner.run(["groups", user], check=False)
    # "user : group1 group2" on Debian, "group1 group2" elsewhere
    text = result.stdout.split(":", 1)[-1]
    return set(text.split())


def primary_ip_address(runner: CommandRunner) -> str:
    result = runner.run(["hostname", "-I"], check=False)
    addresses = result.stdout.split()
    return addresses[0] if addresses else "<this-pi>"


def system_reboot(runner: CommandRunner) -> CommandResult:
    return runner.run(["reboot"], elevate=True)


def human_uptime(uptime_path: Path = Path("/proc/uptime")) -> str:
    try:
        uptime_seconds = float(uptime_path.read_text(encoding="utf-8").split()[0])
    except (OSError, ValueError, IndexError):
        return "unknown"
    minutes, _ = divmod(int(uptime_seconds), 60)
    hours, minutes = divmod(minutes, 60)
    days, hours = divmod(hours, 24)
    parts = []
    if days:
        parts.append(f"{days}d")
    if hours:
        parts.append(f"{hours}h")
    if minutes or not parts:
        parts.append(f"{minutes}m")
    return " ".join(parts)
