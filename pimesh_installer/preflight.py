from __future__ import annotations

import os
import shutil
import socket
import urllib.error
import urllib.request

from pimesh_installer.console import Console
from pimesh_installer.core import PreflightSettings
from pimesh_installer.system import CommandRunner, PreconditionFailed


def check_invocation_user(runner: CommandRunner, euid: int | None = None) -> None:
    """Require an unprivileged user who can run sudo without a password prompt."""
    if euid is None:
        euid = os.geteuid()
    if euid == 0:
        raise PreconditionFailed(
            "This script should not be run as root. Please run as a regular user with sudo privileges."
        )
    if not runner.run(["sudo", "-n", "true"], check=False).ok:
        raise PreconditionFailed(
            "This script requires sudo privileges. Please run with a user that has sudo access."
        )


def free_kilobytes(path: str = "/") -> int:
    return shutil.disk_usage(path).free // 1024


def check_disk_space(min_kb: int, path: str = "/") -> int:
    available = free_kilobytes(path)
    if available < min_kb:
        raise PreconditionFailed(f"Insufficient disk space. At least {min_kb // 1024}MB required.")
    return available


def check_connectivity(url: str, timeout: float) -> None:
    try:
        with urllib.request.urlopen(url, timeout=timeout) as response:
            response.read(1)
    except urllib.error.HTTPError:
        # Any HTTP answer means the host is reachable.
        return
    except (urllib.error.URLError, socket.timeout, OSError) as exc:
        raise PreconditionFailed(
            "No internet connection detected. Please check your network and try again."
        ) from exc


def check_requirements(settings: PreflightSettings, console: Console) -> None:
    console.info("Checking system requirements...")
    available = check_disk_space(settings.min_free_kb)
    console.debug(f"Free space on /: {available} KiB")
    check_connectivity(settings.probe_url, settings.probe_timeout)
    console.success("System requirements met")
