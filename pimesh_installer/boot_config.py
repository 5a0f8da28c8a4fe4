from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Sequence

from pimesh_installer.console import Console
from pimesh_installer.probe import BoardIdentity
from pimesh_installer.system import CommandRunner, append_file, write_file


CMDLINE_PATHS = (Path("/boot/firmware/cmdline.txt"), Path("/boot/cmdline.txt"))
SERIAL_CONSOLE_PATTERN = re.compile(r"console=serial0\S* ")


@dataclass(frozen=True)
class BootDirective:
    line: str
    label: str


class DirectiveStatus(Enum):
    CHANGED = "changed"
    ALREADY_PRESENT = "already_present"


BASE_DIRECTIVES = (
    BootDirective("dtparam=spi=on", "SPI enable"),
    BootDirective("dtoverlay=spi0-0cs", "SPI chip select overlay"),
    BootDirective("dtparam=i2c_arm=on", "I2C enable"),
    BootDirective("enable_uart=1", "UART enable"),
)
PI5_UART_OVERLAY = BootDirective("dtoverlay=uart0", "UART overlay for Pi 5")


def required_directives(board: BoardIdentity) -> tuple[BootDirective, ...]:
    if board.is_pi5:
        return BASE_DIRECTIVES + (PI5_UART_OVERLAY,)
    return BASE_DIRECTIVES


def resolve_boot_config(primary: Path, legacy: Path, console: Console | None = None) -> Path | None:
    if primary.is_file():
        return primary
    if legacy.is_file():
        if console is not None:
            console.warning(f"{primary} not found, using legacy {legacy}")
        return legacy
    if console is not None:
        console.warning(f"Boot configuration not found at {primary} or {legacy}")
    return None


def has_directive(text: str, line: str) -> bool:
    return re.search(rf"^{re.escape(line)}[ \t]*$", text, flags=re.MULTILINE) is not None


def ensure_boot_directive(runner: CommandRunner, path: Path, line: str) -> DirectiveStatus:
    """Append ``line`` to ``path`` unless an identical line is already there.

    Existing content is never rewritten; a second call with the same line
    leaves the file untouched.
    """
    text = path.read_text(encoding="utf-8", errors="surrogateescape") if path.exists() else ""
    if has_directive(text, line):
        return DirectiveStatus.ALREADY_PRESENT
    prefix = "\n" if text and not text.endswith("\n") else ""
    append_file(runner, path, f"{prefix}{line}\n")
    return DirectiveStatus.CHANGED


def reconcile_boot_config(
    runner: CommandRunner,
    console: Console,
    board: BoardIdentity,
    path: Path,
) -> dict[str, DirectiveStatus]:
    statuses: dict[str, DirectiveStatus] = {}
    for directive in required_directives(board):
        status = ensure_boot_directive(runner, path, directive.line)
        statuses[directive.line] = status
        if status is DirectiveStatus.CHANGED:
            console.info(f"Added {directive.label} to {path.name}")
        else:
            console.info(f"{directive.label} already present in {path.name}")
    return statuses


def verify_boot_config(path: Path, board: BoardIdentity) -> list[tuple[BootDirective, bool]]:
    text = path.read_text(encoding="utf-8", errors="surrogateescape") if path.exists() else ""
    return [(directive, has_directive(text, directive.line)) for directive in required_directives(board)]


def disable_serial_console(
    runner: CommandRunner,
    console: Console,
    cmdline_paths: Sequence[Path] = CMDLINE_PATHS,
) -> None:
    console.info("Configuring serial console...")
    if runner.has_command("raspi-config"):
        runner.run(["raspi-config", "nonint", "do_serial_cons", "1"], elevate=True)
        console.info("Serial console disabled using raspi-config")
        return
    for path in cmdline_paths:
        if not path.is_file():
            continue
        text = path.read_text(encoding="utf-8", errors="surrogateescape")
        if "console=serial0" not in text:
            continue
        write_file(runner, path, SERIAL_CONSOLE_PATTERN.sub("", text))
        console.info(f"Removed serial console from {path.name}")
        return
    console.info("Serial console already disabled")
