from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from pathlib import Path

from pimesh_installer.console import Console
from pimesh_installer.system import CommandRunner, EnvironmentMismatch


CPUINFO_PATH = Path("/proc/cpuinfo")
OS_RELEASE_PATH = Path("/etc/os-release")


class BoardModel(Enum):
    PI_3B = "Pi 3 Model B"
    PI_3B_PLUS = "Pi 3 Model B+"
    PI_4B = "Pi 4 Model B"
    PI_ZERO_2W = "Pi Zero 2 W"
    PI_5 = "Pi 5"
    UNKNOWN = "Unknown"


REVISION_TABLE = {
    BoardModel.PI_3B: ("a02082", "a22082", "a32082", "a52082"),
    BoardModel.PI_3B_PLUS: ("a020d3", "9020e0"),
    BoardModel.PI_4B: ("a03111", "b03111", "b03112", "b03114", "c03111", "c03112", "c03114", "d03114"),
    BoardModel.PI_ZERO_2W: ("b03140", "c03140", "d03140"),
    BoardModel.PI_5: ("c04170", "d04170"),
}
REVISION_MODELS = {revision: model for model, revisions in REVISION_TABLE.items() for revision in revisions}


class OsSupport(Enum):
    SUPPORTED = "supported"
    UNSUPPORTED = "unsupported"


# Meshtastic's repositories are keyed by Debian release.
SUPPORTED_CODENAMES = {
    "bookworm": "12",
    "trixie": "13",
}


@dataclass(frozen=True)
class BoardIdentity:
    revision: str
    model: BoardModel

    @property
    def is_pi5(self) -> bool:
        return self.model is BoardModel.PI_5


@dataclass(frozen=True)
class OsIdentity:
    codename: str
    pretty_name: str
    architecture: str
    support: OsSupport

    @property
    def supported(self) -> bool:
        return self.support is OsSupport.SUPPORTED

    @property
    def is_32bit(self) -> bool:
        return self.architecture == "armhf"

    @property
    def debian_version(self) -> str | None:
        return SUPPORTED_CODENAMES.get(self.codename)


@dataclass(frozen=True)
class SystemFacts:
    board: BoardIdentity
    os: OsIdentity


def classify_revision(revision: str) -> BoardModel:
    return REVISION_MODELS.get(revision.strip().lower(), BoardModel.UNKNOWN)


def read_revision(cpuinfo: str) -> str:
    for line in cpuinfo.splitlines():
        if line.startswith("Revision") and ":" in line:
            return line.split(":", 1)[1].strip().lower()
    return ""


def detect_board(console: Console, cpuinfo_path: Path = CPUINFO_PATH) -> BoardIdentity:
    console.info("Detecting Raspberry Pi model...")
    if not cpuinfo_path.is_file():
        raise EnvironmentMismatch("This doesn't appear to be a Raspberry Pi")
    revision = read_revision(cpuinfo_path.read_text(encoding="utf-8", errors="ignore"))
    console.debug(f"Hardware revision: '{revision}'")
    model = classify_revision(revision)
    if model is BoardModel.UNKNOWN:
        console.warning(f"Unknown Pi model (revision: {revision})")
    console.success(f"Detected: {model.value}")
    return BoardIdentity(revision=revision, model=model)


def classify_codename(codename: str) -> OsSupport:
    if codename in SUPPORTED_CODENAMES:
        return OsSupport.SUPPORTED
    return OsSupport.UNSUPPORTED


def parse_os_release(text: str) -> dict[str, str]:
    data: dict[str, str] = {}
    for line in text.splitlines():
        line = line.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, value = line.split("=", 1)
        data[key.strip()] = value.strip().strip('"').strip("'")
    return data


def detect_os(
    runner: CommandRunner,
    console: Console,
    os_release_path: Path = OS_RELEASE_PATH,
) -> OsIdentity:
    console.info("Detecting operating system...")
    if not os_release_path.is_file():
        raise EnvironmentMismatch("Cannot detect OS version")
    data = parse_os_release(os_release_path.read_text(encoding="utf-8", errors="surrogateescape"))
    codename = data.get("VERSION_CODENAME", "")
    pretty_name = data.get("PRETTY_NAME", codename or "unknown")
    architecture = runner.run(["dpkg", "--print-architecture"]).stdout.strip()
    identity = OsIdentity(
        codename=codename,
        pretty_name=pretty_name,
        architecture=architecture,
        support=classify_codename(codename),
    )
    console.success(f"OS: {pretty_name} ({architecture})")
    if not identity.supported:
        raise EnvironmentMismatch(
            "Unsupported OS version. This installer requires Raspberry Pi OS Bookworm or Trixie."
        )
    console.success("OS version is supported")
    return identity
