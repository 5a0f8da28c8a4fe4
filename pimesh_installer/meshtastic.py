from __future__ import annotations

import shlex
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict

import yaml

from pimesh_installer.console import Console
from pimesh_installer.core import RepositorySettings
from pimesh_installer.probe import OsIdentity
from pimesh_installer.system import CommandRunner, InstallerError, write_file


MESHTASTIC_SERVICE = "meshtasticd"
AVAHI_SERVICE = "avahi-daemon"
INSTALL_PACKAGES = (MESHTASTIC_SERVICE, AVAHI_SERVICE)

MESHTASTIC_REPO_LIST_DIR = Path("/etc/apt/sources.list.d")
MESHTASTIC_REPO_KEY_DIR = Path("/etc/apt/trusted.gpg.d")
MESHTASTIC_REPO_CHANNELS = {
    "beta": "network:Meshtastic:beta",
    "alpha": "network:Meshtastic:alpha",
    "daily": "network:Meshtastic:daily",
}

REQUIRED_KEYS = {
    "Lora": ("Module", "CS", "IRQ", "Busy", "Reset", "TXen", "RXen"),
    "Webserver": ("Port", "RootPath"),
}

DAEMON_CONFIG_HEADER = "# PiMesh-1W Main Configuration\n# https://MeshSmith.net\n"
REFERENCE_CONFIG_HEADER = (
    "# PiMesh-1W (E22-900M30S) Reference Configuration\n"
    "# https://MeshSmith.net\n"
    "# Note: This is a reference file. The actual configuration is in {config_path}\n"
)


@dataclass
class LoraPins:
    module: str = "sx1262"
    cs: int = 21
    irq: int = 16
    busy: int = 20
    reset: int = 18
    txen: int = 13
    rxen: int = 12
    dio3_tcxo_voltage: bool = True

    def to_dict(self) -> Dict[str, Any]:
        return {
            "Module": self.module,
            "CS": self.cs,
            "IRQ": self.irq,
            "Busy": self.busy,
            "Reset": self.reset,
            "TXen": self.txen,
            "RXen": self.rxen,
            "DIO3_TCXO_VOLTAGE": self.dio3_tcxo_voltage,
        }


@dataclass
class WebserverConfig:
    port: int = 443
    root_path: str = "/usr/share/meshtasticd/web"

    def to_dict(self) -> Dict[str, Any]:
        return {"Port": self.port, "RootPath": self.root_path}


@dataclass
class DaemonConfig:
    lora: LoraPins = field(default_factory=LoraPins)
    webserver: WebserverConfig = field(default_factory=WebserverConfig)

    def to_dict(self) -> Dict[str, Any]:
        return {"Lora": self.lora.to_dict(), "Webserver": self.webserver.to_dict()}


@dataclass
class ValidationFinding:
    ok: bool
    message: str


@dataclass
class ValidationReport:
    findings: list[ValidationFinding] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return all(finding.ok for finding in self.findings)

    def add(self, ok: bool, message: str) -> None:
        self.findings.append(ValidationFinding(ok=ok, message=message))


def repo_distro(os_identity: OsIdentity) -> str:
    """OBS project directory: Raspbian builds for 32-bit userland, Debian otherwise."""
    version = os_identity.debian_version or "12"
    if os_identity.is_32bit:
        return f"Raspbian_{version}"
    return f"Debian_{version}"


def repo_list_line(settings: RepositorySettings, distro: str) -> str:
    repo_id = MESHTASTIC_REPO_CHANNELS[settings.channel]
    return f"deb {settings.base_url}/{repo_id.replace(':', ':/')}/{distro}/ /\n"


def repo_key_url(settings: RepositorySettings, distro: str) -> str:
    repo_id = MESHTASTIC_REPO_CHANNELS[settings.channel]
    return f"{settings.base_url.replace('http://', 'https://', 1)}/{repo_id}/{distro}/Release.key"


def install_meshtastic(
    runner: CommandRunner,
    console: Console,
    os_identity: OsIdentity,
    settings: RepositorySettings,
) -> None:
    console.info("Installing Meshtastic daemon...")
    if settings.channel not in MESHTASTIC_REPO_CHANNELS:
        raise InstallerError(f"Unknown repo channel: {settings.channel}")
    distro = repo_distro(os_identity)
    bits = "32-bit" if os_identity.is_32bit else "64-bit"
    console.info(f"Adding {bits} Meshtastic repository ({distro})...")

    repo_id = MESHTASTIC_REPO_CHANNELS[settings.channel]
    list_path = MESHTASTIC_REPO_LIST_DIR / f"{repo_id}.list"
    key_path = MESHTASTIC_REPO_KEY_DIR / f"network_Meshtastic_{settings.channel}.gpg"
    write_file(runner, list_path, repo_list_line(settings, distro))
    key_cmd = (
        f"set -o pipefail; curl -fsSL {shlex.quote(repo_key_url(settings, distro))} "
        f"| gpg --dearmor | {shlex.quote(runner.sudo)} tee {shlex.quote(str(key_path))} >/dev/null"
    )
    runner.run(["bash", "-c", key_cmd])

    console.info("Updating package list...")
    runner.run(["apt-get", "update"], elevate=True, stream=True)
    console.info(f"Installing {' and '.join(INSTALL_PACKAGES)}...")
    runner.run(
        ["apt-get", "install", "-y", *INSTALL_PACKAGES],
        elevate=True,
        env={"DEBIAN_FRONTEND": "noninteractive"},
        stream=True,
    )
    console.success("Meshtastic daemon installed")


def _dump_section(name: str, body: Dict[str, Any]) -> str:
    return yaml.safe_dump({name: body}, sort_keys=False, default_flow_style=False)


def render_daemon_config(config: DaemonConfig) -> str:
    data = config.to_dict()
    return (
        f"{DAEMON_CONFIG_HEADER}\n"
        "# LoRa Radio Configuration (PiMesh-1W with E22-900M30S)\n"
        f"{_dump_section('Lora', data['Lora'])}\n"
        "# Web Interface Configuration\n"
        f"{_dump_section('Webserver', data['Webserver'])}"
    )


def render_reference_config(config: DaemonConfig, config_path: Path) -> str:
    header = REFERENCE_CONFIG_HEADER.format(config_path=config_path)
    return header + _dump_section("Lora", config.lora.to_dict())


def write_daemon_config(runner: CommandRunner, path: Path, config: DaemonConfig) -> None:
    """Replace ``path`` with the canonical document; earlier edits are discarded."""
    write_file(runner, path, render_daemon_config(config))


def write_reference_config(
    runner: CommandRunner,
    path: Path,
    config: DaemonConfig,
    daemon_config_path: Path,
) -> None:
    write_file(runner, path, render_reference_config(config, daemon_config_path))


def validate_daemon_config(path: Path) -> ValidationReport:
    if not path.is_file():
        raise InstallerError("Main configuration file missing")
    report = ValidationReport()
    report.add(True, "Main configuration file exists")
    try:
        with path.open("r", encoding="utf-8") as handle:
            data = yaml.safe_load(handle)
    except yaml.YAMLError as exc:
        report.add(False, f"Configuration is not valid YAML: {exc}")
        return report
    if not isinstance(data, dict):
        report.add(False, "Configuration is empty or not a mapping")
        return report
    for section, keys in REQUIRED_KEYS.items():
        body = data.get(section)
        if not isinstance(body, dict):
            report.add(False, f"Missing {section} section")
            continue
        missing = [key for key in keys if key not in body]
        if missing:
            report.add(False, f"Missing {', '.join(f'{section}.{key}' for key in missing)}")
    if report.ok:
        report.add(True, "Configuration YAML syntax and structure is valid")
    return report
