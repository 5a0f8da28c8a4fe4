from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
try:
    import tomllib
except ModuleNotFoundError:  # Python < 3.11
    import tomli as tomllib
from typing import Any, Dict

import tomli_w

from pimesh_installer.system import InstallerError


DEFAULT_SETTINGS_PATH = Path("/etc/pimesh-installer.toml")
SETTINGS_PATH_ENV = "PIMESH_INSTALLER_CONFIG"


@dataclass
class RepositorySettings:
    channel: str = "beta"
    base_url: str = "http://download.opensuse.org/repositories"

    def to_dict(self) -> Dict[str, Any]:
        return {"channel": self.channel, "base_url": self.base_url}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RepositorySettings":
        return cls(
            channel=str(data.get("channel", "beta")).strip().lower(),
            base_url=str(data.get("base_url", "http://download.opensuse.org/repositories")).rstrip("/"),
        )


@dataclass
class PreflightSettings:
    min_free_kb: int = 102400
    probe_url: str = "https://download.opensuse.org"
    probe_timeout: float = 10.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "min_free_kb": self.min_free_kb,
            "probe_url": self.probe_url,
            "probe_timeout": self.probe_timeout,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PreflightSettings":
        return cls(
            min_free_kb=int(data.get("min_free_kb", 102400)),
            probe_url=str(data.get("probe_url", "https://download.opensuse.org")),
            probe_timeout=float(data.get("probe_timeout", 10.0)),
        )


@dataclass
class PathSettings:
    log: Path = Path("/tmp/pimesh_install.log")
    boot_config: Path = Path("/boot/firmware/config.txt")
    legacy_boot_config: Path = Path("/boot/config.txt")
    daemon_config: Path = Path("/etc/meshtasticd/config.yaml")
    reference_config: Path = Path("/etc/meshtasticd/available.d/pimesh-1w.yaml")
    discovery_record: Path = Path("/etc/avahi/services/meshtastic.service")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "log": str(self.log),
            "boot_config": str(self.boot_config),
            "legacy_boot_config": str(self.legacy_boot_config),
            "daemon_config": str(self.daemon_config),
            "reference_config": str(self.reference_config),
            "discovery_record": str(self.discovery_record),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PathSettings":
        defaults = cls()
        return cls(
            log=Path(data.get("log", defaults.log)),
            boot_config=Path(data.get("boot_config", defaults.boot_config)),
            legacy_boot_config=Path(data.get("legacy_boot_config", defaults.legacy_boot_config)),
            daemon_config=Path(data.get("daemon_config", defaults.daemon_config)),
            reference_config=Path(data.get("reference_config", defaults.reference_config)),
            discovery_record=Path(data.get("discovery_record", defaults.discovery_record)),
        )


@dataclass
class Settings:
    repository: RepositorySettings = field(default_factory=RepositorySettings)
    preflight: PreflightSettings = field(default_factory=PreflightSettings)
    paths: PathSettings = field(default_factory=PathSettings)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "repository": self.repository.to_dict(),
            "preflight": self.preflight.to_dict(),
            "paths": self.paths.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Settings":
        return cls(
            repository=RepositorySettings.from_dict(data.get("repository", {})),
            preflight=PreflightSettings.from_dict(data.get("preflight", {})),
            paths=PathSettings.from_dict(data.get("paths", {})),
        )


def settings_path() -> Path:
    return Path(os.getenv(SETTINGS_PATH_ENV) or DEFAULT_SETTINGS_PATH)


def load_settings(path: Path | None = None) -> Settings:
    path = Path(path) if path is not None else settings_path()
    if not path.exists():
        return Settings()
    with path.open("rb") as handle:
        try:
            payload = tomllib.load(handle)
        except tomllib.TOMLDecodeError as exc:
            raise InstallerError(f"Invalid settings file {path}: {exc}") from exc
    return Settings.from_dict(payload)


def settings_to_toml(settings: Settings) -> str:
    return tomli_w.dumps(settings.to_dict())
