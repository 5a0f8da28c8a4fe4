from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from xml.sax.saxutils import escape

from pimesh_installer.system import CommandRunner, write_file


@dataclass(frozen=True)
class DiscoveryService:
    type: str
    port: int
    protocol: str = "ipv4"
    txt_records: tuple[str, ...] = ()


@dataclass(frozen=True)
class DiscoveryRecord:
    name: str = "Meshtastic"
    services: tuple[DiscoveryService, ...] = field(
        default_factory=lambda: (
            DiscoveryService(type="_meshtastic._tcp", port=4403),
            DiscoveryService(type="_http._tcp", port=443, txt_records=("path=/",)),
        )
    )


def render_record(record: DiscoveryRecord) -> str:
    lines = [
        '<?xml version="1.0" standalone="no"?><!--*-nxml-*-->',
        '<!DOCTYPE service-group SYSTEM "avahi-service.dtd">',
        "<service-group>",
        f"  <name>{escape(record.name)}</name>",
    ]
    for service in record.services:
        lines.append(f'  <service protocol="{escape(service.protocol)}">')
        lines.append(f"    <type>{escape(service.type)}</type>")
        lines.append(f"    <port>{service.port}</port>")
        for txt in service.txt_records:
            lines.append(f"    <txt-record>{escape(txt)}</txt-record>")
        lines.append("  </service>")
    lines.append("</service-group>")
    return "\n".join(lines) + "\n"


def write_discovery_record(runner: CommandRunner, path: Path, record: DiscoveryRecord) -> None:
    write_file(runner, path, render_record(record))
