import unittest
import xml.etree.ElementTree as ET
from pathlib import Path
from tempfile import TemporaryDirectory

from pimesh_installer.discovery import DiscoveryRecord, DiscoveryService, render_record, write_discovery_record

from support import FakeRunner


class TestDiscoveryRecord(unittest.TestCase):
    def test_default_record_advertises_both_services(self) -> None:
        root = ET.fromstring(render_record(DiscoveryRecord()))

        self.assertEqual(root.tag, "service-group")
        self.assertEqual(root.findtext("name"), "Meshtastic")
        services = root.findall("service")
        self.assertEqual(len(services), 2)
        self.assertEqual(
            [(s.findtext("type"), s.findtext("port"), s.get("protocol")) for s in services],
            [("_meshtastic._tcp", "4403", "ipv4"), ("_http._tcp", "443", "ipv4")],
        )
        self.assertEqual(services[0].findall("txt-record"), [])
        self.assertEqual([t.text for t in services[1].findall("txt-record")], ["path=/"])

    def test_names_are_escaped(self) -> None:
        record = DiscoveryRecord(name="Mesh & <Node>", services=(DiscoveryService(type="_x._tcp", port=1),))

        root = ET.fromstring(render_record(record))

        self.assertEqual(root.findtext("name"), "Mesh & <Node>")

    def test_write_replaces_existing_record(self) -> None:
        with TemporaryDirectory() as temp_dir:
            path = Path(temp_dir) / "meshtastic.service"
            path.write_text("stale", encoding="utf-8")
            runner = FakeRunner(root=Path(temp_dir))

            write_discovery_record(runner, path, DiscoveryRecord())

            self.assertEqual(path.read_text(encoding="utf-8"), render_record(DiscoveryRecord()))
        self.assertTrue(runner.writes_to(path)[0].elevate)


if __name__ == "__main__":
    unittest.main()
