import unittest
from pathlib import Path
from tempfile import TemporaryDirectory

import yaml

from pimesh_installer.core import RepositorySettings
from pimesh_installer.meshtastic import (
    DaemonConfig,
    LoraPins,
    install_meshtastic,
    render_daemon_config,
    render_reference_config,
    repo_distro,
    repo_list_line,
    validate_daemon_config,
    write_daemon_config,
)
from pimesh_installer.probe import OsIdentity, OsSupport
from pimesh_installer.system import InstallerError

from support import FakeRunner, RecordingConsole


BOOKWORM_ARMHF = OsIdentity(
    codename="bookworm",
    pretty_name="Raspbian GNU/Linux 12 (bookworm)",
    architecture="armhf",
    support=OsSupport.SUPPORTED,
)
BOOKWORM_ARM64 = OsIdentity(
    codename="bookworm",
    pretty_name="Debian GNU/Linux 12 (bookworm)",
    architecture="arm64",
    support=OsSupport.SUPPORTED,
)
TRIXIE_ARM64 = OsIdentity(
    codename="trixie",
    pretty_name="Debian GNU/Linux 13 (trixie)",
    architecture="arm64",
    support=OsSupport.SUPPORTED,
)


class TestRepository(unittest.TestCase):
    def test_distro_follows_architecture_and_release(self) -> None:
        self.assertEqual(repo_distro(BOOKWORM_ARMHF), "Raspbian_12")
        self.assertEqual(repo_distro(BOOKWORM_ARM64), "Debian_12")
        self.assertEqual(repo_distro(TRIXIE_ARM64), "Debian_13")

    def test_list_line(self) -> None:
        self.assertEqual(
            repo_list_line(RepositorySettings(), "Raspbian_12"),
            "deb http://download.opensuse.org/repositories/network:/Meshtastic:/beta/Raspbian_12/ /\n",
        )

    def test_install_sequence_for_32bit(self) -> None:
        runner = FakeRunner()

        install_meshtastic(runner, RecordingConsole(), BOOKWORM_ARMHF, RepositorySettings())

        commands = runner.commands()
        self.assertEqual(commands[0], ["tee", "/etc/apt/sources.list.d/network:Meshtastic:beta.list"])
        self.assertIn("Raspbian_12", runner.calls[0].input_text)
        self.assertEqual(commands[1][:2], ["bash", "-c"])
        self.assertIn("Raspbian_12/Release.key", commands[1][2])
        self.assertIn("gpg --dearmor", commands[1][2])
        self.assertEqual(commands[2], ["apt-get", "update"])
        self.assertEqual(commands[3], ["apt-get", "install", "-y", "meshtasticd", "avahi-daemon"])
        self.assertEqual(runner.calls[3].env, {"DEBIAN_FRONTEND": "noninteractive"})
        self.assertTrue(all(call.elevate for call in runner.calls if call.argv[0] != "bash"))

    def test_unknown_channel_is_fatal_before_any_command(self) -> None:
        runner = FakeRunner()

        with self.assertRaises(InstallerError):
            install_meshtastic(runner, RecordingConsole(), BOOKWORM_ARM64, RepositorySettings(channel="nightly"))

        self.assertEqual(runner.calls, [])


class TestDaemonConfig(unittest.TestCase):
    def test_rendered_config_carries_exact_pins(self) -> None:
        data = yaml.safe_load(render_daemon_config(DaemonConfig()))

        self.assertEqual(
            data["Lora"],
            {
                "Module": "sx1262",
                "CS": 21,
                "IRQ": 16,
                "Busy": 20,
                "Reset": 18,
                "TXen": 13,
                "RXen": 12,
                "DIO3_TCXO_VOLTAGE": True,
            },
        )
        self.assertEqual(data["Webserver"], {"Port": 443, "RootPath": "/usr/share/meshtasticd/web"})

    def test_reference_config_points_at_daemon_config(self) -> None:
        text = render_reference_config(DaemonConfig(), Path("/etc/meshtasticd/config.yaml"))

        self.assertIn("/etc/meshtasticd/config.yaml", text)
        self.assertEqual(yaml.safe_load(text)["Lora"]["CS"], 21)

    def test_write_replaces_manual_edits(self) -> None:
        with TemporaryDirectory() as temp_dir:
            path = Path(temp_dir) / "config.yaml"
            path.write_text("Lora:\n  Module: sx1268\n  CS: 7\n", encoding="utf-8")
            runner = FakeRunner(root=Path(temp_dir))

            write_daemon_config(runner, path, DaemonConfig())
            data = yaml.safe_load(path.read_text(encoding="utf-8"))

        self.assertEqual(data["Lora"]["Module"], "sx1262")
        self.assertEqual(data["Lora"]["CS"], 21)

    def test_custom_pins_are_rendered(self) -> None:
        config = DaemonConfig(lora=LoraPins(cs=8, irq=25))

        data = yaml.safe_load(render_daemon_config(config))

        self.assertEqual((data["Lora"]["CS"], data["Lora"]["IRQ"]), (8, 25))


class TestValidateDaemonConfig(unittest.TestCase):
    def test_canonical_config_is_valid(self) -> None:
        with TemporaryDirectory() as temp_dir:
            path = Path(temp_dir) / "config.yaml"
            path.write_text(render_daemon_config(DaemonConfig()), encoding="utf-8")

            report = validate_daemon_config(path)

        self.assertTrue(report.ok)
        self.assertIn("Configuration YAML syntax and structure is valid", [f.message for f in report.findings])

    def test_missing_key_is_reported_not_raised(self) -> None:
        with TemporaryDirectory() as temp_dir:
            path = Path(temp_dir) / "config.yaml"
            path.write_text(
                "Lora:\n  Module: sx1262\n  CS: 21\n  IRQ: 16\n  Busy: 20\n  Reset: 18\n  TXen: 13\n"
                "Webserver:\n  Port: 443\n  RootPath: /usr/share/meshtasticd/web\n",
                encoding="utf-8",
            )

            report = validate_daemon_config(path)

        self.assertFalse(report.ok)
        self.assertTrue(any("Lora.RXen" in finding.message for finding in report.findings if not finding.ok))

    def test_missing_section_is_reported(self) -> None:
        with TemporaryDirectory() as temp_dir:
            path = Path(temp_dir) / "config.yaml"
            path.write_text(yaml.safe_dump({"Lora": LoraPins().to_dict()}), encoding="utf-8")

            report = validate_daemon_config(path)

        self.assertFalse(report.ok)
        self.assertIn("Missing Webserver section", [f.message for f in report.findings])

    def test_invalid_yaml_is_reported(self) -> None:
        with TemporaryDirectory() as temp_dir:
            path = Path(temp_dir) / "config.yaml"
            path.write_text("Lora: [unclosed\n  CS: 21\n", encoding="utf-8")

            report = validate_daemon_config(path)

        self.assertFalse(report.ok)

    def test_missing_file_is_fatal(self) -> None:
        with TemporaryDirectory() as temp_dir:
            with self.assertRaises(InstallerError):
                validate_daemon_config(Path(temp_dir) / "config.yaml")


if __name__ == "__main__":
    unittest.main()
