from __future__ import annotations

import os
import platform
import pwd
import time
from enum import Enum
from pathlib import Path
from typing import Callable

from pimesh_installer.boot_config import (
    CMDLINE_PATHS,
    disable_serial_console,
    reconcile_boot_config,
    resolve_boot_config,
    verify_boot_config,
)
from pimesh_installer.console import Console, TerminalPrompt, configure_logging
from pimesh_installer.core import PathSettings, Settings, load_settings, settings_to_toml
from pimesh_installer.discovery import DiscoveryRecord, write_discovery_record
from pimesh_installer.meshtastic import (
    AVAHI_SERVICE,
    MESHTASTIC_SERVICE,
    DaemonConfig,
    install_meshtastic,
    validate_daemon_config,
    write_daemon_config,
    write_reference_config,
)
from pimesh_installer.preflight import check_invocation_user, check_requirements
from pimesh_installer.probe import (
    CPUINFO_PATH,
    OS_RELEASE_PATH,
    SystemFacts,
    detect_board,
    detect_os,
)
from pimesh_installer.system import (
    CommandRunner,
    InstallerError,
    add_user_to_groups,
    human_uptime,
    make_dirs,
    primary_ip_address,
    service_enable,
    service_is_active,
    service_is_enabled,
    service_start,
    system_reboot,
    user_groups,
)


VERSION = "1.0.0"
GPIO_GROUPS = ("gpio", "spi", "i2c")
SPI_DEVICE = Path("/dev/spidev0.0")
SERVICE_SETTLE_SECONDS = 3

HEADER = f"""
PiMesh-1W Interactive Meshtastic Installer v{VERSION}
https://meshsmith.net
"""

MENU = """
Installation Options

  1) 🚀 Full Installation (Recommended)
     • Install Meshtastic daemon
     • Configure PiMesh-1W hardware
     • Enable web interface
     • Setup auto-start services

  2) ⚙️  Custom Installation
     • Choose specific components
     • Advanced configuration options

  3) ℹ️  Show System Information

  4) ❌ Exit
"""

TROUBLESHOOTING = """
🔧 Troubleshooting Information:

Service Commands:
  sudo systemctl status meshtasticd     # Check service status
  sudo journalctl -u meshtasticd -f     # View live logs
  sudo journalctl -u meshtasticd -b     # View logs since boot

Hardware Validation:
  ls -la /dev/spidev*                   # Check SPI devices
  ls -la /dev/i2c*                      # Check I2C devices
  ls -la /dev/ttyAMA0 /dev/ttyS0        # Check UART devices

Configuration Files:
  Main config: {daemon_config}
  Reference:   {reference_config}
  Boot config: {boot_config}

Required in config.txt:
  dtparam=spi=on                        # Enable SPI
  dtoverlay=spi0-0cs                    # Enable SPI chip select
  dtparam=i2c_arm=on                    # Enable I2C
  enable_uart=1                         # Enable UART
  dtoverlay=uart0                       # Pi 5 only

Common Issues:
  1. Reboot required after config.txt changes
  2. User must logout/login after group changes
  3. Serial console interferes with GPS UART
  4. Check radio module wiring to GPIO pins

Documentation:
  https://meshtastic.org/docs/hardware/devices/linux-native-hardware/?os=debian
"""

COMPLETION = """
🎉 Installation completed successfully!

Your PiMesh-1W node is now ready to use.

⚠️  IMPORTANT: A reboot is required for GPIO changes to take effect.

Next steps:
1. Reboot your Raspberry Pi: sudo reboot
2. After reboot, access web interface: https://{address}
3. Check service status: sudo systemctl status meshtasticd
4. View logs: sudo journalctl -u meshtasticd -f

For support and documentation, visit: https://meshsmith.net
"""


class MenuState(Enum):
    AWAITING = "awaiting"
    RUNNING = "running"
    INFO = "info"
    DONE = "done"


class Installer:
    def __init__(
        self,
        settings: Settings,
        runner: CommandRunner,
        console: Console,
        prompt: Callable[[str], str],
        *,
        euid: int | None = None,
        user: str | None = None,
        sleep: Callable[[float], None] = time.sleep,
        cpuinfo_path: Path = CPUINFO_PATH,
        os_release_path: Path = OS_RELEASE_PATH,
        spi_device: Path = SPI_DEVICE,
        cmdline_paths: tuple[Path, ...] = CMDLINE_PATHS,
    ) -> None:
        self.settings = settings
        self.runner = runner
        self.console = console
        self.prompt = prompt
        self.euid = euid
        self.user = user
        self.sleep = sleep
        self.cpuinfo_path = cpuinfo_path
        self.os_release_path = os_release_path
        self.spi_device = spi_device
        self.cmdline_paths = cmdline_paths
        self.daemon_config = DaemonConfig()
        self.discovery_record = DiscoveryRecord()
        self.facts: SystemFacts | None = None
        self.state = MenuState.AWAITING

    @property
    def paths(self) -> PathSettings:
        return self.settings.paths

    def _user(self) -> str:
        if self.user is None:
            self.user = pwd.getpwuid(os.geteuid()).pw_name
        return self.user

    def _require_facts(self) -> SystemFacts:
        if self.facts is None:
            raise InstallerError("System checks have not been run")
        return self.facts

    def confirm(self, message: str) -> bool:
        answer = self.prompt(message).strip() or "N"
        return answer[:1].lower() == "y"

    def run(self) -> int:
        self.console.show(HEADER, "banner")
        self.facts = self.probe_and_gate()
        self.console.info("System checks completed successfully!")
        return self.menu_loop()

    def probe_and_gate(self) -> SystemFacts:
        check_invocation_user(self.runner, self.euid)
        board = detect_board(self.console, self.cpuinfo_path)
        os_identity = detect_os(self.runner, self.console, self.os_release_path)
        check_requirements(self.settings.preflight, self.console)
        return SystemFacts(board=board, os=os_identity)

    def show_menu(self) -> None:
        self.console.show(MENU, "menu")

    def menu_loop(self) -> int:
        self.show_menu()
        self.console.debug("Menu displayed, waiting for user input")
        while self.state is not MenuState.DONE:
            choice = self.prompt("Please select an option (1-4): ")
            self.console.debug(f"User entered: '{choice}'")
            self.state = self.handle_choice(choice)
        return 0

    def handle_choice(self, choice: str) -> MenuState:
        choice = choice.strip()
        if not choice:
            self.console.warning("Please enter a valid option.")
            return MenuState.AWAITING
        if choice == "1":
            self.state = MenuState.RUNNING
            self.console.info("Starting full installation...")
            self.run_full_setup()
            return MenuState.DONE
        if choice == "2":
            self.state = MenuState.RUNNING
            self.console.info("Starting custom installation...")
            self.run_custom_setup()
            return MenuState.DONE
        if choice == "3":
            self.state = MenuState.INFO
            self.show_info()
            self.show_menu()
            return MenuState.AWAITING
        if choice == "4":
            self.console.show("Installation cancelled by user.", "warning")
            self.console.logger.info("Installation cancelled by user.")
            return MenuState.DONE
        self.console.warning("Invalid option. Please select 1-4.")
        self.show_menu()
        return MenuState.AWAITING

    def show_info(self) -> None:
        facts = self._require_facts()
        supported = "Yes" if facts.os.supported else "No"
        self.console.show(
            "\nSystem Information\n"
            f"  Pi Model:      {facts.board.model.value}\n"
            f"  OS Version:    {facts.os.codename} ({facts.os.architecture})\n"
            f"  Supported:     {supported}\n"
            f"  Kernel:        {platform.release()}\n"
            f"  Uptime:        {human_uptime()}\n",
            "banner",
        )

    def run_custom_setup(self) -> None:
        # Component selection was never offered; both menu entries install everything.
        self.console.warning("Custom installation not yet implemented")
        self.console.info("Falling back to full installation...")
        self.run_full_setup()

    def run_full_setup(self) -> None:
        facts = self._require_facts()
        self.console.show("Starting full PiMesh-1W installation...\n", "success")
        install_meshtastic(self.runner, self.console, facts.os, self.settings.repository)
        self.configure_hardware(facts)
        self.setup_web_interface()
        self.enable_services(facts)
        self.console.show(COMPLETION.format(address=primary_ip_address(self.runner)), "success")
        self.console.logger.info("Installation completed")
        self.offer_reboot()

    def configure_hardware(self, facts: SystemFacts) -> None:
        self.console.info("Configuring PiMesh-1W hardware...")
        self.console.info("Enabling GPIO interfaces...")
        boot_config = resolve_boot_config(self.paths.boot_config, self.paths.legacy_boot_config, self.console)
        if boot_config is not None:
            reconcile_boot_config(self.runner, self.console, facts.board, boot_config)

        disable_serial_console(self.runner, self.console, self.cmdline_paths)

        self.console.info(f"Adding user to {', '.join(GPIO_GROUPS)} groups...")
        add_user_to_groups(self.runner, self._user(), GPIO_GROUPS)

        if self.spi_device.is_char_device():
            self.console.success(f"SPI device {self.spi_device} exists")
        else:
            self.console.warning("SPI device not yet available (will be created after reboot)")

        make_dirs(self.runner, self.paths.daemon_config.parent / "config.d", self.paths.reference_config.parent)
        self.console.info("Creating PiMesh-1W reference configuration...")
        write_reference_config(
            self.runner,
            self.paths.reference_config,
            self.daemon_config,
            self.paths.daemon_config,
        )
        self.console.info(f"PiMesh-1W configuration will be included in {self.paths.daemon_config.name}")
        self.console.success("PiMesh-1W hardware configured")
        self.console.warning("Reboot required for GPIO changes to take effect")

    def setup_web_interface(self) -> None:
        self.console.info("Setting up web interface...")
        write_daemon_config(self.runner, self.paths.daemon_config, self.daemon_config)
        self.console.info("Configuring network discovery...")
        make_dirs(self.runner, self.paths.discovery_record.parent)
        write_discovery_record(self.runner, self.paths.discovery_record, self.discovery_record)
        self.console.success("Web interface configured")
        self.console.info(f"Web interface will be available at: https://{primary_ip_address(self.runner)}")

    def validate(self, facts: SystemFacts) -> None:
        """Report on the installed configuration; findings never stop the run."""
        self.console.info("Validating Meshtastic service configuration...")
        report = validate_daemon_config(self.paths.daemon_config)
        for finding in report.findings:
            if finding.ok:
                self.console.success(finding.message)
            else:
                self.console.warning(finding.message)
        if not report.ok:
            self.console.warning("Configuration validation failed - check YAML syntax")

        if service_is_enabled(self.runner, MESHTASTIC_SERVICE):
            self.console.success("Meshtastic service is enabled")
        else:
            self.console.warning("Meshtastic service is not enabled")

        groups = user_groups(self.runner, self._user())
        for group in ("gpio", "spi"):
            if group in groups:
                self.console.success(f"User is in {group} group")
            else:
                self.console.warning(f"User is not in {group} group (logout/login required)")

        boot_config = resolve_boot_config(self.paths.boot_config, self.paths.legacy_boot_config)
        if boot_config is None:
            self.console.warning("Config.txt not found")
            return
        for directive, present in verify_boot_config(boot_config, facts.board):
            if present:
                self.console.success(f"{directive.label} present in {boot_config.name}")
            else:
                self.console.warning(f"{directive.label} missing from {boot_config.name}")

    def enable_services(self, facts: SystemFacts) -> None:
        self.console.info("Enabling auto-start services...")
        self.validate(facts)

        self.console.info(f"Enabling {MESHTASTIC_SERVICE} service...")
        service_enable(self.runner, MESHTASTIC_SERVICE)
        self.console.info(f"Enabling {AVAHI_SERVICE} service...")
        service_enable(self.runner, AVAHI_SERVICE)
        service_start(self.runner, AVAHI_SERVICE)

        if not self.confirm("Would you like to start Meshtastic daemon now? (y/N): "):
            self.console.info("Service will start automatically after reboot")
        elif self.start_daemon():
            self.console.success("Service is running properly")
        else:
            self.show_troubleshooting()
        self.console.success("Services configured for auto-start")

    def start_daemon(self) -> bool:
        self.console.info(f"Starting {MESHTASTIC_SERVICE} service...")
        if not service_start(self.runner, MESHTASTIC_SERVICE, check=False).ok:
            self.console.warning("Failed to start service - this is expected before reboot")
            self.console.info(
                "The service will start automatically after reboot when GPIO interfaces are available"
            )
            return False
        self.console.success("Meshtastic daemon started successfully")
        self.sleep(SERVICE_SETTLE_SECONDS)
        if service_is_active(self.runner, MESHTASTIC_SERVICE):
            return True
        self.console.warning("Service may need a reboot to function properly due to GPIO requirements")
        return False

    def show_troubleshooting(self) -> None:
        self.console.show(
            TROUBLESHOOTING.format(
                daemon_config=self.paths.daemon_config,
                reference_config=self.paths.reference_config,
                boot_config=self.paths.boot_config,
            ),
            "warning",
        )

    def offer_reboot(self) -> None:
        if self.confirm("Would you like to reboot now? (y/N): "):
            self.console.info("Rebooting system...")
            system_reboot(self.runner)
        else:
            self.console.warning("Remember to reboot before using your PiMesh-1W node!")


def main() -> int:
    console = Console(debug=os.getenv("DEBUG") == "1")
    try:
        settings = load_settings()
    except InstallerError as exc:
        configure_logging(PathSettings().log)
        console.error(str(exc))
        return 1
    log_path = configure_logging(settings.paths.log)
    console.debug(f"Logging to {log_path}")
    console.debug(f"Effective settings:\n{settings_to_toml(settings).rstrip()}")

    prompt = TerminalPrompt()
    installer = Installer(settings, CommandRunner(), console, prompt)
    try:
        return installer.run()
    except InstallerError as exc:
        console.error(str(exc))
        return 1
    except EOFError:
        console.error("No input available from the terminal")
        return 1
    except (OSError, UnicodeError) as exc:
        console.error(str(exc))
        return 1
    except KeyboardInterrupt:
        console.warning("Installation interrupted by user.")
        return 130
    finally:
        prompt.close()


if __name__ == "__main__":
    raise SystemExit(main())
