"""
Command-line tool for plmpy.

Runs a single modem or device command and prints the result.
"""

import argparse
import logging
import sys
from typing import Optional

from .exceptions import PLMError
from .modem import PowerLincModem
from .types import Address, AllLinkMode
from .version import __version__


def _address(text: str) -> Address:
    try:
        return Address.parse(text)
    except ValueError as e:
        raise argparse.ArgumentTypeError(str(e)) from e


def _level(text: str) -> int:
    level = int(text)
    if not 0 <= level <= 100:
        raise argparse.ArgumentTypeError(f"level must be between 0 and 100, got {level}")
    return level


def _group(text: str) -> int:
    group = int(text)
    if not 0 <= group <= 0xFF:
        raise argparse.ArgumentTypeError(f"group must be between 0 and 255, got {group}")
    return group


def cmd_modem_info(modem: PowerLincModem, args: argparse.Namespace) -> int:
    info = modem.plm.get_info()
    print(f"Address:      {info.address}")
    print(f"Category:     0x{info.category:02x}")
    print(f"Sub-category: 0x{info.sub_category:02x}")
    print(f"Firmware:     0x{info.firmware_version:02x}")
    return 0


def cmd_modem_links(modem: PowerLincModem, args: argparse.Namespace) -> int:
    links = modem.links.get_links()
    for link in links:
        role = "controller" if link.is_controller else "responder"
        print(f"{link.address}  group {link.group:3d}  {role}  data {link.data.hex(' ')}")
    print(f"{len(links)} link(s)")
    return 0


def cmd_modem_link(modem: PowerLincModem, args: argparse.Namespace) -> int:
    if args.address is None:
        print("Press the set button on the device to link...")
    result = modem.links.link_device(
        args.address, mode=args.mode, group=args.group, timeout=args.link_timeout
    )
    action = "Unlinked" if result.mode is AllLinkMode.DELETE else "Linked"
    print(f"{action} {result.address} in group {result.group}")
    return 0


def cmd_listen(modem: PowerLincModem, args: argparse.Namespace) -> int:
    print("Listening for messages (Ctrl+C to stop)...")
    try:
        for message in modem.messages():
            print(
                f"{message.from_address} -> {message.to}  "
                f"flags 0x{int(message.flags):02x}  "
                f"cmd1 0x{message.cmd1:02x}  cmd2 0x{message.cmd2:02x}"
            )
    except KeyboardInterrupt:
        pass
    return 0


def cmd_device(modem: PowerLincModem, args: argparse.Namespace) -> int:
    devices = modem.devices
    if args.action == "on":
        devices.turn_on(args.address, level=args.level, fast=args.fast)
        print(f"{args.address} on")
    elif args.action == "off":
        devices.turn_off(args.address, fast=args.fast)
        print(f"{args.address} off")
    elif args.action == "ping":
        devices.ping(args.address)
        print(f"{args.address} responded")
    elif args.action == "beep":
        devices.beep(args.address)
        print(f"{args.address} beeped")
    elif args.action == "status":
        status = devices.get_status(args.address)
        state = "on" if status.is_on else "off"
        print(f"{args.address} {state} ({status.percent}%)")
    elif args.action == "version":
        print(f"{args.address} engine version {devices.get_version(args.address)}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser."""
    parser = argparse.ArgumentParser(
        prog="plm-cli",
        description=f"plmpy CLI v{__version__} - INSTEON PowerLinc Modem control",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  plm-cli --port /dev/ttyUSB0 modem info
  plm-cli --port /dev/ttyUSB0 modem link 11.22.33 --controller
  plm-cli --port socket://hub.local:9761 device on 11.22.33 --level 50
  plm-cli --port /dev/ttyUSB0 listen
        """
    )

    parser.add_argument(
        "-p", "--port",
        required=True,
        help="Serial port or pyserial URL (e.g., /dev/ttyUSB0, COM3, socket://host:9761)"
    )
    parser.add_argument(
        "-b", "--baudrate",
        type=int,
        default=19200,
        help="Baud rate (default: 19200)"
    )
    parser.add_argument(
        "-t", "--timeout",
        type=float,
        default=5.0,
        help="Command timeout in seconds (default: 5.0)"
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable verbose logging"
    )

    commands = parser.add_subparsers(dest="command", required=True)

    modem_parser = commands.add_parser("modem", help="Modem commands")
    modem_commands = modem_parser.add_subparsers(dest="modem_command", required=True)

    modem_commands.add_parser("info", help="Show modem identity").set_defaults(func=cmd_modem_info)
    modem_commands.add_parser("links", help="List the link database").set_defaults(func=cmd_modem_links)

    link_parser = modem_commands.add_parser("link", help="Link or unlink a device")
    link_parser.add_argument(
        "address",
        nargs="?",
        type=_address,
        help="Device address (omit to press the set button instead)"
    )
    mode = link_parser.add_mutually_exclusive_group()
    mode.add_argument(
        "--controller", dest="mode", action="store_const", const=AllLinkMode.CONTROLLER,
        help="Link the modem as controller"
    )
    mode.add_argument(
        "--responder", dest="mode", action="store_const", const=AllLinkMode.RESPONDER,
        help="Link the modem as responder"
    )
    mode.add_argument(
        "--delete", dest="mode", action="store_const", const=AllLinkMode.DELETE,
        help="Remove the link"
    )
    link_parser.add_argument("-g", "--group", type=_group, default=1, help="Group number (default: 1)")
    link_parser.add_argument(
        "--link-timeout",
        type=float,
        default=30.0,
        help="Seconds to wait for the link (default: 30)"
    )
    link_parser.set_defaults(func=cmd_modem_link, mode=AllLinkMode.AUTO)

    commands.add_parser("listen", help="Print received INSTEON messages").set_defaults(func=cmd_listen)

    device_parser = commands.add_parser("device", help="Device commands")
    device_commands = device_parser.add_subparsers(dest="action", required=True)

    on_parser = device_commands.add_parser("on", help="Turn a device on")
    on_parser.add_argument("address", type=_address)
    on_parser.add_argument("-l", "--level", type=_level, default=100, help="On level in percent (default: 100)")
    on_parser.add_argument("--fast", action="store_true", help="Skip ramping")

    off_parser = device_commands.add_parser("off", help="Turn a device off")
    off_parser.add_argument("address", type=_address)
    off_parser.add_argument("--fast", action="store_true", help="Skip ramping")

    for action, help_text in (
        ("ping", "Check a device responds"),
        ("beep", "Make a device beep"),
        ("status", "Show a device's on-level"),
        ("version", "Show a device's engine version"),
    ):
        device_commands.add_parser(action, help=help_text).add_argument("address", type=_address)

    device_parser.set_defaults(func=cmd_device)

    return parser


def main(argv: Optional[list[str]] = None) -> int:
    """Main entry point for CLI."""
    args = build_parser().parse_args(argv)

    # Setup logging
    if args.verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
        )
    else:
        logging.basicConfig(
            level=logging.WARNING,
            format='%(levelname)s: %(message)s'
        )

    try:
        with PowerLincModem(
            port=args.port,
            baudrate=args.baudrate,
            command_timeout=args.timeout
        ) as modem:
            return args.func(modem, args)
    except PLMError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
