"""
Basic connection example.

Demonstrates connecting to a modem, reading its identity and link database.
"""

from plmpy import PowerLincModem

# Replace with your serial port (or e.g. "socket://hub.local:9761")
PORT = "/dev/ttyUSB0"


def main():
    """Main function."""
    print("plmpy - Basic Connection Example\n")

    # Connect to modem using context manager
    # This automatically starts and closes the modem
    with PowerLincModem(port=PORT) as modem:
        print("Connected to modem!\n")

        print("=== Modem Information ===")
        info = modem.plm.get_info()
        print(f"Address: {info.address}")
        print(f"Category: 0x{info.category:02x}/0x{info.sub_category:02x}")
        print(f"Firmware: 0x{info.firmware_version:02x}")

        print("\n=== Link Database ===")
        for link in modem.links.get_links():
            role = "controller" if link.is_controller else "responder"
            print(f"{link.address} group {link.group} ({role})")

    print("\nConnection closed.")


if __name__ == "__main__":
    main()
