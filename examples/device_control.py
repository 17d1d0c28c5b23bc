"""
Device control example.

Demonstrates switching a device and reading back its level.
"""

import time

from plmpy import Address, PLMError, PowerLincModem

# Replace with your serial port and device address
PORT = "/dev/ttyUSB0"
DEVICE = Address.parse("11.22.33")


def main():
    """Main function."""
    print("plmpy - Device Control Example\n")

    # Re-send twice if the modem is busy
    with PowerLincModem(port=PORT, nak_retries=2) as modem:
        try:
            modem.devices.ping(DEVICE)
            print(f"{DEVICE} is reachable")

            modem.devices.turn_on(DEVICE, level=50)
            time.sleep(1)
            status = modem.devices.get_status(DEVICE)
            print(f"Level: {status.percent}%")

            modem.devices.turn_off(DEVICE, fast=True)
            print("Turned off")
        except PLMError as e:
            print(f"Device error: {e}")


if __name__ == "__main__":
    main()
