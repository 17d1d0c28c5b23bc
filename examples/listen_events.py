"""
Event listening example.

Demonstrates reading messages sent by devices, such as switch presses.
"""

from plmpy import DeviceCommand, PowerLincModem

# Replace with your serial port
PORT = "/dev/ttyUSB0"


def main():
    """Main function."""
    print("plmpy - Event Listening Example\n")

    with PowerLincModem(port=PORT, log_events=True) as modem:
        print("Waiting for messages (Ctrl+C to stop)...\n")

        try:
            for message in modem.messages():
                if message.cmd1 == DeviceCommand.ON:
                    print(f"{message.from_address} turned on")
                elif message.cmd1 == DeviceCommand.OFF:
                    print(f"{message.from_address} turned off")
                else:
                    print(f"{message.from_address}: cmd1=0x{message.cmd1:02x} cmd2=0x{message.cmd2:02x}")
        except KeyboardInterrupt:
            print("\nStopping...")


if __name__ == "__main__":
    main()
