"""
Link database manager.

Handles the modem's all-link database: reading records and linking or
unlinking devices.
"""

import logging
from typing import TYPE_CHECKING, Optional

from .devices import DeviceManager
from .retry import RetryPolicy
from ..core import codec
from ..core.codec import Frame
from ..exceptions import ModemNak, PLMError
from ..parsers.records import AllLinkCompleteParser, AllLinkRecordParser
from ..types import Address, AllLinkComplete, AllLinkMode, AllLinkRecord

if TYPE_CHECKING:
    from ..core import CorrelationEngine

logger = logging.getLogger(__name__)

DEFAULT_RECORD_TIMEOUT = 5.0
DEFAULT_LINK_TIMEOUT = 30.0


class LinkManager:
    """
    Manages the modem's link database.

    Provides methods for listing links and linking devices.
    """

    def __init__(
        self,
        engine: "CorrelationEngine",
        devices: DeviceManager,
        retry: Optional[RetryPolicy] = None,
        record_timeout: float = DEFAULT_RECORD_TIMEOUT,
        link_timeout: float = DEFAULT_LINK_TIMEOUT
    ) -> None:
        """
        Initialize link manager.

        Args:
            engine: CorrelationEngine instance for command execution
            devices: DeviceManager used to put devices into linking mode
            retry: Policy for NAKed commands (no retries if None)
            record_timeout: Seconds to wait for each link record
            link_timeout: Default seconds to wait for a link to complete
        """
        self.engine = engine
        self.devices = devices
        self.retry = retry or RetryPolicy()
        self.record_timeout = record_timeout
        self.link_timeout = link_timeout

        # Parsers
        self._record_parser = AllLinkRecordParser()
        self._complete_parser = AllLinkCompleteParser()

        logger.debug("Initialized LinkManager")

    def get_links(self) -> list[AllLinkRecord]:
        """
        Read the modem's link database.

        Returns:
            All link records, in database order

        Example:

        .. code-block:: python

            for link in modem.links.get_links():
                role = "Controller" if link.is_controller else "Responder"
                print(f"{link.address} {role} group {link.group}")
        """
        logger.info("Reading link database")
        records: list[AllLinkRecord] = []
        command = Frame.command(codec.GET_FIRST_ALL_LINK_RECORD)

        with self.engine.listen() as stream:
            while True:
                try:
                    self.retry.send(self.engine, command, retry_nak=False)
                except ModemNak as e:
                    if e.busy:
                        raise
                    # NAK means there are no more records
                    break

                frame = stream.wait_for(self._record_parser.accepts, self.record_timeout)
                record = self._record_parser.parse(frame)
                logger.debug(f"Got link {record}")
                records.append(record)
                command = Frame.command(codec.GET_NEXT_ALL_LINK_RECORD)

        logger.debug(f"Link database has {len(records)} record(s)")
        return records

    def cancel_linking(self) -> None:
        """Take the modem out of linking mode."""
        logger.info("Cancelling modem linking mode")
        self.retry.send(self.engine, Frame.command(codec.CANCEL_ALL_LINK))

    def link_device(
        self,
        address: Optional[Address] = None,
        mode: AllLinkMode = AllLinkMode.AUTO,
        group: int = 1,
        timeout: Optional[float] = None
    ) -> AllLinkComplete:
        """
        Link a device to the modem.

        Without an address, someone has to press the device's set button
        while the modem is in linking mode.

        Args:
            address: Device to put into linking mode remotely, if any
            mode: Role of the modem in the link (DELETE removes the link)
            group: Group number to link
            timeout: Seconds to wait for the link (default link_timeout)

        Returns:
            AllLinkComplete describing the new link

        Raises:
            CommandTimeout: If no link completed in time
            ValueError: If group is outside 0-255

        Example:

        .. code-block:: python

            result = modem.links.link_device(
                Address.parse("11.22.33"), mode=AllLinkMode.CONTROLLER
            )
            print(f"Linked {result.address} in group {result.group}")
        """
        if not 0 <= group <= 0xFF:
            raise ValueError(f"Group must be between 0 and 255, got {group}")
        timeout_val = timeout if timeout is not None else self.link_timeout
        logger.info(f"Linking {address or 'device'} as {mode.name} in group {group}")

        # Ensure we're not in some prior linking mode
        self.cancel_linking()

        with self.engine.listen() as stream:
            try:
                if address is not None:
                    self.devices.start_linking(address, group)

                self.retry.send(
                    self.engine,
                    Frame.command(codec.START_ALL_LINK, payload=bytes([mode, group]))
                )
                frame = stream.wait_for(self._complete_parser.accepts, timeout_val)
            finally:
                self._finish_linking(address, group)

        result = self._complete_parser.parse(frame)
        logger.info(f"Link complete: {result}")
        return result

    def unlink_device(
        self,
        address: Optional[Address] = None,
        group: int = 1,
        timeout: Optional[float] = None
    ) -> AllLinkComplete:
        """Remove a device's link from the modem."""
        return self.link_device(address, AllLinkMode.DELETE, group, timeout)

    def _finish_linking(self, address: Optional[Address], group: int) -> None:
        # Best effort: the link outcome is already decided
        if address is not None:
            try:
                self.devices.cancel_linking(address, group)
            except PLMError as e:
                logger.warning(f"Failed to take {address} out of linking mode: {e}")
        try:
            self.cancel_linking()
        except PLMError as e:
            logger.warning(f"Failed to cancel modem linking mode: {e}")
