"""
Base parser classes and utilities.

Provides reusable conversion of decoded frames into typed data.
"""

import logging
from abc import ABC, abstractmethod
from typing import TypeVar, Generic

from ..core.codec import Frame, FrameKind
from ..exceptions import UnexpectedResponse

logger = logging.getLogger(__name__)

T = TypeVar('T')


class FrameParser(ABC, Generic[T]):
    """
    Abstract base class for frame parsers.

    Parsers convert decoded frames into typed data structures.
    """

    #: Frame kinds and codes this parser accepts
    kinds: tuple[FrameKind, ...] = ()
    codes: tuple[int, ...] = ()

    def check(self, frame: Frame) -> Frame:
        """
        Verify the frame has the shape this parser expects.

        Raises:
            UnexpectedResponse: If kind or code do not match
        """
        if frame.kind not in self.kinds or frame.code not in self.codes:
            raise UnexpectedResponse(
                f"{type(self).__name__} cannot parse this frame",
                response=frame
            )
        return frame

    def accepts(self, frame: Frame) -> bool:
        """Check whether parse() would accept the frame."""
        return frame.kind in self.kinds and frame.code in self.codes

    @abstractmethod
    def parse(self, frame: Frame) -> T:
        """
        Parse a decoded frame.

        Args:
            frame: Frame from the codec

        Returns:
            Parsed data structure

        Raises:
            UnexpectedResponse: If the frame cannot be parsed
        """
        pass
