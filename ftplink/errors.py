from typing import Optional, Tuple, Union, List

import aioftp

# Enhanced type definitions for improved type safety and clarity
Codes = Union[int, Tuple[int, ...]]
Info = Union[List[str], str]


class FtpError(Exception):
    """Base class for everything FtpLink raises on purpose."""


class ConnectionFailed(FtpError, ConnectionError):
    """The control connection could not be established."""


class UnexpectedResponseCode(aioftp.StatusCodeError, FtpError):
    """
    A control command never got the reply code it was waiting for.

    Raised right away when the server answers with a 4xx/5xx code that isn't the
    expected one, or once the reply deadline runs out. Codes are kept as
    aioftp.Code tuples so callers already catching aioftp.StatusCodeError keep
    working.

    Attributes:
        expected_codes: What the command was waiting for
        received_codes: Every code seen while waiting (may be empty)
        info: Raw reply text of the last reply seen, if any
    """

    def __init__(self, expected: Codes, received: Codes = (), info: Info = "") -> None:
        super().__init__(
            tuple(aioftp.Code(str(code)) for code in _wrap(expected)),
            tuple(aioftp.Code(str(code)) for code in _wrap(received)),
            info,
        )

    @property
    def code(self) -> Optional[int]:
        """The last code the server sent, or None if it stayed silent."""
        if not self.received_codes:
            return None
        return int(self.received_codes[-1])


class AuthenticationRejected(UnexpectedResponseCode):
    """USER or PASS did not get the reply code the login sequence needs."""


class ResponseParseError(FtpError, ValueError):
    """A control reply didn't have the shape we needed."""


class PassiveModeParseError(ResponseParseError):
    """The PASV reply didn't carry six usable numbers."""


class ListingParseError(FtpError, ValueError):
    """One listing line couldn't be decoded. Listing parsers skip these."""


class DataChannelFailed(FtpError, ConnectionError):
    """The data connection couldn't be opened or broke mid-transfer."""


class ChannelClosed(FtpError, ConnectionError):
    """The control channel closed while a command was still waiting."""


class OperationCancelled(FtpError):
    """An operation ran past its deadline and both channels were torn down."""


def _wrap(codes: Codes) -> Tuple[int, ...]:
    return (codes,) if isinstance(codes, int) else tuple(codes)
