__version__ = "1.0.0"
__author__ = "Andrew Hernandez"
__email__ = "andromedeyz@hotmail.com"
__license__ = "MIT"
__description__ = "An async FTP client engine for Python with passive-mode transfers, MLSD and ls listing parsing, and keepalive."
__url__ = "http://github.com/ApaxPhoenix/FtpLink"

# The factory - turns an ftp:// URL into sessions
from .ftp import Ftp

# The heart of FtpLink - one session per control connection
from .core import (
    FtpSession,  # Log in, list, download, upload and manage files
    State,  # Where a session is in its lifecycle
)

# The building blocks sessions are made of
from .control import ControlChannel, ControlCommand, ControlResponse
from .data import DataChannel, Mode
from .transport import StreamTransport, Transport

# Reading what the server says
from .parser import (
    CODES as codes,  # What each FTP reply code means
    Capabilities,
    PassiveEndpoint,
    status_code,
    parse_feat,
    parse_pasv,
    parse_pwd,
)
from .listing import DirectoryEntry, parse_unix, parse_mlsd, permissions_to_octal

# Fine-tune how your FTP sessions behave
from .config import (
    Timeout,  # Set how long to wait for connections, replies and transfers
    Keepalive,  # Keep idle control connections from being dropped
)

# Different ways to log in
from .auth import (
    Basic,  # Classic username and password login
    Guest,  # Anonymous access for public servers
)

# Everything that can go wrong, on purpose
from .errors import (
    FtpError,
    ConnectionFailed,
    AuthenticationRejected,
    UnexpectedResponseCode,
    ResponseParseError,
    PassiveModeParseError,
    ListingParseError,
    DataChannelFailed,
    ChannelClosed,
    OperationCancelled,
)

# Everything you can import and use
__all__ = [
    # The main classes you'll work with
    "Ftp",
    "FtpSession",
    "State",
    # Channels and transport
    "ControlChannel",
    "ControlCommand",
    "ControlResponse",
    "DataChannel",
    "Mode",
    "StreamTransport",
    "Transport",
    # Parsing
    "Capabilities",
    "PassiveEndpoint",
    "status_code",
    "parse_feat",
    "parse_pasv",
    "parse_pwd",
    "DirectoryEntry",
    "parse_unix",
    "parse_mlsd",
    "permissions_to_octal",
    # Configuration options
    "Timeout",
    "Keepalive",
    # Authentication types
    "Basic",
    "Guest",
    # Errors
    "FtpError",
    "ConnectionFailed",
    "AuthenticationRejected",
    "UnexpectedResponseCode",
    "ResponseParseError",
    "PassiveModeParseError",
    "ListingParseError",
    "DataChannelFailed",
    "ChannelClosed",
    "OperationCancelled",
    # Reply code descriptions
    "codes",
    # Package info
    "__version__",
    "__author__",
    "__email__",
    "__license__",
    "__description__",
    "__url__",
]
