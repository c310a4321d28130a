import re
from dataclasses import dataclass, field
from typing import FrozenSet, NamedTuple, Tuple

from .errors import PassiveModeParseError, ResponseParseError

# Six comma separated numbers, e.g. "227 Entering Passive Mode (192,168,1,2,19,137)."
PASV = re.compile(r"(\d+)\s*,\s*(\d+)\s*,\s*(\d+)\s*,\s*(\d+)\s*,\s*(\d+)\s*,\s*(\d+)")

# First quoted path in a 257 reply, with "" standing for a literal quote
QUOTED = re.compile(r'"((?:[^"]|"")*)"')

# FTP response codes - what the server is trying to tell you
CODES = {
    # 1xx - "Hold on, I'm working on it"
    110: "Restart marker reply",
    120: "Service ready in n minutes",
    125: "Data connection already open; transfer starting",
    150: "File status okay; about to open data connection",
    # 2xx - "Success! Everything went great"
    200: "Command okay",
    202: "Command not implemented, superfluous at this site",
    211: "System status, or system help reply",
    212: "Directory status",
    213: "File status",
    214: "Help message",
    215: "NAME system type",
    220: "Service ready for new user",
    221: "Service closing control connection",
    225: "Data connection open; no transfer in progress",
    226: "Closing data connection",
    227: "Entering Passive Mode",
    230: "User logged in, proceed",
    250: "Requested file action okay, completed",
    257: "PATHNAME created",
    # 3xx - "I need more info from you"
    331: "User name okay, need password",
    332: "Need account for login",
    350: "Requested file action pending further information",
    # 4xx - "Something's wrong, but we can try again"
    421: "Service not available, closing control connection",
    425: "Can't open data connection",
    426: "Connection closed; transfer aborted",
    450: "Requested file action not taken",
    451: "Requested action aborted: local error in processing",
    452: "Requested action not taken; insufficient storage space",
    # 5xx - "Nope, that's not going to work"
    500: "Syntax error, command unrecognized",
    501: "Syntax error in parameters or arguments",
    502: "Command not implemented",
    503: "Bad sequence of commands",
    504: "Command not implemented for that parameter",
    530: "Not logged in",
    532: "Need account for storing files",
    550: "Requested action not taken; file unavailable",
    551: "Requested action aborted: page type unknown",
    552: "Requested file action aborted; exceeded storage allocation",
    553: "Requested action not taken; file name not allowed",
}


@dataclass(frozen=True)
class Capabilities:
    """
    Server features learned from FEAT once at connect time.

    Attributes:
        mlst: Server speaks MLST/MLSD, so listings use the machine format
        utf8: Server accepts UTF-8 pathnames
        features: Every advertised feature line, stripped
    """

    mlst: bool = False
    utf8: bool = False
    features: FrozenSet[str] = field(default_factory=frozenset)


class PassiveEndpoint(NamedTuple):
    """Where the server wants us to open the data connection."""

    octets: Tuple[int, int, int, int]
    port: int

    @property
    def host(self) -> str:
        return ".".join(str(octet) for octet in self.octets)


def lines(raw: str) -> Tuple[str, ...]:
    """Split reply text into lines without the trailing CR."""
    return tuple(line.rstrip("\r") for line in raw.split("\n"))


def status_code(raw: str) -> int:
    """Pull the status code off the last non-empty line of a reply.

    Continuation lines above the final line never change the result, so this works
    the same on one-line and multi-line replies.

    Args:
        raw: Reply text, possibly several lines

    Returns:
        The three digit code as an int

    Raises:
        ResponseParseError: If the last line is too short or doesn't start with digits
    """
    filled = [line for line in lines(raw) if line.strip()]
    if not filled:
        raise ResponseParseError("Empty reply has no status code")

    head = filled[-1].strip()[:3]
    if len(head) < 3 or not head.isdigit():
        raise ResponseParseError(f"No status code in reply line: {filled[-1]!r}")
    return int(head)


def parse_feat(raw: str) -> Capabilities:
    """Turn a FEAT reply into Capabilities.

    Unknown features are kept in `features` but otherwise ignored, so new server
    features never break the parse.
    """
    mlst = utf8 = False
    features = set()

    for line in lines(raw):
        text = line.strip()
        if "MLST" in text:
            mlst = True
        if "UTF8" in text:
            utf8 = True

        # 211-Features: / 211 End are framing, not features
        if text and not (text[:3].isdigit() and text[3:4] in ("", " ", "-")):
            features.add(text)

    return Capabilities(mlst=mlst, utf8=utf8, features=frozenset(features))


def parse_pasv(raw: str) -> PassiveEndpoint:
    """Decode the address and port out of a 227 reply.

    Raises:
        PassiveModeParseError: If six numbers aren't there or one is out of range
    """
    match = PASV.search(raw)
    if not match:
        raise PassiveModeParseError(f"No passive address in reply: {raw!r}")

    numbers = tuple(int(group) for group in match.groups())
    if any(number > 255 for number in numbers):
        raise PassiveModeParseError(f"Passive address out of range: {numbers}")

    h1, h2, h3, h4, p1, p2 = numbers
    return PassiveEndpoint(octets=(h1, h2, h3, h4), port=p1 * 256 + p2)


def parse_pwd(raw: str) -> str:
    """Get the quoted directory name out of a 257 reply."""
    match = QUOTED.search(raw)
    if not match:
        raise ResponseParseError(f"No quoted path in reply: {raw!r}")
    return match.group(1).replace('""', '"')
