import calendar
import logging
import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Dict, List, Mapping, Optional

from .errors import ListingParseError

logger = logging.getLogger("ftplink.listing")

# Locale independent month lookup for ls style dates
MONTHS = {
    name: number
    for number, name in enumerate(
        ("jan", "feb", "mar", "apr", "may", "jun", "jul", "aug", "sep", "oct", "nov", "dec"),
        start=1,
    )
}

# MLSD modify fact: YYYYMMDDHHMM with optional seconds and fraction
MODIFY = re.compile(r"^(\d{4})(\d{2})(\d{2})(\d{2})(\d{2})(\d{2})?(?:\.\d+)?$")


@dataclass(frozen=True)
class DirectoryEntry:
    """
    One file or directory out of a LIST or MLSD listing.

    Both listing formats produce the same shape. UNIX listings fill in the ls
    columns and leave `facts` empty; MLSD listings keep every fact the server sent
    in `facts` (keys lower-cased) and fill the columns they can map.

    Attributes:
        name: Entry name, spaces included
        size: Size in bytes (0 when unknown)
        is_directory: True for directories (MLSD cdir/pdir included)
        permissions: Raw permission string like "drwxr-xr-x", if known
        mode: Octal permission triple like "755", if known
        owner: Owning user, if reported
        group: Owning group, if reported
        links: Hard link count from ls output (0 for MLSD)
        modified: Last modification time, if reported
        target: Where a symlink points, for UNIX "l" entries
        facts: Every MLSD fact, keyed by lower-cased fact name
    """

    name: str
    size: int = 0
    is_directory: bool = False
    permissions: Optional[str] = None
    mode: Optional[str] = None
    owner: Optional[str] = None
    group: Optional[str] = None
    links: int = 0
    modified: Optional[datetime] = None
    target: Optional[str] = None
    facts: Mapping[str, str] = field(default_factory=dict)


def permissions_to_octal(permissions: str) -> str:
    """Convert an ls permission string to its octal triple.

    Characters 1-9 are read as owner/group/other rwx triads. A letter counts when
    it is present; setuid/setgid/sticky letters count as execute. Missing characters
    in a short string count as absent, so every input gives an answer.

    Examples:
        >>> permissions_to_octal("drwxr-xr--")
        '754'
        >>> permissions_to_octal("-rw-rw-r--")
        '664'
    """
    bits = permissions[1:10].ljust(9, "-")
    digits = []
    for offset in range(0, 9, 3):
        read, write, execute = bits[offset : offset + 3]
        value = 0
        if read == "r":
            value += 4
        if write == "w":
            value += 2
        if execute in ("x", "s", "t"):
            value += 1
        digits.append(str(value))
    return "".join(digits)


def parse_unix(raw: str, now: Optional[datetime] = None) -> List[DirectoryEntry]:
    """Parse a classic `ls -l` style LIST reply.

    Lines with fewer than 8 whitespace separated tokens (blank lines, "total N"
    headers) are skipped, and so are lines whose columns can't be decoded.

    Args:
        raw: Text received on the data channel
        now: Clock used for dates that only carry a time of day

    Returns:
        One DirectoryEntry per usable line, in listing order
    """
    now = now or datetime.now()
    return _collect(raw, lambda line: _unix(line, now))


def parse_mlsd(raw: str) -> List[DirectoryEntry]:
    """Parse an MLSD reply (`fact=value;...; name` per line).

    Unknown facts are preserved in `facts` rather than dropped.
    """
    return _collect(raw, _mlsd)


def _collect(raw: str, parse: Callable[[str], Optional[DirectoryEntry]]) -> List[DirectoryEntry]:
    entries = []
    for line in raw.split("\n"):
        line = line.rstrip("\r")
        try:
            entry = parse(line)
        except ListingParseError as error:
            logger.debug("Skipping listing line %r: %s", line, error)
            continue
        if entry is not None:
            entries.append(entry)
    return entries


def _unix(line: str, now: datetime) -> Optional[DirectoryEntry]:
    tokens = line.split(None, 8)
    if len(tokens) < 8:
        return None

    permissions, links, owner, group, size, month, day, clock = tokens[:8]
    name = tokens[8].rstrip() if len(tokens) > 8 else ""

    target = None
    if permissions.startswith("l") and " -> " in name:
        name, target = name.split(" -> ", 1)

    try:
        return DirectoryEntry(
            name=name,
            size=int(size),
            is_directory=permissions.startswith("d"),
            permissions=permissions,
            mode=permissions_to_octal(permissions),
            owner=owner,
            group=group,
            links=int(links) if links.isdigit() else 0,
            modified=_date(month, day, clock, now),
            target=target,
        )
    except ValueError as error:
        raise ListingParseError(str(error)) from error


def _date(month: str, day: str, clock: str, now: datetime) -> datetime:
    """Build the timestamp from the month/day/(time or year) columns."""
    number = MONTHS.get(month[:3].lower())
    if number is None:
        raise ListingParseError(f"Unknown month {month!r}")

    if ":" in clock:
        # Recent files show a time of day and no year
        hour, minute = clock.split(":", 1)
        year = now.year
        if number == 2 and int(day) == 29:
            # Feb 29 only exists in leap years, so it belongs to the latest one
            while not calendar.isleap(year):
                year -= 1
        return datetime(year, number, int(day), int(hour), int(minute))

    return datetime(int(clock), number, int(day))


def _mlsd(line: str) -> Optional[DirectoryEntry]:
    if not line.strip():
        return None

    *pairs, name = line.split(";")
    facts: Dict[str, str] = {}
    for pair in pairs:
        key, sep, value = pair.partition("=")
        if not sep:
            continue
        facts[key.strip().lower()] = value

    modified = None
    if "modify" in facts:
        match = MODIFY.match(facts["modify"].strip())
        if not match:
            raise ListingParseError(f"Bad modify fact {facts['modify']!r}")
        year, month, day, hour, minute, second = match.groups()
        try:
            modified = datetime(
                int(year), int(month), int(day), int(hour), int(minute), int(second or 0)
            )
        except ValueError as error:
            raise ListingParseError(str(error)) from error

    size = facts.get("size", facts.get("sizd", "0"))
    mode = facts.get("unix.mode")

    return DirectoryEntry(
        name=name.strip(),
        size=int(size) if size.isdigit() else 0,
        is_directory="dir" in facts.get("type", "").lower(),
        permissions=facts.get("perm"),
        mode=mode[-3:] if mode else None,
        owner=facts.get("unix.owner", facts.get("unix.uid")),
        group=facts.get("unix.group", facts.get("unix.gid")),
        modified=modified,
        facts=facts,
    )
