import asyncio
import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

import aioftp

from .config import Timeout
from .errors import ChannelClosed, FtpError, UnexpectedResponseCode
from .parser import CODES, lines, status_code
from .transport import Transport

# Reply codes that complete each command. Anything else under 400 is informational.
COMMANDS: Dict[str, Tuple[int, ...]] = {
    # Login and session setup
    "USER": (331,),
    "PASS": (230,),
    "FEAT": (211,),
    "TYPE": (200,),
    "SYST": (215,),
    "NOOP": (200,),
    "QUIT": (221,),
    # Transfers
    "PASV": (227,),
    "LIST": (226,),
    "MLSD": (226,),
    "RETR": (226,),
    "STOR": (150, 125),  # transfer starting, not finished
    # Files and directories
    "PWD": (257,),
    "CWD": (250,),
    "MKD": (257,),
    "RMD": (250,),
    "DELE": (250,),
    "RNFR": (350,),
    "RNTO": (250,),
    "STAT": (211, 212, 213),
    "SIZE": (213,),
    "SITE": (200,),
}

# Use the channel's read timeout; None means wait without a deadline
READ = object()


@dataclass(frozen=True)
class ControlCommand:
    """
    One request/response exchange on the control channel.

    Build these with ControlCommand.of() so the expected reply codes come from
    the command table instead of being repeated at every call site.

    Attributes:
        verb: FTP command verb, upper case
        argument: Optional argument appended after a space
        expected: Reply codes that complete the command
    """

    verb: str
    argument: Optional[str] = None
    expected: Tuple[int, ...] = ()

    def __post_init__(self) -> None:
        # A CR/LF would let an argument inject a second command
        if any(char in self.line for char in "\r\n"):
            raise ValueError(f"Command cannot contain line breaks: {self.verb}")

    @classmethod
    def of(cls, verb: str, argument: Optional[str] = None) -> "ControlCommand":
        """Build a command, taking its expected codes from the command table.

        Raises:
            ValueError: If the verb isn't in the table
        """
        verb = verb.upper()
        if verb not in COMMANDS:
            raise ValueError(f"Unknown FTP command: {verb}")
        return cls(verb=verb, argument=argument, expected=COMMANDS[verb])

    @property
    def line(self) -> str:
        """The command as sent on the wire, without the line terminator."""
        if self.argument is None:
            return self.verb
        return f"{self.verb} {self.argument}"

    def __str__(self) -> str:
        if self.verb == "PASS" and self.argument:
            return f"PASS {'*' * len(self.argument)}"
        return self.line


@dataclass(frozen=True)
class ControlResponse:
    """A complete (possibly multi-line) server reply and its status code."""

    code: int
    raw: str

    @property
    def lines(self) -> Tuple[str, ...]:
        return lines(self.raw)

    @property
    def message(self) -> str:
        """Text after the code on the final line."""
        last = [line for line in self.lines if line.strip()][-1].strip()
        return last[4:].strip()


class ControlChannel:
    """
    The single control connection of a session.

    A background reader turns incoming bytes into complete replies and queues
    them. execute() writes one command and waits on that queue for the reply
    code the command expects, skipping informational replies, failing fast on
    4xx/5xx codes and giving up once its deadline passes. Closing the channel,
    or the server closing it, wakes every waiter with ChannelClosed.

    Only one command may be in flight at a time. `lock` is held by whoever owns
    the channel for a whole operation, including the keepalive.
    """

    def __init__(
        self,
        transport: Transport,
        *,
        encoding: str = "utf-8",
        timeout: Optional[Timeout] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.transport = transport
        self.encoding = encoding
        self.timeout = timeout or Timeout()
        self.logger = logger or logging.getLogger("ftplink.control")

        # Operation level lock shared with the keepalive
        self.lock = asyncio.Lock()
        self.replies: "asyncio.Queue[Optional[ControlResponse]]" = asyncio.Queue()
        self.closed = False
        self.pending: Optional[str] = None

        # Reply assembly state
        self.buffer = b""
        self.block: List[str] = []
        self.opener: Optional[str] = None

        self.reader: Optional[asyncio.Task] = None
        self.keepalive: Optional[asyncio.Task] = None

    @classmethod
    def open(cls, transport: Transport, **kwargs) -> "ControlChannel":
        """Bind to an already connected transport and start reading replies.

        This doesn't log in; the session drives USER/PASS through execute().
        """
        channel = cls(transport, **kwargs)
        channel.reader = asyncio.ensure_future(channel.read())
        return channel

    async def read(self) -> None:
        """Pump transport chunks into the reply queue until EOF or error."""
        try:
            while True:
                chunk = await self.transport.receive()
                if not chunk:
                    self.logger.debug("Control connection closed by server")
                    break
                self.feed(chunk)
        except OSError as error:
            self.logger.warning("Control connection failed: %s", error)
        finally:
            self.shutdown()

    def feed(self, chunk: bytes) -> None:
        """Split raw bytes into lines, keeping any partial line for later."""
        *complete, self.buffer = (self.buffer + chunk).split(b"\n")
        for raw in complete:
            self.line(raw.rstrip(b"\r").decode(self.encoding, errors="replace"))

    def line(self, text: str) -> None:
        """Add one line to the current reply, queueing it once complete."""
        if not self.block and not text.strip():
            return

        self.block.append(text)
        head, mark = text[:3], text[3:4]
        if len(head) < 3 or not head.isdigit():
            return  # continuation text

        if mark == "-":
            if self.opener is None:
                self.opener = head
            return

        if mark in ("", " ") and (self.opener is None or head == self.opener):
            raw = "\n".join(self.block)
            self.block, self.opener = [], None
            self.logger.debug("<- %s", raw)
            self.replies.put_nowait(ControlResponse(code=status_code(raw), raw=raw))

    async def execute(self, command: ControlCommand, timeout=READ) -> ControlResponse:
        """Send a command and wait for the reply code it expects.

        Args:
            command: What to send and which reply codes complete it
            timeout: Seconds to wait for the reply; defaults to Timeout.read,
                     None waits without a deadline

        Returns:
            ControlResponse: The reply carrying an expected code

        Raises:
            UnexpectedResponseCode: On a 4xx/5xx code that isn't expected, or
                when the deadline passes without an expected code
            ChannelClosed: If the channel is or becomes closed
            RuntimeError: If another command is still in flight
        """
        self.claim(command.verb)
        try:
            self.logger.debug("-> %s", command)
            message = command.line + aioftp.END_OF_LINE
            try:
                await self.transport.send(message.encode(self.encoding))
            except (OSError, asyncio.TimeoutError) as error:
                self.shutdown()
                raise ChannelClosed(f"Failed to send {command.verb}: {error}") from error

            return await self.wait(command.expected, timeout, command.verb)
        finally:
            self.pending = None

    async def expect(self, expected: Tuple[int, ...], timeout=READ) -> ControlResponse:
        """Wait for a reply without sending anything first.

        Used for the second reply of a command, like the 226 that follows a
        STOR once the data connection is closed.
        """
        self.claim("reply")
        try:
            return await self.wait(expected, timeout, "reply")
        finally:
            self.pending = None

    def claim(self, name: str) -> None:
        if self.closed:
            raise ChannelClosed(f"Control channel is closed, cannot send {name}")
        if self.pending is not None:
            raise RuntimeError(f"Cannot send {name} while {self.pending} is in flight")
        self.pending = name

    async def wait(self, expected: Tuple[int, ...], timeout, name: str) -> ControlResponse:
        seen: List[int] = []
        last = ""

        async def collect() -> ControlResponse:
            nonlocal last
            while True:
                response = await self.replies.get()
                if response is None:
                    # Leave the marker for anyone waiting after us
                    self.replies.put_nowait(None)
                    raise ChannelClosed(f"Control channel closed while waiting for {name} reply")

                seen.append(response.code)
                last = response.raw
                if response.code in expected:
                    return response
                if response.code >= 400:
                    raise UnexpectedResponseCode(expected, tuple(seen), response.raw)
                self.logger.debug(
                    "Ignoring %d (%s) while waiting for %s to %s",
                    response.code,
                    CODES.get(response.code, "unknown"),
                    expected,
                    name,
                )

        if timeout is READ:
            timeout = self.timeout.read

        try:
            if timeout is None:
                return await collect()
            return await asyncio.wait_for(collect(), timeout)
        except asyncio.TimeoutError:
            raise UnexpectedResponseCode(expected, tuple(seen), last) from None

    def start_keepalive(self, interval: float) -> None:
        """Send NOOP every `interval` seconds until the channel closes."""
        self.stop_keepalive()
        self.keepalive = asyncio.ensure_future(self.ping(interval))

    def stop_keepalive(self) -> None:
        task, self.keepalive = self.keepalive, None
        if task is not None and task is not asyncio.current_task():
            task.cancel()

    async def ping(self, interval: float) -> None:
        noop = ControlCommand.of("NOOP")
        while not self.closed:
            await asyncio.sleep(interval)
            async with self.lock:
                if self.closed:
                    break
                try:
                    await self.execute(noop)
                except FtpError as error:
                    self.logger.warning("Keepalive stopped, NOOP failed: %s", error)
                    break

    def shutdown(self) -> None:
        """Mark the channel closed, release the transport and wake waiters."""
        if self.closed:
            return
        self.closed = True
        self.stop_keepalive()
        self.transport.close()
        self.replies.put_nowait(None)

    def close(self) -> None:
        """Stop the keepalive and reader and close the connection."""
        self.stop_keepalive()
        if self.reader is not None and not self.reader.done():
            self.reader.cancel()
        self.shutdown()
