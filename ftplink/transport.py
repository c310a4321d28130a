import asyncio
from typing import Awaitable, Callable, Optional, Protocol

import aioftp

# Bytes pulled off a socket per receive call
BLOCK = aioftp.DEFAULT_BLOCK_SIZE


class Transport(Protocol):
    """
    The byte stream underneath a control or data channel.

    Channels only ever send bytes, receive chunks, and close. Anything with these
    three methods can stand in for a TCP connection, which is how the tests drive
    the protocol engine without a network.
    """

    async def send(self, data: bytes) -> None:
        """Write all of `data`, returning once it has been handed to the OS."""

    async def receive(self) -> bytes:
        """Return the next chunk, or b"" once the peer has closed."""

    def close(self) -> None:
        """Release the connection. Safe to call more than once."""


# Opens a Transport to (host, port)
Connector = Callable[[str, int], Awaitable[Transport]]


class StreamTransport:
    """
    Transport over an asyncio stream pair wrapped in aioftp.StreamIO.

    StreamIO gives us the write timeout for free. Reads are left unbounded here
    because each channel applies its own deadline (reply wait, inactivity timer).
    """

    def __init__(self, stream: aioftp.StreamIO, block: int = BLOCK) -> None:
        self.stream = stream
        self.block = block
        self.closed = False

    @classmethod
    async def open(
        cls, host: str, port: int, write: Optional[float] = None
    ) -> "StreamTransport":
        """Connect to host:port and wrap the streams.

        Raises:
            OSError: If the TCP connection can't be made
        """
        reader, writer = await asyncio.open_connection(host, port)
        return cls(aioftp.StreamIO(reader, writer, write_timeout=write))

    async def send(self, data: bytes) -> None:
        await self.stream.write(data)

    async def receive(self) -> bytes:
        if self.closed:
            return b""
        return await self.stream.read(self.block)

    def close(self) -> None:
        if not self.closed:
            self.closed = True
            self.stream.close()


def connector(write: Optional[float] = None) -> Connector:
    """Build the default connector, applying `write` as the send timeout."""

    async def connect(host: str, port: int) -> Transport:
        return await StreamTransport.open(host, port, write=write)

    return connect
