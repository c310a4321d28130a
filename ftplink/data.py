import asyncio
import enum
import logging
from typing import Optional, Union

from .config import Timeout
from .errors import DataChannelFailed
from .transport import Connector, Transport

Payload = Union[bytes, str]


class Mode(enum.Enum):
    """How a data channel treats the bytes it carries."""

    BINARY = "binary"  # bytes in, bytes out, untouched
    TEXT = "text"  # decoded/encoded with the session encoding


class DataChannel:
    """
    One short-lived data connection, used for exactly one transfer.

    Receiving ends on whichever comes first: the server closing the connection,
    or `Timeout.idle` seconds without new data after the first chunk. Sending
    writes the whole payload at once and closes the connection so the server
    sees the end of the file.
    """

    def __init__(
        self,
        transport: Transport,
        mode: Mode = Mode.BINARY,
        *,
        encoding: str = "utf-8",
        timeout: Optional[Timeout] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.transport = transport
        self.mode = mode
        self.encoding = encoding
        self.timeout = timeout or Timeout()
        self.logger = logger or logging.getLogger("ftplink.data")
        self.payload = bytearray()
        self.closed = False

    @classmethod
    async def open(
        cls,
        host: str,
        port: int,
        mode: Mode,
        *,
        connector: Connector,
        timeout: Optional[Timeout] = None,
        encoding: str = "utf-8",
        logger: Optional[logging.Logger] = None,
    ) -> "DataChannel":
        """Connect to the passive endpoint.

        Raises:
            DataChannelFailed: If the connection can't be made in Timeout.connect
        """
        timeout = timeout or Timeout()
        try:
            transport = await asyncio.wait_for(connector(host, port), timeout.connect)
        except asyncio.TimeoutError:
            raise DataChannelFailed(f"Data connection to {host}:{port} timed out") from None
        except OSError as error:
            raise DataChannelFailed(f"Data connection to {host}:{port} failed: {error}") from error

        return cls(transport, mode, encoding=encoding, timeout=timeout, logger=logger)

    async def receive(self) -> Payload:
        """Collect everything the server sends, then close.

        Returns:
            bytes in binary mode, decoded text in text mode

        Raises:
            DataChannelFailed: If the connection breaks mid-transfer
        """
        try:
            while True:
                # Until the first byte shows up we allow a full reply wait
                wait = self.timeout.idle if self.payload else self.timeout.read
                try:
                    chunk = await asyncio.wait_for(self.transport.receive(), wait)
                except asyncio.TimeoutError:
                    self.logger.debug("No data for %ss, transfer complete", wait)
                    break

                if not chunk:
                    break
                self.payload += chunk
        except OSError as error:
            raise DataChannelFailed(f"Data connection broke mid-transfer: {error}") from error
        finally:
            self.close()

        self.logger.debug("Received %d bytes", len(self.payload))
        return self.result()

    def result(self) -> Payload:
        if self.mode is Mode.TEXT:
            return self.payload.decode(self.encoding, errors="replace")
        return bytes(self.payload)

    async def send(self, payload: Payload) -> None:
        """Write the whole payload, then close the connection.

        Raises:
            DataChannelFailed: If the write fails or times out
        """
        data = payload.encode(self.encoding) if isinstance(payload, str) else bytes(payload)
        try:
            await self.transport.send(data)
        except (OSError, asyncio.TimeoutError) as error:
            raise DataChannelFailed(f"Data connection broke while sending: {error}") from error
        finally:
            self.close()

        self.logger.debug("Sent %d bytes", len(data))

    def close(self) -> None:
        if not self.closed:
            self.closed = True
            self.transport.close()
