import asyncio
import enum
import logging
import warnings
from pathlib import Path
from typing import (
    Optional,
    Dict,
    Union,
    Callable,
    List,
    Tuple,
    TypeVar,
    Any,
    Awaitable,
)

import aioftp

from .auth import Basic, Guest
from .config import Timeout, Keepalive
from .control import ControlChannel, ControlCommand, ControlResponse
from .data import DataChannel, Mode, Payload
from .errors import (
    AuthenticationRejected,
    ChannelClosed,
    ConnectionFailed,
    DataChannelFailed,
    FtpError,
    ResponseParseError,
    UnexpectedResponseCode,
    OperationCancelled,
)
from .listing import DirectoryEntry, parse_mlsd, parse_unix
from .parser import Capabilities, parse_feat, parse_pasv, parse_pwd
from .transport import Connector, connector as default_connector

# Enhanced type definitions for improved type safety and clarity
T = TypeVar("T")
HookType = Callable[..., Awaitable[Any]]
AuthType = Union[Basic, Guest]
Work = Callable[[ControlChannel], Awaitable[T]]


class State(enum.Enum):
    """Where a session is in its connect/disconnect lifecycle."""

    DISCONNECTED = "disconnected"
    AUTHENTICATING = "authenticating"
    NEGOTIATING = "negotiating"
    SETTING_MODE = "setting_mode"
    CONNECTED = "connected"
    DISCONNECTING = "disconnecting"


class FtpSession:
    """
    Async FTP session that drives one control connection and its data transfers.

    This logs in, figures out what the server supports, and then gives you the
    usual file operations: listings, downloads, uploads, renames and directory
    management. Transfers run in passive mode, with the data connection and the
    control reply handled side by side, and nothing finishes until both are done.
    A keepalive NOOP stops idle servers from hanging up on you.

    One operation runs at a time per session. FTP replies carry no request IDs,
    so overlapping calls just queue up behind each other.
    """

    def __init__(
        self,
        host: str,
        port: int = aioftp.DEFAULT_PORT,
        auth: Optional[AuthType] = None,
        *,
        timeout: Optional[Timeout] = None,
        keepalive: Optional[Keepalive] = None,
        hooks: Optional[Dict[str, HookType]] = None,
        encoding: str = "utf-8",
        connector: Optional[Connector] = None,
        logger: Optional[logging.Logger] = None,
        trust_pasv_host: bool = False,
    ) -> None:
        """Set up the session without touching the network yet.

        Args:
            host: FTP server hostname or address
            port: Control port, 21 unless the server says otherwise
            auth: Username and password, None logs in anonymously
            timeout: How long to wait for connects, replies, writes and transfers
            keepalive: How often to NOOP while connected
            hooks: Async callbacks for connect, disconnect, download, upload, error
            encoding: Text encoding for commands, replies and text transfers
            connector: Opens transports, defaults to plain TCP
            logger: Where protocol chatter goes, defaults to "ftplink.session"
            trust_pasv_host: Connect data channels to the address in the PASV reply
                instead of the control host (off by default, NAT'd servers often
                advertise private addresses)
        """
        self.host = host
        self.port = port
        self.auth: AuthType = auth or Guest()

        # Store config for session behavior
        self.timeout = timeout or Timeout()
        self.keepalive = keepalive or Keepalive()
        self.hooks = hooks or {}
        self.encoding = encoding
        self.connector = connector or default_connector(self.timeout.write)
        self.logger = logger or logging.getLogger("ftplink.session")
        self.trust_pasv_host = trust_pasv_host

        # Connection state management
        self.state = State.DISCONNECTED
        self.capabilities = Capabilities()
        self.control: Optional[ControlChannel] = None

    @property
    def connected(self) -> bool:
        return self.state is State.CONNECTED

    @property
    def username(self) -> str:
        return self.auth.credentials()[0]

    async def __aenter__(self) -> "FtpSession":
        """Connect when entering an async with block.

        Returns:
            FtpSession: This same instance, logged in and ready to go
        """
        return await self.connect()

    async def __aexit__(self, type, value, trace) -> None:
        """Disconnect when leaving the async with block, whatever happened inside.

        Cleanup problems are reported as warnings so they never hide the error
        that got us here.
        """
        if self.control is None:
            self.state = State.DISCONNECTED
            return

        try:
            await self.disconnect()
        except Exception as error:
            warnings.warn(f"Error during FTP session cleanup: {error}")

    async def connect(self) -> "FtpSession":
        """Open the control connection, log in and negotiate the session.

        Waits for the 220 greeting, goes USER, PASS, FEAT, TYPE I, then starts
        the keepalive. Capabilities from FEAT decide which listing format list()
        uses later on.

        Returns:
            FtpSession: This same instance, ready to transfer files

        Raises:
            ConnectionFailed: If the server can't be reached or refuses to greet us
            AuthenticationRejected: If USER or PASS is refused
            UnexpectedResponseCode: If FEAT or TYPE don't get their expected reply
            RuntimeError: If the session is already connected
        """
        if self.state is not State.DISCONNECTED:
            raise RuntimeError(f"Session is {self.state.value}, disconnect first")

        self.state = State.AUTHENTICATING
        try:
            try:
                transport = await asyncio.wait_for(
                    self.connector(self.host, self.port), timeout=self.timeout.connect
                )
            except asyncio.TimeoutError:
                raise ConnectionFailed(
                    f"Connection to {self.host}:{self.port} timed out"
                ) from None
            except OSError as error:
                raise ConnectionFailed(f"Failed to connect to FTP server: {error}") from error

            self.control = ControlChannel.open(
                transport, encoding=self.encoding, timeout=self.timeout, logger=self.logger
            )

            # A busy or refusing server answers the connect with 421/5xx instead of 220
            try:
                await self.control.expect((220,))
            except (UnexpectedResponseCode, ChannelClosed) as error:
                raise ConnectionFailed(
                    f"Server at {self.host}:{self.port} refused the session: {error}"
                ) from error

            # Log in with the configured credentials or anonymously
            user, password = self.auth.credentials()
            try:
                await self.control.execute(ControlCommand.of("USER", user))
                await self.control.execute(ControlCommand.of("PASS", password))
            except UnexpectedResponseCode as error:
                raise AuthenticationRejected(
                    error.expected_codes, error.received_codes, error.info
                ) from error

            self.state = State.NEGOTIATING
            response = await self.control.execute(ControlCommand.of("FEAT"))
            self.capabilities = parse_feat(response.raw)

            self.state = State.SETTING_MODE
            await self.control.execute(ControlCommand.of("TYPE", "I"))

        except asyncio.CancelledError:
            self.teardown()
            raise
        except Exception as error:
            self.teardown()
            await self.hook("error", error)
            raise

        self.state = State.CONNECTED
        self.logger.debug(
            "Connected to %s:%s (mlst=%s, utf8=%s)",
            self.host,
            self.port,
            self.capabilities.mlst,
            self.capabilities.utf8,
        )

        if self.keepalive.enabled:
            self.control.start_keepalive(self.keepalive.interval)

        await self.hook("connect", self)
        return self

    async def disconnect(self) -> None:
        """Say QUIT and close everything down.

        The keepalive is stopped and the control connection closed even if the
        server doesn't answer QUIT properly; that error still reaches you.
        """
        if self.control is None:
            self.state = State.DISCONNECTED
            return

        control = self.control
        self.state = State.DISCONNECTING
        control.stop_keepalive()
        try:
            async with control.lock:
                await control.execute(ControlCommand.of("QUIT"))
        finally:
            self.teardown()

        await self.hook("disconnect", self)

    def teardown(self) -> None:
        """Drop the control channel (keepalive first) and go back to DISCONNECTED."""
        if self.control is not None:
            self.control.close()
            self.control = None
        self.state = State.DISCONNECTED

    async def hook(self, name: str, *args: Any) -> None:
        """Run a user hook if there is one. Hook failures never break the session."""
        if name in self.hooks:
            try:
                await self.hooks[name](*args)
            except Exception as error:
                warnings.warn(f"{name.capitalize()} hook failed: {error}")

    async def guarded(self, work: Work, deadline: Optional[float] = None) -> T:
        """Run one operation with exclusive use of the control channel.

        Holds the channel lock (so the keepalive can't slip a NOOP in the middle)
        and applies the optional deadline. If the deadline passes or the caller
        cancels, both channels are torn down since the control channel's state
        is unknown at that point. A closed control channel ends the session too.
        """
        if self.state is not State.CONNECTED or self.control is None:
            raise RuntimeError("Session not connected. Call connect() or use 'async with'.")

        control = self.control
        async with control.lock:
            try:
                if deadline is None:
                    return await work(control)
                return await asyncio.wait_for(work(control), timeout=deadline)
            except asyncio.TimeoutError:
                self.teardown()
                error = OperationCancelled(f"Operation took longer than {deadline}s")
                await self.hook("error", error)
                raise error from None
            except asyncio.CancelledError:
                self.teardown()
                raise
            except ChannelClosed as error:
                self.teardown()
                await self.hook("error", error)
                raise
            except FtpError as error:
                await self.hook("error", error)
                raise

    async def command(self, verb: str, argument: Optional[str] = None) -> ControlResponse:
        """Run a single control command from the command table.

        Args:
            verb: FTP verb, like "CWD" or "NOOP"
            argument: Optional argument for the verb

        Returns:
            ControlResponse: The reply that completed the command
        """
        command = ControlCommand.of(verb, argument)
        return await self.guarded(lambda control: control.execute(command))

    async def passive(self, control: ControlChannel, mode: Mode) -> DataChannel:
        """Ask for a passive endpoint and connect a data channel to it.

        Nothing else gets sent if the PASV reply can't be parsed or the data
        connection fails, so the transfer command never goes out.
        """
        response = await control.execute(ControlCommand.of("PASV"))
        endpoint = parse_pasv(response.raw)
        host = endpoint.host if self.trust_pasv_host else self.host

        self.logger.debug("Opening %s data channel to %s:%d", mode.value, host, endpoint.port)
        return await DataChannel.open(
            host,
            endpoint.port,
            mode,
            connector=self.connector,
            timeout=self.timeout,
            encoding=self.encoding,
            logger=self.logger,
        )

    async def retrieve(self, control: ControlChannel, command: ControlCommand, mode: Mode) -> Payload:
        """Run a receiving transfer (LIST, MLSD, RETR) end to end.

        The transfer command and the data channel run side by side. A control
        error stops the transfer right away; otherwise we wait for all the data
        and then for the closing reply.

        If the data connection breaks, or the closing reply never shows up, the
        server still owes us a reply we can no longer match to anything, so the
        session is torn down instead of letting that reply hit the next command.
        """
        channel = await self.passive(control, mode)
        reply = asyncio.ensure_future(control.execute(command, timeout=None))
        receiving = asyncio.ensure_future(channel.receive())

        try:
            done, _ = await asyncio.wait({reply, receiving}, return_when=asyncio.FIRST_COMPLETED)
            if reply in done:
                reply.result()  # raises if the server refused the transfer

            try:
                payload = await receiving
            except DataChannelFailed:
                if not reply.done():
                    self.teardown()
                raise

            try:
                await asyncio.wait_for(reply, timeout=self.timeout.read)
            except asyncio.TimeoutError:
                self.teardown()
                raise UnexpectedResponseCode(command.expected) from None
        finally:
            for task in (reply, receiving):
                if not task.done():
                    task.cancel()
            channel.close()

        return payload

    async def store(self, control: ControlChannel, path: str, payload: Payload) -> None:
        """Run an upload end to end: PASV, STOR, send, then the closing reply.

        Once STOR has been accepted a failed send or a missing confirmation ends
        the session, for the same reason as in retrieve().
        """
        mode = Mode.TEXT if isinstance(payload, str) else Mode.BINARY
        channel = await self.passive(control, mode)
        try:
            await control.execute(ControlCommand.of("STOR", path))
            try:
                await channel.send(payload)
            except DataChannelFailed:
                self.teardown()
                raise
        finally:
            channel.close()

        # Server confirms the file once it sees the data connection close
        confirmed = (226, 250)
        try:
            await asyncio.wait_for(control.expect(confirmed, timeout=None), timeout=self.timeout.read)
        except asyncio.TimeoutError:
            self.teardown()
            raise UnexpectedResponseCode(confirmed) from None

    async def list(self, path: str = ".") -> List[DirectoryEntry]:
        """Get a listing of files and directories on the server.

        Uses MLSD when the server advertised MLST (exact sizes, types and
        timestamps) and falls back to LIST with ls style parsing otherwise.
        Lines that can't be parsed are skipped.

        Args:
            path: Remote directory to list (defaults to current directory)

        Returns:
            List of DirectoryEntry, in the order the server sent them
        """
        if self.capabilities.mlst:
            verb, parse = "MLSD", parse_mlsd
        else:
            verb, parse = "LIST", parse_unix

        command = ControlCommand.of(verb, path)
        text = await self.guarded(
            lambda control: self.retrieve(control, command, Mode.TEXT), self.timeout.total
        )
        return parse(text)

    async def download(self, path: str) -> bytes:
        """Download a remote file into memory.

        Args:
            path: Path to the file on the remote server

        Returns:
            bytes: Exactly what the server sent, byte for byte
        """
        command = ControlCommand.of("RETR", path)
        data = await self.guarded(
            lambda control: self.retrieve(control, command, Mode.BINARY), self.timeout.total
        )
        await self.hook("download", path, len(data))
        return data

    async def upload(self, path: str, payload: Payload) -> None:
        """Upload bytes or text to a remote path.

        Text goes over a text data channel using the session encoding, bytes go
        over untouched.

        Args:
            path: Where to put it on the remote server
            payload: File contents
        """
        await self.guarded(
            lambda control: self.store(control, path, payload), self.timeout.total
        )
        await self.hook("upload", path, len(payload))

    async def fetch(self, source: str, target: Union[str, Path]) -> int:
        """Download a remote file straight to a local path.

        Creates local parent directories as needed and overwrites an existing file.

        Args:
            source: Path to the file on the remote server
            target: Where to save it locally

        Returns:
            int: Number of bytes written
        """
        data = await self.download(source)
        file = Path(target)
        file.parent.mkdir(parents=True, exist_ok=True)
        file.write_bytes(data)
        return len(data)

    async def send(self, source: Union[str, Path], target: str) -> int:
        """Upload a local file to a remote path, as binary.

        Args:
            source: Path to the local file you want to upload
            target: Where to put it on the remote server

        Returns:
            int: Number of bytes sent

        Raises:
            FileNotFoundError: If the local file doesn't exist
        """
        file = Path(source)
        if not file.is_file():
            raise FileNotFoundError(f"Local file not found: {source}")

        data = file.read_bytes()
        await self.upload(target, data)
        return len(data)

    async def rename(self, source: str, target: str) -> None:
        """Rename or move a file or directory on the server.

        Args:
            source: Current remote path
            target: New remote path (complete path, not just the new name)
        """

        async def work(control: ControlChannel) -> None:
            await control.execute(ControlCommand.of("RNFR", source))
            await control.execute(ControlCommand.of("RNTO", target))

        await self.guarded(work)

    async def pwd(self) -> str:
        """Get the current working directory path."""
        response = await self.command("PWD")
        return parse_pwd(response.raw)

    async def cwd(self, path: str) -> None:
        """Change the current working directory."""
        await self.command("CWD", path)

    async def mkd(self, path: str) -> None:
        """Create a directory on the server."""
        await self.command("MKD", path)

    async def rmd(self, path: str) -> None:
        """Remove an empty directory on the server."""
        await self.command("RMD", path)

    async def dele(self, path: str) -> None:
        """Delete a file on the server."""
        await self.command("DELE", path)

    async def stat(self, path: Optional[str] = None) -> str:
        """Get server status, or status of a path, as the raw reply text."""
        response = await self.command("STAT", path)
        return response.raw

    async def noop(self) -> None:
        await self.command("NOOP")

    async def system(self) -> str:
        """Get the server's SYST answer, like "UNIX Type: L8"."""
        response = await self.command("SYST")
        return response.message

    async def size(self, path: str) -> int:
        """Get the size of a remote file in bytes using SIZE.

        Raises:
            ResponseParseError: If the reply doesn't end in a number
        """
        response = await self.command("SIZE", path)
        try:
            return int(response.message.split()[-1])
        except (IndexError, ValueError):
            raise ResponseParseError(f"No size in reply: {response.raw!r}") from None

    async def chmod(self, path: str, mode: str) -> None:
        """Change file permissions using SITE CHMOD.

        Not all FTP servers support this, but many Unix-based servers do.
        The mode should be in octal format like '755' or '644'.
        """
        await self.command("SITE", f"CHMOD {mode} {path}")

    def stats(self) -> Dict[str, Union[str, int, bool, Tuple[str, ...]]]:
        """Get status info about the session.

        Returns:
            Dict with connection state, endpoint and negotiated features
        """
        return {
            "state": self.state.value,
            "connected": self.connected,
            "host": self.host,
            "port": self.port,
            "user": self.username,
            "mlst": self.capabilities.mlst,
            "utf8": self.capabilities.utf8,
            "features": tuple(sorted(self.capabilities.features)),
            "encoding": self.encoding,
        }
