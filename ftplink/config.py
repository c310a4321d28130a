from dataclasses import dataclass
from typing import Optional


@dataclass
class Timeout:
    """
    Timeout configuration for FTP sessions.

    Defines how long each phase of a session may take so nothing waits on a
    silent server forever. Control replies, data transfers and socket writes
    each get their own bound, and an optional overall deadline caps whole
    transfer operations.

    Attributes:
        connect: Time to wait for a control or data connection to open.
                Covers DNS resolution and TCP handshake phases.
        read: Time to wait for the reply a control command expects.
              Also bounds the wait for the first byte on a data connection.
        write: Time to wait when sending a command or an upload payload.
        idle: Quiet period after which a data transfer counts as finished.
              Only used when the server doesn't close the data connection.
        total: Optional deadline for a whole transfer operation
               (PASV through the final reply). None means no overall bound.
    """

    connect: float = 5.0  # Time to wait for a connection to open
    read: float = 30.0  # Time to wait for an expected reply
    write: float = 10.0  # Time to wait when sending data
    idle: float = 0.5  # Data channel inactivity that ends a transfer
    total: Optional[float] = None  # Deadline for a whole transfer operation

    def __post_init__(self) -> None:
        """
        Validate timeout configuration after initialization.

        Ensures that all timeout values are positive and logically
        consistent with each other. The overall deadline, when set, has to
        leave room for the individual waits it contains.

        Returns:
            None

        Raises:
            ValueError: If timeout values are invalid or inconsistent.
        """
        if self.connect <= 0:
            raise ValueError("Connect timeout must be positive")
        if self.read <= 0:
            raise ValueError("Read timeout must be positive")
        if self.write <= 0:
            raise ValueError("Write timeout must be positive")
        if self.idle <= 0:
            raise ValueError("Idle timeout must be positive")

        if self.idle > self.read:
            raise ValueError(f"Idle timeout ({self.idle}) cannot exceed read timeout ({self.read})")

        if self.total is not None:
            required = max(self.connect, self.read, self.write)
            if self.total < required:
                raise ValueError(f"Total timeout ({self.total}) must be at least {required}")


@dataclass
class Keepalive:
    """
    Keepalive configuration for the control connection.

    Servers drop control connections that sit idle for too long. While a
    session is connected a NOOP is sent every `interval` seconds to keep it
    open.

    Attributes:
        interval: Seconds between NOOP commands.
        enabled: Set to False to never send keepalive NOOPs.
    """

    interval: float = 500.0  # Seconds between NOOPs
    enabled: bool = True  # Whether to send them at all

    def __post_init__(self) -> None:
        """
        Validate keepalive configuration after initialization.

        Raises:
            ValueError: If the interval isn't positive.
        """
        if self.interval <= 0:
            raise ValueError("Keepalive interval must be positive")
