import warnings
from dataclasses import dataclass
from typing import Tuple

import aioftp

# Enhanced type definitions for improved type safety and clarity
Username = str
Password = str
Credentials = Tuple[Username, Password]


@dataclass
class Basic:
    """
    Username and password login for FTP servers.

    These are sent as USER and PASS during connect. FTP sends both in clear
    text on the control connection, so only use real credentials on networks
    you trust.

    Attributes:
        user: Account name sent with USER.
        password: Secret sent with PASS. May be empty for servers that allow it.
    """

    user: Username
    password: Password = ""

    def __post_init__(self) -> None:
        """
        Validate the credentials.

        Returns:
            None

        Raises:
            ValueError: If the username is empty or contains line breaks.
        """
        if not self.user.strip():
            raise ValueError("Username cannot be empty or whitespace")

        # A CR/LF here would smuggle extra commands onto the control channel
        if any(char in self.user + self.password for char in "\r\n"):
            raise ValueError("Credentials cannot contain line breaks")

        if self.password.lower() in ["password", "123456", "admin", "root"]:
            warnings.warn(
                "Password appears to be a common weak password. "
                "Use a strong, unique password for better security."
            )

    def credentials(self) -> Credentials:
        """Return the (user, password) pair for USER/PASS."""
        return self.user, self.password


@dataclass
class Guest:
    """
    Anonymous login for public FTP servers.

    Logs in as the conventional anonymous user. By tradition the password is
    an email address identifying who is connecting.

    Attributes:
        email: Sent as the PASS argument.
    """

    email: Password = aioftp.DEFAULT_PASSWORD

    def __post_init__(self) -> None:
        """
        Validate the guest identifier.

        Returns:
            None
        """
        if any(char in self.email for char in "\r\n"):
            raise ValueError("Guest email cannot contain line breaks")

        if "@" not in self.email:
            warnings.warn(
                "Guest email doesn't look like an email address. "
                "Some anonymous servers reject logins without one."
            )

    def credentials(self) -> Credentials:
        """Return the (user, password) pair for USER/PASS."""
        return aioftp.DEFAULT_USER, self.email
