"""SMTP client for digest delivery.

The protocol is driven by hand over a plain socket so that every step is
checked against exactly one expected reply code, STARTTLS is mandatory on
plaintext connections, and the whole exchange runs under a time budget.

Flow::

    CONNECTED -> GREETING_RECEIVED -> EHLO_SENT
        [-> STARTTLS_REQUESTED -> SECURE_RECONNECTED -> EHLO_SENT_SECURE]
        -> AUTHENTICATED -> MAIL_FROM_SENT -> RCPT_TO_SENT -> DATA_SENT
        -> BODY_SENT -> CLOSED
"""

import socket
import ssl
import time
from email.message import EmailMessage
from email.utils import formataddr, formatdate, make_msgid
from enum import Enum
from typing import Callable, Dict, Optional, Tuple, Type

from market_alerts.config.environment import EnvironmentConfig
from market_alerts.logging import get_logger

from .exceptions import (
    AuthError,
    ProtocolError,
    SMTPDeliveryError,
    StepTimeoutError,
    TransportError,
)
from .protocol import (
    MAX_LINE_LENGTH,
    MESSAGE_POLICY,
    Capabilities,
    ReplyAccumulator,
    SMTPReply,
    auth_plain_token,
    b64,
    check_envelope_address,
    parse_capabilities,
    prepare_data,
    sanitize_header,
    validate_recipient,
)

logger = get_logger(__name__, component="smtp")

RECV_CHUNK = 4096


class SMTPState(Enum):
    """Position of a connection in the delivery exchange."""

    CONNECTED = "connected"
    GREETING_RECEIVED = "greeting_received"
    EHLO_SENT = "ehlo_sent"
    STARTTLS_REQUESTED = "starttls_requested"
    SECURE_RECONNECTED = "secure_reconnected"
    EHLO_SENT_SECURE = "ehlo_sent_secure"
    AUTHENTICATED = "authenticated"
    MAIL_FROM_SENT = "mail_from_sent"
    RCPT_TO_SENT = "rcpt_to_sent"
    DATA_SENT = "data_sent"
    BODY_SENT = "body_sent"
    CLOSED = "closed"


# The only reply codes each step accepts; anything else fails the delivery
EXPECTED_REPLY_CODES: Dict[str, Tuple[int, ...]] = {
    "greeting": (220,),
    "ehlo": (250,),
    "starttls": (220,),
    "auth_plain": (235,),
    "auth_login": (334,),
    "auth_login_username": (334,),
    "auth_login_password": (235,),
    "mail_from": (250,),
    "rcpt_to": (250, 251),
    "data": (354,),
    "body": (250,),
    "quit": (221,),
}


class SMTPConnection:
    """One SMTP session over one socket.

    Holds a single ``state`` field; each public method performs exactly one
    transition and refuses to run from any other state.

    Attributes:
        host: Server hostname (also used for TLS certificate checks)
        state: Current SMTPState
        secure: True once the socket is TLS-wrapped
        capabilities: Capabilities from the most recent EHLO
    """

    def __init__(
        self,
        sock: socket.socket,
        host: str,
        tls_context: ssl.SSLContext,
        command_timeout: float,
        deadline: float,
        secure: bool = False,
    ) -> None:
        self._sock = sock
        self._buffer = b""
        self._tls_context = tls_context
        self._command_timeout = command_timeout
        self._deadline = deadline
        self.host = host
        self.secure = secure
        self.state = SMTPState.CONNECTED
        self.capabilities = Capabilities()

    # -- transitions -----------------------------------------------------

    def receive_greeting(self) -> SMTPReply:
        """Read the server banner (220)."""
        self._require(SMTPState.CONNECTED)
        reply = self._expect(self.read_reply(), "greeting")
        self.state = SMTPState.GREETING_RECEIVED
        return reply

    def ehlo(self, client_name: str) -> Capabilities:
        """Send EHLO and parse the advertised capabilities (250).

        Valid after the greeting and again after the TLS upgrade.
        """
        self._require(SMTPState.GREETING_RECEIVED, SMTPState.SECURE_RECONNECTED)
        reply = self.command(f"EHLO {client_name}", "ehlo")
        self.capabilities = parse_capabilities(reply)
        if self.state is SMTPState.SECURE_RECONNECTED:
            self.state = SMTPState.EHLO_SENT_SECURE
        else:
            self.state = SMTPState.EHLO_SENT
        logger.debug(
            "Server capabilities",
            extra={
                "event": "smtp.ehlo.capabilities",
                "keywords": sorted(self.capabilities.keywords),
                "auth_mechanisms": sorted(self.capabilities.auth_mechanisms),
                "secure": self.secure,
            },
        )
        return self.capabilities

    def starttls(self) -> None:
        """Upgrade the plaintext socket to TLS in place.

        Raises:
            ProtocolError: If STARTTLS is not advertised, or if the server sent
                anything after its 220 (those bytes would otherwise be read as
                if they came over the encrypted channel)
            TransportError: If the TLS handshake fails
        """
        self._require(SMTPState.EHLO_SENT)
        if self.secure:
            raise ProtocolError("STARTTLS requested on an already encrypted connection")
        if not self.capabilities.starttls:
            raise ProtocolError("Server does not offer STARTTLS; refusing to continue in plaintext")

        self.command("STARTTLS", "starttls")
        self.state = SMTPState.STARTTLS_REQUESTED

        if self._buffer:
            raise ProtocolError(
                f"Server sent {len(self._buffer)} unexpected bytes before the TLS handshake"
            )

        self._sock.settimeout(self._step_timeout())
        try:
            self._sock = self._tls_context.wrap_socket(self._sock, server_hostname=self.host)
        except TimeoutError as e:
            raise StepTimeoutError("TLS handshake timed out") from e
        except OSError as e:
            raise TransportError(f"TLS handshake failed: {e}") from e

        self.secure = True
        self.capabilities = Capabilities()
        self.state = SMTPState.SECURE_RECONNECTED
        logger.debug("Connection upgraded to TLS", extra={"event": "smtp.starttls.completed"})

    def authenticate(self, username: str, password: str) -> str:
        """Log in with AUTH PLAIN, or AUTH LOGIN when PLAIN is not offered.

        Returns:
            Mechanism used

        Raises:
            ProtocolError: If the connection is not encrypted
            AuthError: If no supported mechanism is offered or any step is rejected
        """
        self._require(SMTPState.EHLO_SENT, SMTPState.EHLO_SENT_SECURE)
        if not self.secure:
            raise ProtocolError("Refusing to send credentials over an unencrypted connection")

        if self.capabilities.supports_auth("PLAIN"):
            mechanism = "PLAIN"
            self.command(
                f"AUTH PLAIN {auth_plain_token(username, password)}",
                "auth_plain",
                log_as="AUTH PLAIN <redacted>",
                error_class=AuthError,
            )
        elif self.capabilities.supports_auth("LOGIN"):
            mechanism = "LOGIN"
            self.command("AUTH LOGIN", "auth_login", error_class=AuthError)
            self.command(b64(username), "auth_login_username", log_as="<redacted>", error_class=AuthError)
            self.command(b64(password), "auth_login_password", log_as="<redacted>", error_class=AuthError)
        else:
            offered = ", ".join(sorted(self.capabilities.auth_mechanisms)) or "none"
            raise AuthError(f"Server offers no supported AUTH mechanism (offered: {offered})")

        self.state = SMTPState.AUTHENTICATED
        logger.debug("Authenticated", extra={"event": "smtp.auth.succeeded", "mechanism": mechanism})
        return mechanism

    def mail_from(self, sender: str) -> None:
        """Send MAIL FROM (250)."""
        self._require(SMTPState.AUTHENTICATED)
        self.command(f"MAIL FROM:<{check_envelope_address(sender)}>", "mail_from")
        self.state = SMTPState.MAIL_FROM_SENT

    def rcpt_to(self, recipient: str) -> None:
        """Send RCPT TO (250 or 251)."""
        self._require(SMTPState.MAIL_FROM_SENT)
        self.command(f"RCPT TO:<{check_envelope_address(recipient)}>", "rcpt_to")
        self.state = SMTPState.RCPT_TO_SENT

    def data(self) -> None:
        """Send DATA (354)."""
        self._require(SMTPState.RCPT_TO_SENT)
        self.command("DATA", "data")
        self.state = SMTPState.DATA_SENT

    def send_body(self, payload: bytes) -> SMTPReply:
        """Send a prepared DATA payload, terminator included (250)."""
        self._require(SMTPState.DATA_SENT)
        self._send(payload)
        reply = self._expect(self.read_reply(), "body")
        self.state = SMTPState.BODY_SENT
        return reply

    def quit(self) -> None:
        """Send QUIT without caring about the outcome, then close."""
        if self.state is SMTPState.CLOSED:
            return
        try:
            self.command("QUIT", "quit")
        except SMTPDeliveryError as e:
            logger.debug(f"QUIT failed: {e}", extra={"event": "smtp.quit.failed"})
        finally:
            self.close()

    def close(self) -> None:
        """Close the socket. Safe to call more than once."""
        if self.state is SMTPState.CLOSED:
            return
        self.state = SMTPState.CLOSED
        try:
            self._sock.close()
        except OSError as e:
            logger.debug(f"Error closing SMTP socket: {e}")

    # -- wire ------------------------------------------------------------

    def command(
        self,
        line: str,
        step: str,
        log_as: Optional[str] = None,
        error_class: Type[SMTPDeliveryError] = ProtocolError,
    ) -> SMTPReply:
        """Send one command line and check its reply against the step's codes.

        Args:
            line: Command without CRLF
            step: Key into EXPECTED_REPLY_CODES
            log_as: Text to log instead of the command (for credentials)
            error_class: Exception raised on an unexpected reply code

        Returns:
            The accepted reply
        """
        logger.debug(
            "SMTP command sent",
            extra={"event": "smtp.command.sent", "step": step, "command": log_as or line},
        )
        self._send(line.encode("utf-8") + b"\r\n")
        return self._expect(self.read_reply(), step, error_class)

    def read_reply(self) -> SMTPReply:
        """Read one complete reply, following '-' continuation lines."""
        accumulator = ReplyAccumulator()
        while True:
            reply = accumulator.feed(self._read_line())
            if reply is not None:
                logger.debug(
                    "SMTP reply received",
                    extra={"event": "smtp.reply.received", "code": reply.code, "lines": len(reply.lines)},
                )
                return reply

    def _expect(
        self,
        reply: SMTPReply,
        step: str,
        error_class: Type[SMTPDeliveryError] = ProtocolError,
    ) -> SMTPReply:
        expected = EXPECTED_REPLY_CODES[step]
        if reply.code in expected:
            return reply
        message = f"Unexpected reply to {step}: {reply.code} {reply.text[:200]}".rstrip()
        if error_class is ProtocolError:
            raise ProtocolError(message, code=reply.code, reply=reply.text)
        raise error_class(message)

    def _read_line(self) -> str:
        while True:
            end = self._buffer.find(b"\n")
            if end >= 0:
                raw, self._buffer = self._buffer[:end], self._buffer[end + 1:]
                if len(raw) > MAX_LINE_LENGTH:
                    raise ProtocolError(f"Reply line exceeded {MAX_LINE_LENGTH} bytes")
                return raw.rstrip(b"\r").decode("utf-8", errors="replace")
            if len(self._buffer) > MAX_LINE_LENGTH:
                raise ProtocolError(f"Reply line exceeded {MAX_LINE_LENGTH} bytes")
            self._buffer += self._recv()

    def _recv(self) -> bytes:
        self._sock.settimeout(self._step_timeout())
        try:
            chunk = self._sock.recv(RECV_CHUNK)
        except TimeoutError as e:
            raise StepTimeoutError(f"Timed out waiting for reply in state {self.state.value}") from e
        except OSError as e:
            raise TransportError(f"Socket error while reading: {e}") from e
        if not chunk:
            raise TransportError(f"Connection closed by server in state {self.state.value}")
        return chunk

    def _send(self, data: bytes) -> None:
        self._sock.settimeout(self._step_timeout())
        try:
            self._sock.sendall(data)
        except TimeoutError as e:
            raise StepTimeoutError(f"Timed out sending in state {self.state.value}") from e
        except OSError as e:
            raise TransportError(f"Socket error while sending: {e}") from e

    def _step_timeout(self) -> float:
        """Per-step timeout, capped by what is left of the delivery budget."""
        remaining = self._deadline - time.monotonic()
        if remaining <= 0:
            raise StepTimeoutError("Delivery time budget exhausted")
        return min(self._command_timeout, remaining)

    def _require(self, *states: SMTPState) -> None:
        if self.state not in states:
            expected = ", ".join(s.value for s in states)
            raise ProtocolError(f"Invalid SMTP state {self.state.value}; expected {expected}")


def build_sender_address(env_config: EnvironmentConfig) -> str:
    """Build the 'From' header (e.g., "Market Alerts <alerts@example.com>")."""
    return formataddr((env_config.smtp_sender_name, env_config.sender_email))


def serialize_message(message: EmailMessage) -> bytes:
    """Fill in Date and Message-ID if missing and serialize 7-bit clean."""
    if message["Subject"] is not None:
        subject = sanitize_header(str(message["Subject"]))
        del message["Subject"]
        message["Subject"] = subject
    if message["Date"] is None:
        message["Date"] = formatdate(usegmt=True)
    if message["Message-ID"] is None:
        message["Message-ID"] = make_msgid(domain="market-alerts.local")
    return message.as_bytes(policy=MESSAGE_POLICY)


class SMTPClient:
    """Delivers one message per call over a fresh SMTP session.

    Socket creation and the TLS context are injectable so tests can drive the
    protocol against a scripted fake server.
    """

    def __init__(
        self,
        ehlo_name: str = "market-alerts.local",
        connect_timeout: float = 15.0,
        command_timeout: float = 30.0,
        time_budget: float = 120.0,
        socket_factory: Optional[Callable] = None,
        tls_context_factory: Optional[Callable[[], ssl.SSLContext]] = None,
    ):
        """Initialize SMTP client.

        Args:
            ehlo_name: Client name sent with EHLO
            connect_timeout: Seconds allowed for the TCP connect
            command_timeout: Seconds allowed for any single protocol step
            time_budget: Seconds allowed for one whole delivery
            socket_factory: Replacement for socket.create_connection (for mocking)
            tls_context_factory: Replacement for ssl.create_default_context (for mocking)
        """
        self.ehlo_name = ehlo_name
        self.connect_timeout = connect_timeout
        self.command_timeout = command_timeout
        self.time_budget = time_budget
        self.socket_factory = socket_factory or socket.create_connection
        self.tls_context_factory = tls_context_factory or ssl.create_default_context

    def send(
        self,
        message: EmailMessage,
        env_config: EnvironmentConfig,
        recipient: Optional[str] = None,
        time_budget: Optional[float] = None,
    ) -> None:
        """Send an email message.

        Connects, secures the channel, authenticates, and submits the message
        to a single recipient. The socket is closed on every exit path.

        Args:
            message: Fully constructed EmailMessage to send
            env_config: Environment configuration with SMTP settings
            recipient: Envelope recipient (defaults to the To header)
            time_budget: Override for the per-delivery time budget

        Raises:
            SMTPDeliveryError: If delivery fails at any step
        """
        recipient = validate_recipient(recipient or str(message["To"] or ""))
        sender = check_envelope_address(env_config.sender_email)
        payload = prepare_data(serialize_message(message))

        deadline = time.monotonic() + (time_budget if time_budget is not None else self.time_budget)
        started = time.monotonic()
        connection = self._connect(env_config, deadline)
        try:
            connection.receive_greeting()
            connection.ehlo(self.ehlo_name)
            if not connection.secure:
                connection.starttls()
                connection.ehlo(self.ehlo_name)
            connection.authenticate(env_config.smtp_user, env_config.smtp_pass)
            connection.mail_from(sender)
            connection.rcpt_to(recipient)
            connection.data()
            connection.send_body(payload)
            logger.info(
                f"Message accepted for {recipient}",
                extra={
                    "event": "smtp.message.accepted",
                    "recipient": recipient,
                    "bytes": len(payload),
                    "duration_ms": int((time.monotonic() - started) * 1000),
                },
            )
            connection.quit()
        finally:
            connection.close()

    def _connect(self, env_config: EnvironmentConfig, deadline: float) -> SMTPConnection:
        """Open the TCP connection, wrapping it in TLS straight away on port 465."""
        host, port = env_config.smtp_host, env_config.smtp_port
        remaining = deadline - time.monotonic()
        if remaining <= 0:
            raise StepTimeoutError("Delivery time budget exhausted before connecting")

        logger.debug(
            f"Connecting to {host}:{port}",
            extra={"event": "smtp.connecting", "host": host, "port": port},
        )
        try:
            sock = self.socket_factory((host, port), timeout=min(self.connect_timeout, remaining))
        except TimeoutError as e:
            raise StepTimeoutError(f"Timed out connecting to {host}:{port}") from e
        except OSError as e:
            raise TransportError(f"Cannot connect to {host}:{port}: {e}") from e

        tls_context = self.tls_context_factory()
        secure = env_config.implicit_tls
        if secure:
            try:
                sock = tls_context.wrap_socket(sock, server_hostname=host)
            except TimeoutError as e:
                sock.close()
                raise StepTimeoutError(f"TLS handshake with {host}:{port} timed out") from e
            except OSError as e:
                sock.close()
                raise TransportError(f"TLS handshake with {host}:{port} failed: {e}") from e

        return SMTPConnection(
            sock,
            host=host,
            tls_context=tls_context,
            command_timeout=self.command_timeout,
            deadline=deadline,
            secure=secure,
        )
