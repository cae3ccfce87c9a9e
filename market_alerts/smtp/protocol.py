"""SMTP wire-format helpers: reply parsing, capabilities, and DATA encoding.

Nothing here touches a socket, so each rule of the protocol can be tested on
plain strings and bytes.
"""

import base64
import re
from dataclasses import dataclass, field
from email import policy
from typing import FrozenSet, List, Tuple

from email_validator import EmailNotValidError, validate_email

from .exceptions import AddressError, ProtocolError

MAX_REPLY_LINES = 512
MAX_LINE_LENGTH = 8192

# Headers are folded with CRLF and every body part is made 7-bit clean
MESSAGE_POLICY = policy.SMTP.clone(cte_type="7bit")

REPLY_LINE = re.compile(r"^([0-9]{3})([ -])(.*)$", re.DOTALL)
LINE_BREAKS = re.compile(rb"\r\n|\r|\n")
FORBIDDEN_ADDRESS_CHARS = ("\r", "\n", "<", ">")


@dataclass(frozen=True)
class SMTPReply:
    """A complete (possibly multi-line) server reply.

    Attributes:
        code: Three-digit reply code shared by every line
        lines: Text of each line, without code and separator
    """

    code: int
    lines: Tuple[str, ...] = ()

    @property
    def text(self) -> str:
        """All lines joined with newlines."""
        return "\n".join(self.lines)


def parse_reply_line(line: str) -> Tuple[int, bool, str]:
    """Split one reply line into code, finality, and text.

    Args:
        line: Reply line without its line terminator

    Returns:
        Tuple of (code, is_last_line, text)

    Raises:
        ProtocolError: If the line does not follow ``<3 digits><' '|'-'><text>``
    """
    match = REPLY_LINE.match(line)
    if match is None:
        # A bare code with nothing after it is a valid final line
        if len(line) == 3 and line.isascii() and line.isdigit():
            return int(line), True, ""
        raise ProtocolError(f"Malformed reply line: {line[:80]!r}", reply=line[:200])
    return int(match.group(1)), match.group(2) == " ", match.group(3)


class ReplyAccumulator:
    """Collects reply lines until the final line of one reply arrives."""

    def __init__(self) -> None:
        self.code = None
        self.lines: List[str] = []

    def feed(self, line: str):
        """Add one line; return the SMTPReply once it is complete, else None.

        Raises:
            ProtocolError: On malformed lines, a code change mid-reply, or
                a reply longer than MAX_REPLY_LINES
        """
        code, is_last, text = parse_reply_line(line)
        if self.code is None:
            self.code = code
        elif code != self.code:
            raise ProtocolError(
                f"Reply code changed from {self.code} to {code} mid-reply", code=code, reply=text
            )

        self.lines.append(text)
        if len(self.lines) > MAX_REPLY_LINES:
            raise ProtocolError(f"Reply exceeded {MAX_REPLY_LINES} lines", code=code)

        if is_last:
            return SMTPReply(code=code, lines=tuple(self.lines))
        return None


@dataclass(frozen=True)
class Capabilities:
    """Extensions advertised in an EHLO reply.

    Attributes:
        lines: Upper-cased capability lines (every reply line after the first)
        keywords: First word of each capability line, e.g. ``STARTTLS``
        auth_mechanisms: SASL mechanisms from ``AUTH`` and legacy ``AUTH=`` lines
    """

    lines: Tuple[str, ...] = ()
    keywords: FrozenSet[str] = field(default_factory=frozenset)
    auth_mechanisms: FrozenSet[str] = field(default_factory=frozenset)

    @property
    def starttls(self) -> bool:
        return "STARTTLS" in self.keywords

    def supports_auth(self, mechanism: str) -> bool:
        return mechanism.upper() in self.auth_mechanisms


def parse_capabilities(reply: SMTPReply) -> Capabilities:
    """Parse an EHLO reply into its advertised capabilities.

    The first line is the server's greeting and is not a capability.

    Args:
        reply: Successful EHLO reply

    Returns:
        Capabilities
    """
    lines = tuple(line.strip().upper() for line in reply.lines[1:] if line.strip())
    keywords = set()
    mechanisms = set()

    for line in lines:
        words = line.split()
        keyword = words[0]
        if keyword.startswith("AUTH="):
            keywords.add("AUTH")
            mechanisms.update(keyword[len("AUTH="):].split(","))
            mechanisms.update(words[1:])
        else:
            keywords.add(keyword)
            if keyword == "AUTH":
                mechanisms.update(words[1:])

    mechanisms.discard("")
    return Capabilities(lines=lines, keywords=frozenset(keywords), auth_mechanisms=frozenset(mechanisms))


def b64(value: str) -> str:
    """Base64 of UTF-8 text, as SASL exchanges expect."""
    return base64.b64encode(value.encode("utf-8")).decode("ascii")


def auth_plain_token(username: str, password: str) -> str:
    """Initial response for AUTH PLAIN: base64 of ``\\0user\\0pass``."""
    return b64(f"\0{username}\0{password}")


def sanitize_header(value: str) -> str:
    """Replace CR and LF in a header value with spaces."""
    return value.replace("\r\n", " ").replace("\r", " ").replace("\n", " ")


def check_envelope_address(address: str) -> str:
    """Reject envelope addresses that could break out of MAIL FROM / RCPT TO.

    Args:
        address: Bare email address

    Returns:
        The address, stripped

    Raises:
        AddressError: If the address is empty or contains CR, LF, '<' or '>'
    """
    if not address or any(ch in address for ch in FORBIDDEN_ADDRESS_CHARS):
        raise AddressError(f"Unsafe envelope address: {address!r}")
    return address.strip()


def validate_recipient(address: str) -> str:
    """Validate and normalize a recipient address.

    Raises:
        AddressError: If the address is unsafe or not a valid email address
    """
    check_envelope_address(address)
    try:
        return validate_email(address, check_deliverability=False).normalized
    except EmailNotValidError as e:
        raise AddressError(f"Invalid recipient address {address!r}: {e}") from e


def dot_stuff(data: bytes) -> bytes:
    """Double every leading '.' so no content line can end the DATA phase.

    Expects CRLF line endings.
    """
    if data.startswith(b"."):
        data = b"." + data
    return data.replace(b"\r\n.", b"\r\n..")


def prepare_data(message_bytes: bytes) -> bytes:
    """Encode a serialized message as a DATA payload.

    Line endings become CRLF, lines starting with '.' are stuffed, and the
    ``.`` terminator line is appended.

    Args:
        message_bytes: Serialized message

    Returns:
        Bytes ready to send after the 354 reply
    """
    normalized = LINE_BREAKS.sub(b"\r\n", message_bytes)
    if not normalized.endswith(b"\r\n"):
        normalized += b"\r\n"
    return dot_stuff(normalized) + b".\r\n"
