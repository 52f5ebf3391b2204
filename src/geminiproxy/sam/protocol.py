"""
SAM v3 command codec.

Wire format (text, one command per line):

    FIRST SECOND KEY=VALUE KEY="VALUE WITH SPACES" ...

Examples:
    HELLO VERSION MIN=3.1 MAX=3.3
    HELLO REPLY RESULT=OK VERSION=3.3
    STREAM STATUS RESULT=CANT_REACH_PEER MESSAGE="Connection timed out"

Reference: https://geti2p.net/en/docs/api/samv3
"""

from dataclasses import dataclass, field

from geminiproxy.sam.exceptions import MalformedCommand

# =============================================================================
# Constants
# =============================================================================

RESULT_OK: str = "OK"
LINE_TERMINATOR: bytes = b"\n"
LINE_ENCODING: str = "utf-8"


@dataclass
class Command:
    """Parsed SAM command or reply."""

    first: str
    second: str | None = None
    args: dict[str, str] = field(default_factory=dict)

    def get(self, key: str, default: str | None = None) -> str | None:
        """Get an argument by case-insensitive key."""
        return self.args.get(key.lower(), default)

    @property
    def result(self) -> str | None:
        return self.args.get("result")

    @property
    def ok(self) -> bool:
        return self.result == RESULT_OK


# =============================================================================
# Encoding
# =============================================================================


def _quote(value: str) -> str:
    return f'"{value}"' if " " in value else value


def encode(
    first: str,
    second: str | None = None,
    args: dict | None = None,
) -> str:
    """
    Build a SAM command line (without terminator).

    Entries whose key or value is empty or None are skipped. Keys keep their
    case since some option names (``inbound.length``) are case-sensitive.

    Args:
        first: First command word (e.g. "hello")
        second: Second command word (e.g. "version")
        args: Argument mapping

    Returns:
        Command line, e.g. ``HELLO VERSION MIN=3.1``
    """
    parts = [str(first).upper()]
    if second:
        parts.append(str(second).upper())

    for key, value in (args or {}).items():
        if key is None or value is None:
            continue
        key = str(key)
        value = str(value)
        if not key or not value:
            continue
        parts.append(f"{key}={_quote(value)}")

    return " ".join(parts)


def encode_line(first: str, second: str | None = None, args: dict | None = None) -> bytes:
    """Encode a command as terminated wire bytes."""
    return encode(first, second, args).encode(LINE_ENCODING) + LINE_TERMINATOR


# =============================================================================
# Decoding
# =============================================================================


def tokenize(line: str) -> list[str]:
    """
    Split a line on whitespace outside double quotes.

    Quote characters are removed, so ``MESSAGE="a b"`` yields ``MESSAGE=a b``.
    """
    tokens: list[str] = []
    current: list[str] = []
    in_token = False
    in_quotes = False

    for char in line:
        if char == '"':
            in_quotes = not in_quotes
            in_token = True
        elif char.isspace() and not in_quotes:
            if in_token:
                tokens.append("".join(current))
                current = []
                in_token = False
        else:
            current.append(char)
            in_token = True

    if in_token:
        tokens.append("".join(current))

    return tokens


def decode(line: str) -> Command:
    """
    Parse a SAM line into a Command.

    Args:
        line: Raw line, with or without trailing CRLF

    Returns:
        Parsed Command with lowercased argument keys

    Raises:
        MalformedCommand: If the line is empty or an argument has no '='
    """
    tokens = tokenize(line.rstrip("\r\n"))
    if not tokens:
        raise MalformedCommand("Empty SAM command", line)

    first = tokens[0]
    second = tokens[1] if len(tokens) > 1 else None
    args: dict[str, str] = {}

    for token in tokens[2:]:
        key, sep, value = token.partition("=")
        if not sep or not key:
            raise MalformedCommand(f"Invalid SAM argument: {token!r}", line)
        args[key.lower()] = value

    return Command(first=first, second=second, args=args)


def decode_line(data: bytes) -> Command:
    """Decode raw wire bytes into a Command."""
    try:
        text = data.decode(LINE_ENCODING)
    except UnicodeDecodeError as e:
        raise MalformedCommand(f"SAM line is not valid {LINE_ENCODING}: {e}") from e
    return decode(text)
