import sys
import os
import argparse
import getpass
from abc import ABC, abstractmethod
from collections import namedtuple
from contextlib import contextmanager
from typing import List, Tuple, Optional, Sequence, Union

UDTC_VERSION = "1.0"

# Longest key accepted from the prompt (64-byte buffer minus terminator)
KEY_MAX_LENGTH = 63

# Verbose mode (disabled by default, enabled with --verbose)
VERBOSE = False

def log_info(msg: str):
    """Print info message only if verbose mode is enabled."""
    if VERBOSE:
        print(f"[INFO] {msg}", file=sys.stderr)

def log_warn(msg: str):
    """Print warning message only if verbose mode is enabled."""
    if VERBOSE:
        print(f"[WARN] {msg}", file=sys.stderr)

# ==========================================
#  ERRORS
# ==========================================

class UdtcError(Exception):
    """Base class for every failure raised by the codec and the engine."""


class InvalidEncoding(UdtcError):
    """The input byte stream is not valid, minimal UTF-8."""

    def __init__(self, offset: int, reason: Optional[str] = None, truncated: bool = False):
        self.offset = offset
        self.reason = reason
        self.truncated = truncated
        if truncated:
            msg = f"bad input utf8 last sequence at byte {offset}"
        else:
            msg = f"bad input utf8 sequence at byte {offset} ({reason})"
        super().__init__(msg)


class InvalidCodepoint(UdtcError):
    """A value cannot be written as a UTF-8 sequence."""

    def __init__(self, index: int, codepoint):
        self.index = index
        self.codepoint = codepoint
        if isinstance(codepoint, int):
            shown = f"0x{codepoint:X}" if codepoint >= 0 else str(codepoint)
        else:
            shown = repr(codepoint)
        super().__init__(f"bad output utf8 sequence: code point {shown} at index {index}")


class InvalidKey(UdtcError):
    """Empty (or, at the prompt, over-long) transposition key."""


class UnknownMethod(UdtcError):
    """No transposition mode is registered under the requested name."""

# ==========================================
#  UTF-8 CODEC
# ==========================================

MAX_CODEPOINT = 0x10FFFF
SURROGATE_MIN = 0xD800
SURROGATE_MAX = 0xDFFF

# Continuation bytes are 10xxxxxx
CONT_LOW = 0x80
CONT_HIGH = 0xBF


def _lead_byte(byte: int) -> Tuple[int, int, int, int]:
    """
    Classify a byte seen while no sequence is pending.

    Returns:
        (continuation bytes expected, payload bits of the lead byte,
         lowest and highest byte allowed right after it)

    The narrowed ranges after E0, ED, F0 and F4 are what rules out overlong
    forms, surrogate halves and values past U+10FFFF.
    """
    if 0xC2 <= byte <= 0xDF:
        return 1, byte & 0x1F, CONT_LOW, CONT_HIGH
    if byte == 0xE0:
        return 2, byte & 0x0F, 0xA0, CONT_HIGH
    if byte == 0xED:
        return 2, byte & 0x0F, CONT_LOW, 0x9F
    if 0xE1 <= byte <= 0xEF:
        return 2, byte & 0x0F, CONT_LOW, CONT_HIGH
    if byte == 0xF0:
        return 3, byte & 0x07, 0x90, CONT_HIGH
    if byte == 0xF4:
        return 3, byte & 0x07, CONT_LOW, 0x8F
    if 0xF1 <= byte <= 0xF3:
        return 3, byte & 0x07, CONT_LOW, CONT_HIGH
    return -1, 0, 0, 0


def _reject_reason(lead: int, byte: int) -> str:
    """Name the cause of a reject for a byte that broke the current sequence."""
    if not CONT_LOW <= byte <= CONT_HIGH:
        return "missing continuation byte"
    if lead == 0xE0 or lead == 0xF0:
        return "overlong encoding"
    if lead == 0xED:
        return "surrogate half"
    return "code point above U+10FFFF"


def decode(data: bytes) -> List[int]:
    """
    Decode a UTF-8 byte stream into a list of code points.

    The stream is consumed one byte at a time. While no sequence is pending
    the automaton is in its accept state; a lead byte moves it to
    "expecting N more continuation bytes", and each continuation byte shifts
    six more bits into the code point. Any byte that does not fit the state
    is a reject.

    Raises:
        InvalidEncoding: on a reject, or when the stream ends mid-sequence.
    """
    codepoints = []
    pending = 0
    code = 0
    lead = 0
    start = 0
    low, high = CONT_LOW, CONT_HIGH

    for offset, byte in enumerate(data):
        if pending == 0:
            if byte < 0x80:
                codepoints.append(byte)
                continue
            start, lead = offset, byte
            pending, code, low, high = _lead_byte(byte)
            if pending < 0:
                if CONT_LOW <= byte <= CONT_HIGH:
                    reason = "unexpected continuation byte"
                elif byte in (0xC0, 0xC1):
                    reason = "overlong encoding"
                else:
                    reason = "invalid lead byte"
                raise InvalidEncoding(offset, reason)
            continue

        if not low <= byte <= high:
            raise InvalidEncoding(start, _reject_reason(lead, byte))
        code = (code << 6) | (byte & 0x3F)
        low, high = CONT_LOW, CONT_HIGH
        pending -= 1
        if pending == 0:
            codepoints.append(code)

    if pending:
        raise InvalidEncoding(start, truncated=True)
    return codepoints


def _encode_one(code: int) -> bytes:
    if code < 0x80:
        return bytes((code,))
    if code < 0x800:
        return bytes((0xC0 | (code >> 6),
                      0x80 | (code & 0x3F)))
    if code < 0x10000:
        return bytes((0xE0 | (code >> 12),
                      0x80 | ((code >> 6) & 0x3F),
                      0x80 | (code & 0x3F)))
    return bytes((0xF0 | (code >> 18),
                  0x80 | ((code >> 12) & 0x3F),
                  0x80 | ((code >> 6) & 0x3F),
                  0x80 | (code & 0x3F)))


def encode(codepoints: Sequence[int]) -> bytes:
    """
    Encode a sequence of code points as UTF-8.

    Every value is checked before its bytes are produced, and nothing is
    returned unless the whole sequence is valid.

    Raises:
        InvalidCodepoint: for values outside [0, 0x10FFFF] or in the
        surrogate range.
    """
    out = bytearray()
    for index, code in enumerate(codepoints):
        if (not isinstance(code, int) or isinstance(code, bool)
                or code < 0 or code > MAX_CODEPOINT
                or SURROGATE_MIN <= code <= SURROGATE_MAX):
            raise InvalidCodepoint(index, code)
        out += _encode_one(code)
    return bytes(out)

# ==========================================
#  KEY CYCLIC INDEXER
# ==========================================

Key = Union[str, bytes]


def key_at(key: Key, position: int) -> Tuple[int, int]:
    """
    Return (rank, column) for a logical position under a cyclic key.

    The rank is the key character at ``position mod len(key)``, compared as
    its code point for ``str`` keys and as an unsigned byte for ``bytes``
    keys. The column is ``position mod len(key)``.
    """
    column = position % len(key)
    char = key[column]
    rank = ord(char) if isinstance(char, str) else char
    return rank, column

# ==========================================
#  PERMUTATION ENGINE
# ==========================================

# value: payload being moved, rank: key character, tie: column index
PermutationItem = namedtuple("PermutationItem", ["value", "rank", "tie"])


def _check_key(key: Key):
    if not key:
        raise InvalidKey("key has length zero")


def _by_rank_and_tie(item: PermutationItem):
    return item.rank, item.tie


def _ranked(values, key: Key) -> List[PermutationItem]:
    """Tag each value with the key rank and column of its position, then sort."""
    items = []
    for position, value in enumerate(values):
        rank, tie = key_at(key, position)
        items.append(PermutationItem(value, rank, tie))
    # sorted() is stable; rows inside a column keep their order
    return sorted(items, key=_by_rank_and_tie)


def _like(sequence, values: list):
    if isinstance(sequence, str):
        return "".join(values)
    return values


def transpose(sequence, key: Key):
    """
    Columnar transposition of ``sequence`` under a cyclic ``key``.

    Writing the sequence row by row into a grid ``len(key)`` columns wide
    and reading the columns back in ascending key-character order (ties by
    column position) gives the same result.

    Raises:
        InvalidKey: if the key is empty.
    """
    _check_key(key)
    items = _ranked(sequence, key)
    return _like(sequence, [item.value for item in items])


def reverse(sequence, key: Key):
    """
    Undo :func:`transpose` for the same key and sequence length.

    The first sort ranks the positions themselves exactly as ``transpose``
    ranks values, so slot ``j`` learns which original index was sent there.
    Re-tagging slot ``j`` with that index and the element now sitting at
    ``j`` and sorting again by the index alone puts every element back
    where it came from. The indices are unique, so the second sort does not
    depend on tie-breaking.

    Raises:
        InvalidKey: if the key is empty.
    """
    _check_key(key)
    routed = _ranked(range(len(sequence)), key)
    retagged = [PermutationItem(sequence[slot], item.value, item.tie)
                for slot, item in enumerate(routed)]
    retagged.sort(key=lambda item: item.rank)
    return _like(sequence, [item.value for item in retagged])


def encrypt(sequence, key1: Key, key2: Optional[Key] = None):
    """Transpose with key1, then with key2 when one is given."""
    _check_key(key1)
    if key2 is not None:
        _check_key(key2)
    result = transpose(sequence, key1)
    if key2 is not None:
        result = transpose(result, key2)
    return result


def decrypt(sequence, key1: Key, key2: Optional[Key] = None):
    """Inverse of :func:`encrypt`: undo key2 first, then key1."""
    _check_key(key1)
    if key2 is not None:
        _check_key(key2)
        sequence = reverse(sequence, key2)
    return reverse(sequence, key1)

# ==========================================
#  FRAMEWORK: Abstract Base Class & Registry
# ==========================================

class CipherStrategy(ABC):
    """Abstract base class that all transposition modes must implement."""

    @property
    @abstractmethod
    def name(self) -> str:
        """The command-line name for this mode."""
        pass

    @property
    @abstractmethod
    def description(self) -> str:
        """Short description for help text."""
        pass

    @property
    @abstractmethod
    def key_count(self) -> int:
        """How many keys the mode asks for."""
        pass

    @abstractmethod
    def encrypt(self, codepoints, keys: Sequence[Key]):
        pass

    @abstractmethod
    def decrypt(self, codepoints, keys: Sequence[Key]):
        pass

    def check_keys(self, keys: Sequence[Key]):
        """Raise InvalidKey unless there are exactly key_count non-empty keys."""
        if len(keys) != self.key_count:
            raise InvalidKey(f"{self.name} mode needs {self.key_count} key(s), got {len(keys)}")
        for number, key in enumerate(keys, 1):
            if not key:
                raise InvalidKey(f"key{number} has length zero")

CIPHER_REGISTRY = {}

def register_cipher(cls):
    """Decorator to auto-register transposition modes."""
    cipher = cls()
    CIPHER_REGISTRY[cipher.name] = cipher
    return cls

DEFAULT_METHOD = "double"


@register_cipher
class SimpleTransposition(CipherStrategy):
    name = "simple"
    description = "Single columnar transposition with one key."
    key_count = 1

    def encrypt(self, codepoints, keys):
        self.check_keys(keys)
        log_info(f"Transposing {len(codepoints)} code point(s) with key1.")
        return transpose(codepoints, keys[0])

    def decrypt(self, codepoints, keys):
        self.check_keys(keys)
        log_info(f"Reversing {len(codepoints)} code point(s) with key1.")
        return reverse(codepoints, keys[0])


@register_cipher
class DoubleTransposition(CipherStrategy):
    name = "double"
    description = "Double columnar transposition: key1 then key2 (default)."
    key_count = 2

    def encrypt(self, codepoints, keys):
        self.check_keys(keys)
        log_info(f"Transposing {len(codepoints)} code point(s) with key1, then key2.")
        return encrypt(codepoints, keys[0], keys[1])

    def decrypt(self, codepoints, keys):
        self.check_keys(keys)
        log_info(f"Reversing {len(codepoints)} code point(s) with key2, then key1.")
        return decrypt(codepoints, keys[0], keys[1])


def _run(data: bytes, keys: Sequence[Key], method: str, decrypting: bool) -> bytes:
    if method not in CIPHER_REGISTRY:
        raise UnknownMethod(f"unknown method '{method}'")
    cipher = CIPHER_REGISTRY[method]
    cipher.check_keys(keys)
    codepoints = decode(data)
    log_info(f"Decoded {len(data)} byte(s) into {len(codepoints)} code point(s).")
    if not codepoints:
        return b""
    if decrypting:
        result = cipher.decrypt(codepoints, keys)
    else:
        result = cipher.encrypt(codepoints, keys)
    return encode(result)


def encrypt_bytes(data: bytes, keys: Sequence[Key], method: str = DEFAULT_METHOD) -> bytes:
    """Decode UTF-8 ``data``, encrypt it with ``method`` and encode it again."""
    return _run(data, keys, method, decrypting=False)


def decrypt_bytes(data: bytes, keys: Sequence[Key], method: str = DEFAULT_METHOD) -> bytes:
    """Decode UTF-8 ``data``, decrypt it with ``method`` and encode it again."""
    return _run(data, keys, method, decrypting=True)

# ==========================================
#  I/O BOUNDARY
# ==========================================

def terminal_available() -> bool:
    try:
        with open("/dev/tty", "rb"):
            return True
    except OSError:
        return False


def _get_key_from_stdin(prompt: str) -> str:
    """
    Read one key line from stdin, with echo.

    Goes through ``sys.stdin.buffer`` so that the data following the key
    lines is still there for the input reader.
    """
    print("warning: reading key from stdin with echo", file=sys.stderr)
    print(prompt, end="", file=sys.stderr, flush=True)
    line = sys.stdin.buffer.readline()
    if not line:
        raise EOFError
    if line.endswith(b"\n"):
        line = line[:-1]
    if line.endswith(b"\r"):
        line = line[:-1]
    try:
        return line.decode("utf-8")
    except UnicodeDecodeError:
        raise InvalidKey(f"{prompt.rstrip(': ')} is not valid utf8") from None


def get_key(prompt: str) -> str:
    """Read a key from the terminal without echo, or from stdin without a terminal."""
    if not terminal_available():
        return _get_key_from_stdin(prompt)
    return getpass.getpass(prompt)


def read_keys(count: int) -> List[str]:
    """
    Prompt for ``count`` keys as key1, key2, ...

    Raises:
        InvalidKey: for an empty key or one longer than KEY_MAX_LENGTH.
    """
    keys = []
    for number in range(1, count + 1):
        label = f"key{number}"
        try:
            key = get_key(f"{label}: ")
        except EOFError:
            raise InvalidKey(f"could not read {label}") from None
        if not key:
            raise InvalidKey(f"{label} has length zero")
        if len(key) > KEY_MAX_LENGTH:
            raise InvalidKey(f"{label} is longer than {KEY_MAX_LENGTH} characters")
        keys.append(key)
    return keys


@contextmanager
def input_stream(path: Optional[str]):
    """Yield a binary stream over ``path``, or over stdin when no path is given."""
    if not path:
        yield sys.stdin.buffer
        return
    try:
        f = open(path, "rb")
    except OSError as e:
        raise UdtcError(f"could not open input file '{path}' -- {e.strerror or e}") from e
    with f:
        yield f


@contextmanager
def output_stream(path: Optional[str]):
    """
    Yield a binary stream for the result.

    A file given by ``path`` is created on entry and removed again if the
    block raises, so a failed run leaves nothing behind.
    """
    if not path:
        yield sys.stdout.buffer
        sys.stdout.buffer.flush()
        return
    try:
        f = open(path, "wb")
    except OSError as e:
        raise UdtcError(f"could not open output file '{path}' -- {e.strerror or e}") from e
    try:
        with f:
            yield f
    except BaseException:
        try:
            os.remove(path)
        except OSError as e:
            log_warn(f"Could not remove '{path}': {e}")
        raise

# ==========================================
#  CLI LOGIC
# ==========================================

SUMMARY = """\
udtc permutes UTF-8 text with a double columnar transposition. The keys are
read from the terminal. Decrypting with the same keys restores the input
exactly."""


def list_ciphers():
    """Print all available modes."""
    print("\nAvailable Modes:")
    print("=" * 60)
    for name, cipher in CIPHER_REGISTRY.items():
        print(f"  {name:<12} [{cipher.key_count} key(s)]  {cipher.description}")
    print("=" * 60)
    print(f"\nTotal: {len(CIPHER_REGISTRY)} mode(s) registered.")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="udtc",
        description="UTF-8 double transposition cipher",
        epilog=SUMMARY,
        formatter_class=argparse.RawTextHelpFormatter
    )

    parser.add_argument("-V", "--version", action="version", version=f"%(prog)s {UDTC_VERSION}")

    action_group = parser.add_mutually_exclusive_group()
    action_group.add_argument("-e", "--encrypt", action="store_true", help="Encrypt mode (default)")
    action_group.add_argument("-d", "--decrypt", action="store_true", help="Decrypt mode")
    action_group.add_argument("-l", "--list", action="store_true", help="List all available modes")

    method_help = "\n".join(f"  {k:<12}: {v.description}" for k, v in CIPHER_REGISTRY.items())
    method_group = parser.add_mutually_exclusive_group()
    method_group.add_argument("-m", "--method", choices=list(CIPHER_REGISTRY.keys()), default=DEFAULT_METHOD,
                              help=f"Select transposition mode (default: {DEFAULT_METHOD}).\n{method_help}")
    method_group.add_argument("-1", "--simple", action="store_true",
                              help="Use a single key (same as --method simple)")

    parser.add_argument("-v", "--verbose", action="store_true",
                        help="Enable verbose output (info and warning messages)")

    parser.add_argument("-o", "--output", metavar="FILE", help="Output file path (default: stdout)")
    parser.add_argument("infile", nargs="?", help="Input file path (default: stdin)")
    return parser


def main(argv: Optional[List[str]] = None):
    global VERBOSE

    args = build_parser().parse_args(argv)
    VERBOSE = args.verbose

    if args.list:
        list_ciphers()
        return 0

    method = "simple" if args.simple else args.method
    cipher = CIPHER_REGISTRY[method]

    try:
        with input_stream(args.infile) as src, output_stream(args.output) as out:
            keys = read_keys(cipher.key_count)
            if not args.infile and sys.stdin.isatty():
                print("[UDTC] Paste input below. Ctrl+D (Unix) or Ctrl+Z (Win) to end:", file=sys.stderr)
            data = src.read()
            if args.decrypt:
                result = decrypt_bytes(data, keys, method)
            else:
                result = encrypt_bytes(data, keys, method)
            out.write(result)
            log_info(f"Wrote {len(result)} byte(s).")
    except MemoryError:
        sys.exit("udtc: out of memory")
    except KeyboardInterrupt:
        sys.exit("udtc: interrupted")
    except (UdtcError, OSError) as e:
        sys.exit(f"udtc: {e}")
    return 0

if __name__ == "__main__":
    main()
