import random
import re
import string
import uuid

ROOM_CODE_LENGTH = 6
ROOM_CODE_ALPHABET = string.ascii_uppercase + string.digits

_ROOM_CODE_RE = re.compile(r"^[A-Z0-9]{6}$")
_NON_ALPHANUMERIC_RE = re.compile(r"[^A-Z0-9]")
_SEPARATOR_RE = re.compile(r"[\s\-]")


def generate_room_code() -> str:
    """Six symbols drawn uniformly from A-Z0-9. Not checked against live rooms."""
    return ''.join(random.choices(ROOM_CODE_ALPHABET, k=ROOM_CODE_LENGTH))


def validate_room_code(code) -> bool:
    return isinstance(code, str) and _ROOM_CODE_RE.fullmatch(code) is not None


def normalize_room_code(value: str) -> str:
    """Uppercase, drop anything outside A-Z0-9, keep the first six characters."""
    return _NON_ALPHANUMERIC_RE.sub('', value.upper())[:ROOM_CODE_LENGTH]


def canonical_room_code(value: str) -> str:
    """Server-side form of a typed code: separators dropped, uppercased, never truncated."""
    return _SEPARATOR_RE.sub('', value).upper()


def generate_participant_id() -> str:
    return f"user_{uuid.uuid4().hex[:12]}"


def validate_participant_id(participant_id) -> bool:
    return isinstance(participant_id, str) and 0 < len(participant_id) <= 100
