"""Canonicalize content hashes into fixed-width commitments."""
import re
from typing import Union

from .errors import InvalidCommitmentFormat

COMMITMENT_SIZE = 32
HEX_RE = re.compile(r'^[0-9a-f]*$')


class Commitment:
    """A prefix-free lowercase hex digest and its raw bytes."""

    def __init__(self, hex_digest: str, raw: bytes):
        self.hex = hex_digest
        self.raw = raw

    def __eq__(self, other):
        return isinstance(other, Commitment) and self.raw == other.raw

    def __hash__(self):
        return hash(self.raw)

    def __len__(self):
        return len(self.raw)

    def __repr__(self):
        return f'Commitment({self.hex})'


def strip_prefix(value: str) -> str:
    value = value.strip()
    if value[:2] in ('0x', '0X'):
        return value[2:]
    return value


def normalize_commitment(value: Union[str, bytes, Commitment], size: int = COMMITMENT_SIZE) -> Commitment:
    """Normalize a content hash. Raises InvalidCommitmentFormat on bad input.

    Accepts hex strings with or without a leading 0x, raw bytes of the expected
    length, or an existing Commitment (returned unchanged if the size matches).
    """
    if isinstance(value, Commitment):
        value = value.raw
    if isinstance(value, (bytes, bytearray)):
        if len(value) != size:
            raise InvalidCommitmentFormat(f'expected {size} bytes, got {len(value)}')
        raw = bytes(value)
        return Commitment(raw.hex(), raw)
    if not isinstance(value, str):
        raise InvalidCommitmentFormat(f'unsupported hash type {type(value).__name__}')
    h = strip_prefix(value).lower()
    if not h:
        raise InvalidCommitmentFormat('empty hash')
    if not HEX_RE.match(h) or len(h) % 2:
        raise InvalidCommitmentFormat(f'not a hex string: {value!r}')
    if len(h) != size * 2:
        raise InvalidCommitmentFormat(f'expected {size} bytes, got {len(h) // 2}')
    return Commitment(h, bytes.fromhex(h))
