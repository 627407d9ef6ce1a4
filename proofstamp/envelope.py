"""Self-describing proof envelopes.

Binary layout, all integers big-endian:

    magic      4 bytes   b'\\x00PSE'
    version    1 byte
    kind       1 byte    KIND_CALENDAR | KIND_CHAIN | KIND_LOCAL
    clen       1 byte
    commitment clen bytes
    body       kind specific, see the _encode_* helpers

The tag and version come first so a verifier can dispatch on the bytes alone.
"""
import struct
from typing import Dict, List, Optional

from .errors import UnknownProofFormat

MAGIC = b'\x00PSE'
VERSION = 1

KIND_CALENDAR = 0x01
KIND_CHAIN = 0x02
KIND_LOCAL = 0x03

KIND_NAMES = {KIND_CALENDAR: 'calendar', KIND_CHAIN: 'chain', KIND_LOCAL: 'local'}


class CalendarProof:
    kind = KIND_CALENDAR
    pending_attestation = True

    def __init__(self, commitment: bytes, servers: List[str], created_at: int,
                 responses: Optional[Dict[str, bytes]] = None, version: int = VERSION):
        self.version = version
        self.commitment = commitment
        self.servers = list(servers)
        self.created_at = created_at
        self.responses = dict(responses or {})

    def to_dict(self) -> dict:
        return {
            'kind': 'calendar',
            'version': self.version,
            'commitment': self.commitment.hex(),
            'servers': self.servers,
            'created_at': self.created_at,
            'response_sizes': {s: len(self.responses.get(s, b'')) for s in self.servers},
            'pending_attestation': True,
        }


class ChainAnchorProof:
    kind = KIND_CHAIN
    pending_attestation = False

    def __init__(self, commitment: bytes, block_number: int, block_hash: str, parent_hash: str,
                 block_timestamp: int, chain: str, verification_url: str, version: int = VERSION):
        self.version = version
        self.commitment = commitment
        self.block_number = block_number
        self.block_hash = block_hash
        self.parent_hash = parent_hash
        self.block_timestamp = block_timestamp
        self.chain = chain
        self.verification_url = verification_url

    def to_dict(self) -> dict:
        return {
            'kind': 'chain',
            'version': self.version,
            'commitment': self.commitment.hex(),
            'chain': self.chain,
            'block_number': self.block_number,
            'block_hash': self.block_hash,
            'parent_hash': self.parent_hash,
            'block_timestamp': self.block_timestamp,
            'verification_url': self.verification_url,
            'pending_attestation': False,
        }


class LocalProof:
    kind = KIND_LOCAL
    pending_attestation = False
    anchor_type = 'local'

    def __init__(self, commitment: bytes, wall_clock: int, version: int = VERSION):
        self.version = version
        self.commitment = commitment
        self.wall_clock = wall_clock

    def to_dict(self) -> dict:
        return {
            'kind': 'local',
            'version': self.version,
            'commitment': self.commitment.hex(),
            'wall_clock': self.wall_clock,
            'anchor_type': self.anchor_type,
            'pending_attestation': False,
        }


def _hash_bytes(h: str) -> bytes:
    h = h[2:] if h.startswith(('0x', '0X')) else h
    return bytes.fromhex(h)


def _pack_str(s: str, width: str = '>H') -> bytes:
    b = s.encode('utf-8')
    return struct.pack(width, len(b)) + b


def _encode_calendar(env: CalendarProof) -> bytes:
    if len(env.servers) > 255:
        raise ValueError('too many calendar servers')
    out = [struct.pack('>QB', env.created_at, len(env.servers))]
    for server in env.servers:
        body = env.responses.get(server, b'')
        out.append(_pack_str(server))
        out.append(struct.pack('>I', len(body)) + body)
    return b''.join(out)


def _encode_chain(env: ChainAnchorProof) -> bytes:
    bh = _hash_bytes(env.block_hash)
    ph = _hash_bytes(env.parent_hash)
    return b''.join([
        struct.pack('>QB', env.block_number, len(bh)), bh,
        struct.pack('>B', len(ph)), ph,
        struct.pack('>Q', env.block_timestamp),
        _pack_str(env.chain),
        _pack_str(env.verification_url),
    ])


def encode(env) -> bytes:
    if isinstance(env, CalendarProof):
        body = _encode_calendar(env)
    elif isinstance(env, ChainAnchorProof):
        body = _encode_chain(env)
    elif isinstance(env, LocalProof):
        body = struct.pack('>Q', env.wall_clock)
    else:
        raise TypeError(f'not a proof envelope: {type(env).__name__}')
    if len(env.commitment) > 255:
        raise ValueError('commitment too long')
    header = MAGIC + struct.pack('>BBB', VERSION, env.kind, len(env.commitment))
    return header + env.commitment + body


class _Reader:
    def __init__(self, data: bytes, pos: int = 0):
        self.data = data
        self.pos = pos

    def take(self, n: int) -> bytes:
        if self.pos + n > len(self.data):
            raise UnknownProofFormat('truncated envelope')
        chunk = self.data[self.pos:self.pos + n]
        self.pos += n
        return chunk

    def unpack(self, fmt: str):
        return struct.unpack(fmt, self.take(struct.calcsize(fmt)))

    def string(self, width: str = '>H') -> str:
        (n,) = self.unpack(width)
        try:
            return self.take(n).decode('utf-8')
        except UnicodeDecodeError as e:
            raise UnknownProofFormat('invalid text field') from e


def peek_kind(data: bytes) -> Optional[int]:
    """Return the kind tag without decoding the body, or None if not an envelope."""
    if len(data) < len(MAGIC) + 2 or not data.startswith(MAGIC):
        return None
    return data[len(MAGIC) + 1]


def decode(data: bytes):
    """Decode envelope bytes. Raises UnknownProofFormat for anything unrecognized."""
    if not data or not data.startswith(MAGIC):
        raise UnknownProofFormat('unknown proof format')
    r = _Reader(data, len(MAGIC))
    version, kind, clen = r.unpack('>BBB')
    if version != VERSION:
        raise UnknownProofFormat(f'unsupported envelope version {version}')
    commitment = r.take(clen)
    if kind == KIND_CALENDAR:
        created_at, count = r.unpack('>QB')
        servers, responses = [], {}
        for _ in range(count):
            server = r.string()
            (n,) = r.unpack('>I')
            servers.append(server)
            responses[server] = r.take(n)
        env = CalendarProof(commitment, servers, created_at, responses, version=version)
    elif kind == KIND_CHAIN:
        block_number, bh_len = r.unpack('>QB')
        block_hash = '0x' + r.take(bh_len).hex()
        (ph_len,) = r.unpack('>B')
        parent_hash = '0x' + r.take(ph_len).hex()
        (block_timestamp,) = r.unpack('>Q')
        chain = r.string()
        url = r.string()
        env = ChainAnchorProof(commitment, block_number, block_hash, parent_hash,
                               block_timestamp, chain, url, version=version)
    elif kind == KIND_LOCAL:
        (wall_clock,) = r.unpack('>Q')
        env = LocalProof(commitment, wall_clock, version=version)
    else:
        raise UnknownProofFormat(f'unknown proof kind 0x{kind:02x}')
    if r.pos != len(data):
        raise UnknownProofFormat('trailing bytes after envelope')
    return env
