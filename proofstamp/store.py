"""Filesystem proof store.

Keys are `<commitment hex>.<suffix>` so each proof kind for a commitment has
its own slot. Envelope slots are write-once; nothing here does a
read-modify-write, so concurrent anchoring calls need no locking.
"""
import hashlib
import json
import logging
import os
import tempfile
from pathlib import Path
from typing import List, Optional

from .envelope import KIND_CALENDAR, KIND_CHAIN, KIND_LOCAL
from .errors import ProofStoreWriteFailed

logger = logging.getLogger(__name__)

SUFFIXES = {
    KIND_CALENDAR: 'calendar.ots',
    KIND_CHAIN: 'chain.proof',
    KIND_LOCAL: 'local.proof',
}
JSON_SUFFIX = 'chain.json'


class ProofStore:
    def __init__(self, root):
        self.root = Path(root)

    def key_for(self, commitment_hex: str, kind: int) -> str:
        return f'{commitment_hex}.{SUFFIXES[kind]}'

    def path(self, key: str) -> Path:
        if '/' in key or '\\' in key or key.startswith('.'):
            raise ValueError(f'invalid store key {key!r}')
        return self.root / key

    def exists(self, key: str) -> bool:
        return self.path(key).exists()

    def _atomic_write(self, p: Path, data: bytes):
        fd, tmp = tempfile.mkstemp(dir=str(p.parent), prefix='.tmp-')
        try:
            with os.fdopen(fd, 'wb') as f:
                f.write(data)
            os.replace(tmp, p)
        except BaseException:
            if os.path.exists(tmp):
                os.unlink(tmp)
            raise

    def write(self, key: str, data: bytes, overwrite: bool = False) -> Path:
        p = self.path(key)
        try:
            self.root.mkdir(parents=True, exist_ok=True)
            if p.exists() and not overwrite:
                raise ProofStoreWriteFailed(f'{key} already exists')
            self._atomic_write(p, data)
        except OSError as e:
            raise ProofStoreWriteFailed(f'could not write {key}: {e}') from e
        logger.debug('Wrote %s bytes to %s', len(data), p)
        return p

    def write_json(self, key: str, obj: dict, overwrite: bool = False) -> Path:
        data = json.dumps(obj, indent=2, sort_keys=True).encode('utf-8')
        return self.write(key, data, overwrite=overwrite)

    def read(self, key: str) -> bytes:
        return self.path(key).read_bytes()

    def read_optional(self, key: str) -> Optional[bytes]:
        try:
            return self.read(key)
        except FileNotFoundError:
            return None

    def keys(self, suffix: Optional[str] = None) -> List[str]:
        if not self.root.exists():
            return []
        names = sorted(p.name for p in self.root.iterdir() if p.is_file() and not p.name.startswith('.'))
        if suffix:
            names = [n for n in names if n.endswith('.' + suffix)]
        return names

    def upgrade_key(self, commitment_hex: str, server: str) -> str:
        tag = hashlib.sha256(server.encode('utf-8')).hexdigest()[:12]
        return f'{commitment_hex}.upgrade.{tag}.ots'

    def write_upgrade(self, commitment_hex: str, server: str, data: bytes) -> Path:
        # upgrades only ever grow, so the latest copy replaces the old one
        return self.write(self.upgrade_key(commitment_hex, server), data, overwrite=True)
