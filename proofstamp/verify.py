"""Verification engine.

Dispatches on the envelope's kind tag and re-checks the claim against the
matching oracle. Results separate "the proof is wrong" (not retryable) from
"the oracle could not be asked right now" (retryable).
"""
import logging
from typing import List, Optional

from . import chain, envelope
from .calendars import CalendarEndpoint, endpoints_from_urls
from .chain import ChainOracle
from .config import AnchorConfig, load_anchor_config
from .errors import CalendarSubmissionFailed, ChainRpcUnavailable, UnknownProofFormat
from .store import ProofStore

logger = logging.getLogger(__name__)

PENDING = 'pending'


class VerificationResult:
    def __init__(self, is_valid, kind: Optional[str] = None, reason: str = '', retryable: bool = False,
                 block_hash: Optional[str] = None, block_number: Optional[int] = None,
                 timestamp: Optional[int] = None):
        self.is_valid = is_valid
        self.kind = kind
        self.reason = reason
        self.retryable = retryable
        self.block_hash = block_hash
        self.block_number = block_number
        self.timestamp = timestamp

    @property
    def pending(self) -> bool:
        return self.is_valid == PENDING

    def to_dict(self) -> dict:
        return {
            'is_valid': self.is_valid,
            'kind': self.kind,
            'reason': self.reason,
            'retryable': self.retryable,
            'matched_block_hash': self.block_hash,
            'matched_block_height': self.block_number,
            'matched_timestamp': self.timestamp,
        }

    def __eq__(self, other):
        return isinstance(other, VerificationResult) and self.to_dict() == other.to_dict()

    def __repr__(self):
        return f'VerificationResult({self.is_valid!r}, {self.kind}, {self.reason!r})'


def _same_hash(a: str, b: str) -> bool:
    try:
        return bytes.fromhex(a[2:] if a.startswith('0x') else a) == bytes.fromhex(b[2:] if b.startswith('0x') else b)
    except ValueError:
        return False


class Verifier:
    def __init__(self, config: Optional[AnchorConfig] = None, oracles: Optional[List[ChainOracle]] = None,
                 calendars: Optional[List[CalendarEndpoint]] = None):
        self.config = config or load_anchor_config()
        if oracles is None:
            oracles = chain.oracles_from_networks(self.config.networks, timeout=self.config.rpc_timeout,
                                                  retries=self.config.rpc_retries)
        self.oracles = {o.name: o for o in oracles}
        self._calendars = {c.identity: c for c in calendars} if calendars is not None else None

    def _calendar_for(self, server: str) -> CalendarEndpoint:
        if self._calendars is not None and server in self._calendars:
            return self._calendars[server]
        return endpoints_from_urls([server], timeout=self.config.calendar_timeout)[0]

    def verify(self, data: bytes) -> VerificationResult:
        try:
            env = envelope.decode(data)
        except UnknownProofFormat as e:
            logger.info('Rejecting envelope: %s', e)
            reason = str(e)
            if not reason.startswith('unknown proof format'):
                reason = f'unknown proof format: {reason}'
            return VerificationResult(False, reason=reason)
        if isinstance(env, envelope.ChainAnchorProof):
            return self._verify_chain(env)
        if isinstance(env, envelope.CalendarProof):
            return self._verify_calendar(env)
        return VerificationResult(False, kind='local', reason='local timestamp has no independent witness')

    def verify_key(self, store: ProofStore, key: str) -> VerificationResult:
        return self.verify(store.read(key))

    def _verify_chain(self, env: envelope.ChainAnchorProof) -> VerificationResult:
        oracle = self.oracles.get(env.chain)
        if oracle is None:
            return VerificationResult(False, kind='chain', reason=f'unknown chain {env.chain}')
        try:
            block = oracle.get_block_by_number(env.block_number)
        except ChainRpcUnavailable as e:
            logger.warning('Cannot verify %s block %s right now: %s', env.chain, env.block_number, e)
            return VerificationResult(False, kind='chain', reason='chain rpc unavailable', retryable=True)
        if block is None:
            return VerificationResult(False, kind='chain', reason=f'block {env.block_number} not found')
        if block.number != env.block_number:
            logger.info('Block height mismatch on %s: asked for %s, got %s', env.chain, env.block_number, block.number)
            return VerificationResult(False, kind='chain', reason='block height mismatch',
                                      block_number=env.block_number)
        if not _same_hash(block.hash, env.block_hash):
            logger.info('Block hash mismatch at %s %s: recorded %s, chain has %s',
                        env.chain, env.block_number, env.block_hash, block.hash)
            return VerificationResult(False, kind='chain', reason='block hash mismatch',
                                      block_number=env.block_number)
        return VerificationResult(True, kind='chain', reason='block hash matches',
                                  block_hash=block.hash, block_number=block.number, timestamp=block.timestamp)

    def _verify_calendar(self, env: envelope.CalendarProof) -> VerificationResult:
        # Confirming a calendar proof means checking its Bitcoin attestation,
        # which needs an SPV client; until then the best answer is pending.
        upgraded = 0
        for server in env.servers:
            try:
                if self._calendar_for(server).fetch_timestamp(env.commitment):
                    upgraded += 1
            except CalendarSubmissionFailed as e:
                logger.debug('Calendar %s unreachable during verification: %s', server, e)
        if upgraded:
            reason = f'upgrade available from {upgraded} calendar(s)'
        else:
            reason = 'awaiting calendar attestation'
        return VerificationResult(PENDING, kind='calendar', reason=reason)


def verify(data: bytes, config: Optional[AnchorConfig] = None) -> VerificationResult:
    return Verifier(config).verify(data)
