"""Anchoring orchestrator.

Tries the tiers in order and stops at the first one that yields a usable
envelope:

    calendar  -> status 'pending'    (calendars have not reached the chain yet)
    chain     -> status 'confirmed'  (bound to an already mined block)
    local     -> status 'failed'     (wall clock only, no independent witness)

Provider failures never escape `anchor()`; only a malformed content hash does.
"""
import asyncio
import logging
import struct
import time
from typing import List, Optional

from . import chain, envelope
from .calendars import CalendarClient, CalendarEndpoint, endpoints_from_urls
from .chain import ChainOracle
from .config import AnchorConfig, ChainNetwork, load_anchor_config
from .errors import CalendarAttestationUnavailable, ChainRpcUnavailable, ProofStoreWriteFailed
from .normalize import Commitment, normalize_commitment
from .store import JSON_SUFFIX, ProofStore

logger = logging.getLogger(__name__)

STATUS_PENDING = 'pending'
STATUS_CONFIRMED = 'confirmed'
STATUS_FAILED = 'failed'

OTS_VERIFY_URL = 'https://opentimestamps.org/'


class CalendarResult:
    status = STATUS_PENDING

    def __init__(self, proof: envelope.CalendarProof):
        self.envelope = proof

    def links(self) -> List[str]:
        return [OTS_VERIFY_URL] + list(self.envelope.servers)


class ChainResult:
    status = STATUS_CONFIRMED

    def __init__(self, proof: envelope.ChainAnchorProof, network: ChainNetwork):
        self.envelope = proof
        self.network = network

    def links(self) -> List[str]:
        return chain.explorer_links(self.network, self.envelope.block_number)


class LocalResult:
    status = STATUS_FAILED

    def __init__(self, proof: envelope.LocalProof):
        self.envelope = proof

    def links(self) -> List[str]:
        return []


class AnchorOutcome:
    def __init__(self, commitment: Commitment, envelope_obj, verification_status: str, links: List[str],
                 storage_key: Optional[str] = None, stored: bool = False, store_error: Optional[str] = None):
        self.commitment = commitment
        self.envelope = envelope_obj
        self.verification_status = verification_status
        self.links = links
        self.storage_key = storage_key
        self.stored = stored
        self.store_error = store_error

    @property
    def envelope_bytes(self) -> bytes:
        return envelope.encode(self.envelope)

    def to_dict(self) -> dict:
        return {
            'commitment': self.commitment.hex,
            'verification_status': self.verification_status,
            'links': self.links,
            'storage_key': self.storage_key,
            'stored': self.stored,
            'store_error': self.store_error,
            'envelope': self.envelope.to_dict(),
        }


class Anchorer:
    def __init__(self, config: Optional[AnchorConfig] = None, calendars: Optional[List[CalendarEndpoint]] = None,
                 oracles: Optional[List[ChainOracle]] = None, store: Optional[ProofStore] = None):
        self.config = config or load_anchor_config()
        if calendars is None:
            calendars = endpoints_from_urls(self.config.calendar_urls, timeout=self.config.calendar_timeout)
        if oracles is None:
            oracles = chain.oracles_from_networks(self.config.networks, timeout=self.config.rpc_timeout,
                                                  retries=self.config.rpc_retries)
        self.calendar_client = CalendarClient(calendars, timeout=self.config.calendar_timeout)
        self.oracles = list(oracles)
        self.store = store or ProofStore(self.config.anchor_dir)

    async def _try_calendar(self, commitment: Commitment) -> Optional[CalendarResult]:
        try:
            submissions = await self.calendar_client.submit_all(commitment)
        except CalendarAttestationUnavailable as e:
            logger.info('Calendar tier unavailable for %s: %s', commitment.hex, e)
            return None
        proof = envelope.CalendarProof(
            commitment=commitment.raw,
            servers=[s.server for s in submissions],
            created_at=int(time.time() * 1000),
            responses={s.server: s.response for s in submissions},
        )
        return CalendarResult(proof)

    async def _try_chain(self, commitment: Commitment) -> Optional[ChainResult]:
        try:
            proof, network = await asyncio.to_thread(chain.anchor_to_chain, commitment, self.oracles,
                                                     self.config.networks)
        except ChainRpcUnavailable as e:
            logger.info('Chain tier unavailable for %s: %s', commitment.hex, e)
            return None
        return ChainResult(proof, network)

    async def _run_tiers(self, commitment: Commitment):
        for tier in (self._try_calendar, self._try_chain):
            try:
                result = await tier(commitment)
            except Exception:
                logger.exception('Unexpected error in %s for %s', tier.__name__, commitment.hex)
                result = None
            if result is not None and self._encode(result):
                return result
        logger.warning('All external anchors failed for %s, using local timestamp', commitment.hex)
        result = LocalResult(chain.local_timestamp(commitment))
        self._encode(result)
        return result

    def _encode(self, result) -> bool:
        try:
            result.data = envelope.encode(result.envelope)
        except (struct.error, ValueError) as e:
            logger.warning('Discarding %s envelope that cannot be encoded: %s',
                           envelope.KIND_NAMES[result.envelope.kind], e)
            return False
        return True

    def _persist(self, commitment: Commitment, result):
        env = result.envelope
        key = self.store.key_for(commitment.hex, env.kind)
        try:
            self.store.write(key, result.data)
        except ProofStoreWriteFailed as e:
            logger.warning('Could not persist proof for %s: %s', commitment.hex, e)
            return key, False, str(e)
        if isinstance(result, ChainResult):
            try:
                self.store.write_json(f'{commitment.hex}.{JSON_SUFFIX}', env.to_dict(), overwrite=True)
            except ProofStoreWriteFailed as e:
                # envelope is already stored; a missing mirror is tolerated
                logger.warning('Could not write JSON mirror for %s: %s', commitment.hex, e)
        return key, True, None

    async def anchor(self, content_hash) -> AnchorOutcome:
        commitment = normalize_commitment(content_hash)
        result = await self._run_tiers(commitment)
        key, stored, store_error = await asyncio.to_thread(self._persist, commitment, result)
        logger.info('Anchored %s via %s tier (status=%s, stored=%s)', commitment.hex,
                    envelope.KIND_NAMES[result.envelope.kind], result.status, stored)
        return AnchorOutcome(commitment, result.envelope, result.status, result.links(),
                             storage_key=key, stored=stored, store_error=store_error)

    def anchor_sync(self, content_hash) -> AnchorOutcome:
        return asyncio.run(self.anchor(content_hash))


def anchor(content_hash, config: Optional[AnchorConfig] = None) -> AnchorOutcome:
    """Anchor a content hash with the configured calendars, chains and store."""
    return Anchorer(config).anchor_sync(content_hash)
