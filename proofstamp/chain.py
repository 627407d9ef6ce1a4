"""Chain anchoring through a JSON-RPC endpoint.

No transaction is sent. The commitment is bound to the identity of the latest
mined block (number, hash, parent hash, timestamp), which anyone can check
later against a public explorer or another node.
"""
import logging
import time
from typing import List, Optional

import requests

from . import http_client
from .config import ChainNetwork
from .envelope import ChainAnchorProof, LocalProof
from .errors import ChainRpcUnavailable
from .normalize import Commitment

logger = logging.getLogger(__name__)

# Limits of the chain envelope fields (u64 numbers, u8 length-prefixed hashes).
U64_LIMIT = 2 ** 64
MAX_HASH_BYTES = 255


class Block:
    def __init__(self, number: int, hash: str, parent_hash: str, timestamp: int):
        self.number = number
        self.hash = hash
        self.parent_hash = parent_hash
        self.timestamp = timestamp

    @classmethod
    def from_rpc(cls, result: dict) -> 'Block':
        try:
            block = cls(
                number=int(result['number'], 16),
                hash=result['hash'].lower(),
                parent_hash=result['parentHash'].lower(),
                timestamp=int(result['timestamp'], 16),
            )
            for value in (block.number, block.timestamp):
                if not 0 <= value < U64_LIMIT:
                    raise ValueError(f'{value} does not fit in 64 bits')
            for value in (block.hash, block.parent_hash):
                if len(bytes.fromhex(value[2:])) > MAX_HASH_BYTES:
                    raise ValueError(f'hash {value[:18]}... is too long')
            return block
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            raise ChainRpcUnavailable(f'malformed block in RPC response: {e}') from e

    def __repr__(self):
        return f'Block({self.number}, {self.hash})'


class ChainOracle:
    """Narrow read-only view of a chain."""

    name = ''

    def get_latest_block(self) -> Optional[Block]:
        raise NotImplementedError()

    def get_block_by_number(self, number: int) -> Optional[Block]:
        raise NotImplementedError()


class JsonRpcChainOracle(ChainOracle):
    def __init__(self, network: ChainNetwork, timeout: float = 10.0, retries: int = 2):
        self.network = network
        self.name = network.name
        self.timeout = timeout
        self.retries = retries
        self._next_id = 1

    def _call(self, method: str, params: list):
        payload = {'jsonrpc': '2.0', 'id': self._next_id, 'method': method, 'params': params}
        self._next_id += 1
        try:
            resp = http_client.post(self.network.rpc_url, json_body=payload,
                                    headers={'Content-Type': 'application/json'},
                                    retries=self.retries, timeout=self.timeout)
        except requests.RequestException as e:
            raise ChainRpcUnavailable(f'{self.name}: {e}') from e
        if resp.status_code != 200:
            raise ChainRpcUnavailable(f'{self.name}: RPC responded with {resp.status_code}')
        try:
            data = resp.json()
        except ValueError as e:
            raise ChainRpcUnavailable(f'{self.name}: invalid JSON from RPC') from e
        if not isinstance(data, dict):
            raise ChainRpcUnavailable(f'{self.name}: unexpected RPC payload')
        if data.get('error'):
            raise ChainRpcUnavailable(f'{self.name}: {data["error"]}')
        return data.get('result')

    def _get_block(self, tag: str) -> Optional[Block]:
        result = self._call('eth_getBlockByNumber', [tag, False])
        if not result:
            return None
        return Block.from_rpc(result)

    def get_latest_block(self) -> Optional[Block]:
        return self._get_block('latest')

    def get_block_by_number(self, number: int) -> Optional[Block]:
        return self._get_block(hex(number))


def oracles_from_networks(networks: List[ChainNetwork], timeout: float = 10.0, retries: int = 2) -> List[ChainOracle]:
    return [JsonRpcChainOracle(n, timeout=timeout, retries=retries) for n in networks]


def explorer_links(network: ChainNetwork, block_number: int) -> List[str]:
    links = [network.block_url(block_number)]
    for base in network.extra_explorers:
        links.append(f'{base}/block/{block_number}')
    return links


def build_chain_proof(commitment: Commitment, block: Block, network: ChainNetwork) -> ChainAnchorProof:
    return ChainAnchorProof(
        commitment=commitment.raw,
        block_number=block.number,
        block_hash=block.hash,
        parent_hash=block.parent_hash,
        block_timestamp=block.timestamp,
        chain=network.name,
        verification_url=network.block_url(block.number),
    )


def anchor_to_chain(commitment: Commitment, oracles: List[ChainOracle], networks: List[ChainNetwork]):
    """Bind the commitment to the latest block of the first network that answers.

    Returns (ChainAnchorProof, ChainNetwork). Raises ChainRpcUnavailable when
    every oracle fails or returns no block.
    """
    by_name = {n.name: n for n in networks}
    errors = []
    for oracle in oracles:
        network = by_name.get(oracle.name)
        if network is None:
            logger.warning('No network settings for oracle %s, skipping', oracle.name)
            continue
        try:
            block = oracle.get_latest_block()
        except ChainRpcUnavailable as e:
            logger.warning('Chain anchor via %s failed: %s', oracle.name, e)
            errors.append(str(e))
            continue
        if block is None:
            logger.warning('Chain anchor via %s returned no block', oracle.name)
            errors.append(f'{oracle.name}: no block')
            continue
        logger.info('Anchored %s to %s block %s (%s)', commitment.hex, network.name, block.number, block.hash)
        return build_chain_proof(commitment, block, network), network
    raise ChainRpcUnavailable('; '.join(errors) or 'no chain oracles configured')


def local_timestamp(commitment: Commitment) -> LocalProof:
    return LocalProof(commitment.raw, int(time.time() * 1000))
