import json
import os
from pathlib import Path
from typing import List, Optional

CFG_PATH = Path(os.environ.get('PROOFSTAMP_CONFIG', Path(__file__).resolve().parents[1] / 'proofstamp_config.json'))

DEFAULT_CALENDARS = [
    'https://alice.btc.calendar.opentimestamps.org',
    'https://bob.btc.calendar.opentimestamps.org',
    'https://finney.calendar.eternitywall.com',
]

DEFAULT_NETWORKS = [
    {
        'name': 'ethereum',
        'rpc_url': 'https://eth.llamarpc.com',
        'explorer_url': 'https://etherscan.io',
        'chain_id': 1,
        'extra_explorers': ['https://eth.blockscout.com'],
    },
    {
        'name': 'polygon',
        'rpc_url': 'https://polygon-rpc.com',
        'explorer_url': 'https://polygonscan.com',
        'chain_id': 137,
        'extra_explorers': ['https://polygon.blockscout.com'],
    },
    {
        'name': 'arbitrum',
        'rpc_url': 'https://arb1.arbitrum.io/rpc',
        'explorer_url': 'https://arbiscan.io',
        'chain_id': 42161,
        'extra_explorers': [],
    },
]


def read_config():
    if not CFG_PATH.exists():
        return {}
    try:
        return json.loads(CFG_PATH.read_text(encoding='utf-8'))
    except (OSError, ValueError):
        return {}


def write_config(d: dict):
    CFG_PATH.write_text(json.dumps(d, indent=2), encoding='utf-8')


def set_config_value(key: str, value):
    cfg = read_config()
    cfg[key] = value
    write_config(cfg)


class ChainNetwork:
    def __init__(self, name: str, rpc_url: str, explorer_url: str, chain_id: int = 0, extra_explorers: Optional[List[str]] = None):
        self.name = name
        self.rpc_url = rpc_url
        self.explorer_url = explorer_url.rstrip('/')
        self.chain_id = chain_id
        self.extra_explorers = [e.rstrip('/') for e in (extra_explorers or [])]

    @classmethod
    def from_dict(cls, d: dict) -> 'ChainNetwork':
        return cls(d['name'], d['rpc_url'], d.get('explorer_url', ''), int(d.get('chain_id', 0)), d.get('extra_explorers'))

    def block_url(self, block_number: int) -> str:
        return f'{self.explorer_url}/block/{block_number}'


class AnchorConfig:
    """Settings injected into the anchorer, verifier and upgrade worker."""

    def __init__(self, calendar_urls=None, calendar_timeout: float = 5.0, networks=None,
                 rpc_timeout: float = 10.0, rpc_retries: int = 2, anchor_dir='anchors',
                 upgrade_interval: int = 3600):
        self.calendar_urls = list(DEFAULT_CALENDARS if calendar_urls is None else calendar_urls)
        self.calendar_timeout = float(calendar_timeout)
        nets = DEFAULT_NETWORKS if networks is None else networks
        self.networks = [n if isinstance(n, ChainNetwork) else ChainNetwork.from_dict(n) for n in nets]
        self.rpc_timeout = float(rpc_timeout)
        self.rpc_retries = int(rpc_retries)
        self.anchor_dir = Path(anchor_dir)
        self.upgrade_interval = int(upgrade_interval)

    def network(self, name: str) -> Optional[ChainNetwork]:
        for n in self.networks:
            if n.name == name:
                return n
        return None


def load_anchor_config(overrides: Optional[dict] = None) -> AnchorConfig:
    """Merge defaults, the JSON config file and PROOFSTAMP_* environment variables."""
    cfg = read_config()
    if overrides:
        cfg.update(overrides)
    env = os.environ
    if env.get('PROOFSTAMP_CALENDARS'):
        cfg['calendar_urls'] = [u.strip() for u in env['PROOFSTAMP_CALENDARS'].split(',') if u.strip()]
    if env.get('PROOFSTAMP_CALENDAR_TIMEOUT'):
        cfg['calendar_timeout'] = float(env['PROOFSTAMP_CALENDAR_TIMEOUT'])
    if env.get('PROOFSTAMP_ANCHOR_DIR'):
        cfg['anchor_dir'] = env['PROOFSTAMP_ANCHOR_DIR']
    networks = [dict(n) for n in cfg.get('networks', DEFAULT_NETWORKS)]
    if env.get('PROOFSTAMP_RPC_URL') and networks:
        networks[0]['rpc_url'] = env['PROOFSTAMP_RPC_URL']
    return AnchorConfig(
        calendar_urls=cfg.get('calendar_urls'),
        calendar_timeout=cfg.get('calendar_timeout', 5.0),
        networks=networks,
        rpc_timeout=cfg.get('rpc_timeout', 10.0),
        rpc_retries=cfg.get('rpc_retries', 2),
        anchor_dir=cfg.get('anchor_dir', 'anchors'),
        upgrade_interval=cfg.get('upgrade_interval', 3600),
    )
