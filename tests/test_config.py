import sys, os
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))
from pathlib import Path
from proofstamp import config


def test_defaults_when_no_file(monkeypatch, tmp_path):
    monkeypatch.setattr(config, 'CFG_PATH', tmp_path / 'missing.json')
    for var in ('PROOFSTAMP_CALENDARS', 'PROOFSTAMP_CALENDAR_TIMEOUT', 'PROOFSTAMP_ANCHOR_DIR', 'PROOFSTAMP_RPC_URL'):
        monkeypatch.delenv(var, raising=False)
    cfg = config.load_anchor_config()
    assert cfg.calendar_urls == config.DEFAULT_CALENDARS
    assert [n.name for n in cfg.networks] == ['ethereum', 'polygon', 'arbitrum']
    assert cfg.network('polygon').chain_id == 137
    assert cfg.network('nope') is None
    assert cfg.anchor_dir == Path('anchors')


def test_file_and_env_are_merged(monkeypatch, tmp_path):
    monkeypatch.setattr(config, 'CFG_PATH', tmp_path / 'cfg.json')
    config.set_config_value('calendar_timeout', 2)
    config.set_config_value('anchor_dir', str(tmp_path / 'from-file'))
    monkeypatch.setenv('PROOFSTAMP_CALENDARS', 'https://a, https://b,')
    monkeypatch.setenv('PROOFSTAMP_RPC_URL', 'http://localhost:8545')
    monkeypatch.delenv('PROOFSTAMP_ANCHOR_DIR', raising=False)
    monkeypatch.delenv('PROOFSTAMP_CALENDAR_TIMEOUT', raising=False)
    cfg = config.load_anchor_config()
    assert cfg.calendar_urls == ['https://a', 'https://b']
    assert cfg.calendar_timeout == 2.0
    assert cfg.anchor_dir == tmp_path / 'from-file'
    assert cfg.networks[0].rpc_url == 'http://localhost:8545'
    # defaults are not mutated by the override
    assert config.DEFAULT_NETWORKS[0]['rpc_url'] == 'https://eth.llamarpc.com'


def test_corrupt_file_is_ignored(monkeypatch, tmp_path):
    p = tmp_path / 'cfg.json'
    p.write_text('{not json')
    monkeypatch.setattr(config, 'CFG_PATH', p)
    assert config.read_config() == {}


def test_network_block_url():
    net = config.ChainNetwork('polygon', 'https://polygon-rpc.com', 'https://polygonscan.com/')
    assert net.block_url(5) == 'https://polygonscan.com/block/5'
