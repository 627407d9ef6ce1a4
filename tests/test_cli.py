import sys, os
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))
import json
from proofstamp import envelope, main
from proofstamp.anchor import Anchorer
from proofstamp.config import AnchorConfig
from proofstamp.verify import Verifier
from fakes import COMMITMENT_HEX, FakeCalendar, FakeOracle, make_block


def _patch(monkeypatch, tmp_path, calendars, oracles):
    cfg = AnchorConfig(calendar_urls=[c.identity for c in calendars], calendar_timeout=1, anchor_dir=tmp_path)
    monkeypatch.setattr(main, 'load_anchor_config', lambda: cfg)
    real_anchorer, real_verifier = Anchorer, Verifier
    monkeypatch.setattr(main, 'Anchorer', lambda config, store=None: real_anchorer(config, calendars=calendars, oracles=oracles, store=store))
    monkeypatch.setattr(main, 'Verifier', lambda config: real_verifier(config, oracles=oracles, calendars=calendars))


def test_anchor_then_verify_chain_proof(monkeypatch, tmp_path, capsys):
    _patch(monkeypatch, tmp_path, [FakeCalendar('https://a', fail=True)], [FakeOracle(latest=make_block(), blocks={19000000: make_block()})])
    assert main.main(['anchor', COMMITMENT_HEX]) == 0
    out = capsys.readouterr().out
    assert 'status confirmed' in out
    assert main.main(['verify', COMMITMENT_HEX + '.chain.proof']) == 0
    result = json.loads(capsys.readouterr().out)
    assert result['is_valid'] is True
    assert main.main(['show', str(tmp_path / (COMMITMENT_HEX + '.chain.proof'))]) == 0
    assert json.loads(capsys.readouterr().out)['block_number'] == 19000000


def test_pending_verify_exit_code(monkeypatch, tmp_path, capsys):
    _patch(monkeypatch, tmp_path, [FakeCalendar('https://a')], [])
    assert main.main(['anchor', COMMITMENT_HEX]) == 0
    assert main.main(['verify', COMMITMENT_HEX + '.calendar.ots']) == 3


def test_invalid_hash_and_missing_proof(monkeypatch, tmp_path, capsys):
    _patch(monkeypatch, tmp_path, [], [])
    assert main.main(['anchor', 'xyz']) == 2
    assert main.main(['verify', 'missing.chain.proof']) == 1
    (tmp_path / 'junk.proof').write_bytes(b'junk')
    assert main.main(['show', 'junk.proof']) == 1


def test_config_set(monkeypatch, tmp_path, capsys):
    from proofstamp import config
    monkeypatch.setattr(config, 'CFG_PATH', tmp_path / 'cfg.json')
    assert main.main(['config-set', 'calendar_timeout', '3']) == 0
    assert json.loads((tmp_path / 'cfg.json').read_text())['calendar_timeout'] == 3
