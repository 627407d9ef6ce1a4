import importlib.util
from pathlib import Path

APP_PATH = Path(__file__).resolve().parents[1] / 'services' / 'calendar-sim' / 'app.py'


def _load(monkeypatch, tmp_path):
    monkeypatch.setenv('CALENDAR_DATA_DIR', str(tmp_path))
    spec = importlib.util.spec_from_file_location('calendar_sim_app', APP_PATH)
    mod = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(mod)
    return mod


def test_digest_then_upgrade(monkeypatch, tmp_path):
    sim = _load(monkeypatch, tmp_path)
    client = sim.app.test_client()
    digest = bytes.fromhex('deadbeef' * 8)
    r = client.post('/digest', data=digest, content_type='application/octet-stream')
    assert r.status_code == 200
    assert r.data.endswith(digest)
    assert client.get('/timestamp/' + digest.hex()).status_code == 404
    assert client.post('/admin/upgrade/' + digest.hex()).status_code == 200
    r = client.get('/timestamp/' + digest.hex())
    assert r.status_code == 200 and r.data.endswith(digest)


def test_empty_digest_rejected(monkeypatch, tmp_path):
    sim = _load(monkeypatch, tmp_path)
    assert sim.app.test_client().post('/digest', data=b'').status_code == 400


def test_rpc_serves_linked_blocks(monkeypatch, tmp_path):
    sim = _load(monkeypatch, tmp_path)
    client = sim.app.test_client()
    latest = client.post('/rpc', json={'jsonrpc': '2.0', 'id': 1, 'method': 'eth_getBlockByNumber',
                                       'params': ['latest', False]}).get_json()['result']
    n = int(latest['number'], 16)
    assert n >= sim.GENESIS_NUMBER
    prev = client.post('/rpc', json={'jsonrpc': '2.0', 'id': 2, 'method': 'eth_getBlockByNumber',
                                     'params': [hex(n - 1), False]}).get_json()['result']
    assert prev['hash'] == latest['parentHash']
    future = client.post('/rpc', json={'jsonrpc': '2.0', 'id': 3, 'method': 'eth_getBlockByNumber',
                                       'params': [hex(n + 1000), False]}).get_json()
    assert future['result'] is None
    err = client.post('/rpc', json={'jsonrpc': '2.0', 'id': 4, 'method': 'eth_chainId', 'params': []}).get_json()
    assert err['error']['code'] == -32601
