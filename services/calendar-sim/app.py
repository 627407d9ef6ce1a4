"""Local stand-in for a timestamp calendar and an Ethereum JSON-RPC node.

Calendar side speaks the same wire protocol as the public calendars:
POST /digest with the raw commitment, GET /timestamp/<hex> for upgrades.
Upgrades appear UPGRADE_AFTER seconds after submission (or immediately after
POST /admin/upgrade/<hex>). The /rpc endpoint serves eth_getBlockByNumber
from a synthetic chain that grows one block every BLOCK_TIME seconds.
"""
from flask import Flask, request, jsonify, abort
from pathlib import Path
import hashlib
import os
import time

app = Flask(__name__)
DATA_DIR = Path(os.environ.get('CALENDAR_DATA_DIR', '/data/calendar'))
UPGRADE_AFTER = int(os.environ.get('UPGRADE_AFTER', '600'))
GENESIS_TIME = int(os.environ.get('GENESIS_TIME', '1700000000'))
GENESIS_NUMBER = int(os.environ.get('GENESIS_NUMBER', '19000000'))
BLOCK_TIME = int(os.environ.get('BLOCK_TIME', '12'))
PENDING_TAG = b'\x83\xdf\xe3\x0d\x2e\xf9\x0c\x8e'


def _slot(hex_digest: str) -> Path:
    DATA_DIR.mkdir(parents=True, exist_ok=True)
    return DATA_DIR / f'{hex_digest}.pending'


@app.route('/digest', methods=['POST'])
def digest():
    raw = request.get_data()
    if not raw or len(raw) > 64:
        return jsonify({'error': 'digest must be 1-64 bytes'}), 400
    h = raw.hex()
    slot = _slot(h)
    if not slot.exists():
        slot.write_text(str(int(time.time())))
    # opaque body: pending attestation tag + calendar url + commitment
    url = request.host_url.rstrip('/').encode('utf-8')
    body = PENDING_TAG + bytes([len(url)]) + url + raw
    return body, 200, {'Content-Type': 'application/vnd.opentimestamps.v1'}


@app.route('/timestamp/<hex_digest>')
def timestamp(hex_digest):
    slot = _slot(hex_digest.lower())
    if not slot.exists():
        return 'not found', 404
    submitted = int(slot.read_text().split()[0])
    upgraded = slot.read_text().endswith('upgraded')
    if not upgraded and time.time() - submitted < UPGRADE_AFTER:
        return 'pending confirmation', 404
    body = b'\x05\x88\x96\x0d\x73\xd7\x19\x01' + bytes.fromhex(hex_digest)
    return body, 200, {'Content-Type': 'application/vnd.opentimestamps.v1'}


@app.route('/admin/upgrade/<hex_digest>', methods=['POST'])
def force_upgrade(hex_digest):
    slot = _slot(hex_digest.lower())
    if not slot.exists():
        return jsonify({'error': 'not found'}), 404
    slot.write_text(slot.read_text().split()[0] + ' upgraded')
    return jsonify({'status': 'upgraded'})


def _block(number: int) -> dict:
    def h(n):
        return '0x' + hashlib.sha256(f'calendar-sim-block-{n}'.encode('utf-8')).hexdigest()
    return {
        'number': hex(number),
        'hash': h(number),
        'parentHash': h(number - 1),
        'timestamp': hex(GENESIS_TIME + (number - GENESIS_NUMBER) * BLOCK_TIME),
    }


def _head() -> int:
    return GENESIS_NUMBER + max(0, int(time.time()) - GENESIS_TIME) // BLOCK_TIME


@app.route('/rpc', methods=['POST'])
def rpc():
    data = request.get_json(force=True, silent=True)
    if not isinstance(data, dict):
        abort(400)
    rid = data.get('id')
    if data.get('method') != 'eth_getBlockByNumber':
        return jsonify({'jsonrpc': '2.0', 'id': rid, 'error': {'code': -32601, 'message': 'method not found'}})
    params = data.get('params') or ['latest']
    tag = params[0]
    head = _head()
    if tag == 'latest':
        number = head
    else:
        try:
            number = int(tag, 16)
        except (TypeError, ValueError):
            return jsonify({'jsonrpc': '2.0', 'id': rid, 'error': {'code': -32602, 'message': 'invalid params'}})
    result = _block(number) if GENESIS_NUMBER <= number <= head else None
    return jsonify({'jsonrpc': '2.0', 'id': rid, 'result': result})


if __name__ == '__main__':
    app.run(host='0.0.0.0', port=int(os.environ.get('PORT', 16000)))
