import sys, os
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))
import pytest
from proofstamp import envelope
from proofstamp.errors import UnknownProofFormat
from fakes import BLOCK_HASH, COMMITMENT_HEX, PARENT_HASH

RAW = bytes.fromhex(COMMITMENT_HEX)


def _calendar():
    return envelope.CalendarProof(RAW, ['https://a', 'https://b'], 1700000000123,
                                  {'https://a': b'\x01\x02', 'https://b': b''})


def _chain():
    return envelope.ChainAnchorProof(RAW, 19000000, BLOCK_HASH, PARENT_HASH, 1700000000,
                                     'ethereum', 'https://etherscan.io/block/19000000')


def test_header_carries_tag_and_version():
    data = envelope.encode(_calendar())
    assert data.startswith(envelope.MAGIC)
    assert data[4] == envelope.VERSION
    assert data[5] == envelope.KIND_CALENDAR
    assert data[7:39] == RAW
    assert envelope.peek_kind(envelope.encode(_chain())) == envelope.KIND_CHAIN


def test_calendar_variant_survives_serialization():
    env = envelope.decode(envelope.encode(_calendar()))
    assert isinstance(env, envelope.CalendarProof)
    assert env.commitment == RAW
    assert env.servers == ['https://a', 'https://b']
    assert env.responses['https://a'] == b'\x01\x02'
    assert env.created_at == 1700000000123
    assert env.pending_attestation is True


def test_chain_variant_survives_serialization():
    env = envelope.decode(envelope.encode(_chain()))
    assert isinstance(env, envelope.ChainAnchorProof)
    assert env.block_number == 19000000
    assert env.block_hash == BLOCK_HASH
    assert env.parent_hash == PARENT_HASH
    assert env.block_timestamp == 1700000000
    assert env.chain == 'ethereum'
    assert env.verification_url.endswith('/19000000')
    assert env.pending_attestation is False


def test_local_variant():
    env = envelope.decode(envelope.encode(envelope.LocalProof(RAW, 1700000000999)))
    assert isinstance(env, envelope.LocalProof)
    assert env.anchor_type == 'local'
    assert env.to_dict()['wall_clock'] == 1700000000999


@pytest.mark.parametrize('data', [
    b'',
    b'{"blockNumber": 1}',
    envelope.MAGIC + bytes([envelope.VERSION, 0x7f, 0]),
    envelope.MAGIC + bytes([99, envelope.KIND_LOCAL, 0]) + b'\x00' * 8,
])
def test_unrecognized_bytes_raise(data):
    with pytest.raises(UnknownProofFormat):
        envelope.decode(data)


def test_truncated_and_padded_envelopes_raise():
    data = envelope.encode(_chain())
    with pytest.raises(UnknownProofFormat):
        envelope.decode(data[:-3])
    with pytest.raises(UnknownProofFormat):
        envelope.decode(data + b'\x00')


def test_json_projection():
    d = _chain().to_dict()
    assert d['kind'] == 'chain' and d['commitment'] == COMMITMENT_HEX
    assert _calendar().to_dict()['response_sizes'] == {'https://a': 2, 'https://b': 0}
