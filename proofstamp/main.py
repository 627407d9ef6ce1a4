import argparse
import json
import logging
import os
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path

from . import envelope
from .anchor import Anchorer
from .config import load_anchor_config, set_config_value
from .errors import InvalidCommitmentFormat, UnknownProofFormat
from .store import ProofStore
from .verify import Verifier


def setup_logging():
    # configure root logger with rotating file handler
    logdir = Path(os.environ.get('PROOFSTAMP_LOG_DIR', 'logs'))
    logdir.mkdir(parents=True, exist_ok=True)
    handler = RotatingFileHandler(str(logdir / 'proofstamp.log'), maxBytes=5_000_000, backupCount=5)
    handler.setFormatter(logging.Formatter('%(asctime)s %(levelname)s %(name)s %(message)s'))
    root = logging.getLogger()
    root.setLevel(logging.INFO)
    root.addHandler(handler)


def _read_proof(ref: str, store: ProofStore) -> bytes:
    p = Path(ref)
    if p.exists():
        return p.read_bytes()
    return store.read(ref)


def main(argv=None):
    parser = argparse.ArgumentParser(prog='proofstamp')
    sub = parser.add_subparsers(dest='cmd')
    ap = sub.add_parser('anchor')
    ap.add_argument('hash')
    vp = sub.add_parser('verify')
    vp.add_argument('proof', help='store key or path to an envelope file')
    sp = sub.add_parser('show')
    sp.add_argument('proof')
    wp = sub.add_parser('upgrade-worker')
    wp.add_argument('--once', action='store_true')
    cp = sub.add_parser('config-set')
    cp.add_argument('key')
    cp.add_argument('value')
    args = parser.parse_args(argv)

    if args.cmd == 'config-set':
        try:
            value = json.loads(args.value)
        except ValueError:
            value = args.value
        set_config_value(args.key, value)
        print('set', args.key, '=', value)
        return 0

    config = load_anchor_config()
    store = ProofStore(config.anchor_dir)
    if args.cmd == 'anchor':
        try:
            outcome = Anchorer(config, store=store).anchor_sync(args.hash)
        except InvalidCommitmentFormat as e:
            print('invalid hash:', e, file=sys.stderr)
            return 2
        print('status', outcome.verification_status)
        print('key', outcome.storage_key, '' if outcome.stored else '(not stored: %s)' % outcome.store_error)
        for link in outcome.links:
            print('link', link)
        return 0
    if args.cmd == 'verify':
        try:
            data = _read_proof(args.proof, store)
        except (OSError, ValueError) as e:
            print('cannot read proof:', e, file=sys.stderr)
            return 1
        result = Verifier(config).verify(data)
        print(json.dumps(result.to_dict(), indent=2))
        if result.pending:
            return 3
        return 0 if result.is_valid else 1
    if args.cmd == 'show':
        try:
            env = envelope.decode(_read_proof(args.proof, store))
        except (OSError, ValueError, UnknownProofFormat) as e:
            print('cannot read proof:', e, file=sys.stderr)
            return 1
        print(json.dumps(env.to_dict(), indent=2))
        return 0
    if args.cmd == 'upgrade-worker':
        from .workers.proof_upgrader import run_loop, run_once
        # run once then keep polling on the configured interval
        run_once(config=config, store=store)
        if args.once:
            return 0
        try:
            run_loop(config=config)
        except (KeyboardInterrupt, SystemExit):
            print('Upgrade worker shutting down')
        return 0
    parser.print_help()
    return 1


def cli():
    setup_logging()
    sys.exit(main())


if __name__ == '__main__':
    cli()
