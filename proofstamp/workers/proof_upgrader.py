"""Calendar proof upgrade worker.

Scans the proof store for calendar envelopes and asks each contributing
calendar whether an upgraded timestamp is available yet. Upgraded bodies are
saved next to the envelope; the envelope itself is never rewritten.
"""
import logging
from typing import List, Optional

from apscheduler.schedulers.blocking import BlockingScheduler

from .. import envelope
from ..calendars import CalendarEndpoint, endpoints_from_urls
from ..config import AnchorConfig, load_anchor_config
from ..errors import CalendarSubmissionFailed, ProofStoreWriteFailed, UnknownProofFormat
from ..store import SUFFIXES, ProofStore

logger = logging.getLogger(__name__)


def _endpoint(server: str, known: dict, config: AnchorConfig) -> CalendarEndpoint:
    if server not in known:
        known[server] = endpoints_from_urls([server], timeout=config.calendar_timeout)[0]
    return known[server]


def run_once(config: Optional[AnchorConfig] = None, store: Optional[ProofStore] = None,
             calendars: Optional[List[CalendarEndpoint]] = None) -> dict:
    config = config or load_anchor_config()
    store = store or ProofStore(config.anchor_dir)
    known = {c.identity: c for c in (calendars or [])}
    summary = {'checked': 0, 'upgraded': 0, 'errors': 0}
    for key in store.keys(SUFFIXES[envelope.KIND_CALENDAR]):
        summary['checked'] += 1
        try:
            env = envelope.decode(store.read(key))
        except (OSError, UnknownProofFormat) as e:
            summary['errors'] += 1
            logger.exception('Cannot read calendar proof %s: %s', key, e)
            continue
        commitment_hex = env.commitment.hex()
        for server in env.servers:
            try:
                body = _endpoint(server, known, config).fetch_timestamp(env.commitment)
            except CalendarSubmissionFailed as e:
                summary['errors'] += 1
                logger.warning('Upgrade check for %s at %s failed: %s', commitment_hex, server, e)
                continue
            if not body:
                logger.debug('Calendar %s has no upgrade for %s yet', server, commitment_hex)
                continue
            try:
                store.write_upgrade(commitment_hex, server, body)
            except ProofStoreWriteFailed as e:
                summary['errors'] += 1
                logger.exception('Could not save upgrade for %s from %s: %s', commitment_hex, server, e)
                continue
            summary['upgraded'] += 1
            logger.info('Saved upgraded timestamp for %s from %s', commitment_hex, server)
    logger.info('Upgrade pass: %s', summary)
    return summary


def run_loop(config: Optional[AnchorConfig] = None, interval_seconds: Optional[int] = None):
    config = config or load_anchor_config()
    sched = BlockingScheduler()
    sched.add_job(run_once, 'interval', seconds=interval_seconds or config.upgrade_interval,
                  kwargs={'config': config})
    sched.start()
