"""Calendar attestation client.

Submits a commitment to every configured timestamp calendar at once and keeps
whatever comes back. One dead or slow calendar never blocks the others: each
submission runs on a worker thread of a pool owned by the client, with its own
timeout, and the results are gathered with exceptions captured. The pool is
shut down without waiting, so a hung calendar cannot hold up `asyncio.run`.
"""
import asyncio
import logging
from concurrent.futures import ThreadPoolExecutor
from typing import List, Optional

import requests

from . import http_client
from .errors import CalendarAttestationUnavailable, CalendarSubmissionFailed
from .normalize import Commitment

logger = logging.getLogger(__name__)

OTS_ACCEPT = 'application/vnd.opentimestamps.v1'


class CalendarEndpoint:
    """Narrow interface to one calendar server."""

    identity = ''

    def submit(self, raw: bytes) -> bytes:
        raise NotImplementedError()

    def fetch_timestamp(self, raw: bytes) -> Optional[bytes]:
        """Return an upgraded timestamp for `raw`, or None while still pending."""
        raise NotImplementedError()


class HttpCalendarEndpoint(CalendarEndpoint):
    def __init__(self, url: str, timeout: float = 5.0, retries: int = 1):
        self.url = url.rstrip('/')
        self.identity = self.url
        self.timeout = timeout
        self.retries = retries

    def submit(self, raw: bytes) -> bytes:
        headers = {'Content-Type': 'application/octet-stream', 'Accept': OTS_ACCEPT}
        try:
            resp = http_client.post(self.url + '/digest', data=raw, headers=headers,
                                    retries=self.retries, timeout=self.timeout)
        except requests.RequestException as e:
            raise CalendarSubmissionFailed(self.identity, str(e)) from e
        if not 200 <= resp.status_code < 300:
            raise CalendarSubmissionFailed(self.identity, f'responded with {resp.status_code}')
        return resp.content

    def fetch_timestamp(self, raw: bytes) -> Optional[bytes]:
        try:
            resp = http_client.get(f'{self.url}/timestamp/{raw.hex()}', headers={'Accept': OTS_ACCEPT},
                                   retries=self.retries, timeout=self.timeout)
        except requests.RequestException as e:
            raise CalendarSubmissionFailed(self.identity, str(e)) from e
        if resp.status_code == 404:
            return None
        if resp.status_code != 200:
            raise CalendarSubmissionFailed(self.identity, f'responded with {resp.status_code}')
        return resp.content


class CalendarSubmissionResult:
    def __init__(self, server: str, response: bytes = b'', success: bool = True, error: Optional[str] = None):
        self.server = server
        self.response = response
        self.success = success
        self.error = error

    def __repr__(self):
        state = 'ok' if self.success else f'failed: {self.error}'
        return f'CalendarSubmissionResult({self.server}, {state})'


def endpoints_from_urls(urls: List[str], timeout: float = 5.0) -> List[CalendarEndpoint]:
    return [HttpCalendarEndpoint(u, timeout=timeout) for u in urls]


class CalendarClient:
    def __init__(self, endpoints: List[CalendarEndpoint], timeout: float = 5.0):
        self.endpoints = list(endpoints)
        self.timeout = timeout

    async def _submit_one(self, executor: ThreadPoolExecutor, endpoint: CalendarEndpoint,
                          raw: bytes) -> CalendarSubmissionResult:
        # The ceiling covers endpoints that ignore their own timeout; the worker
        # thread is abandoned, not cancelled.
        loop = asyncio.get_running_loop()
        body = await asyncio.wait_for(loop.run_in_executor(executor, endpoint.submit, raw),
                                      timeout=self.timeout + 1)
        return CalendarSubmissionResult(endpoint.identity, body or b'')

    async def submit_all_results(self, commitment: Commitment) -> List[CalendarSubmissionResult]:
        """Submit to every endpoint and return one result per endpoint, in order."""
        executor = ThreadPoolExecutor(max_workers=max(1, len(self.endpoints)), thread_name_prefix='calendar')
        try:
            tasks = [self._submit_one(executor, ep, commitment.raw) for ep in self.endpoints]
            settled = await asyncio.gather(*tasks, return_exceptions=True)
        finally:
            executor.shutdown(wait=False)
        results = []
        for ep, res in zip(self.endpoints, settled):
            if isinstance(res, CalendarSubmissionResult):
                results.append(res)
                continue
            reason = str(res) or type(res).__name__
            logger.warning('Calendar %s failed for %s: %s', ep.identity, commitment.hex, reason)
            results.append(CalendarSubmissionResult(ep.identity, success=False, error=reason))
        return results

    async def submit_all(self, commitment: Commitment) -> List[CalendarSubmissionResult]:
        """Return the successful submissions; raise CalendarAttestationUnavailable if there are none."""
        if not self.endpoints:
            raise CalendarAttestationUnavailable('no calendar endpoints configured')
        results = await self.submit_all_results(commitment)
        ok = [r for r in results if r.success]
        logger.info('Calendar submissions for %s: %s/%s succeeded', commitment.hex, len(ok), len(results))
        if not ok:
            raise CalendarAttestationUnavailable(f'all {len(results)} calendar servers failed')
        return ok
