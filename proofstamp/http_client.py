import requests
import time
import logging
from typing import Optional

logger = logging.getLogger(__name__)


def request(method: str, url: str, retries: int = 1, timeout: float = 10, backoff: float = 1.0, **kwargs) -> requests.Response:
    """Send a request with bounded retries on transport errors.

    Only connection-level failures are retried; any HTTP response, whatever
    its status, is returned to the caller. Raises the last
    requests.RequestException once all attempts are used.
    """
    last_exc = None
    for attempt in range(max(1, retries)):
        try:
            return requests.request(method, url, timeout=timeout, **kwargs)
        except requests.RequestException as e:
            last_exc = e
            logger.warning('%s %s failed (attempt %s): %s', method, url, attempt + 1, e)
            if attempt + 1 < retries and backoff:
                time.sleep(backoff * (attempt + 1))
    logger.error('%s %s failed after %s attempts: %s', method, url, retries, last_exc)
    raise last_exc


def get(url: str, headers: Optional[dict] = None, retries: int = 1, timeout: float = 10) -> requests.Response:
    return request('GET', url, retries=retries, timeout=timeout, headers=headers or {})


def post(url: str, data: Optional[bytes] = None, json_body: Optional[dict] = None, headers: Optional[dict] = None,
         retries: int = 1, timeout: float = 10) -> requests.Response:
    kwargs = {'headers': headers or {}}
    if json_body is not None:
        kwargs['json'] = json_body
    else:
        kwargs['data'] = data
    return request('POST', url, retries=retries, timeout=timeout, **kwargs)
