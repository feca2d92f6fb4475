from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any, Dict, Optional

import requests
from requests.exceptions import ConnectionError, ReadTimeout

log = logging.getLogger(__name__)

# Overpass answers with these while it is overloaded or rate limiting
RETRY_STATUS = frozenset({429, 502, 503, 504})


@dataclass
class HTTPClient:
    """requests session that retries busy servers and dropped connections.

    Form-encoded POST is the only verb: Overpass takes its query as the
    ``data`` form field.
    """

    user_agent: str
    timeout_s: int = 30
    tries: int = 3
    backoff_s: float = 0.8

    def __post_init__(self) -> None:
        self.s = requests.Session()
        self.s.headers.update({"User-Agent": self.user_agent, "Accept": "application/json"})

    def _sleep_before_retry(self, attempt: int) -> None:
        time.sleep(self.backoff_s * (2**attempt))

    def _post(self, url: str, data: Any, timeout_s: Optional[int]) -> requests.Response:
        timeout = timeout_s if timeout_s is not None else self.timeout_s
        last_err: Optional[Exception] = None
        for attempt in range(self.tries):
            final = attempt == self.tries - 1
            try:
                r = self.s.post(url, data=data, timeout=timeout)
            except (ReadTimeout, ConnectionError) as e:
                last_err = e
                log.debug("POST %s attempt %d failed: %s", url, attempt + 1, e)
                if not final:
                    self._sleep_before_retry(attempt)
                continue

            if r.status_code in RETRY_STATUS and not final:
                log.info("POST %s returned %d, retrying", url, r.status_code)
                self._sleep_before_retry(attempt)
                continue
            r.raise_for_status()
            return r
        raise last_err if last_err else RuntimeError(f"POST {url} failed after {self.tries} tries")

    def post_json(self, url: str, data: Any, timeout_s: Optional[int] = None) -> Dict[str, Any]:
        return self._post(url, data, timeout_s).json()
