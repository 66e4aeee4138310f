"""
Server API calls: latest image and latest analysis result.

Both fetchers are blocking (called from the poll worker thread, never from
a presentation thread) and share one policy:
  - refresh before the attempt if the access token has expired
  - one refresh + retry on 401, then AuthFailure
  - 3 attempts, fixed 2s apart, for timeouts and other transient errors
  - decode failures and auth failures are never retried
"""

import time

import requests

from .constants import (
    API_TIMEOUT, FETCH_MAX_RETRIES, FETCH_RETRY_DELAY_SEC, IMAGE_PATH, RESULTS_PATH,
)
from .config import log
from . import codec
from .errors import (
    AuthFailure, DecodeFailure, FetchCancelled, RequestFailure, TimeoutExhausted,
)
from .models import ImageRecord, ResultRecord


class LatestFetcher:
    """GET one authenticated 'latest' endpoint and decode it into a record."""

    what = "Latest"
    path = ""

    def __init__(self, session, sleep=time.sleep, max_retries=FETCH_MAX_RETRIES,
                 retry_delay=FETCH_RETRY_DELAY_SEC, timeout=API_TIMEOUT):
        self._session = session
        self._sleep = sleep
        self._max_retries = max_retries
        self._retry_delay = retry_delay
        self._timeout = timeout

    def fetch_latest(self, is_cancelled=None):
        """Return a complete record or raise a typed failure."""
        for attempt in range(1, self._max_retries + 1):
            if attempt > 1 and is_cancelled is not None and is_cancelled():
                raise FetchCancelled(f"{self.what} fetch cancelled before attempt {attempt}")
            try:
                return self._attempt()
            except (AuthFailure, DecodeFailure):
                raise
            except requests.Timeout as e:
                if attempt >= self._max_retries:
                    log.error("%s request timed out %d times, giving up", self.what, attempt)
                    raise TimeoutExhausted(self.what, attempt) from e
                log.warning("%s request timed out (attempt %d/%d)",
                            self.what, attempt, self._max_retries)
            except (RequestFailure, requests.RequestException) as e:
                if attempt >= self._max_retries:
                    log.error("%s request failed after %d attempts: %s", self.what, attempt, e)
                    raise
                log.warning("%s request error (attempt %d/%d): %s",
                            self.what, attempt, self._max_retries, e)
            self._sleep(self._retry_delay)

        raise RequestFailure(0, f"{self.what} fetch made no attempts", self.path)

    def _attempt(self):
        if self._session.is_access_expired():
            if not self._session.ensure_fresh():
                raise AuthFailure("Refresh token expired, full login required")

        resp = self._get()
        if resp.status_code == 401:
            log.warning("%s request unauthorized, refreshing token once", self.what)
            try:
                refreshed = self._session.refresh()
            except (AuthFailure, DecodeFailure, requests.RequestException) as e:
                raise AuthFailure(f"Authentication failed after token refresh: {e}",
                                  status_code=getattr(e, "status_code", 401)) from e
            if not refreshed:
                raise AuthFailure("Refresh token expired, full login required", status_code=401)
            resp = self._get()
            if resp.status_code == 401:
                raise AuthFailure(f"{self.what} request still unauthorized after refresh",
                                  status_code=401, body=resp.text)

        if not 200 <= resp.status_code < 300:
            raise RequestFailure(resp.status_code, resp.text, self.path)

        return self.decode(codec.decode_object(resp.text, self.what))

    def _get(self):
        return self._session.http.get(
            self._session.server_url + self.path,
            headers=self._session.auth_headers(),
            timeout=self._timeout,
        )

    def decode(self, data):
        raise NotImplementedError


class ImageFetcher(LatestFetcher):
    what = "Image"
    path = IMAGE_PATH

    def decode(self, data):
        image = ImageRecord.from_payload(data)
        log.info("Image fetched | id=%s | %d bytes", image.image_id, len(image.image_bytes))
        return image


class ResultFetcher(LatestFetcher):
    what = "Results"
    path = RESULTS_PATH

    def decode(self, data):
        result = ResultRecord.from_payload(data)
        if result.intensity_average is None or result.focus_score is None:
            log.warning("Result %s has non-finite or missing metrics "
                        "(intensity=%s, focus=%s)",
                        result.image_id, result.intensity_average, result.focus_score)
        log.info("Results fetched | id=%s | label=%s | bins=%d",
                 result.image_id, result.classification_label or "-", len(result.histogram))
        return result
