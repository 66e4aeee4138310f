"""
HTTP session with connection pooling.

The adapter never retries, not even connection establishment. Every retry
happens in the fetchers (3 attempts, 2s apart), so one attempt there is
exactly one connection attempt here.
"""

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

_retry_strategy = Retry(
    total=0,                                    # No adapter-level retries of any kind
    raise_on_status=False,
)


def create_session():
    """Create a new requests.Session with connection pooling and no adapter retry."""
    session = requests.Session()
    adapter = HTTPAdapter(
        pool_connections=1,
        pool_maxsize=4,
        max_retries=_retry_strategy,
    )
    session.mount("http://", adapter)
    session.mount("https://", adapter)
    session.headers.update({"Accept": "application/json"})
    return session


def reset_session(session):
    """Close and recreate the HTTP session (fixes stale connections)."""
    try:
        session.close()
    except Exception:
        pass
    return create_session()
