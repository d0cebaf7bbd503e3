#
# Copyright 2025 Firmirror contributors
#
# SPDX-License-Identifier: LGPL-2.1-or-later
#

import logging

import requests
from requests.adapters import HTTPAdapter
from urllib3 import Retry

LOGGER = logging.getLogger(__name__)

MAX_RETRIES = 3
TIMEOUT = 60
USER_AGENT = "firmirror"
CHUNK_SIZE = 1024 * 1024
RETRY_STATUSES = (429, 500, 502, 503, 504)


def create_session():
    """Returns a requests session retrying connection errors, 5xx and 429"""
    session = requests.Session()
    retries = Retry(
        total=MAX_RETRIES,
        backoff_factor=1,
        status_forcelist=RETRY_STATUSES,
        allowed_methods=frozenset(["GET", "HEAD"]),
        raise_on_status=False,
    )
    adapter = HTTPAdapter(max_retries=retries)
    session.mount("https://", adapter)
    session.mount("http://", adapter)
    session.headers.update({"User-Agent": USER_AGENT})
    return session


SESSION = create_session()


def download_file(url, stream=False):
    """Fetches url and returns the requests.Response.

    Raises requests.RequestException once the retries are exhausted or for
    any other unexpected status.
    """
    LOGGER.debug("Downloading %s", url)
    r = SESSION.get(url, stream=stream, timeout=TIMEOUT)
    try:
        r.raise_for_status()
    except requests.exceptions.HTTPError:
        r.close()
        raise
    return r


def download_file_to_dest(url, dest):
    r = download_file(url, stream=True)
    with r, open(dest, "wb") as f:
        for chunk in r.iter_content(chunk_size=CHUNK_SIZE):
            f.write(chunk)
