"""Fetching JSON/HTML resources with fallbacks.

Two layers live here:

- `ResourceFetcher` is used by the scrapers. It expands a resource name into
  a list of local/remote variants and tries them in order, remembering the
  successes and counting the failures of every variant for one run.
- `CachedFetcher` is used by the lookup page. It walks a list of candidate
  URLs (some produced lazily from the previous URL), retries temporary HTTP
  failures and caches decoded bodies.

Network and file access go through small provider objects (`HttpProvider`,
`LocalFileProvider`) so the same code runs against the live site or a
checkout of the DADOS tree.
"""
from __future__ import annotations

import enum
import json
import logging
import os
import re
import time
from dataclasses import dataclass
from typing import Any, Callable, Iterable
from urllib.parse import unquote, urlsplit

import requests

import site_config
from local_store import MemoryStore, get_or_set

logger = logging.getLogger(__name__)

PROTOCOL_RE = re.compile(r'^\s*[a-zA-Z]+://')
RELATIVE_RE = re.compile(r'^(?!(?:[a-zA-Z]+:)?//|[a-zA-Z]:\\|/)')


class FetchFailure(enum.Enum):
    """Why a single fetch attempt produced no data."""
    NOT_FOUND = 'not-found'
    TIMEOUT = 'timeout'
    UNSUPPORTED = 'unsupported'
    NETWORK_ERROR = 'network-error'
    HTTP_ERROR = 'http-error'
    INVALID_CONTENT = 'invalid-content'
    EXHAUSTED = 'exhausted'


class FetchExhaustedError(RuntimeError):
    def __init__(self, message: str, last_error: Exception | None = None, urls: list | None = None):
        super().__init__(message)
        self.last_error = last_error
        self.urls = list(urls or [])


class SourceUnavailableError(RuntimeError):
    pass


class HTTPStatusError(RuntimeError):
    def __init__(self, status: int, reason: str = ''):
        super().__init__(f'HTTP {status}: {reason}'.strip())
        self.status = status


@dataclass
class ProviderResponse:
    status: int
    reason: str
    body: bytes
    url: str = ''

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 400

    @property
    def text(self) -> str:
        return self.body.decode('utf-8', errors='replace')

    def json(self) -> Any:
        return json.loads(self.body.decode('utf-8'))


class HttpProvider:
    """Plain HTTP(S) access through a requests session."""

    def __init__(self, session: requests.Session | None = None, user_agent: str = site_config.USER_AGENT):
        self.session = session or requests.Session()
        self.session.headers.update({'User-Agent': user_agent})

    def get(self, url: str, timeout: float | None = None, **options) -> ProviderResponse:
        """GET `url`; `timeout` bounds the whole attempt, body download included."""
        deadline = time.monotonic() + timeout if timeout else None
        with self.session.get(url, timeout=timeout, stream=True, **options) as resp:
            chunks = []
            for chunk in resp.iter_content(64 * 1024):
                if deadline is not None and time.monotonic() > deadline:
                    raise requests.Timeout(f'{url}: no complete response within {timeout}s')
                chunks.append(chunk)
            return ProviderResponse(resp.status_code, resp.reason or '', b''.join(chunks), str(resp.url or url))


class LocalFileProvider:
    """Serves site-relative URLs ('/DADOS/...') from a directory on disk."""

    def __init__(self, root: str):
        self.root = os.path.abspath(root)

    def get(self, url: str, timeout: float | None = None, **options) -> ProviderResponse:
        rel = unquote(urlsplit(url).path).lstrip('/')
        path = os.path.abspath(os.path.join(self.root, rel))
        if not path.startswith(self.root) or not os.path.isfile(path):
            return ProviderResponse(404, 'Not Found', b'', url)
        with open(path, 'rb') as fh:
            return ProviderResponse(200, 'OK', fh.read(), url)


def is_url(value: str) -> bool:
    return bool(PROTOCOL_RE.match(value))


def is_temporary_error(status: int | None) -> bool:
    """Network errors, 5xx and 429 are worth another try; other statuses are not."""
    if not status:
        return True
    if status == 404:
        return False
    if status >= 500:
        return True
    return status == 429


def _unique(items: Iterable[str]) -> list[str]:
    seen = set()
    out = []
    for item in items:
        if item not in seen:
            seen.add(item)
            out.append(item)
    return out


class ResourceFetcher:
    """Resolve a resource name to its content, trying local and remote variants.

    One instance is meant to live for a single run: it keeps the contents
    already loaded (`cache`) and how many times each variant failed
    (`failures`). A variant that failed `max_failures` times is skipped.
    """

    def __init__(self, root: str | None = None, provider: HttpProvider | None = None,
                 local: bool = True, timeout: float = site_config.REQUEST_TIMEOUT,
                 max_failures: int = 2):
        self.root = os.path.abspath(root or site_config.ROOT)
        self.provider = provider if provider is not None else HttpProvider()
        self.local = local
        self.timeout = timeout
        self.max_failures = max_failures
        self.cache: dict[str, Any] = {}
        self.failures: dict[str, int] = {}

    def variants(self, resource: str) -> list[str]:
        """Expand `resource` into the ordered list of places to look for it."""
        if is_url(resource):
            return [resource]
        relative = bool(RELATIVE_RE.match(resource))
        out = [resource]
        if relative:
            out += ['./' + resource, '../' + resource, '../../' + resource]
        if self.local:
            out.append(os.path.join(self.root, resource))
            if relative:
                out += [
                    os.path.join(self.root, '.', resource),
                    os.path.join(self.root, '..', resource),
                    os.path.join(self.root, '..', '..', resource),
                ]
        return _unique(re.sub(r'[\\/]+', '/', p) for p in out)

    def _load_local(self, path: str, as_json: bool):
        if not os.path.isfile(path):
            return FetchFailure.NOT_FOUND
        try:
            with open(path, 'r', encoding='utf-8') as fh:
                return json.load(fh) if as_json else fh.read()
        except (OSError, UnicodeDecodeError, ValueError) as e:
            logger.debug("Could not read %s: %s", path, e)
            return FetchFailure.INVALID_CONTENT

    def _load_remote(self, url: str, as_json: bool):
        try:
            resp = self.provider.get(url, timeout=self.timeout)
        except requests.Timeout:
            return FetchFailure.TIMEOUT
        except requests.RequestException as e:
            logger.debug("Request to %s failed: %s", url, e)
            return FetchFailure.NETWORK_ERROR
        if resp.status == 404:
            return FetchFailure.NOT_FOUND
        if not resp.ok:
            return FetchFailure.HTTP_ERROR
        if not as_json:
            return resp.text
        try:
            return resp.json()
        except ValueError:
            return FetchFailure.INVALID_CONTENT

    def _download(self, key: str, as_json: bool):
        if key in self.cache:
            return self.cache[key]
        if self.local and not is_url(key):
            result = self._load_local(key, as_json)
        elif self.provider is not None:
            result = self._load_remote(key, as_json)
        else:
            result = FetchFailure.UNSUPPORTED
        if not isinstance(result, FetchFailure):
            self.cache[key] = result
        return result

    def fetch(self, candidates, as_json: bool = True):
        """Return the content of the first candidate that loads, or None.

        `candidates` is a path/URL, a callable returning one, or a list
        mixing both. Callables returning None are skipped.
        """
        if isinstance(candidates, (str, os.PathLike)) or callable(candidates):
            candidates = [candidates]
        for candidate in candidates:
            if callable(candidate):
                candidate = candidate()
            if candidate is None:
                continue
            for key in self.variants(os.fspath(candidate)):
                if self.failures.get(key, 0) >= self.max_failures:
                    logger.debug("%s: %s after %d failures", key, FetchFailure.EXHAUSTED.value, self.failures[key])
                    continue
                result = self._download(key, as_json)
                if not isinstance(result, FetchFailure):
                    return result
                self.failures[key] = self.failures.get(key, 0) + 1
                logger.debug("%s: %s", key, result.value)
        logger.warning("No candidate could be loaded: %s", candidates)
        return None


def load_sources(fetcher: ResourceFetcher, sources, storage_key: str,
                 store: MemoryStore | None = None, as_json: bool = True):
    """Return the stored value for `storage_key`, loading it from `sources` if needed.

    Raises SourceUnavailableError when no source yields data.
    """
    if store is None:
        store = MemoryStore()
    if not isinstance(sources, (list, tuple)):
        sources = [sources]

    def _load():
        for source in sources:
            data = fetcher.fetch(source, as_json=as_json)
            if data is not None:
                return data
        raise SourceUnavailableError(
            f"Could not load any file for {storage_key!r}: {', '.join(map(str, sources))}")

    return get_or_set(store, storage_key, _load)


class CachedFetcher:
    """Fetch the first URL of a candidate list that answers, with retries and a cache."""

    def __init__(self, provider, retries: int = site_config.LOOKUP_RETRIES,
                 timeout: float = site_config.LOOKUP_TIMEOUT):
        self.provider = provider
        self.retries = retries
        self.timeout = timeout
        self._cache: dict[str, Any] = {}

    @staticmethod
    def cache_key(url: str, options: dict | None, mode: str) -> str:
        return f"{url}-{json.dumps(options or {}, sort_keys=True)}-{mode}"

    @staticmethod
    def _decode(resp: ProviderResponse, mode: str):
        if mode == 'json':
            return resp.json()
        if mode == 'text':
            return resp.text
        return resp

    def _get_with_retry(self, url: str, options: dict, mode: str):
        error: Exception | None = None
        for attempt in range(self.retries + 1):
            try:
                resp = self.provider.get(url, timeout=self.timeout, **options)
            except requests.RequestException as e:
                error = e
                logger.debug("GET %s attempt %d failed: %s", url, attempt + 1, e)
                continue
            if resp.ok:
                try:
                    return self._decode(resp, mode)
                except ValueError as e:
                    error = e
                    continue
            error = HTTPStatusError(resp.status, resp.reason)
            if not is_temporary_error(resp.status):
                raise error
        raise error

    def get(self, urls, options: dict | None = None, mode: str = 'json'):
        """Return the decoded body of the first URL that answers.

        `urls` is a URL or a list whose items are URLs or callables. A
        callable receives the previously tried URL (None for the first) and
        returns the next URL; returning None ends the list.
        """
        candidates: list[str | Callable] = list(urls) if isinstance(urls, (list, tuple)) else [urls]
        options = options or {}
        last_url = None
        last_error: Exception | None = None
        tried: list[str] = []
        for index, current in enumerate(candidates):
            if callable(current):
                current = current(last_url)
                if current is None:
                    raise FetchExhaustedError('URL function returned None, no more URL options',
                                              last_error, tried)
                candidates[index] = current
            last_url = current
            tried.append(current)

            key = self.cache_key(current, options, mode)
            if key in self._cache:
                return self._cache[key]
            try:
                data = self._get_with_retry(current, options, mode)
            except (HTTPStatusError, requests.RequestException, ValueError) as e:
                last_error = e
                if index + 1 < len(candidates):
                    logger.info("%s failed (%s), trying fallback", current, e)
                continue
            self._cache[key] = data
            return data
        raise FetchExhaustedError(f'All URLs failed. Last error: {last_error}', last_error, tried)

    def clear_cache(self) -> None:
        self._cache.clear()

    def delete(self, urls, options: dict | None = None, mode: str = 'json') -> int:
        deleted = 0
        for url in urls if isinstance(urls, (list, tuple)) else [urls]:
            key = self.cache_key(url, options, mode) if isinstance(url, str) else None
            if key in self._cache:
                del self._cache[key]
                deleted += 1
        return deleted

    @property
    def cache_size(self) -> int:
        return len(self._cache)

    def cache_keys(self) -> list[str]:
        return list(self._cache)
