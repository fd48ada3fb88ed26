#!/usr/bin/env python3
"""
FHIR R4 Search Client

Provides functionality to:
1. Build FHIR search request URLs and POST search bodies
2. Download bundles from a FHIR server via GET or POST ``_search``
3. Follow ``next`` paging links until the result set is exhausted

Failures are not retried: any HTTP or decoding error raises
FHIRSearchError and ends the run.
"""

from typing import Any, Dict, List, Mapping, Optional, Union
from urllib.parse import urlencode

import requests
import structlog

from core.exceptions import FHIRSearchError

logger = structlog.get_logger(__name__)

FHIR_JSON = "application/fhir+json"
FORM_URLENCODED = "application/x-www-form-urlencoded"


# =============================================================================
# REQUEST BUILDING
# =============================================================================

class FHIRRequest(str):
    """A fully built FHIR search URL."""

    @property
    def base(self) -> str:
        return self.split("?", 1)[0]


class FHIRBody:
    """Form-encoded body for a FHIR search via POST."""

    content_type = FORM_URLENCODED

    def __init__(self, content: Union[Mapping[str, Any], str]):
        if isinstance(content, str):
            self.content = content
        else:
            self.content = urlencode(
                [(key, _join_values(value)) for key, value in content.items()]
            )

    def __str__(self) -> str:
        return self.content

    def __repr__(self) -> str:
        return f"FHIRBody({self.content!r})"

    def __eq__(self, other: object) -> bool:
        if isinstance(other, FHIRBody):
            return self.content == other.content
        return NotImplemented


def _join_values(value: Any) -> str:
    if isinstance(value, (list, tuple, set)):
        return ",".join(str(v) for v in value)
    return str(value)


def fhir_url(url: str,
             resource: Optional[str] = None,
             parameters: Optional[Mapping[str, Any]] = None) -> FHIRRequest:
    """
    Build a FHIR search request URL.

    Args:
        url: Base URL of the FHIR server
        resource: Resource type to search, e.g. "Observation"
        parameters: Search parameters; list values are comma-joined

    Returns:
        FHIRRequest ready to pass to FHIRSearchClient.search
    """
    request = url.rstrip('/')
    if resource:
        request = f"{request}/{resource.strip('/')}"

    if parameters:
        query = urlencode(
            [(key, _join_values(value)) for key, value in parameters.items()],
            safe=':|,/',
        )
        request = f"{request}?{query}"

    return FHIRRequest(request)


def fhir_body(content: Union[Mapping[str, Any], str]) -> FHIRBody:
    """Build a form-encoded body for a search via POST."""
    return FHIRBody(content)


# =============================================================================
# BUNDLES
# =============================================================================

class BundleList(list):
    """Bundles downloaded by one search, in paging order."""

    def __init__(self, bundles=(), request_urls: Optional[List[str]] = None):
        super().__init__(bundles)
        self.request_urls: List[str] = list(request_urls or [])

    @property
    def total_entries(self) -> int:
        return sum(len(bundle.get('entry', [])) for bundle in self)


def next_bundle_url(bundle: Dict[str, Any]) -> Optional[str]:
    """Return the ``next`` paging link of a bundle, if any."""
    for link in bundle.get('link', []):
        if link.get('relation') == 'next' and link.get('url'):
            return link['url']
    return None


# =============================================================================
# SEARCH CLIENT
# =============================================================================

class FHIRSearchClient:
    """Download search result bundles from a FHIR R4 server."""

    def __init__(self,
                 auth_token: Optional[str] = None,
                 username: Optional[str] = None,
                 password: Optional[str] = None,
                 headers: Optional[Dict[str, str]] = None,
                 timeout: float = 60.0,
                 session: Optional[requests.Session] = None):
        self.timeout = timeout
        self.session = session or requests.Session()

        if auth_token:
            self.session.headers['Authorization'] = f'Bearer {auth_token}'
        elif username is not None:
            self.session.auth = (username, password or '')

        self.session.headers['Accept'] = FHIR_JSON
        if headers:
            self.session.headers.update(headers)

    def __enter__(self) -> 'FHIRSearchClient':
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def close(self):
        self.session.close()

    def search(self,
               request: str,
               body: Optional[FHIRBody] = None,
               max_bundles: Optional[int] = None) -> BundleList:
        """
        Download all bundles of a search.

        Args:
            request: Search URL, usually built with fhir_url
            body: Optional POST body; the search is then sent to
                ``<request>/_search``
            max_bundles: Stop after this many bundles

        Returns:
            BundleList of parsed bundle dictionaries
        """
        bundles = BundleList()

        if body is not None:
            url = request if request.rstrip('/').endswith('_search') \
                else f"{request.rstrip('/')}/_search"
            bundle = self._post(url, body)
        else:
            url = request
            bundle = self._get(url)

        while True:
            bundles.append(bundle)
            bundles.request_urls.append(url)

            logger.debug(
                "Bundle downloaded",
                url=url,
                bundle_number=len(bundles),
                entries=len(bundle.get('entry', [])),
            )

            if max_bundles is not None and len(bundles) >= max_bundles:
                break

            url = next_bundle_url(bundle)
            if url is None:
                break
            bundle = self._get(url)

        logger.info(
            "FHIR search complete",
            endpoint=FHIRRequest(request).base,
            method="POST" if body is not None else "GET",
            bundles=len(bundles),
            entries=bundles.total_entries,
        )

        return bundles

    def _get(self, url: str) -> Dict[str, Any]:
        try:
            response = self.session.get(url, timeout=self.timeout)
        except requests.RequestException as e:
            raise FHIRSearchError(f"GET {url} failed: {e}", url=url) from e
        return self._parse(response, url)

    def _post(self, url: str, body: FHIRBody) -> Dict[str, Any]:
        try:
            response = self.session.post(
                url,
                data=str(body),
                headers={'Content-Type': body.content_type},
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise FHIRSearchError(f"POST {url} failed: {e}", url=url) from e
        return self._parse(response, url)

    def _parse(self, response: requests.Response, url: str) -> Dict[str, Any]:
        if not response.ok:
            raise FHIRSearchError(
                f"FHIR server returned HTTP {response.status_code} for {url}",
                url=url,
                status_code=response.status_code,
            )

        try:
            bundle = response.json()
        except ValueError as e:
            raise FHIRSearchError(
                f"Response from {url} is not valid JSON",
                url=url,
                status_code=response.status_code,
            ) from e

        if not isinstance(bundle, dict) or bundle.get('resourceType') != 'Bundle':
            raise FHIRSearchError(
                f"Response from {url} is not a FHIR Bundle",
                url=url,
                status_code=response.status_code,
            )

        return bundle


def fhir_search(request: str,
                body: Optional[FHIRBody] = None,
                max_bundles: Optional[int] = None,
                **client_kwargs) -> BundleList:
    """One-shot search with a temporary client."""
    with FHIRSearchClient(**client_kwargs) as client:
        return client.search(request, body=body, max_bundles=max_bundles)
