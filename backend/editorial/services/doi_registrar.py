"""
DOI registrar clients.

``MockDoiRegistrar`` mints identifiers locally and is the default;
``CrossrefDoiRegistrar`` deposits the metadata with the registration agency
over HTTP. Both raise ``ExternalFailureError`` on failure, whose message is
recorded verbatim in the deposit history.
"""
from datetime import datetime
from typing import Any, Dict, Optional, Protocol
import logging
import random
import re
import string

import httpx

from editorial.core.config import settings
from editorial.core.error_handling import ExternalFailureError
from editorial.models.issue import IssueInDB
from editorial.models.manuscript import ManuscriptInDB

logger = logging.getLogger(__name__)

DOI_PATTERN = re.compile(r"^10\.\d{4,9}/[-._;()/:A-Z0-9]+$", re.IGNORECASE)
DOI_RESOLVER = "https://doi.org"
SUFFIX_ALPHABET = string.ascii_lowercase + string.digits


def validate_doi(doi: str) -> bool:
    """True when ``doi`` is syntactically a DOI."""
    return bool(doi) and DOI_PATTERN.match(doi) is not None


def resolve_doi(doi: str) -> str:
    return f"{DOI_RESOLVER}/{doi}"


def build_deposit_metadata(
    manuscript: ManuscriptInDB,
    issue: Optional[IssueInDB] = None,
    published_at: Optional[datetime] = None
) -> Dict[str, Any]:
    """Registrar payload for a manuscript, optionally placed in an issue."""
    corresponding = manuscript.corresponding_author
    authors = []
    for author in manuscript.authors:
        entry = {
            "given": author.first_name,
            "family": author.last_name,
            "affiliation": [{"name": author.affiliation}],
        }
        if author.orcid:
            entry["ORCID"] = author.orcid
        authors.append(entry)

    metadata = {
        "manuscript_id": manuscript.manuscript_id,
        "title": manuscript.title,
        "authors": authors,
        "abstract": manuscript.abstract,
        "url": manuscript.public_url,
        "published_date": (published_at or datetime.utcnow()).isoformat(),
        "email": corresponding.email if corresponding else None,
    }
    if issue is not None:
        metadata.update({
            "volume": issue.volume,
            "issue": issue.issue_number,
            "year": issue.year,
        })
    return metadata


class DoiRegistrar(Protocol):
    async def assign_doi(self, metadata: Dict[str, Any]) -> str:
        ...


def _mint_doi(prefix: str, slug: str, year: int) -> str:
    suffix = "".join(random.choices(SUFFIX_ALPHABET, k=9))
    return f"{prefix}/{slug}.{year}.{suffix}"


class MockDoiRegistrar:
    """Mints ``<prefix>/<slug>.<year>.<random>`` without contacting anyone."""

    def __init__(self, prefix: str = None, slug: str = None):
        self.prefix = prefix or settings.doi_prefix
        self.slug = (slug or settings.journal_prefix).lower()

    async def assign_doi(self, metadata: Dict[str, Any]) -> str:
        year = metadata.get("year") or datetime.utcnow().year
        doi = _mint_doi(self.prefix, self.slug, year)
        logger.info(f"DOI assigned (mock): {doi} for {metadata.get('manuscript_id')}")
        return doi


class CrossrefDoiRegistrar:
    """Deposits metadata with the Crossref deposit endpoint."""

    def __init__(
        self,
        api_url: str = None,
        api_key: str = None,
        prefix: str = None,
        slug: str = None,
        timeout: float = None,
        transport: httpx.AsyncBaseTransport = None
    ):
        self.api_url = (api_url or settings.crossref_api_url).rstrip("/")
        self.api_key = api_key if api_key is not None else settings.crossref_api_key
        self.prefix = prefix or settings.doi_prefix
        self.slug = (slug or settings.journal_prefix).lower()
        self.timeout = timeout or settings.crossref_timeout_seconds
        self.transport = transport

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    async def assign_doi(self, metadata: Dict[str, Any]) -> str:
        year = metadata.get("year") or datetime.utcnow().year
        doi = _mint_doi(self.prefix, self.slug, year)
        payload = {"doi": doi, **metadata}

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                response = await client.post(f"{self.api_url}/deposits", json=payload, headers=self._headers())
                response.raise_for_status()
                data = response.json()
        except httpx.HTTPStatusError as e:
            raise ExternalFailureError(
                f"Failed to assign DOI: registrar returned {e.response.status_code}",
                service="doi_registrar",
                cause=e
            )
        except (httpx.HTTPError, ValueError) as e:
            raise ExternalFailureError(f"Failed to assign DOI: {e}", service="doi_registrar", cause=e)

        registered = data.get("doi") or doi
        if not validate_doi(registered):
            raise ExternalFailureError(
                f"Failed to assign DOI: registrar returned malformed DOI '{registered}'",
                service="doi_registrar"
            )
        logger.info(f"DOI deposited with Crossref: {registered}")
        return registered


def create_registrar(kind: str = None) -> DoiRegistrar:
    kind = (kind or settings.doi_registrar).lower()
    if kind == "crossref":
        return CrossrefDoiRegistrar()
    if kind != "mock":
        logger.warning(f"Unknown DOI registrar '{kind}', falling back to mock")
    return MockDoiRegistrar()
