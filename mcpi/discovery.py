"""
MCPI discovery.

Server side, the discovery document is a plain projection of the
capability model. Client side, a domain is resolved through its
``_mcp.<domain>`` TXT record to a discovery URL, whose document is fetched
over HTTP, and the WebSocket session URL is derived from it.
"""

import logging
import re
from dataclasses import dataclass
from typing import Any, Iterable, List, Optional
from urllib.parse import urlsplit, urlunsplit

import dns.asyncresolver
import dns.exception
import dns.resolver
import httpx

from .config import ServerConfig
from .registry import PluginRegistry


logger = logging.getLogger(__name__)

TXT_PREFIX = "_mcp"
DEFAULT_RECORD_VERSION = "mcp1"
DEFAULT_DISCOVERY_PATH = "/mcpi/discover"
DEFAULT_SESSION_PATH = "/mcpi"

URL_SCHEMES = ("http", "https", "ws", "wss")
WEBSOCKET_SCHEMES = {"https": "wss", "http": "ws", "wss": "wss", "ws": "ws"}

_VERSION_RE = re.compile(r"(?:^|\s)v=(\S+)")
_URL_RE = re.compile(r"(?:^|\s)url=(\S+)")


def build_discovery_document(config: ServerConfig, registry: PluginRegistry) -> dict:
    """Describe the provider, its capabilities and referrals."""
    return {
        "provider": config.provider.to_dict(),
        "mode": "active",
        "capabilities": [metadata.to_capability_dict() for _, metadata in registry.list()],
        "referrals": [referral.to_dict() for referral in config.referrals],
    }


class DiscoveryError(Exception):
    """Discovery failed; never affects server-side state."""

    def __init__(self, message: str, domain: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.domain = domain


class NoRecordError(DiscoveryError):
    pass


class MalformedRecordError(DiscoveryError):
    pass


class InvalidUrlError(DiscoveryError):
    pass


class DiscoveryUnreachableError(DiscoveryError):
    pass


class MalformedDocumentError(DiscoveryError):
    pass


@dataclass(frozen=True)
class DiscoveryRecord:
    """A parsed TXT record and the session URL derived from it."""
    version: str
    discovery_url: str
    websocket_url: str

    def to_dict(self) -> dict:
        return {
            "version": self.version,
            "discoveryUrl": self.discovery_url,
            "websocketUrl": self.websocket_url,
        }


@dataclass
class DiscoveryResult:
    record: DiscoveryRecord
    document: Optional[dict] = None

    @property
    def websocket_url(self) -> str:
        return self.record.websocket_url

    @property
    def provider(self) -> dict:
        return (self.document or {}).get("provider", {})

    @property
    def capabilities(self) -> List[dict]:
        return (self.document or {}).get("capabilities", [])

    def to_dict(self) -> dict:
        return {"record": self.record.to_dict(), "document": self.document}


def validate_url(url: str) -> str:
    try:
        parts = urlsplit(url)
        parts.port  # raises on a non-numeric or out of range port
    except ValueError as e:
        raise InvalidUrlError(f"Invalid endpoint URL: {url} ({e})") from e

    if parts.scheme not in URL_SCHEMES:
        raise InvalidUrlError(
            f"Invalid endpoint protocol: {url}. Expected one of: "
            + ", ".join(f"{s}://" for s in URL_SCHEMES)
        )
    if not parts.netloc:
        raise InvalidUrlError(f"Endpoint URL has no host: {url}")
    return url


def derive_websocket_url(url: str, discovery_path: str = DEFAULT_DISCOVERY_PATH,
                         session_path: str = DEFAULT_SESSION_PATH) -> str:
    """
    Derive the session URL from a discovery URL.

    https becomes wss and http becomes ws. A trailing discovery path is
    replaced by the session path; any other path gets the session path
    appended. URLs that already use ws/wss are returned unchanged.
    """
    validate_url(url)
    parts = urlsplit(url)
    if parts.scheme in ("ws", "wss"):
        return url

    path = parts.path.rstrip("/")
    discovery_path = discovery_path.rstrip("/")
    if discovery_path and path.endswith(discovery_path):
        path = path[: -len(discovery_path)]
    path = path + session_path

    return urlunsplit((WEBSOCKET_SCHEMES[parts.scheme], parts.netloc, path, parts.query, ""))


def parse_txt_record(value: str, discovery_path: str = DEFAULT_DISCOVERY_PATH,
                     session_path: str = DEFAULT_SESSION_PATH) -> DiscoveryRecord:
    """
    Parse a TXT value of the form ``v=<version> url=<url>``.

    A missing version defaults to "mcp1".

    Raises:
        MalformedRecordError: No ``url=`` entry.
        InvalidUrlError: The URL is not an absolute http(s) or ws(s) URL.
    """
    txt = value.strip().strip('"')

    url_match = _URL_RE.search(txt)
    if url_match is None:
        raise MalformedRecordError(f"No endpoint URL found in TXT record: {value!r}")

    version_match = _VERSION_RE.search(txt)
    version = version_match.group(1) if version_match else DEFAULT_RECORD_VERSION

    url = url_match.group(1)
    return DiscoveryRecord(
        version=version,
        discovery_url=url,
        websocket_url=derive_websocket_url(url, discovery_path, session_path),
    )


def select_record(values: Iterable[str], **kwargs) -> DiscoveryRecord:
    """Parse the first TXT value carrying a ``url=`` entry."""
    values = list(values)
    if not values:
        raise NoRecordError("No MCP TXT record found")

    for value in values:
        if _URL_RE.search(value.strip().strip('"')):
            return parse_txt_record(value, **kwargs)
    raise MalformedRecordError(f"No TXT value with an endpoint URL among {len(values)} records")


class DiscoveryResolver:
    """
    Resolve a domain to its MCPI endpoints.

    Args:
        dns_resolver: Object with a dnspython-style async ``resolve``;
            a ``dns.asyncresolver.Resolver()`` is built on first lookup.
        http_client: ``httpx.AsyncClient`` used for document fetches;
            a short-lived client is created per fetch when omitted.
        timeout: Seconds allowed for each DNS lookup and HTTP fetch.
    """

    def __init__(self, dns_resolver: Any = None, http_client: Optional[httpx.AsyncClient] = None,
                 timeout: float = 10.0, discovery_path: str = DEFAULT_DISCOVERY_PATH,
                 session_path: str = DEFAULT_SESSION_PATH):
        self.dns_resolver = dns_resolver
        self.http_client = http_client
        self.timeout = timeout
        self.discovery_path = discovery_path
        self.session_path = session_path

    async def lookup_txt(self, domain: str) -> List[str]:
        qname = f"{TXT_PREFIX}.{domain}"
        logger.debug(f"Querying TXT {qname}")

        try:
            if self.dns_resolver is None:
                self.dns_resolver = dns.asyncresolver.Resolver()
            answer = await self.dns_resolver.resolve(qname, "TXT", lifetime=self.timeout)
        except (dns.resolver.NXDOMAIN, dns.resolver.NoAnswer) as e:
            raise NoRecordError(f"No MCP TXT record found for {qname}", domain) from e
        except dns.exception.DNSException as e:
            raise DiscoveryUnreachableError(f"DNS lookup for {qname} failed: {e}", domain) from e

        values = []
        for rdata in answer:
            values.append(b"".join(rdata.strings).decode("utf-8", errors="replace"))
        return values

    async def resolve_record(self, domain: str) -> DiscoveryRecord:
        values = await self.lookup_txt(domain)
        try:
            record = select_record(
                values, discovery_path=self.discovery_path, session_path=self.session_path
            )
        except DiscoveryError as e:
            e.domain = domain
            raise
        logger.info(f"Found TXT record for {domain}: {record.discovery_url} (v={record.version})")
        return record

    async def fetch_document(self, url: str) -> dict:
        """
        Fetch and validate a discovery document.

        Raises:
            DiscoveryUnreachableError: Network failure or non-2xx status.
            MalformedDocumentError: The body is not a discovery document.
        """
        logger.debug(f"Fetching discovery document {url}")
        try:
            if self.http_client is not None:
                response = await self.http_client.get(url, timeout=self.timeout)
            else:
                async with httpx.AsyncClient(timeout=self.timeout, follow_redirects=True) as client:
                    response = await client.get(url)
            response.raise_for_status()
        except httpx.InvalidURL as e:
            raise InvalidUrlError(f"Invalid discovery URL {url}: {e}") from e
        except httpx.HTTPError as e:
            raise DiscoveryUnreachableError(f"Cannot fetch discovery document {url}: {e}") from e

        try:
            document = response.json()
        except ValueError as e:
            raise MalformedDocumentError(f"Discovery document {url} is not JSON: {e}") from e

        if not isinstance(document, dict):
            raise MalformedDocumentError(f"Discovery document {url} must be a JSON object")
        if not isinstance(document.get("provider"), dict):
            raise MalformedDocumentError(f"Discovery document {url} has no provider")
        if not isinstance(document.get("capabilities"), list):
            raise MalformedDocumentError(f"Discovery document {url} has no capabilities list")
        return document

    async def discover(self, domain: str) -> DiscoveryResult:
        """
        Run the full discovery chain for a domain.

        Records pointing straight at a ws/wss endpoint skip the document
        fetch; the result then carries no document.
        """
        record = await self.resolve_record(domain)
        if urlsplit(record.discovery_url).scheme in ("ws", "wss"):
            return DiscoveryResult(record=record)

        document = await self.fetch_document(record.discovery_url)
        provider = document["provider"].get("name", "?")
        logger.info(
            f"Discovered {provider} at {domain}: {len(document['capabilities'])} capabilities, "
            f"session at {record.websocket_url}"
        )
        return DiscoveryResult(record=record, document=document)
