#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
lhex_resolver.py — find the latest WSA bundle on the store listing service

POSTs a product query to the listing endpoint and scans the returned HTML
table. A row is accepted when its link text names an .msixbundle of the target
app and the link points at a microsoft.com host. Columns: name | expiry | sha1 | size.
"""

from __future__ import annotations
from typing import Dict, Optional
from urllib.parse import urlparse

import requests
from bs4 import BeautifulSoup

from lhex.modules.lhex_errors import ConfigError, MetadataNotFoundError, NetworkError
from lhex.modules.lhex_logger import get_logger, log_event
from lhex.modules.lhex_types import PackageMetadata, Ring, UrlType

LOG = get_logger("resolver")

DEFAULT_ENDPOINT = "https://store.rg-adguard.net/api/GetFiles"
DEFAULT_PRODUCT_ID = "9P3395VX91NR"
DEFAULT_TARGET_APP = "MicrosoftCorporationII.WindowsSubsystemForAndroid"
DEFAULT_TRUSTED_DOMAIN = "microsoft.com"


def _host_domain(url: str) -> str:
    host = urlparse(url).hostname or ""
    return ".".join(host.split(".")[-2:])


def parse_listing(html: str, target_app: str = DEFAULT_TARGET_APP,
                  trusted_domain: str = DEFAULT_TRUSTED_DOMAIN) -> Optional[PackageMetadata]:
    """Return the first matching row of the listing table, or None."""
    soup = BeautifulSoup(html, "html.parser")
    for row in soup.find_all("tr"):
        link = row.find("a")
        if link is None:
            continue
        url = link.get("href")
        if not url:
            continue
        filename = link.get_text(strip=True)
        if "msixbundle" not in filename or target_app not in filename:
            continue
        if _host_domain(url) != trusted_domain:
            LOG.debug("skipping %s: untrusted host %s", filename, url)
            continue
        cells = row.find_all("td")
        parts = filename.split("_")
        if len(cells) < 3 or len(parts) < 2:
            LOG.debug("skipping malformed row for %s", filename)
            continue
        return PackageMetadata(
            url=url,
            filename=filename,
            checksum=cells[2].get_text(strip=True),
            version=parts[1],
        )
    return None


class MetadataResolver:
    def __init__(self, session: Optional[requests.Session] = None,
                 endpoint: str = DEFAULT_ENDPOINT,
                 url_type: UrlType = UrlType.PRODUCT_ID,
                 product_id: str = DEFAULT_PRODUCT_ID,
                 ring: Ring = Ring.RETAIL,
                 target_app: str = DEFAULT_TARGET_APP,
                 trusted_domain: str = DEFAULT_TRUSTED_DOMAIN,
                 timeout: int = 30):
        self.session = session or requests.Session()
        self.endpoint = endpoint
        self.url_type = UrlType(url_type)
        self.product_id = product_id
        self.ring = Ring(ring)
        self.target_app = target_app
        self.trusted_domain = trusted_domain
        self.timeout = int(timeout)

    @classmethod
    def from_config(cls, cfg, session: Optional[requests.Session] = None) -> "MetadataResolver":
        r = cfg.section("resolver")
        try:
            url_type = UrlType(r.get("url_type", UrlType.PRODUCT_ID.value))
            ring = Ring(r.get("ring", Ring.RETAIL.value))
        except ValueError as e:
            raise ConfigError(f"invalid resolver setting: {e}")
        return cls(
            session=session,
            endpoint=r.get("endpoint", DEFAULT_ENDPOINT),
            url_type=url_type,
            product_id=r.get("product_id", DEFAULT_PRODUCT_ID),
            ring=ring,
            target_app=r.get("target_app", DEFAULT_TARGET_APP),
            trusted_domain=r.get("trusted_domain", DEFAULT_TRUSTED_DOMAIN),
            timeout=r.get("timeout", 30),
        )

    def form(self) -> Dict[str, str]:
        return {"type": self.url_type.value, "url": self.product_id, "ring": self.ring.value}

    def fetch_listing(self) -> str:
        try:
            resp = self.session.post(self.endpoint, data=self.form(), timeout=self.timeout)
        except requests.RequestException as e:
            raise NetworkError(f"failed to fetch package info: {e}", stage="resolve") from e
        if not resp.ok:
            raise NetworkError(f"package info request returned {resp.status_code}", stage="resolve")
        return resp.text

    def resolve(self) -> PackageMetadata:
        html = self.fetch_listing()
        meta = parse_listing(html, self.target_app, self.trusted_domain)
        if meta is None:
            raise MetadataNotFoundError("no valid package info entry found")
        log_event("resolver", "resolve", f"found {meta.filename}", extra=meta.as_dict())
        return meta


__all__ = ["MetadataResolver", "parse_listing"]
