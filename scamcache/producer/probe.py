"""
Network probes that compute a snapshot record for each listed URL.

For every target the producer resolves the host's IPv4 address, looks up its
NS records (walking up to the closest zone that has them) and fetches the URL
over HTTP. Probes run concurrently, bounded by a semaphore, and the snapshot
keeps the order of the targets.
"""

from __future__ import annotations

import asyncio
import socket
from datetime import datetime, timezone
from typing import List, Optional, Sequence, Tuple
from urllib.parse import urlsplit

import dns.asyncresolver
import dns.exception
import dns.resolver
import httpx

from scamcache.domain.models import (
    NO_STATUS_CODE,
    STATUS_ACTIVE,
    STATUS_INACTIVE,
    STATUS_OFFLINE,
    ProbeTarget,
    SnapshotRecord,
)

USER_AGENT = "scamcache-producer/0.1 (+https://github.com/scamcache)"


def normalize_url(url: str) -> str:
    url = url.strip()
    if "://" not in url:
        return f"http://{url}"
    return url


def host_of(url: str) -> Optional[str]:
    try:
        hostname = urlsplit(normalize_url(url)).hostname
    except ValueError:
        return None
    return hostname.rstrip(".").lower() if hostname else None


def candidate_zones(hostname: str) -> List[str]:
    """
    Zones to query for NS records, most specific first.

    `a.b.example.com` -> [`a.b.example.com`, `b.example.com`, `example.com`]
    """
    labels = [label for label in hostname.split(".") if label]
    if len(labels) <= 2:
        return [".".join(labels)] if labels else []
    return [".".join(labels[i:]) for i in range(len(labels) - 1)]


def classify(ip: Optional[str], http_status: Optional[int]) -> Tuple[str, int]:
    """Map probe results to the listing `(status, statusCode)` pair."""
    if ip is None or http_status is None:
        return STATUS_OFFLINE, NO_STATUS_CODE
    if http_status >= 400:
        return STATUS_INACTIVE, http_status
    return STATUS_ACTIVE, http_status


class Prober:
    """
    Probes one target at a time with a shared HTTP client and DNS resolver.
    """

    def __init__(self, client: httpx.AsyncClient, resolver: dns.asyncresolver.Resolver) -> None:
        self._client = client
        self._resolver = resolver

    async def resolve_ip(self, hostname: str) -> Optional[str]:
        loop = asyncio.get_running_loop()
        try:
            infos = await loop.getaddrinfo(
                hostname, None, family=socket.AF_INET, type=socket.SOCK_STREAM
            )
        except (OSError, UnicodeError):
            return None
        return str(infos[0][4][0]) if infos else None

    async def resolve_nameservers(self, hostname: str) -> List[str]:
        for zone in candidate_zones(hostname):
            try:
                answer = await self._resolver.resolve(zone, "NS")
            except dns.resolver.NoAnswer:
                continue
            except dns.exception.DNSException:
                return []
            return sorted({str(rr.target).rstrip(".").lower() for rr in answer})
        return []

    async def fetch_status(self, url: str) -> Optional[int]:
        try:
            response = await self._client.get(url)
        except (httpx.HTTPError, httpx.InvalidURL):
            return None
        return response.status_code

    async def probe(self, target: ProbeTarget) -> SnapshotRecord:
        url = normalize_url(target.url)
        hostname = host_of(url)
        ip: Optional[str] = None
        nameservers: List[str] = []
        http_status: Optional[int] = None

        if hostname:
            ip, nameservers = await asyncio.gather(
                self.resolve_ip(hostname), self.resolve_nameservers(hostname)
            )
            if ip is not None:
                http_status = await self.fetch_status(url)

        status, status_code = classify(ip, http_status)
        return SnapshotRecord(
            id=target.entry_id,
            ip=ip,
            status=status,
            status_code=status_code,
            updated=datetime.now(timezone.utc),
            nameservers=frozenset(nameservers),
        )


async def compute_snapshot(
    targets: Sequence[ProbeTarget],
    timeout: float = 10.0,
    concurrency: int = 20,
) -> List[SnapshotRecord]:
    """
    Probe every target and return the records in target order.
    """
    semaphore = asyncio.Semaphore(max(concurrency, 1))
    resolver = dns.asyncresolver.Resolver()
    resolver.lifetime = timeout

    async with httpx.AsyncClient(
        timeout=timeout,
        follow_redirects=True,
        headers={"User-Agent": USER_AGENT},
    ) as client:
        prober = Prober(client, resolver)

        async def _bounded(target: ProbeTarget) -> SnapshotRecord:
            async with semaphore:
                return await prober.probe(target)

        return list(await asyncio.gather(*(_bounded(t) for t in targets)))


__all__ = [
    "Prober",
    "candidate_zones",
    "classify",
    "compute_snapshot",
    "host_of",
    "normalize_url",
]
