# portwatch/scan_core.py
import asyncio
import logging
import time
from typing import Iterable, List, Optional, Union

import httpx

from .config import ScanConfig
from .models import FetchOutcome, ProbeOutcome, ScanSnapshot, ServiceRecord
from .ports import expand_ports
from .scans.metadata import fetch_details
from .scans.reachability import probe_ports

logger = logging.getLogger(__name__)


def service_url(port: int) -> str:
    return f"http://localhost:{port}"


def _log_unexpected(stage: str, outcomes: Iterable[Union[ProbeOutcome, FetchOutcome]]) -> None:
    # timeouts and refusals are normal while scanning, only report the odd ones
    for outcome in outcomes:
        for attempt in outcome.attempts:
            if attempt.unexpected:
                logger.warning(
                    "Unexpected %s error on port %d via %s: %r",
                    stage, outcome.port, attempt.host, attempt.error,
                )


class Scanner:
    """Runs full, uncached scan cycles for one :class:`ScanConfig`."""

    def __init__(self, config: ScanConfig, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.config = config
        self._transport = transport

    def ports(self) -> List[int]:
        return expand_ports(self.config.ports)

    async def reachable_ports(self) -> List[int]:
        cfg = self.config
        outcomes = await probe_ports(
            self.ports(),
            cfg.probe_hosts,
            timeout=cfg.probe_timeout,
            chunk_size=cfg.chunk_size,
            exclude=cfg.self_port,
        )
        _log_unexpected("probe", outcomes)
        return [o.port for o in outcomes if o.reachable]

    async def fetch_all(self, ports: List[int]) -> List[FetchOutcome]:
        cfg = self.config
        # never route loopback traffic through an environment proxy
        async with httpx.AsyncClient(
            timeout=cfg.fetch_timeout,
            transport=self._transport,
            trust_env=False,
        ) as client:
            outcomes = await asyncio.gather(*(
                fetch_details(
                    port,
                    client,
                    hosts=cfg.http_hosts,
                    timeout=cfg.fetch_timeout,
                    container_alias=cfg.container_alias,
                )
                for port in ports
            ))
        _log_unexpected("fetch", outcomes)
        return list(outcomes)

    async def run_scan(self) -> ScanSnapshot:
        started = time.perf_counter()
        reachable = await self.reachable_ports()
        fetched = await self.fetch_all(reachable) if reachable else []

        records = [
            ServiceRecord(
                port=f.port,
                url=service_url(f.port),
                title=f.details.title,
                favicon=f.details.favicon,
            )
            for f in fetched
        ]
        records.sort(key=lambda r: r.port)
        logger.debug(
            "scan complete: %d service(s) in %.2fs",
            len(records), time.perf_counter() - started,
        )
        return tuple(records)
