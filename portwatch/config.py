# portwatch/config.py
import os
from dataclasses import dataclass, field
from typing import List, Optional, Tuple, Union

from dotenv import load_dotenv

PortEntry = Union[int, str]

DEFAULT_PORTS: Tuple[PortEntry, ...] = (
    "3000-3010",
    4200,
    "5173-5176",  # vite
    8000,
    "8080-8090",
    1313,
)

LOOPBACK_V4 = "127.0.0.1"
LOOPBACK_V6 = "::1"
CONTAINER_ALIAS = "host.docker.internal"


def parse_port_entries(raw: str) -> List[PortEntry]:
    """Split a comma separated port list ("3000-3010,4200") into entries.

    Plain numbers become ints, everything else is kept as a string and left
    for the expander to accept or skip.
    """
    entries: List[PortEntry] = []
    for token in raw.split(","):
        token = token.strip()
        if not token:
            continue
        entries.append(int(token) if token.isascii() and token.isdecimal() else token)
    return entries


def _split_csv(raw: str) -> List[str]:
    return [item.strip() for item in raw.split(",") if item.strip()]


@dataclass(frozen=True)
class ScanConfig:
    ports: Tuple[PortEntry, ...] = DEFAULT_PORTS
    scan_host: str = LOOPBACK_V4
    self_port: Optional[int] = 3000
    container_alias: str = CONTAINER_ALIAS
    interval: float = 3.0
    send_timeout: float = 5.0
    probe_timeout: float = 0.2
    fetch_timeout: float = 1.5
    chunk_size: int = 50
    cors_origins: Tuple[str, ...] = field(
        default=("http://localhost:3000", "http://localhost:5173")
    )
    log_level: str = "INFO"

    @property
    def probe_hosts(self) -> List[str]:
        # dual-stack only when scanning the local loopback directly
        if self.scan_host == LOOPBACK_V4:
            return [LOOPBACK_V4, LOOPBACK_V6]
        return [self.scan_host]

    @property
    def http_hosts(self) -> List[str]:
        return [f"[{h}]" if ":" in h else h for h in self.probe_hosts]

    @classmethod
    def from_env(cls) -> "ScanConfig":
        load_dotenv()
        raw_ports = os.getenv("PORTWATCH_PORTS")
        raw_self = os.getenv("PORTWATCH_SELF_PORT")
        raw_origins = os.getenv("PORTWATCH_CORS_ORIGINS")
        defaults = cls()
        return cls(
            ports=tuple(parse_port_entries(raw_ports)) if raw_ports else DEFAULT_PORTS,
            scan_host=os.getenv("PORTWATCH_SCAN_HOST", LOOPBACK_V4),
            self_port=int(raw_self) if raw_self else defaults.self_port,
            container_alias=os.getenv("PORTWATCH_CONTAINER_ALIAS", CONTAINER_ALIAS),
            interval=float(os.getenv("PORTWATCH_INTERVAL", defaults.interval)),
            send_timeout=float(os.getenv("PORTWATCH_SEND_TIMEOUT", defaults.send_timeout)),
            probe_timeout=float(os.getenv("PORTWATCH_PROBE_TIMEOUT", defaults.probe_timeout)),
            fetch_timeout=float(os.getenv("PORTWATCH_FETCH_TIMEOUT", defaults.fetch_timeout)),
            chunk_size=int(os.getenv("PORTWATCH_CHUNK_SIZE", defaults.chunk_size)),
            cors_origins=tuple(_split_csv(raw_origins)) if raw_origins else defaults.cors_origins,
            log_level=os.getenv("PORTWATCH_LOG_LEVEL", defaults.log_level).upper(),
        )
