# portwatch/models.py
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from pydantic import BaseModel, ConfigDict


class ServiceDetails(BaseModel):
    title: str
    favicon: Optional[str] = None


class ServiceRecord(BaseModel):
    model_config = ConfigDict(frozen=True)

    port: int
    url: str
    title: str
    favicon: Optional[str] = None


# one scan cycle, ascending by port
ScanSnapshot = Tuple[ServiceRecord, ...]


class PortsInfo(BaseModel):
    ports: List[int]
    self_port: Optional[int] = None


class HealthStatus(BaseModel):
    status: str
    observers: int


@dataclass(frozen=True)
class Attempt:
    """Result of a single connect or HTTP attempt against one host.

    ``expected`` is False only for errors that are not part of normal
    operation (refused connections and timeouts are expected).
    """
    host: str
    ok: bool
    error: Optional[BaseException] = None
    expected: bool = True

    @property
    def unexpected(self) -> bool:
        return not self.ok and not self.expected


@dataclass(frozen=True)
class ProbeOutcome:
    port: int
    reachable: bool
    attempts: Tuple[Attempt, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class FetchOutcome:
    port: int
    details: ServiceDetails
    attempts: Tuple[Attempt, ...] = field(default_factory=tuple)

    @property
    def responded(self) -> bool:
        return any(a.ok for a in self.attempts)
