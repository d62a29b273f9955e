# portwatch/scans/reachability.py
import asyncio
from typing import Iterable, List, Optional, Sequence

from ..models import Attempt, ProbeOutcome
from ..ports import chunked

DEFAULT_TIMEOUT = 0.2
CHUNK_SIZE = 50

# closed/filtered/unreachable
EXPECTED_ERRORS = (OSError, asyncio.TimeoutError)


async def _connect(host: str, port: int, timeout: float) -> Attempt:
    writer = None
    try:
        _, writer = await asyncio.wait_for(
            asyncio.open_connection(host, port),
            timeout=timeout,
        )
        return Attempt(host=host, ok=True)
    except asyncio.CancelledError:
        raise
    except EXPECTED_ERRORS as e:
        return Attempt(host=host, ok=False, error=e)
    except Exception as e:
        return Attempt(host=host, ok=False, error=e, expected=False)
    finally:
        if writer is not None:
            writer.close()
            try:
                await writer.wait_closed()
            except Exception:
                # peer reset while closing
                pass


async def probe(port: int, hosts: Sequence[str], timeout: float = DEFAULT_TIMEOUT) -> ProbeOutcome:
    """
    Race a TCP connect against every host. The first successful connect
    settles the outcome; the other attempts are cancelled and awaited before
    returning so no socket outlives the call.
    """
    tasks = [asyncio.ensure_future(_connect(host, port, timeout)) for host in hosts]
    attempts: List[Attempt] = []
    reachable = False
    try:
        pending = set(tasks)
        while pending and not reachable:
            done, pending = await asyncio.wait(pending, return_when=asyncio.FIRST_COMPLETED)
            for task in done:
                attempt = task.result()
                attempts.append(attempt)
                reachable = reachable or attempt.ok
    finally:
        for task in tasks:
            if not task.done():
                task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
    return ProbeOutcome(port=port, reachable=reachable, attempts=tuple(attempts))


async def probe_ports(
    ports: Iterable[int],
    hosts: Sequence[str],
    timeout: float = DEFAULT_TIMEOUT,
    chunk_size: int = CHUNK_SIZE,
    exclude: Optional[int] = None,
) -> List[ProbeOutcome]:
    """
    Probe *ports* in sequential chunks of *chunk_size*; every port inside a
    chunk is probed concurrently. Outcomes keep the order of *ports*.
    """
    targets = [p for p in ports if p != exclude]
    outcomes: List[ProbeOutcome] = []
    for chunk in chunked(targets, chunk_size):
        outcomes.extend(await asyncio.gather(*(probe(p, hosts, timeout) for p in chunk)))
    return outcomes


async def open_ports(
    ports: Iterable[int],
    hosts: Sequence[str],
    timeout: float = DEFAULT_TIMEOUT,
    chunk_size: int = CHUNK_SIZE,
    exclude: Optional[int] = None,
) -> List[int]:
    outcomes = await probe_ports(ports, hosts, timeout, chunk_size, exclude)
    return [o.port for o in outcomes if o.reachable]
