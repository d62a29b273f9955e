# portwatch/ports.py
import logging
import re
from typing import Iterable, List, Set, Union

logger = logging.getLogger(__name__)

MAX_PORT = 65535

_SINGLE = re.compile(r"^\s*(\d+)\s*$", re.ASCII)
_RANGE = re.compile(r"^\s*(\d+)\s*-\s*(\d+)\s*$", re.ASCII)


def _valid(port: int) -> bool:
    return 0 <= port <= MAX_PORT


def expand_ports(entries: Iterable[Union[int, str]]) -> List[int]:
    """
    Expand single ports and inclusive "start-end" ranges into a sorted list
    of distinct port numbers. Entries that cannot be parsed are skipped.
    """
    ports: Set[int] = set()
    for entry in entries:
        # bool is an int subclass, never a port
        if isinstance(entry, bool):
            logger.debug("Skipping port entry %r", entry)
            continue
        if isinstance(entry, int):
            if _valid(entry):
                ports.add(entry)
            else:
                logger.debug("Skipping out of range port %r", entry)
            continue
        if isinstance(entry, str):
            single = _SINGLE.match(entry)
            if single:
                port = int(single.group(1))
                if _valid(port):
                    ports.add(port)
                continue
            m = _RANGE.match(entry)
            if m:
                start, end = int(m.group(1)), int(m.group(2))
                if start > 0 and start <= end and end <= MAX_PORT:
                    ports.update(range(start, end + 1))
                    continue
        logger.debug("Skipping malformed port entry %r", entry)
    return sorted(ports)


def chunked(ports: List[int], size: int) -> List[List[int]]:
    if size < 1:
        raise ValueError("chunk size must be positive")
    return [ports[i:i + size] for i in range(0, len(ports), size)]
