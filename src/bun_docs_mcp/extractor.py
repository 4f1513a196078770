"""Terminal payload extraction from a stream of SSE records.

The upstream server interleaves heartbeat and progress frames with exactly one
frame holding the JSON-RPC result. Records are consumed one at a time and the
first frame whose data is a JSON object with a ``result`` or ``error`` member
wins; nothing after it is read.
"""

import json
import logging
from typing import Any, AsyncIterator, Iterator

from .errors import NoResponseInStream
from .sse_parser import SseEvent, SseRecord, StreamDecodeFault

logger = logging.getLogger(__name__)

# Max characters of frame data echoed in debug logs
DEBUG_DATA_MAX_LEN = 200


def is_terminal_payload(value: Any) -> bool:
    """Check whether a decoded frame is the JSON-RPC response being awaited."""
    return isinstance(value, dict) and ("result" in value or "error" in value)


def _payload_of(record: SseRecord) -> Any:
    """Return the terminal payload carried by a record, or None."""
    if isinstance(record, StreamDecodeFault):
        logger.debug("Skipping malformed SSE record: %s", record.reason)
        return None

    assert isinstance(record, SseEvent)
    if not record.data:
        return None
    try:
        parsed = json.loads(record.data)
    except json.JSONDecodeError as e:
        logger.debug(
            "Skipping non-JSON SSE frame (%s): %s",
            e.msg,
            record.data[:DEBUG_DATA_MAX_LEN],
        )
        return None
    except RecursionError:
        logger.debug("Skipping SSE frame nested too deeply to decode")
        return None

    if not is_terminal_payload(parsed):
        logger.debug("Skipping non-terminal SSE frame (event=%s)", record.event)
        return None
    return parsed


async def extract_response(records: AsyncIterator[SseRecord]) -> dict:
    """Consume records until the terminal payload is found.

    Args:
        records: Lazy async sequence of SSE records

    Returns:
        The first JSON object with a ``result`` or ``error`` member

    Raises:
        NoResponseInStream: If the sequence ends without such an object
    """
    async for record in records:
        payload = _payload_of(record)
        if payload is not None:
            return payload
    raise NoResponseInStream()


def extract_response_sync(records: Iterator[SseRecord]) -> dict:
    """Synchronous counterpart of ``extract_response``."""
    for record in records:
        payload = _payload_of(record)
        if payload is not None:
            return payload
    raise NoResponseInStream()
