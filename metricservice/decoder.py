from collections.abc import Mapping
import logging
from typing import Any

from pydantic import ValidationError

from metricservice.exceptions import DecodeError
from metricservice.internal.schemas import MetricSet

logger = logging.getLogger(__name__)

PAYLOAD_KEY = 'json'


def _get_payload(envelope: Mapping[Any, Any]) -> bytes | str:
    payload = envelope.get(PAYLOAD_KEY)
    if payload is None:
        payload = envelope.get(PAYLOAD_KEY.encode())
    if payload is None:
        raise DecodeError(f"Invalid message (no '{PAYLOAD_KEY}' entry)")
    if isinstance(payload, bytearray):
        return bytes(payload)
    if not isinstance(payload, bytes | str):
        raise DecodeError(
            f"Invalid '{PAYLOAD_KEY}' entry: expected data, got {type(payload).__name__}"
        )
    return payload


def decode_snapshot(envelope: Any) -> MetricSet:
    if not isinstance(envelope, Mapping):
        raise DecodeError(
            f'Invalid message envelope: expected a mapping, got {type(envelope).__name__}'
        )
    payload = _get_payload(envelope)
    try:
        snapshot = MetricSet.model_validate_json(payload)
    except ValidationError as e:
        raise DecodeError(f'Failed to decode metric set: {e}') from e
    logger.debug(
        'Snapshot decoded',
        extra={
            'metrics': len(snapshot.metrics),
            'root_labels': len(snapshot.root_labels),
        },
    )
    return snapshot
