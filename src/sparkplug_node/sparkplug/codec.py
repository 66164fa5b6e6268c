"""Payload codecs turning envelopes into bytes and back."""

import base64
import json
import logging
from abc import ABC, abstractmethod
from typing import Any

from .errors import InvalidMetricType, PayloadTypeMismatch
from .models import DataType, DecodedPayload, Envelope, Metric

logger = logging.getLogger(__name__)


class PayloadCodec(ABC):
    """Abstract base class for payload encoders/decoders."""

    content_type = "application/octet-stream"

    @abstractmethod
    def encode(self, envelope: Envelope) -> bytes:
        """
        Serialize an envelope's payload.

        Args:
            envelope: Envelope built by the message factory

        Returns:
            Encoded payload bytes
        """
        pass

    @abstractmethod
    def decode(self, data: bytes) -> DecodedPayload:
        """
        Deserialize payload bytes.

        Args:
            data: Raw payload received from the transport

        Returns:
            Decoded metrics, timestamp and sequence number

        Raises:
            PayloadTypeMismatch: If the bytes are not a metric-bearing payload
            InvalidMetricType: If a metric value does not match its datatype
        """
        pass


class JsonPayloadCodec(PayloadCodec):
    """
    JSON rendition of the Sparkplug B payload.

    Layout: ``{"timestamp", "seq", "metrics": [{"name", "alias", "timestamp",
    "datatype", "value", "is_null"}]}``. Bytes values are base64 encoded and
    the datatype is carried by its numeric code.
    """

    content_type = "application/json"

    def encode(self, envelope: Envelope) -> bytes:
        body: dict[str, Any] = {
            "timestamp": envelope.timestamp,
            "metrics": [self._encode_metric(metric) for metric in envelope.metrics],
        }
        # Deaths carry no sequence number
        if envelope.sequence_number is not None:
            body["seq"] = envelope.sequence_number
        return json.dumps(body, separators=(",", ":")).encode("utf-8")

    def decode(self, data: bytes) -> DecodedPayload:
        try:
            body = json.loads(data)
        except (TypeError, ValueError) as e:
            raise PayloadTypeMismatch(f"Payload is not valid JSON: {e}") from e

        if not isinstance(body, dict):
            raise PayloadTypeMismatch("Payload is not a JSON object")

        raw_metrics = body.get("metrics", [])
        if not isinstance(raw_metrics, list):
            raise PayloadTypeMismatch("Payload 'metrics' is not a list")

        sequence_number = body.get("seq")
        # bool is an int subclass; reject it explicitly
        if sequence_number is not None and (
            isinstance(sequence_number, bool) or not isinstance(sequence_number, int)
        ):
            raise PayloadTypeMismatch(f"Payload 'seq' is not an integer: {sequence_number!r}")

        return DecodedPayload(
            metrics=[self._decode_metric(item) for item in raw_metrics],
            timestamp=body.get("timestamp"),
            sequence_number=sequence_number,
        )

    @staticmethod
    def _encode_metric(metric: Metric) -> dict[str, Any]:
        value = metric.value
        # JSON has no bytes type
        if isinstance(value, (bytes, bytearray)):
            value = base64.b64encode(bytes(value)).decode("ascii")
        item: dict[str, Any] = {
            "name": metric.name,
            "timestamp": metric.timestamp,
            "datatype": int(metric.datatype),
            "value": value,
            "is_null": metric.is_null,
        }
        if metric.alias is not None:
            item["alias"] = metric.alias
        return item

    @staticmethod
    def _decode_metric(item: Any) -> Metric:
        if not isinstance(item, dict) or not isinstance(item.get("name"), str):
            raise PayloadTypeMismatch(f"Metric entry has no name: {item!r}")

        name = item["name"]
        raw_type = item.get("datatype")
        try:
            # Accept "DOUBLE" as well as 10
            if isinstance(raw_type, str):
                datatype = DataType.from_name(raw_type)
            else:
                datatype = DataType(raw_type)
        except ValueError:
            raise InvalidMetricType(f"Metric {name!r}: unsupported datatype {raw_type!r}") from None

        value = None if item.get("is_null") else item.get("value")
        if datatype == DataType.BYTES and isinstance(value, str):
            try:
                value = base64.b64decode(value, validate=True)
            except ValueError as e:
                raise InvalidMetricType(f"Metric {name!r}: invalid base64 value") from e
        # Whole numbers decode as int; normalise FLOAT/DOUBLE values to float
        elif datatype in (DataType.FLOAT, DataType.DOUBLE) and isinstance(value, int) and not isinstance(value, bool):
            value = float(value)

        return Metric(
            name=name,
            datatype=datatype,
            value=value,
            timestamp=item.get("timestamp"),
            alias=item.get("alias"),
        ).validate()
