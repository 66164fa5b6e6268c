"""
Builders for canonical Sparkplug B message envelopes.

The factory applies the outbound metric policies:

- only metrics declared in the known set are published, others are dropped
- reserved metric names (the session number among them) are framework
  owned and always stripped from caller input
- births reset the sequence counter and always carry the session number
- deaths carry no sequence number
"""
import logging
import time
from typing import Iterable, Optional

from .constants import DEFAULT_RESERVED_METRIC_NAMES, NAMESPACE, SESSION_NUMBER_METRIC_NAME
from .counters import SequenceCounter, SessionState
from .errors import ConfigurationMissing
from .known_metrics import KnownMetricSet
from .models import DataType, Envelope, MessageType, Metric, Scope

logger = logging.getLogger(__name__)


def now_ms() -> int:
    """Current time as milliseconds since the epoch."""
    return int(time.time() * 1000)


class MessageFactory:
    """Builds birth, data, death and command envelopes for one edge node."""

    def __init__(
        self,
        group_id: Optional[str],
        edge_node_id: Optional[str],
        namespace: str = NAMESPACE,
        embed_session_number: bool = True,
        reserved_metric_names: Iterable[str] = DEFAULT_RESERVED_METRIC_NAMES,
    ):
        """
        Initialize the factory.

        Args:
            group_id: Sparkplug group identifier
            edge_node_id: Edge node identifier
            namespace: Topic namespace
            embed_session_number: Append the session number metric to data messages
            reserved_metric_names: Names stripped from caller-supplied metrics
        """
        self.group_id = group_id
        self.edge_node_id = edge_node_id
        self.namespace = namespace
        self.embed_session_number = embed_session_number
        self.reserved_metric_names = frozenset(reserved_metric_names) | {
            SESSION_NUMBER_METRIC_NAME
        }

    # =========================================================================
    # Policies
    # =========================================================================

    def _require_identity(self, device_id: Optional[str] = None, device_scoped: bool = False) -> None:
        if not self.group_id:
            raise ConfigurationMissing("The group identifier is not set")
        if not self.edge_node_id:
            raise ConfigurationMissing("The edge node identifier is not set")
        if device_scoped and not device_id:
            raise ConfigurationMissing("The device identifier is not set")

    def _strip_reserved(self, metrics: Iterable[Metric]) -> list[Metric]:
        return [m for m in metrics if m.name not in self.reserved_metric_names]

    def filter_metrics(self, metrics: Iterable[Metric], known: KnownMetricSet) -> list[Metric]:
        """
        Apply the outbound policies to caller-supplied metrics.

        Unknown names are dropped silently, reserved names are stripped and
        every surviving metric is validated.

        Raises:
            InvalidMetricType: If a surviving metric has an invalid value
        """
        kept = []
        for metric in self._strip_reserved(metrics):
            if not known.contains(metric.name):
                logger.debug(f"Dropping unknown metric: {metric.name}")
                continue
            kept.append(metric.validate())
        return kept

    @staticmethod
    def session_metric(session_number: int, timestamp: Optional[int] = None) -> Metric:
        return Metric(
            name=SESSION_NUMBER_METRIC_NAME,
            datatype=DataType.INT64,
            value=session_number,
            timestamp=timestamp,
        )

    def _envelope(
        self,
        message_type: MessageType,
        metrics: list[Metric],
        timestamp: int,
        sequence_number: Optional[int] = None,
        device_id: Optional[str] = None,
    ) -> Envelope:
        return Envelope(
            message_type=message_type,
            namespace=self.namespace,
            group_id=self.group_id,
            edge_node_id=self.edge_node_id,
            device_id=device_id,
            metrics=tuple(metrics),
            sequence_number=sequence_number,
            timestamp=timestamp,
        )

    # =========================================================================
    # Node messages
    # =========================================================================

    def build_node_birth(
        self,
        metrics: Iterable[Metric],
        seq: SequenceCounter,
        session: SessionState,
        now: Optional[int] = None,
    ) -> Envelope:
        """
        Build an NBIRTH.

        Resets the sequence counter, stamps sequence number 0 and always
        appends the session number metric.
        """
        self._require_identity()
        timestamp = now if now is not None else now_ms()
        birth_metrics = [m.validate() for m in self._strip_reserved(metrics)]
        birth_metrics.append(self.session_metric(session.current_session(), timestamp))

        seq.reset()
        return self._envelope(
            MessageType.NODE_BIRTH, birth_metrics, timestamp, sequence_number=seq.current()
        )

    def build_node_data(
        self,
        metrics: Iterable[Metric],
        known: KnownMetricSet,
        seq: SequenceCounter,
        session: SessionState,
        now: Optional[int] = None,
    ) -> Envelope:
        """Build an NDATA, consuming one sequence number."""
        return self._build_data(MessageType.NODE_DATA, metrics, known, seq, session, now)

    def build_node_death(self, session_number: int, now: Optional[int] = None) -> Envelope:
        """Build an NDEATH carrying only the session number metric."""
        self._require_identity()
        timestamp = now if now is not None else now_ms()
        return self._envelope(
            MessageType.NODE_DEATH, [self.session_metric(session_number, timestamp)], timestamp
        )

    # =========================================================================
    # Device messages
    # =========================================================================

    def build_device_birth(
        self,
        device_id: str,
        metrics: Iterable[Metric],
        seq: SequenceCounter,
        now: Optional[int] = None,
    ) -> Envelope:
        """
        Build a DBIRTH.

        Device births belong to the ordered stream of the live node session,
        so they consume a sequence number instead of resetting the counter.
        """
        self._require_identity(device_id, device_scoped=True)
        timestamp = now if now is not None else now_ms()
        birth_metrics = [m.validate() for m in self._strip_reserved(metrics)]
        return self._envelope(
            MessageType.DEVICE_BIRTH,
            birth_metrics,
            timestamp,
            sequence_number=seq.next(),
            device_id=device_id,
        )

    def build_device_data(
        self,
        device_id: str,
        metrics: Iterable[Metric],
        known: KnownMetricSet,
        seq: SequenceCounter,
        session: SessionState,
        now: Optional[int] = None,
    ) -> Envelope:
        """Build a DDATA filtered against the device's known metrics."""
        return self._build_data(
            MessageType.DEVICE_DATA, metrics, known, seq, session, now, device_id=device_id
        )

    def build_device_death(self, device_id: str, now: Optional[int] = None) -> Envelope:
        """Build a DDEATH (no metrics, no sequence number)."""
        self._require_identity(device_id, device_scoped=True)
        timestamp = now if now is not None else now_ms()
        return self._envelope(MessageType.DEVICE_DEATH, [], timestamp, device_id=device_id)

    # =========================================================================
    # Commands
    # =========================================================================

    def build_command(
        self,
        metrics: Iterable[Metric],
        device_id: Optional[str] = None,
        now: Optional[int] = None,
    ) -> Envelope:
        """Build an NCMD (or DCMD when device_id is given) addressed to this node."""
        self._require_identity(device_id, device_scoped=device_id is not None)
        timestamp = now if now is not None else now_ms()
        message_type = MessageType.DEVICE_COMMAND if device_id else MessageType.NODE_COMMAND
        return self._envelope(
            message_type, [m.validate() for m in metrics], timestamp, device_id=device_id
        )

    # =========================================================================
    # Internal
    # =========================================================================

    def _build_data(
        self,
        message_type: MessageType,
        metrics: Iterable[Metric],
        known: KnownMetricSet,
        seq: SequenceCounter,
        session: SessionState,
        now: Optional[int],
        device_id: Optional[str] = None,
    ) -> Envelope:
        self._require_identity(device_id, device_scoped=message_type.scope is Scope.DEVICE)
        timestamp = now if now is not None else now_ms()

        data_metrics = self.filter_metrics(metrics, known)
        if self.embed_session_number:
            data_metrics.append(self.session_metric(session.current_session(), timestamp))

        # Validation is complete; only now consume a sequence number
        return self._envelope(
            message_type,
            data_metrics,
            timestamp,
            sequence_number=seq.next(),
            device_id=device_id,
        )
