"""Declared set of metrics an edge node or device may publish."""

from typing import Iterable, Iterator, Optional

from .models import DataType, Metric


class KnownMetricSet:
    """
    Immutable, ordered set of metric declarations.

    Lookup is by exact name. Re-declaring metrics requires building a new set.
    """

    __slots__ = ("_metrics", "_by_name")

    def __init__(self, metrics: Iterable[Metric] = ()):
        """
        Initialize the set.

        Args:
            metrics: Metric declarations in declaration order. On duplicate
                names the first declaration wins.
        """
        ordered: list[Metric] = []
        by_name: dict[str, Metric] = {}
        for metric in metrics:
            if metric.name in by_name:
                continue
            by_name[metric.name] = metric
            ordered.append(metric)
        self._metrics = tuple(ordered)
        self._by_name = by_name

    @classmethod
    def parse(cls, declaration: str) -> "KnownMetricSet":
        """
        Build a set from a comma-separated ``name:datatype`` list.

        Example: ``"Temperature:double,Running:boolean"``. The datatype
        defaults to DOUBLE when omitted.
        """
        metrics = []
        for item in declaration.split(","):
            item = item.strip()
            if not item:
                continue
            # rpartition so names may themselves contain ":"
            name, _, datatype = item.rpartition(":")
            if not name:  # bare name
                name, datatype = datatype, "double"
            metrics.append(Metric(name=name.strip(), datatype=DataType.from_name(datatype)))
        return cls(metrics)

    def contains(self, name: str) -> bool:
        return name in self._by_name

    def lookup(self, name: str) -> Optional[Metric]:
        """Return the declaration for name, or None if it is not known."""
        return self._by_name.get(name)

    @property
    def names(self) -> list[str]:
        return [metric.name for metric in self._metrics]

    def __contains__(self, name: object) -> bool:
        return name in self._by_name

    def __iter__(self) -> Iterator[Metric]:
        return iter(self._metrics)

    def __len__(self) -> int:
        return len(self._metrics)

    def __repr__(self) -> str:
        return f"KnownMetricSet({self.names!r})"
