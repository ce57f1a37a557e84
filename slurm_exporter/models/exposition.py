from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum


class MetricKind(str, Enum):
    COUNTER = "counter"
    GAUGE = "gauge"
    HISTOGRAM = "histogram"
    SUMMARY = "summary"
    UNTYPED = "untyped"


@dataclass(frozen=True, slots=True)
class Sample:
    """One data point of a family.

    name:      the sample name as written on the wire.  Usually equal to
               the family name; histogram and summary families also carry
               <family>_bucket / _sum / _count samples.
    labels:    label key -> value, in wire order.  Never mutated after
               construction; the label injector builds new dicts.
    value:     64-bit float (NaN and +/-Inf allowed)
    timestamp: optional, integer milliseconds since the epoch
    """

    name: str
    labels: dict[str, str]
    value: float
    timestamp: int | None = None


@dataclass(frozen=True, slots=True)
class MetricFamily:
    name: str
    help: str = ""
    kind: MetricKind = MetricKind.UNTYPED
    samples: tuple[Sample, ...] = field(default_factory=tuple)
