"""Static label injection.

Every sample leaving the exporter carries the operator's configured labels
(e.g. cluster="c1"), so several exporters can feed one Prometheus without
their series colliding.

PRECEDENCE
-----------
If upstream already sets a label with the same key as a configured one,
the configured value wins.  The operator declared it explicitly; letting
an upstream value silently shadow it would make the label useless as a
selector.

ORDERING
---------
Output labels are the upstream labels that are not overridden, in their
original order, followed by the configured labels in configuration order.
The same input always yields byte-identical output.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import replace

from slurm_exporter.models.exposition import MetricFamily, Sample


def inject_labels(
    families: Sequence[MetricFamily], extra: Mapping[str, str]
) -> Sequence[MetricFamily]:
    """Return families whose samples all carry the extra labels.

    The input is never mutated.  With no extra labels the input sequence
    itself is returned.
    """
    if not extra:
        return families
    return [
        replace(family, samples=tuple(_relabel(s, extra) for s in family.samples))
        for family in families
    ]


def merge_labels(labels: Mapping[str, str], extra: Mapping[str, str]) -> dict[str, str]:
    merged = {key: value for key, value in labels.items() if key not in extra}
    merged.update(extra)
    return merged


def _relabel(sample: Sample, extra: Mapping[str, str]) -> Sample:
    return replace(sample, labels=merge_labels(sample.labels, extra))
