"""Text exposition format writer.

Serializes MetricFamily objects back into the format the parser reads,
one HELP/TYPE block per family, in the order given.  Output is produced
family by family so the HTTP layer can stream it without holding the
whole body in memory.
"""

from __future__ import annotations

import math
from collections.abc import Iterable, Iterator
from typing import TextIO

from prometheus_client.utils import floatToGoString

from slurm_exporter.models.exposition import MetricFamily, Sample


def iter_exposition(families: Iterable[MetricFamily]) -> Iterator[str]:
    """Yield one text chunk per family."""
    for family in families:
        lines: list[str] = []
        if family.help:
            lines.append(f"# HELP {family.name} {escape_help(family.help)}\n")
        lines.append(f"# TYPE {family.name} {family.kind.value}\n")
        lines.extend(format_sample(sample) for sample in family.samples)
        yield "".join(lines)


def write_exposition(families: Iterable[MetricFamily], sink: TextIO) -> None:
    for chunk in iter_exposition(families):
        sink.write(chunk)


def render_exposition(families: Iterable[MetricFamily]) -> str:
    return "".join(iter_exposition(families))


def format_sample(sample: Sample) -> str:
    line = sample.name
    if sample.labels:
        pairs = ",".join(
            f'{key}="{escape_label_value(value)}"' for key, value in sample.labels.items()
        )
        line = f"{line}{{{pairs}}}"
    line = f"{line} {format_value(sample.value)}"
    if sample.timestamp is not None:
        line = f"{line} {sample.timestamp}"
    return line + "\n"


def format_value(value: float) -> str:
    # Integral values are written without a fractional part (5, not 5.0);
    # -0.0 keeps its sign.
    value = float(value)
    negative_zero = value == 0 and math.copysign(1.0, value) < 0
    if value.is_integer() and abs(value) < 1e15 and not negative_zero:
        return str(int(value))
    return floatToGoString(value)


def escape_label_value(value: str) -> str:
    return value.replace("\\", "\\\\").replace("\n", "\\n").replace('"', '\\"')


def escape_help(text: str) -> str:
    return text.replace("\\", "\\\\").replace("\n", "\\n")
