"""Text exposition format parser.

Turns one endpoint's response body into an ordered list of MetricFamily.

THE FORMAT IN ONE SCREEN
--------------------------
  # HELP slurm_nodes_idle Number of idle nodes
  # TYPE slurm_nodes_idle gauge
  slurm_nodes_idle 5
  slurm_partition_cpus{partition="debug",state="alloc"} 12 1700000000000

  - "# HELP <name> <text>" and "# TYPE <name> <kind>" attach metadata to
    a family.  Any other comment line is ignored.
  - Data lines are <name>[{labels}] <value> [<timestamp ms>].

Data lines are tokenized by prometheus_client's own text parser, fed one
line at a time.  Grouping lines into families stays here: upstream bodies
are relabelled and re-emitted family by family, and the merged output may
legitimately repeat a family name (one block per endpoint).

ROBUSTNESS POLICY
------------------
One bad data line must not throw away a whole endpoint.  Malformed data
lines are skipped with a warning and parsing continues.  Only structural
problems (undecodable body, broken HELP/TYPE metadata) raise
MalformedExposition, because at that point the family boundaries can no
longer be trusted.  strict=True turns every skipped line into an error.

REPEATED METADATA
------------------
A HELP or TYPE line for a name whose block already has samples, already
has that metadata, or is no longer the current block starts a new block
of the same name.  That is how two endpoints exposing one name look once
merged, and it lets the writer's output be read back unchanged.
"""

from __future__ import annotations

import logging
import re

from prometheus_client.parser import text_string_to_metric_families

from slurm_exporter.core.errors import MalformedExposition
from slurm_exporter.models.exposition import MetricFamily, MetricKind, Sample

logger = logging.getLogger(__name__)

METRIC_NAME_RE = re.compile(r"[a-zA-Z_:][a-zA-Z0-9_:]*")
LABEL_NAME_RE = re.compile(r"[a-zA-Z_][a-zA-Z0-9_]*")

# "# HELP name text" / "# TYPE name kind".  HELP text is everything after
# the single separator following the name, kept verbatim.
_METADATA_RE = re.compile(r"#[ \t]*(HELP|TYPE)(?:[ \t]+(\S*)(?:[ \t](.*))?)?")

# Sample-name suffixes that belong to a family of the given kind.
_KIND_SUFFIXES: dict[MetricKind, tuple[str, ...]] = {
    MetricKind.HISTOGRAM: ("_bucket", "_sum", "_count", "_created"),
    MetricKind.SUMMARY: ("_sum", "_count", "_created"),
    MetricKind.COUNTER: ("_total", "_created"),
}


class _FamilyBuilder:
    def __init__(self, name: str) -> None:
        self.name = name
        self.help = ""
        self.has_help = False
        self.kind = MetricKind.UNTYPED
        self.typed = False
        self.samples: list[Sample] = []

    def build(self) -> MetricFamily:
        return MetricFamily(
            name=self.name,
            help=self.help,
            kind=self.kind,
            samples=tuple(self.samples),
        )


class _Families:
    """Family blocks in appearance order, plus the current block per name."""

    def __init__(self) -> None:
        self.blocks: list[_FamilyBuilder] = []
        self.latest: dict[str, _FamilyBuilder] = {}

    def get(self, name: str) -> _FamilyBuilder | None:
        return self.latest.get(name)

    def start(self, name: str) -> _FamilyBuilder:
        builder = _FamilyBuilder(name)
        self.blocks.append(builder)
        self.latest[name] = builder
        return builder

    def is_current(self, builder: _FamilyBuilder) -> bool:
        return bool(self.blocks) and self.blocks[-1] is builder


def parse_exposition(
    body: bytes | str, *, source: str = "", strict: bool = False
) -> list[MetricFamily]:
    """Parse a complete exposition body.

    Args:
        body:   raw response body (bytes are decoded as UTF-8)
        source: endpoint name, used only for log context
        strict: raise on malformed data lines instead of skipping them

    Raises:
        MalformedExposition: on structural errors (and any bad line in strict mode)
    """
    if isinstance(body, bytes):
        try:
            text = body.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise MalformedExposition(f"body is not valid UTF-8: {exc}") from None
    else:
        text = body

    families = _Families()

    # split("\n") rather than splitlines(): label values may legally contain
    # characters that splitlines() treats as line boundaries.
    for lineno, raw in enumerate(text.split("\n"), start=1):
        line = raw.strip()
        if not line:
            continue

        if line.startswith("#"):
            # Only the line ending is dropped; HELP text keeps its spacing.
            _parse_comment(raw.lstrip().rstrip("\r"), lineno, families)
            continue

        try:
            sample = parse_sample_line(line)
        except MalformedExposition as exc:
            if strict:
                raise MalformedExposition(exc.reason, lineno=lineno, line=raw) from None
            logger.warning(
                "Skipping malformed line %d from %s: %s",
                lineno,
                source or "upstream",
                exc.reason,
                extra={"endpoint": source or None},
            )
            continue

        _family_for(sample.name, families).samples.append(sample)

    return [builder.build() for builder in families.blocks]


def parse_sample_line(line: str) -> Sample:
    """Tokenize one data line: name[{labels}] value [timestamp]."""
    try:
        parsed = [
            s for metric in text_string_to_metric_families(line + "\n") for s in metric.samples
        ]
    except ValueError as exc:
        raise MalformedExposition(f"invalid sample line: {exc}") from None
    if len(parsed) != 1:
        raise MalformedExposition("expected exactly one sample")
    [sample] = parsed

    if not METRIC_NAME_RE.fullmatch(sample.name):
        raise MalformedExposition(f"invalid metric name {sample.name!r}")
    for key in sample.labels:
        if key == "__name__" or not LABEL_NAME_RE.fullmatch(key):
            raise MalformedExposition(f"invalid label name {key!r}")

    # The library reports timestamps in seconds; the wire carries milliseconds.
    timestamp = None
    if sample.timestamp is not None:
        timestamp = round(float(sample.timestamp) * 1000)

    return Sample(
        name=sample.name,
        labels=dict(sample.labels),
        value=float(sample.value),
        timestamp=timestamp,
    )


def _parse_comment(line: str, lineno: int, families: _Families) -> None:
    match = _METADATA_RE.fullmatch(line)
    if match is None:
        return

    keyword, name, rest = match.group(1), match.group(2) or "", match.group(3) or ""
    if not METRIC_NAME_RE.fullmatch(name):
        raise MalformedExposition(
            f"{keyword} line without a valid metric name", lineno=lineno, line=line
        )

    kind = None
    if keyword == "TYPE":
        try:
            kind = MetricKind(rest.strip().lower())
        except ValueError:
            raise MalformedExposition(
                f"unknown metric type {rest!r} for {name}", lineno=lineno, line=line
            ) from None

    builder = families.get(name)
    if (
        builder is None
        or builder.samples
        or not families.is_current(builder)
        or (kind is None and builder.has_help)
        or (kind is not None and builder.typed)
    ):
        builder = families.start(name)

    if kind is None:
        builder.help = _unescape_help(rest)
        builder.has_help = True
    else:
        builder.kind = kind
        builder.typed = True


def _family_for(sample_name: str, families: _Families) -> _FamilyBuilder:
    builder = families.get(sample_name)
    if builder is not None:
        return builder

    for kind, suffixes in _KIND_SUFFIXES.items():
        for suffix in suffixes:
            if not sample_name.endswith(suffix):
                continue
            base = families.get(sample_name[: -len(suffix)])
            if base is not None and base.kind is kind:
                return base

    return families.start(sample_name)


def _unescape_help(text: str) -> str:
    if "\\" not in text:
        return text
    out: list[str] = []
    i = 0
    while i < len(text):
        ch = text[i]
        nxt = text[i + 1 : i + 2]
        if ch == "\\" and nxt in ("\\", "n"):
            out.append("\n" if nxt == "n" else "\\")
            i += 2
            continue
        out.append(ch)
        i += 1
    return "".join(out)
