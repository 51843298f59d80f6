"""Typed FFmpeg filter-graph builder.

Filters, chains and graphs are plain Python objects until ``render()`` is
called, which produces text in FFmpeg's ``-filter_complex`` grammar:

    [0:v][1:v]xfade=transition=fade:duration=1:offset=4,format=yuv420p[v1];[...]

Parameter values are quoted when they contain characters that are special to
the grammar (``:`` ``,`` ``;`` ``[`` ``]`` ``=`` ``'`` or whitespace), so
expressions such as ``min(1+0.001*on,1.5)`` are safe to pass as-is.
"""

import re
from dataclasses import dataclass, field
from typing import Any, Iterable

# Pad labels and stream specifiers: "v1", "a_out", "0:v", "2:a:0"
_LABEL_RE = re.compile(r"^[A-Za-z0-9_.:]+$")
_SPECIAL_CHARS = set(":,;[]='\\ \t\n")


def format_number(value: float | int) -> str:
    """Format a number compactly: 4.0 -> "4", 0.4545454 -> "0.454545"."""
    if isinstance(value, bool):
        return "1" if value else "0"
    if isinstance(value, int):
        return str(value)
    text = f"{value:.6f}".rstrip("0").rstrip(".")
    if text in ("-0", ""):
        return "0"
    return text


def escape_value(value: Any) -> str:
    """Render a single option value, quoting it when required."""
    if isinstance(value, (int, float)):
        return format_number(value)
    text = str(value)
    if not text:
        return "''"
    if not any(ch in _SPECIAL_CHARS for ch in text):
        return text
    # Inside single quotes nothing is special except the quote itself, which
    # has to be closed, escaped and reopened.
    return "'" + text.replace("'", "'\\''") + "'"


def validate_label(label: str) -> str:
    if not _LABEL_RE.match(label):
        raise ValueError(f"Invalid pad label: {label!r}")
    return label


class Filter:
    """One filter with positional and named parameters.

    >>> Filter("scale", 1280, 720, flags="lanczos").render()
    'scale=1280:720:flags=lanczos'
    """

    def __init__(self, name: str, *args: Any, **kwargs: Any):
        if not re.match(r"^[a-z0-9_]+$", name):
            raise ValueError(f"Invalid filter name: {name!r}")
        self.name = name
        self.args: tuple[Any, ...] = tuple(a for a in args if a is not None)
        self.kwargs: dict[str, Any] = {k: v for k, v in kwargs.items() if v is not None}

    def param(self, key: str) -> Any:
        return self.kwargs.get(key)

    def render(self) -> str:
        parts = [escape_value(a) for a in self.args]
        parts.extend(f"{k}={escape_value(v)}" for k, v in self.kwargs.items())
        if not parts:
            return self.name
        return f"{self.name}={':'.join(parts)}"

    def __repr__(self) -> str:
        return f"Filter({self.render()!r})"

    def __eq__(self, other: object) -> bool:
        return isinstance(other, Filter) and self.render() == other.render()


@dataclass
class FilterChain:
    """A linear sequence of filters between labeled input and output pads."""

    inputs: list[str] = field(default_factory=list)
    filters: list[Filter] = field(default_factory=list)
    outputs: list[str] = field(default_factory=list)

    def __post_init__(self) -> None:
        for label in (*self.inputs, *self.outputs):
            validate_label(label)
        if not self.filters:
            raise ValueError("A filter chain needs at least one filter")

    def render(self) -> str:
        ins = "".join(f"[{label}]" for label in self.inputs)
        outs = "".join(f"[{label}]" for label in self.outputs)
        body = ",".join(f.render() for f in self.filters)
        return f"{ins}{body}{outs}"


class FilterGraph:
    """Ordered collection of chains plus a fresh-label allocator."""

    def __init__(self) -> None:
        self.chains: list[FilterChain] = []
        self._counters: dict[str, int] = {}

    def new_label(self, prefix: str) -> str:
        """Allocate ``prefix1``, ``prefix2``, ... in order."""
        count = self._counters.get(prefix, 0) + 1
        self._counters[prefix] = count
        return validate_label(f"{prefix}{count}")

    def add(
        self,
        inputs: Iterable[str],
        filters: Iterable[Filter],
        outputs: Iterable[str],
    ) -> FilterChain:
        chain = FilterChain(list(inputs), list(filters), list(outputs))
        self.chains.append(chain)
        return chain

    @property
    def output_labels(self) -> list[str]:
        """Labels produced by some chain and consumed by none."""
        produced = [label for chain in self.chains for label in chain.outputs]
        consumed = {label for chain in self.chains for label in chain.inputs}
        return [label for label in produced if label not in consumed]

    def render(self) -> str:
        if not self.chains:
            raise ValueError("Filter graph is empty")
        return ";".join(chain.render() for chain in self.chains)

    def __len__(self) -> int:
        return len(self.chains)


def render_chain(filters: Iterable[Filter]) -> str:
    """Render filters as a plain comma-separated chain (``-vf`` style)."""
    return ",".join(f.render() for f in filters)
