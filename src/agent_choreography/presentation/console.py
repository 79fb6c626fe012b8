"""Rich-based console rendering of handled requests.

:class:`ConsoleDashboard` renders a :class:`HandleResult` as a panel for the
artifact plus tables for the bids and the quality scores, and optionally a
latency table from a :class:`PerformanceTracker`.  Passing
``use_rich=False`` produces plain ``print()`` output for pipes and logs.
"""

from __future__ import annotations

import sys
from collections.abc import Mapping
from typing import Any

from rich.console import Console as RichConsole
from rich.panel import Panel as RichPanel
from rich.table import Table as RichTable

from agent_choreography.domain.enums import HandleStatus
from agent_choreography.domain.values import HandleResult, score_label
from agent_choreography.infrastructure.performance import PerformanceTracker

# ---------------------------------------------------------------------------
# Sparkline helpers
# ---------------------------------------------------------------------------

_SPARK_CHARS = " " + "▁▂▃▄▅▆▇█"


def _sparkline(values: list[float]) -> str:
    """Unicode sparkline for values in ``[0, 1]``."""
    if not values:
        return ""
    n_chars = len(_SPARK_CHARS) - 1
    return "".join(
        _SPARK_CHARS[max(0, min(n_chars, int(round(v * n_chars))))] for v in values
    )


_STATUS_STYLE = {
    HandleStatus.COMPLETED: "green",
    HandleStatus.BLOCKED: "red",
    HandleStatus.UNAVAILABLE: "yellow",
    HandleStatus.CANCELLED: "dim",
}


# ---------------------------------------------------------------------------
# ConsoleDashboard
# ---------------------------------------------------------------------------

class ConsoleDashboard:
    """Console presentation of :class:`HandleResult` values.

    Parameters
    ----------
    use_rich:
        Render with ``rich`` (default) or as plain text.
    file:
        Output stream.  Defaults to ``sys.stdout``.
    """

    def __init__(self, use_rich: bool = True, file: Any = None) -> None:
        self._file = file or sys.stdout
        self._use_rich = use_rich
        self._console = RichConsole(file=self._file) if use_rich else None

    def _plain_print(self, *args: Any, **kwargs: Any) -> None:
        kwargs.setdefault("file", self._file)
        print(*args, **kwargs)

    # -- public API --------------------------------------------------------

    def print_result(self, result: HandleResult) -> None:
        """Print the artifact, bids and quality badge of *result*."""
        if self._console is not None:
            self._print_result_rich(result)
        else:
            self._print_result_plain(result)

    def print_performance(self, tracker: PerformanceTracker) -> None:
        """Print per-operation backend latency, slowest total first."""
        metrics = tracker.get_metrics()
        if not metrics:
            return
        if self._console is None:
            self._plain_print("Latency:")
            for m in metrics:
                self._plain_print(
                    f"  {m.operation:<24s} calls={m.call_count} "
                    f"avg={m.avg_seconds:.2f}s max={m.max_seconds:.2f}s"
                )
            return
        table = RichTable(title="Latency", show_header=True, header_style="bold cyan")
        table.add_column("Operation", style="bold")
        table.add_column("Calls", justify="right")
        table.add_column("Avg (s)", justify="right")
        table.add_column("Max (s)", justify="right")
        table.add_column("Total (s)", justify="right")
        for m in metrics:
            table.add_row(
                m.operation,
                str(m.call_count),
                f"{m.avg_seconds:.2f}",
                f"{m.max_seconds:.2f}",
                f"{m.total_seconds:.2f}",
            )
        self._console.print(table)

    # ======================================================================
    # Rich implementations
    # ======================================================================

    def _print_result_rich(self, result: HandleResult) -> None:
        assert self._console is not None
        meta = result.metadata
        style = _STATUS_STYLE.get(result.status, "white")
        subtitle = f"confidence {result.confidence:.2f} ({score_label(result.confidence)})"
        if result.status is not HandleStatus.COMPLETED:
            subtitle = result.status.value
        self._console.print(
            RichPanel(
                result.artifact or "(no output)",
                title=f"[bold]{result.agent or 'no agent'}[/bold]",
                subtitle=subtitle,
                border_style=style,
            )
        )

        bids: Mapping[str, float] = meta.get("bids", {})
        if bids:
            table = RichTable(title="Bids", show_header=True, header_style="bold cyan")
            table.add_column("Agent", style="bold")
            table.add_column("Confidence", justify="right")
            for agent_id, conf in sorted(bids.items(), key=lambda kv: -kv[1]):
                marker = " *" if agent_id == result.agent else ""
                table.add_row(f"{agent_id}{marker}", f"{conf:.2f}")
            self._console.print(table)

        scores: Mapping[str, float] = meta.get("quality_scores", {})
        if scores:
            table = RichTable(
                title=f"Quality: {meta.get('quality_label', '')}",
                show_header=True,
                header_style="bold cyan",
            )
            table.add_column("Dimension", style="bold")
            table.add_column("Score", justify="right")
            table.add_column("", style="dim")
            for name, value in scores.items():
                table.add_row(name, f"{value:.2f}", score_label(value))
            self._console.print(table)

        history = meta.get("confidence_history", [])
        if history:
            self._console.print(
                f"Confidence {_sparkline(history)}  "
                f"iterations={meta.get('iterations', len(history))}  "
                f"reason={meta.get('completion_reason', '')}"
            )
        if "security_warning" in meta:
            self._console.print(
                f"[yellow]Security warning:[/yellow] {', '.join(meta['security_warning'])}"
            )

    # ======================================================================
    # Plain-text implementations
    # ======================================================================

    def _print_result_plain(self, result: HandleResult) -> None:
        meta = result.metadata
        self._plain_print(f"== {result.agent or 'no agent'} [{result.status.value}] ==")
        self._plain_print(result.artifact or "(no output)")
        self._plain_print()
        if result.status is HandleStatus.COMPLETED:
            self._plain_print(
                f"Confidence: {result.confidence:.2f} ({score_label(result.confidence)})"
            )
        bids: Mapping[str, float] = meta.get("bids", {})
        if bids:
            self._plain_print(
                "Bids: " + ", ".join(f"{a}={c:.2f}" for a, c in sorted(bids.items()))
            )
        scores: Mapping[str, float] = meta.get("quality_scores", {})
        for name, value in scores.items():
            self._plain_print(f"  {name:<20s} {value:.2f}")
        history = meta.get("confidence_history", [])
        if history:
            self._plain_print(f"Confidence {_sparkline(history)}")
        if "security_warning" in meta:
            self._plain_print(f"Security warning: {', '.join(meta['security_warning'])}")
