"""IV curve charts and one-line power summaries for simulation steps."""

from __future__ import annotations

from io import BytesIO
from typing import Optional

import numpy as np

from shellpower.electrical.iv_trace import IVTrace
from shellpower.simulation.simulator import ArraySimulationStepOutput

# ══════════════════════════════════════════════════════════════════════
# Constants
# ══════════════════════════════════════════════════════════════════════

CHART_DPI = 150

# Sun direction the summary compares against: almost overhead.
NOON_SUN_DIRECTION = np.array([0.1, 0.995, 0.0]) / np.linalg.norm([0.1, 0.995, 0.0])

# Lit area may differ from cell area by this fraction before it is
# flagged as a layout/mesh mismatch.
AREA_MISMATCH_TOLERANCE = 0.01

CHART_COLORS = [
    "#2563eb",  # Blue
    "#059669",  # Green
    "#d97706",  # Yellow
    "#ea580c",  # Orange
    "#7c3aed",  # Purple
    "#0d9488",  # Teal
    "#dc2626",  # Red
    "#6b7280",  # Gray
]


# ══════════════════════════════════════════════════════════════════════
# Matplotlib setup
# ══════════════════════════════════════════════════════════════════════

def _init_mpl():
    import matplotlib
    matplotlib.use("Agg")
    import matplotlib.pyplot as plt
    plt.rcParams.update({
        "font.size": 8,
        "axes.titlesize": 10,
        "axes.labelsize": 8,
        "xtick.labelsize": 7,
        "ytick.labelsize": 7,
        "legend.fontsize": 7,
        "figure.dpi": CHART_DPI,
    })
    return plt


def _fig_to_buf(fig) -> BytesIO:
    """Save matplotlib figure to BytesIO PNG buffer."""
    buf = BytesIO()
    fig.savefig(buf, format="png", dpi=CHART_DPI, bbox_inches="tight")
    import matplotlib.pyplot as plt
    plt.close(fig)
    buf.seek(0)
    return buf


# ══════════════════════════════════════════════════════════════════════
# Charts
# ══════════════════════════════════════════════════════════════════════

def _plot_trace(ax, trace: IVTrace, label: str, color: str) -> None:
    ax.plot(trace.voltages, trace.currents, label=label, color=color, linewidth=0.9)
    if trace.pmp > 0.0:
        ax.plot([trace.vmp], [trace.imp], marker="o", markersize=3, color=color)


def render_iv_chart(
    output: ArraySimulationStepOutput,
    title: Optional[str] = None,
) -> BytesIO:
    """Plot every string's IV curve with its maximum power point.

    Returns a PNG in a rewound ``BytesIO``.
    """
    plt = _init_mpl()
    fig, ax = plt.subplots(figsize=(6, 3.5))

    for i, s in enumerate(output.strings):
        label = f"{s.name}: {s.watts_output:.1f} W"
        _plot_trace(ax, s.iv_trace, label, CHART_COLORS[i % len(CHART_COLORS)])

    ax.set_xlabel("Voltage (V)")
    ax.set_ylabel("Current (A)")
    ax.set_title(title or f"String IV curves ({output.watts_output:.0f} W)", fontweight="bold")
    ax.set_xlim(left=0)
    ax.set_ylim(bottom=0)
    if output.strings:
        ax.legend(fontsize=6, loc="best")
    ax.grid(True, alpha=0.3)
    fig.tight_layout()
    return _fig_to_buf(fig)


# ══════════════════════════════════════════════════════════════════════
# Text summary
# ══════════════════════════════════════════════════════════════════════

def _pct(value: float, reference: float) -> float:
    return value / reference * 100.0 if reference > 0.0 else 0.0


def format_power_breakdown(
    output: ArraySimulationStepOutput,
    reference: ArraySimulationStepOutput,
) -> str:
    """Three-line summary of a step relative to a reference step.

    *reference* is normally the same array simulated with the sun at
    :data:`NOON_SUN_DIRECTION`, where every cell should be lit; its lit
    area disagreeing with the total cell area by more than 1 % is
    flagged as a mismatch.
    """
    distortion = (
        abs(reference.array_lit_area - output.array_area) / output.array_area
        if output.array_area > 0.0 else 0.0
    )
    mismatch = " (MISMATCH)" if distortion > AREA_MISMATCH_TOLERANCE else ""

    headline = f"{output.watts_output:.0f}W over {output.array_area:.2f}m² cell area"
    area_line = (
        f", {reference.array_lit_area:.2f}m² lit cells{mismatch}, "
        f"{reference.array_lit_area - output.array_lit_area:.2f}m² shaded"
    )
    power_line = (
        f"(Power breakdown: "
        f"{output.watts_insolation:.0f}W "
        f"{_pct(output.watts_insolation, reference.watts_insolation):.0f}% in, "
        f"{output.watts_output_by_cell:.0f}W "
        f"{_pct(output.watts_output_by_cell, reference.watts_output_by_cell):.0f}% ideal mppt, "
        f"{output.watts_output:.0f}W "
        f"{_pct(output.watts_output, reference.watts_output_by_cell):.0f}% output)"
    )
    return "\n".join([headline, area_line, power_line])
