"""Render and export a generated sample."""

from __future__ import annotations

import math
from pathlib import Path
from typing import Iterable, Optional

import matplotlib

matplotlib.use("Agg")

import matplotlib.pyplot as plt
import numpy as np
import pandas as pd
from scipy import stats as scipy_stats

from .capability import SampleSummary
from .limits import RangeConstraint, SpecLimits
from .search import SearchOutcome, SearchResult


def format_number(value: float, decimals: int) -> str:
    return f"{value:.{decimals}f}"


def format_capability(value: Optional[float]) -> str:
    if value is None:
        return "-"
    if math.isinf(value):
        return "inf"
    return f"{value:.3f}"


def format_values(sample: Iterable[float], decimals: int) -> str:
    return "\n".join(format_number(value, decimals) for value in sample)


def values_table(sample: Iterable[float], subgroup_size: int) -> pd.DataFrame:
    values = list(sample)
    index = np.arange(1, len(values) + 1)
    return pd.DataFrame(
        {
            "index": index,
            "subgroup": (index - 1) // subgroup_size + 1,
            "value": values,
        }
    )


def write_values(sample: Iterable[float], path: Path, decimals: int, subgroup_size: int) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    values_table(sample, subgroup_size).to_csv(path, index=False, float_format=f"%.{decimals}f")
    return path


def status_text(result: SearchResult, summary: Optional[SampleSummary], value_range: RangeConstraint) -> str:
    if result.outcome is SearchOutcome.REJECTED or summary is None:
        return result.message

    cpk = summary.estimate.cpk
    line = "Generation complete"
    if result.restricted:
        line += " (all values in range)" if summary.outside_range == 0 else " (some values outside range)"
    elif summary.outside_range:
        line += f" ({summary.outside_range} values outside range)"

    if result.outcome is SearchOutcome.CONVERGED:
        line += f" | Target Cpk achieved: {format_capability(cpk)}"
    else:
        diff = abs(cpk - result.target_cpk)
        line += (
            f" | Best Cpk: {format_capability(cpk)} "
            f"(Target: {result.target_cpk:g}, Diff: {format_capability(diff)})"
        )

    lines = [result.message, line, f"Mean: {summary.estimate.mean:.4f} | Sigma: {result.final_sigma:.6f}"]
    lines.append(
        f"StDev within: {summary.estimate.std_within:.4f} | StDev overall: {summary.estimate.std_overall:.4f} "
        f"| Ppk: {format_capability(summary.estimate.ppk)}"
    )
    if summary.ad_p_value is not None:
        lines.append(f"Anderson-Darling: AD={summary.ad_stat:.3f}, p={summary.ad_p_value:.3f}")
    lines.append(f"Range [{value_range.min_value:g}, {value_range.max_value:g}] | N={summary.count}")
    return "\n".join(lines)


def _title(ax: plt.Axes, text: str, pad: float) -> None:
    ax.set_title(text, fontsize=10, pad=pad, fontweight="bold")


def _set_y_limits(ax: plt.Axes, values: Iterable[float], pad: float = 0.12) -> None:
    data = np.asarray(list(values), dtype=float)
    if data.size == 0:
        return
    min_value = float(np.min(data))
    max_value = float(np.max(data))
    if math.isclose(min_value, max_value):
        delta = max(0.01, abs(min_value) * pad)
    else:
        delta = (max_value - min_value) * pad
    ax.set_ylim(min_value - delta, max_value + delta)


def _spec_lines(spec: SpecLimits) -> list[tuple[str, float]]:
    lines = []
    if spec.lower_limit is not None:
        lines.append(("LSL", spec.lower_limit))
    if spec.upper_limit is not None:
        lines.append(("USL", spec.upper_limit))
    return lines


def _plot_run_chart(ax: plt.Axes, values: np.ndarray, summary: SampleSummary, spec: SpecLimits) -> None:
    x = np.arange(1, len(values) + 1)
    ax.plot(x, values, color="#1f77b4", marker="o", markersize=3, linewidth=0.8)
    ax.axhline(summary.estimate.mean, color="#2ca02c", linewidth=1)
    limits = _spec_lines(spec)
    for _label, limit in limits:
        ax.axhline(limit, color="#d62728", linestyle="--", linewidth=1)

    _title(ax, "Generated Values", pad=10)
    ax.set_ylabel("Value", fontsize=9)
    ax.set_xlim(1, max(len(values), 2))
    _set_y_limits(ax, list(values) + [limit for _label, limit in limits])
    ax.grid(True, axis="y", linestyle=":", alpha=0.6)
    ax.set_facecolor("white")

    x_min, x_max = ax.get_xlim()
    label_x = x_max + (x_max - x_min) * 0.03
    for label, limit in limits:
        ax.text(label_x, limit, f"{label}={limit:g}", fontsize=8, va="center", ha="left", clip_on=False)
    ax.text(
        label_x,
        summary.estimate.mean,
        f"$\\bar{{X}}$={summary.estimate.mean:.3f}",
        fontsize=8,
        va="center",
        ha="left",
        clip_on=False,
    )


def _plot_histogram(
    ax: plt.Axes,
    values: np.ndarray,
    summary: SampleSummary,
    spec: SpecLimits,
    value_range: RangeConstraint,
) -> None:
    ax.hist(values, bins=12, color="#8cb4e2", edgecolor="#4c72b0", alpha=0.7, density=True)

    estimate = summary.estimate
    x = np.linspace(min(values.min(), value_range.min_value), max(values.max(), value_range.max_value), 200)
    if estimate.std_within > 0:
        ax.plot(x, scipy_stats.norm.pdf(x, estimate.mean, estimate.std_within), color="#d62728", linewidth=1.2, label="Within")
    if estimate.std_overall > 0:
        ax.plot(x, scipy_stats.norm.pdf(x, estimate.mean, estimate.std_overall), color="#1f77b4", linewidth=1.2, label="Overall")

    for _label, limit in _spec_lines(spec):
        ax.axvline(limit, color="#d62728", linestyle="--", linewidth=1)
    ax.axvline(value_range.min_value, color="#7f7f7f", linestyle=":", linewidth=1)
    ax.axvline(value_range.max_value, color="#7f7f7f", linestyle=":", linewidth=1)

    _title(ax, "Capability Histogram", pad=12)
    ax.set_yticks([])
    ax.grid(True, axis="y", linestyle=":", alpha=0.6)
    ax.set_facecolor("white")

    _y_min, y_max = ax.get_ylim()
    for label, limit in _spec_lines(spec):
        ax.text(limit, y_max * 1.02, label, color="#d62728", fontsize=8, ha="center", va="bottom", clip_on=False)

    stats_text = "\n".join(
        [
            f"N  {summary.count}",
            f"Mean  {estimate.mean:.3f}",
            f"StDev(Within)  {estimate.std_within:.3f}",
            f"StDev(Overall)  {estimate.std_overall:.3f}",
            f"Cpk  {format_capability(estimate.cpk)}",
            f"Ppk  {format_capability(estimate.ppk)}",
        ]
    )
    info_x = 1.05
    if ax.get_legend_handles_labels()[0]:
        legend = ax.legend(fontsize=8, loc="upper left", bbox_to_anchor=(info_x, 1.08), borderaxespad=0.0, frameon=True)
        legend.get_frame().set_edgecolor("#cccccc")
    ax.text(
        info_x,
        0.7,
        stats_text,
        transform=ax.transAxes,
        fontsize=8,
        va="top",
        ha="left",
        bbox=dict(boxstyle="round,pad=0.3", facecolor="white", edgecolor="#cccccc"),
        clip_on=False,
    )


def render_report(
    sample: Iterable[float],
    summary: SampleSummary,
    spec: SpecLimits,
    value_range: RangeConstraint,
    title: str,
    output_path: Path,
) -> Path:
    values = np.asarray(list(sample), dtype=float)
    if values.size == 0:
        raise ValueError("Cannot render an empty sample.")

    fig = plt.figure(figsize=(10, 6), dpi=150)
    fig.suptitle(title, fontsize=12, y=0.98, fontweight="bold")
    fig.patch.set_facecolor("#e0e0e0")
    grid = fig.add_gridspec(2, 1, hspace=0.5)

    _plot_run_chart(fig.add_subplot(grid[0, 0]), values, summary, spec)
    _plot_histogram(fig.add_subplot(grid[1, 0]), values, summary, spec, value_range)

    output_path.parent.mkdir(parents=True, exist_ok=True)
    fig.savefig(output_path, bbox_inches="tight")
    plt.close(fig)
    return output_path
