from agent_autoscaler.engine import ScalingAction, ScalingDecision, ScalingSummary

_ACTION_LABELS = {
    ScalingAction.SCALE_UP: "Scale Up",
    ScalingAction.SCALE_DOWN: "Scale Down",
    ScalingAction.NO_CHANGE: "Optimal",
}

_COLUMNS = ["Agent", "Action", "Current", "Recommended", "Perf %", "Mem %", "CPU %", "Errors", "Reason"]


def format_decisions_table(decisions: list[ScalingDecision]) -> str:
    """Renders the decisions as a Markdown table sorted by agent name."""
    if not decisions:
        return "No agents reported metrics in the current window."

    rows = [
        [
            d.agent_name,
            _ACTION_LABELS[d.action],
            str(d.current_instances),
            str(d.recommended_instances),
            f"{d.metrics.avg_performance:.1f}",
            f"{d.metrics.avg_memory:.1f}",
            f"{d.metrics.avg_cpu:.1f}",
            f"{d.metrics.error_rate:.1f}",
            d.reason,
        ]
        for d in sorted(decisions, key=lambda d: (d.agent_name, d.agent_id))
    ]

    widths = [max(len(col), *(len(row[i]) for row in rows)) for i, col in enumerate(_COLUMNS)]
    lines = [
        "| " + " | ".join(col.ljust(w) for col, w in zip(_COLUMNS, widths)) + " |",
        "|" + "|".join("-" * (w + 2) for w in widths) + "|",
    ]
    lines.extend("| " + " | ".join(cell.ljust(w) for cell, w in zip(row, widths)) + " |" for row in rows)
    return "\n".join(lines)


def format_summary(summary: ScalingSummary) -> str:
    return (
        f"{summary.total} agents: {summary.scale_up_count} scale up, "
        f"{summary.scale_down_count} scale down, {summary.no_change_count} optimal"
    )
