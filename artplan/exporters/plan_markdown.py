"""Markdown rendering of an ART plan for reports and chat summaries."""

from artplan.models.plan import ARTPlan, IterationPlan


def _percent(value: float) -> str:
    return f"{value:.0%}"


def _iteration_section(plan: IterationPlan) -> list[str]:
    value = plan.deliverable_value
    lines = [
        f"### {plan.iteration.display_name}",
        "",
        f"**Points:** {plan.total_points} | **Utilization:** {_percent(plan.average_utilization)}"
        f" | **Validation:** {plan.validation.score:.2f}",
        f"**Delivers working software:** {'yes' if value.can_deliver_working_software else 'no'}"
        f" ({value.primary_value}, confidence {_percent(value.value_confidence)})",
        "",
    ]
    if plan.allocated_work:
        lines.extend(
            [
                "| Work Item | Team | Points | Confidence |",
                "|-----------|------|--------|------------|",
            ]
        )
        for entry in plan.allocated_work:
            lines.append(
                f"| {entry.work_item_id} | {entry.assigned_team} | {entry.allocated_points} "
                f"| {_percent(entry.confidence)} |"
            )
        lines.append("")
    for issue in (*plan.validation.errors, *plan.validation.warnings):
        lines.append(f"- `{issue.code}` {issue.message}")
    if plan.validation.errors or plan.validation.warnings:
        lines.append("")
    return lines


def render_plan_summary(plan: ARTPlan) -> str:
    """Convert an ART plan to formatted markdown."""
    summary = plan.summary
    readiness = plan.readiness
    lines = [
        "# ART Plan",
        "",
        "## Summary",
        "",
        f"- Iterations: {summary.total_iterations}",
        f"- Work items: {summary.total_work_items} ({summary.unallocated_items} unallocated)",
        f"- Story points: {summary.allocated_story_points} / {summary.total_story_points} "
        "allocated",
        f"- Average utilization: {_percent(summary.average_capacity_utilization)}",
        f"- Iterations delivering value: {summary.iterations_with_value}",
        f"- Dependencies: {summary.total_dependencies} "
        f"(critical path {summary.critical_path_length})",
        f"- Risk level: **{summary.risk_level.upper()}**",
        "",
        "## Readiness",
        "",
        f"**Score:** {readiness.readiness_score:.2f} - "
        f"{'READY' if readiness.is_ready else 'NOT READY'}",
        "",
        "| Category | Score | Ready |",
        "|----------|-------|-------|",
    ]
    for assessment in readiness.assessments:
        lines.append(
            f"| {assessment.category} | {assessment.score:.2f} | "
            f"{'yes' if assessment.is_ready else 'no'} |"
        )
    lines.append("")

    if readiness.critical_blockers:
        lines.extend(["### Critical Blockers", ""])
        for blocker in readiness.critical_blockers:
            lines.append(f"- {blocker}")
        lines.append("")

    lines.extend(["## Iterations", ""])
    for iteration_plan in plan.iterations:
        lines.extend(_iteration_section(iteration_plan))

    if plan.unallocated:
        lines.extend(
            [
                "## Unallocated Work",
                "",
                "| Work Item | Reason | Blockers |",
                "|-----------|--------|----------|",
            ]
        )
        for entry in plan.unallocated:
            lines.append(
                f"| {entry.work_item_id} | {entry.reason} | {', '.join(entry.blockers) or '-'} |"
            )
        lines.append("")

    if plan.warnings:
        lines.extend(["## Warnings", ""])
        for warning in plan.warnings:
            lines.append(f"- {warning}")
        lines.append("")

    if readiness.recommendations:
        lines.extend(["## Recommendations", ""])
        for recommendation in readiness.recommendations:
            lines.append(f"1. {recommendation}")

    return "\n".join(lines)
