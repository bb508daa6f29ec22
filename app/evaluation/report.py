"""Plain-text report for a previously computed protocol result.

Accepts the JSON shape returned by the analyze endpoints: question entries
under "0".."n-1" plus provider/analysis_type/timestamp metadata. Dual results
carry ``passageA``/``passageB`` per question.
"""

from __future__ import annotations

from typing import Any

_RULE = "=" * 50


def _metric_keys(data: dict[str, Any]) -> list[str]:
    return sorted((k for k in data if k.isdigit() and isinstance(data[k], dict)), key=int)


def _score(entry: Any) -> str:
    if isinstance(entry, dict) and isinstance(entry.get("score"), (int, float)):
        return f"{entry['score']:g}/100"
    return "n/a"


def _entry_lines(entry: Any, indent: str = "") -> list[str]:
    entry = entry if isinstance(entry, dict) else {}
    return [
        f"{indent}Score: {_score(entry)}",
        f"{indent}Quotation: \"{entry.get('quotation') or entry.get('quote') or ''}\"",
        f"{indent}Explanation: {entry.get('explanation', '')}",
    ]


def _overall(value: Any) -> list[str]:
    if isinstance(value, dict):
        return [f"Overall Score ({side}): {score}/100" for side, score in value.items()]
    if isinstance(value, (int, float)):
        return [f"Overall Score: {value:g}/100"]
    return []


def render_text_report(data: dict[str, Any], mode: str) -> str:
    """Render a single or dual protocol result as plain text.

    Raises:
        ValueError: ``data`` holds no question entries.
    """
    keys = _metric_keys(data)
    if not keys:
        raise ValueError("Analysis data is required")

    title = mode.replace("_", " ").upper()
    lines = [f"{title} ANALYSIS REPORT", _RULE, ""]
    for label, field in (("Provider", "provider"), ("Analysis type", "analysis_type"), ("Generated", "timestamp")):
        if data.get(field):
            lines.append(f"{label}: {data[field]}")
    phase = data.get("phase_completed")
    if isinstance(phase, str):
        lines.append(f"Protocol: {phase}")
    lines.extend(_overall(data.get("overall_score")))
    lines += ["", "DETAILED METRICS:", "=" * 17, ""]

    for number, key in enumerate(keys, start=1):
        entry = data[key]
        lines.append(f"{number}. {entry.get('question', '')}")
        if "passageA" in entry or "passageB" in entry:
            for side, label in (("passageA", "Passage A"), ("passageB", "Passage B")):
                lines.append(f"  {label}:")
                lines.extend(_entry_lines(entry.get(side), indent="    "))
        else:
            lines.extend(_entry_lines(entry))
        lines.append("")

    return "\n".join(lines).rstrip() + "\n"
