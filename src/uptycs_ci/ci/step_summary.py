"""Markdown rendering of fatal findings for the GitHub step summary."""

from typing import Any, Dict, List

from ..utils.formatting import format_score

# Shown first when present; other keys follow in the order the scanner emits them.
PREFERRED_COLUMNS = [
    "package_name",
    "package_version",
    "cve_list",
    "cvss_score",
    "fatal",
]


def finding_columns(findings: List[Dict[str, Any]]) -> List[str]:
    """Union of keys across findings, preferred columns first."""
    seen: List[str] = []
    for finding in findings:
        for key in finding:
            if key not in seen:
                seen.append(key)

    preferred = [c for c in PREFERRED_COLUMNS if c in seen]
    return preferred + [c for c in seen if c not in preferred]


def _cell(value: Any) -> str:
    if value is None:
        return ""
    text = str(value).replace("|", "\\|")
    return " ".join(text.splitlines())


def render_markdown_table(findings: List[Dict[str, Any]]) -> str:
    """Render findings as a GitHub-flavoured markdown table."""
    columns = finding_columns(findings)
    if not columns:
        return ""

    lines = [
        "| " + " | ".join(columns) + " |",
        "|" + "|".join("---" for _ in columns) + "|",
    ]
    for finding in findings:
        lines.append("| " + " | ".join(_cell(finding.get(c)) for c in columns) + " |")

    return "\n".join(lines)


def build_summary(findings: List[Dict[str, Any]], threshold: float) -> str:
    """Build the step summary body for a failed gate."""
    lines = []

    lines.append("## Uptycs Vulnerability Scan")
    lines.append("")
    lines.append(
        f"### {len(findings)} vulnerabilities with CVSS score >= {format_score(threshold)}"
    )
    lines.append("")
    lines.append(render_markdown_table(findings))
    lines.append("")

    return "\n".join(lines)
