"""Markdown report for manual migration follow-up."""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

from ..models.migration import MigrationConfig, MigrationRun, Platform, StageStatus
from ..models.record import DetectionSummary, ExtensionFootprint, InstalledExtension

logger = logging.getLogger(__name__)


@dataclass
class ReportContext:
    """Everything the report summarizes for one run."""
    run: MigrationRun
    config: MigrationConfig
    counts: Dict[str, int] = field(default_factory=dict)
    plugins: List[InstalledExtension] = field(default_factory=list)
    themes: List[InstalledExtension] = field(default_factory=list)
    footprints: List[ExtensionFootprint] = field(default_factory=list)
    detection_summary: Optional[DetectionSummary] = None
    design_assets: List[Dict[str, Any]] = field(default_factory=list)
    colors: List[Dict[str, Any]] = field(default_factory=list)
    screenshots: List[Dict[str, Any]] = field(default_factory=list)
    generated_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


def _escape(value: Optional[str]) -> str:
    if not value:
        return ""
    for char in ("\\", "`", "*", "_", "[", "]", "|"):
        value = value.replace(char, f"\\{char}")
    return value


class ManualReportBuilder:
    """Builds ``manual-migration-report.md``."""

    def build(self, context: ReportContext) -> str:
        run = context.run
        lines = [
            "# Manual Migration Report",
            "",
            f"- **Generated:** {context.generated_at.isoformat()} (UTC)",
            f"- **Store URL:** {run.source_url}",
            f"- **Store Identifier:** `{run.store_id}`",
            f"- **Output Folder:** `{run.store_folder}`",
        ]
        retry = context.config.retry
        if retry.enabled:
            lines.append(
                f"- **HTTP retries:** {retry.attempts} attempts, "
                f"{retry.base_delay:g}s base delay, {retry.max_delay:g}s max delay"
            )
        else:
            lines.append("- **HTTP retries:** disabled")

        lines.append("")
        lines.extend(self._stages(context))
        lines.append("")
        lines.extend(self._counts(context))
        lines.append("")
        lines.extend(self._extensions(context))
        lines.append("")
        lines.extend(self._design(context))
        lines.append("")
        lines.extend(self._credential_notes(context))
        return "\n".join(lines) + "\n"

    def write(self, context: ReportContext, path: Path) -> Path:
        text = self.build(context)
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(text, encoding="utf-8")
        logger.info(f"Report written to {path}")
        return path

    def _stages(self, context: ReportContext) -> List[str]:
        lines = ["## Stages", ""]
        for step in context.run.steps:
            detail = ""
            if step.status == StageStatus.SKIPPED and step.skip_reason:
                detail = f" ({step.skip_reason})"
            elif step.status == StageStatus.FAILED and step.errors:
                detail = f": {_escape(step.errors[-1])}"
            lines.append(f"- {step.name}: **{step.status.value}**{detail}")
        return lines

    def _counts(self, context: ReportContext) -> List[str]:
        lines = ["## Captured data", ""]
        counts = {k: v for k, v in context.counts.items() if v}
        if not counts:
            lines.append("No optional data sections were captured.")
            return lines
        for name, count in counts.items():
            lines.append(f"- {name.replace('_', ' ').capitalize()}: {count}")
        return lines

    def _extensions(self, context: ReportContext) -> List[str]:
        lines = ["## Extension Footprint", ""]

        for heading, items in (
            ("Installed plugins (authenticated)", context.plugins),
            ("Installed themes (authenticated)", context.themes),
        ):
            lines.append(f"### {heading}")
            if not items:
                lines.append("None captured.")
            for item in items:
                version = f" {item.version}" if item.version else ""
                status = f" ({item.status})" if item.status else ""
                lines.append(f"- {_escape(item.name or item.slug)}{version}{status}")
            lines.append("")

        lines.append("### Public plugin/theme slugs")
        if not context.footprints:
            lines.append("None detected.")
        for footprint in context.footprints:
            title = f" ({_escape(footprint.directory_title)})" if footprint.directory_title else ""
            status = footprint.directory_status or "not enriched"
            lines.append(f"- {footprint.type} `{footprint.slug}`{title}: {status}")

        summary = context.detection_summary
        if summary is not None:
            lines.append("")
            lines.append(
                f"Processed {summary.processed_page_count} pages "
                f"({summary.total_bytes_downloaded} bytes downloaded)."
            )
            note = summary.describe_limits()
            if note:
                lines.append(f"> {note}")
        return lines

    def _design(self, context: ReportContext) -> List[str]:
        lines = ["## Design Snapshot", ""]
        if not context.design_assets and not context.screenshots:
            lines.append("No design snapshot was captured.")
            return lines

        lines.append(f"- **Design folder:** `{context.run.store_folder / 'design'}`")
        by_type: Dict[str, int] = {}
        for entry in context.design_assets:
            by_type[entry["type"]] = by_type.get(entry["type"], 0) + 1
        for asset_type, count in sorted(by_type.items()):
            lines.append(f"- {asset_type}: {count}")

        if context.colors:
            lines.append("")
            lines.append("### Color palette")
            for swatch in context.colors[:12]:
                lines.append(f"- `{swatch['value']}` ({swatch['count']} uses)")

        if context.screenshots:
            lines.append("")
            lines.append("### Design screenshots")
            for shot in context.screenshots:
                lines.append(f"- {_escape(shot['label'])} ({shot['width']}x{shot['height']}): `{shot['file']}`")
        return lines

    def _credential_notes(self, context: ReportContext) -> List[str]:
        lines = ["## Credential-gated exports", ""]
        if context.config.platform == Platform.SHOPIFY and not context.run.missing_credentials:
            lines.append("Shopify mode does not require WordPress credentials.")
            return lines
        if not context.run.missing_credentials:
            lines.append("All credential-gated exports were captured during this run.")
            return lines
        for note in context.run.missing_credentials:
            lines.append(f"- {note}")
        return lines
