"""Manual follow-up bundle packaging."""

import logging
import shutil
import tempfile
from pathlib import Path
from typing import List, Optional

logger = logging.getLogger(__name__)

REPORT_FILENAME = "manual-migration-report.md"
DESIGN_FOLDER = "design"
BUNDLE_EXTENSIONS = (".csv", ".json", ".jsonl", ".xlsx")
ARCHIVE_LINE_PREFIX = "Archive:"


class ManualBundlePackager:
    """
    Collects a run's manual follow-up deliverables into one zip archive.

    Deliverables are the report, the design folder and every file in the
    store folder named with the run prefix and a tabular/JSON extension.
    The archive is written next to the store folder as
    ``{prefix}_manual_bundle.zip``.
    """

    def __init__(self, store_folder: Path, file_prefix: str):
        self.store_folder = Path(store_folder)
        self.file_prefix = file_prefix

    @property
    def report_path(self) -> Path:
        return self.store_folder / REPORT_FILENAME

    @property
    def archive_path(self) -> Path:
        return self.store_folder.parent / f"{self.file_prefix}_manual_bundle.zip"

    def collect_deliverables(self) -> List[Path]:
        """List deliverables present in the store folder."""
        deliverables: List[Path] = []
        if self.report_path.is_file():
            deliverables.append(self.report_path)

        design = self.store_folder / DESIGN_FOLDER
        if design.is_dir():
            deliverables.append(design)

        if self.store_folder.is_dir():
            for path in sorted(self.store_folder.iterdir()):
                if (
                    path.is_file()
                    and path.name.startswith(f"{self.file_prefix}_")
                    and path.suffix.lower() in BUNDLE_EXTENSIONS
                ):
                    deliverables.append(path)
        return deliverables

    def package(self) -> Optional[Path]:
        """
        Build the archive.

        Returns:
            Archive path, or None when there is nothing to bundle or
            packaging failed
        """
        deliverables = self.collect_deliverables()
        if not deliverables:
            logger.info("No manual follow-up deliverables found; skipping bundle")
            return None

        staging = Path(tempfile.mkdtemp(prefix=f"{self.file_prefix}_bundle_"))
        try:
            for item in deliverables:
                destination = staging / item.name
                if item.is_dir():
                    shutil.copytree(item, destination)
                else:
                    shutil.copy2(item, destination)

            archive_base = self.archive_path.with_suffix("")
            self.archive_path.parent.mkdir(parents=True, exist_ok=True)
            if self.archive_path.exists():
                self.archive_path.unlink()
            archive = Path(shutil.make_archive(str(archive_base), "zip", root_dir=staging))
        except (OSError, shutil.Error) as e:
            logger.error(f"Failed to build manual bundle: {e}")
            return None
        finally:
            shutil.rmtree(staging, ignore_errors=True)

        logger.info(f"Manual bundle written to {archive} ({len(deliverables)} deliverables)")
        self.annotate_report(archive)
        return archive

    def annotate_report(self, archive: Path) -> bool:
        """Append an ``Archive:`` line to the report unless it is already there."""
        if not self.report_path.is_file():
            return False

        line = f"{ARCHIVE_LINE_PREFIX} {archive}"
        text = self.report_path.read_text(encoding="utf-8")
        if line in text.splitlines():
            return False

        separator = "" if text.endswith("\n") or not text else "\n"
        with open(self.report_path, "a", encoding="utf-8") as f:
            f.write(f"{separator}\n{line}\n")
        return True
