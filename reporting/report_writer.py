"""
ReportWriter — persists a WeeklyReport as JSON and CSV files.

Data layout:
  {output_dir}/
    weekly-report-<yyyyMMddHHmmss>.json
    weekly-report-<yyyyMMddHHmmss>.csv
"""
from __future__ import annotations

import csv
import io
import structlog
from datetime import datetime, timezone
from pathlib import Path

from config.settings import ReportConfig, get_settings
from models.schemas import WeeklyReport

logger = structlog.get_logger()

CSV_COLUMNS = [
    "Title", "Url", "PublishedDate", "Author",
    "FirstScore", "SecondScore", "ValidatedScore",
    "AnalysisNotes", "ValidatorComments", "CorrelationId",
]


def build_csv(report: WeeklyReport) -> str:
    buffer = io.StringIO()
    writer = csv.writer(buffer, quoting=csv.QUOTE_ALL, lineterminator="\n")
    writer.writerow(CSV_COLUMNS)
    for item in report.items:
        writer.writerow([
            item.title,
            item.url,
            item.published_date.isoformat(),
            item.author or "",
            item.first_score,
            item.second_score,
            item.validated_score,
            item.analysis_notes,
            item.validator_comments,
            item.correlation_id,
        ])
    return buffer.getvalue()


class ReportWriter:
    """Report sink: called once per run with the validator's output."""

    def __init__(self, config: ReportConfig = None):
        self.config = config or get_settings().report

    async def write_report(self, report: WeeklyReport) -> tuple[Path, Path]:
        output_dir = Path(self.config.output_dir)
        output_dir.mkdir(parents=True, exist_ok=True)

        stamp = datetime.now(timezone.utc).strftime("%Y%m%d%H%M%S")
        json_path = output_dir / f"weekly-report-{stamp}.json"
        csv_path = output_dir / f"weekly-report-{stamp}.csv"

        json_path.write_text(report.model_dump_json(indent=2), encoding="utf-8")
        csv_path.write_text(build_csv(report), encoding="utf-8")

        logger.info("weekly_report_persisted",
                    json_path=str(json_path),
                    csv_path=str(csv_path),
                    items=len(report.items),
                    complete=report.complete)
        return json_path, csv_path
