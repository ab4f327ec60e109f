"""Tests for the JSON/CSV report writer."""
import csv
import json

import pytest

from conftest import make_post, make_result
from config.settings import ReportConfig
from core.validator_agent import consolidate
from models.schemas import WeeklyReport
from reporting.report_writer import CSV_COLUMNS, ReportWriter, build_csv


@pytest.fixture
def report():
    post = make_post("Quoted \"title\", with comma")
    item = consolidate(post, [
        make_result(post, "worker1", 4).payload,
        make_result(post, "worker2", 9, offset_s=2).payload,
    ])
    return WeeklyReport(analysis_week="2026-10-19 to 2026-10-25", items=[item],
                        complete=False, expected_count=2)


class TestReportWriter:
    @pytest.mark.asyncio
    async def test_writes_json_and_csv(self, tmp_path, report):
        writer = ReportWriter(ReportConfig(output_dir=str(tmp_path / "out")))

        json_path, csv_path = await writer.write_report(report)

        assert json_path.name.startswith("weekly-report-") and json_path.suffix == ".json"
        assert csv_path.stem == json_path.stem
        data = json.loads(json_path.read_text())
        assert data["analysis_week"] == "2026-10-19 to 2026-10-25"
        assert data["complete"] is False
        assert data["items"][0]["validated_score"] == 6

    def test_csv_round_trips_awkward_text(self, report):
        rows = list(csv.reader(build_csv(report).splitlines()))
        assert rows[0] == CSV_COLUMNS
        assert rows[1][0] == "Quoted \"title\", with comma"
        assert rows[1][4:7] == ["4", "9", "6"]
        assert rows[1][9] == report.items[0].correlation_id

    def test_every_field_is_quoted(self, report):
        header = build_csv(report).splitlines()[0]
        assert header.startswith('"Title","Url"')
