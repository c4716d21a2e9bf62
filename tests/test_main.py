import csv
from unittest.mock import AsyncMock, patch

import pytest

from conftest import answers_by_record, build_dataset_db, mock_openai_client
from main import parse_args, run, settings_from_args
from regularizer.report import CSV_HEADER


def test_settings_from_args():
    args = parse_args(["data.sqlite", "catalog.sqlite", "out.csv", "--concurrency", "4",
                       "--temporal-field", "model_year", "--two-pass"])
    settings = settings_from_args(args)
    assert args.dataset_db == "data.sqlite"
    assert settings.concurrency == 4
    assert settings.temporal_field == "model_year"
    assert settings.two_pass is True
    assert settings.category_filter is False


@pytest.mark.asyncio
async def test_run_writes_both_reports(tmp_path, catalog_db):
    dataset_db = build_dataset_db(
        tmp_path / "dataset.sqlite",
        [
            (2022, "VOLVO", "XC90", "PAU", 2021),
            (2022, "MAZDA", "CX-3", "PAU", 2021),
            (2023, "VOLV0", "XC90", "PAU", 2023),
            (2024, "MAZDA", "CX3", "PAU", 2024),
            (2024, "RIVIAN", "R1S", "PAU", 2024),
        ],
    )
    report = tmp_path / "report.csv"
    markdown = tmp_path / "report.md"
    args = parse_args([dataset_db, catalog_db, str(report), "--markdown", str(markdown)])

    client = mock_openai_client(answers_by_record({"VOLV0 / XC90": "spellingVariant | yes | 0.9 | typo"}))
    client.close = AsyncMock()
    with patch("main.OpenAIClient", return_value=client):
        decisions = await run(args)

    assert [d.pair.label for d in decisions] == ["MAZDA CX3", "RIVIAN R1S", "VOLV0 XC90"]
    assert [d.should_regularize for d in decisions] == [True, False, True]
    client.close.assert_awaited_once()

    with open(report, newline="", encoding="utf-8") as f:
        rows = list(csv.DictReader(f))
    assert [r["action"] for r in rows] == ["REGULARIZE", "PRESERVE", "REGULARIZE"]
    assert "## Regularizations (2)" in markdown.read_text(encoding="utf-8")


def test_type_flags():
    settings = settings_from_args(parse_args(["--infer-types"]))
    assert settings.type_inference is True
    assert settings.match_other_types is False

    settings = settings_from_args(parse_args(["--match-other-types"]))
    assert settings.type_inference is True
    assert settings.match_other_types is True

    assert settings_from_args(parse_args([])).type_inference is False


@pytest.mark.asyncio
async def test_unavailable_dataset_writes_empty_annotated_reports(tmp_path, catalog_db):
    report = tmp_path / "report.csv"
    markdown = tmp_path / "report.md"
    args = parse_args([str(tmp_path / "missing.sqlite"), catalog_db, str(report), "--markdown", str(markdown)])

    with patch("main.OpenAIClient") as openai_client:
        decisions = await run(args)

    assert decisions == []
    openai_client.assert_not_called()

    with open(report, newline="", encoding="utf-8") as f:
        rows = list(csv.reader(f))
    assert rows == [CSV_HEADER]

    text = markdown.read_text(encoding="utf-8")
    assert "## Notes" in text
    assert "Dataset unavailable" in text
    assert "## Regularizations (0)" in text
