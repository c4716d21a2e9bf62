import argparse
import asyncio
import dataclasses
import sys
from typing import List, Optional
from loguru import logger

from regularizer.clients import DatasetClient, DatasetUnavailableError, OpenAIClient, ReferenceCatalog
from regularizer.config import (
    CATALOG_DB,
    DATASET_DB,
    LOG_LEVEL,
    MARKDOWN_REPORT_PATH,
    OPENAI_MODEL,
    REPORT_PATH,
    ResolverSettings,
)
from regularizer.matchers.semantic_classifier import SemanticClassifier
from regularizer.models import Decision
from regularizer.pipeline import RegularizationPipeline
from regularizer.reference_index import build_noisy_set, build_reference_set
from regularizer.report import summarize, write_csv_report, write_markdown_report
from regularizer.validators import ReferenceAuthorityValidator, TemporalValidator
from regularizer.vehicle_types import VehicleTypeClassifier


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Resolve noisy make/model pairs against a trusted reference period.")
    parser.add_argument("dataset_db", nargs="?", default=DATASET_DB, help="Registration dataset (SQLite)")
    parser.add_argument("catalog_db", nargs="?", default=CATALOG_DB, help="Authoritative vehicle catalog (SQLite)")
    parser.add_argument("report_path", nargs="?", default=REPORT_PATH, help="CSV decision report to write")
    parser.add_argument("--markdown", default=MARKDOWN_REPORT_PATH, help="Markdown report to write")
    parser.add_argument("--concurrency", type=int, default=None, help="Concurrent validation tasks")
    parser.add_argument("--temporal-field", choices=["registration", "model_year"], default=None)
    parser.add_argument("--category-filter", action="store_true", help="Only match pairs sharing a vehicle type")
    parser.add_argument("--two-pass", action="store_true", help="Resolve the make first, then the model")
    parser.add_argument("--infer-types", action="store_true", help="Infer vehicle types and match passenger vehicles only")
    parser.add_argument("--match-other-types", action="store_true", help="With --infer-types, also match non-passenger types")
    return parser.parse_args(argv)


def settings_from_args(args: argparse.Namespace) -> ResolverSettings:
    settings = ResolverSettings(
        category_filter=args.category_filter,
        two_pass=args.two_pass,
        type_inference=args.infer_types or args.match_other_types,
        match_other_types=args.match_other_types,
    )
    if args.concurrency:
        settings = dataclasses.replace(settings, concurrency=args.concurrency)
    if args.temporal_field:
        settings = dataclasses.replace(settings, temporal_field=args.temporal_field)
    return settings


async def run(args: argparse.Namespace) -> List[Decision]:
    """
    Load both periods, resolve the noisy pairs and write the reports.

    An unreachable dataset yields empty reports annotated with the cause.

    Raises:
        ReportWriteError: If either report cannot be written.
    """
    settings = settings_from_args(args)
    dataset = DatasetClient(args.dataset_db)
    catalog = ReferenceCatalog(args.catalog_db, settings.separator)
    notes: List[str] = []

    print("=== Make/Model Regularization ===")
    try:
        reference = build_reference_set(dataset.load_pairs(*settings.reference_years))
        noisy = build_noisy_set(dataset.load_pairs(*settings.evaluation_years), reference)
    except DatasetUnavailableError as e:
        logger.warning(f"⚠️ Dataset unavailable, writing empty reports: {e}")
        notes.append(f"Dataset unavailable: {e}")
        reference = build_reference_set([])
        noisy = build_noisy_set([], reference)

    decisions: List[Decision] = []
    if len(noisy):
        openai_client = OpenAIClient(concurrency=settings.concurrency)
        pipeline = RegularizationPipeline(
            reference_validator=ReferenceAuthorityValidator(catalog),
            temporal_validator=TemporalValidator(settings.temporal_grace_years, settings.temporal_field),
            classifier=SemanticClassifier(openai_client, model=OPENAI_MODEL, timeout=settings.classifier_timeout),
            settings=settings,
            type_classifier=VehicleTypeClassifier(reference, catalog) if settings.type_inference else None,
        )
        try:
            decisions = await pipeline.run(reference, noisy)
        finally:
            # Cleanup: close the OpenAI HTTP client to prevent unclosed connector warnings
            await openai_client.close()

    summary = summarize(decisions, reference_count=len(reference), noisy_count=len(noisy))
    write_csv_report(decisions, args.report_path)
    if args.markdown:
        write_markdown_report(decisions, summary, args.markdown, notes)

    print(f"Regularizations: {summary['regularize']}")
    print(f"Preservations: {summary['preserve']}")
    return decisions


async def main(argv: Optional[List[str]] = None):
    args = parse_args(argv)

    # Initialize logs
    logger.remove()  # Remove default handler
    logger.add(sys.stderr, level=LOG_LEVEL, format="<green>{time:HH:mm:ss}</green> | <level>{message}</level>")

    await run(args)

if __name__ == "__main__":
    asyncio.run(main())
