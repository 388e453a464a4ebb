#!/usr/bin/env python
"""
Reprice the whole catalog, or explain one SKU.

Usage:
    python scripts/reprice_catalog.py
    python scripts/reprice_catalog.py --data-dir data/
    python scripts/reprice_catalog.py --workbook data/pricing.xlsx
    python scripts/reprice_catalog.py --explain HM-001
"""
import argparse
import sys
from pathlib import Path

# Add src to path
src_path = Path(__file__).parent.parent / 'src'
sys.path.insert(0, str(src_path))

from catalog_pricing.config.settings import get_settings
from catalog_pricing.engine import PricingEngine, ProductRecord, build_context
from catalog_pricing.jobs import JobStatus, RepriceOrchestrator
from catalog_pricing.store.table_store import CsvTableStore, WorkbookTableStore, create_store
from catalog_pricing.utils.logger import setup_logging


def explain_sku(store, settings, sku: str) -> int:
    snapshot = store.read_all_rows(settings.products_table)
    for row in snapshot.records():
        if row.get('SKU', '').strip() == sku:
            break
    else:
        print(f"SKU {sku} not found in {settings.products_table}")
        return 1

    context = build_context(
        store.read_parameters(),
        store.read_partner_tiers(),
        store.read_channel_fee_tables(),
        settings=settings,
    )
    engine = PricingEngine(context)
    breakdown = engine.calculate(ProductRecord.from_mapping(row))
    print(engine.explain(breakdown))
    print()
    print("Trace:")
    print(breakdown.get_trace_text())
    return 0


def main() -> int:
    parser = argparse.ArgumentParser(description="Batch catalog repricing")
    source = parser.add_mutually_exclusive_group()
    source.add_argument("--data-dir", type=Path, help="Directory with one CSV per table")
    source.add_argument("--workbook", type=Path, help="Workbook with one sheet per table")
    parser.add_argument("--explain", metavar="SKU", help="Print one SKU's breakdown instead")
    parser.add_argument("--log-level", default=None)
    args = parser.parse_args()

    settings = get_settings()
    setup_logging(args.log_level or settings.log_level)

    if args.data_dir:
        store = CsvTableStore(args.data_dir, settings=settings)
    elif args.workbook:
        store = WorkbookTableStore(args.workbook, settings=settings)
    else:
        store = create_store(settings)

    if args.explain:
        return explain_sku(store, settings, args.explain)

    with RepriceOrchestrator(store, settings, start_sweeper=False) as orchestrator:
        job_id = orchestrator.start_job(triggered_by="cli")
        job = orchestrator.wait(job_id)

    print("=" * 60)
    print(f"REPRICE JOB {job.job_id}: {job.status.value.upper()}")
    print("=" * 60)
    print(f"  Rows:      {job.total}")
    print(f"  Succeeded: {job.succeeded}")
    print(f"  Failed:    {job.failed}")
    for error in job.errors[:10]:
        print(f"  - {error.sku}: {error.error}")
    return 0 if job.status == JobStatus.COMPLETED else 1


if __name__ == "__main__":
    sys.exit(main())
