"""
ART indicator report over a synthetic clinic population.

This script exercises the full pipeline:
1. Configuration loading and logging setup
2. Patient store and ART indicator library construction
3. Concurrent evaluation of every indicator for one reporting period
4. Per-indicator failures shown in the table instead of aborting the report

Run with: uv run python run_report.py [YYYY-MM]
"""

import asyncio
import sys
from datetime import date

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from emr_adapters.hiv import build_art_indicator_library
from emr_adapters.records import InMemoryPatientStore
from emr_adapters.sample_data import generate_patients
from indicator_engine.config import configure_logging, get_config
from indicator_engine.domain.models import ReportingPeriod
from indicator_engine.services.indicator_evaluator import IndicatorEvaluator
from indicator_engine.services.indicator_library import IndicatorLibrary
from indicator_engine.services.outcome import IndicatorOutcome

console = Console()


def parse_period(arg: str | None, today: date | None = None) -> ReportingPeriod:
    """Reporting month from ``YYYY-MM``; defaults to the last full month."""
    if arg:
        year, month = (int(part) for part in arg.split("-", 1))
        return ReportingPeriod.for_month(year, month)

    today = today or date.today()
    if today.month == 1:
        return ReportingPeriod.for_month(today.year - 1, 12)
    return ReportingPeriod.for_month(today.year, today.month - 1)


def build_report_table(
    period: ReportingPeriod,
    library: IndicatorLibrary,
    results: dict[str, IndicatorOutcome],
) -> Table:
    table = Table(title=f"ART indicators {period.start_date} to {period.end_date}")
    table.add_column("Indicator", style="cyan")
    table.add_column("Description")
    table.add_column("Value", justify="right")
    table.add_column("Seconds", justify="right")

    for name, outcome in results.items():
        description = library.get(name).description if name in library else ""
        value = str(outcome.count) if outcome.ok else f"[red]error: {outcome.error}[/red]"
        table.add_row(name, description, value, f"{outcome.duration_seconds:.3f}")
    return table


async def main(period: ReportingPeriod) -> None:
    config = get_config()
    configure_logging(config.logging)

    console.print(Panel(f"Reporting period {period.start_date} to {period.end_date}", style="blue"))

    records = generate_patients(200, start=date(period.end_date.year - 3, 1, 1), end=period.end_date)
    store = InMemoryPatientStore(records, source_name="sample-clinic")
    library = build_art_indicator_library()

    if library.rejected:
        console.print(f"[yellow]Rejected indicators: {', '.join(library.rejected)}[/yellow]")

    evaluator = IndicatorEvaluator(store, library=library, config=config.evaluation)
    results = await evaluator.evaluate_all(period.binding())

    console.print(build_report_table(period, library, results))


if __name__ == "__main__":
    asyncio.run(main(parse_period(sys.argv[1] if len(sys.argv) > 1 else None)))
