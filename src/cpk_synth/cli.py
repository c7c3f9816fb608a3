"""Command line entry point for generating a sample with a target Cpk."""

from __future__ import annotations

import argparse
import logging
import sys
import threading
from pathlib import Path
from typing import Optional, Sequence

from .capability import summarize_sample
from .errors import InvalidInput
from .inputs import DEFAULT_FIELDS, RunConfig, parse_form
from .limits import SpecKind
from .report import format_values, render_report, status_text, write_values
from .search import CancellationToken, ProgressReport, SearchController, SearchOutcome, SearchResult

logger = logging.getLogger(__name__)

EXIT_INVALID = 2
EXIT_CANCELLED = 130

_FIELD_OPTIONS = (
    ("--target-cpk", "targetCpk", "Target Cpk to reach."),
    ("--sample-size", "sampleSize", "Number of values to generate."),
    ("--subgroup-size", "subgroupSize", "Subgroup size for the within-subgroup sigma."),
    ("--lsl", "lsl", "Lower specification limit."),
    ("--usl", "usl", "Upper specification limit."),
    ("--min-value", "minVal", "Lowest allowed value."),
    ("--max-value", "maxVal", "Highest allowed value."),
    ("--decimals", "decimals", "Decimal places kept on each value."),
    ("--max-attempts", "maxIterations", "Attempt budget for the search."),
    ("--tolerance", "tolerance", "Accepted distance between achieved and target Cpk."),
    ("--adjust-factor", "adjFactor", "Sigma adjustment factor, between 0 and 1."),
    ("--spread", "sigmaSlider", "Starting spread as a percent of the value range."),
    ("--center", "centerSlider", "Starting mean position as a percent of the value range."),
)


def _parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Generate values whose Cpk matches a target.")
    parser.add_argument(
        "--spec-type",
        choices=[kind.value for kind in SpecKind],
        default=DEFAULT_FIELDS["specType"],
        help="Bilateral limits or a single lower/upper limit.",
    )
    for flag, field, help_text in _FIELD_OPTIONS:
        parser.add_argument(flag, dest=field, default=DEFAULT_FIELDS[field], help=f"{help_text} (default: %(default)s)")
    parser.add_argument(
        "--restrict-to-range",
        action="store_true",
        help="Clamp every value to the [min, max] range.",
    )
    parser.add_argument(
        "--no-auto-adjust",
        action="store_true",
        help="Keep sigma fixed between attempts.",
    )
    parser.add_argument("--seed", type=int, default=None, help="Seed for reproducible output.")
    parser.add_argument("--output", type=Path, default=None, help="Write the values to this CSV file.")
    parser.add_argument("--plot", type=Path, default=None, help="Save a histogram report to this PNG file.")
    parser.add_argument("--quiet", action="store_true", help="Only print the values.")
    parser.add_argument("--verbose", action="store_true", help="Log every progress report.")
    return parser.parse_args(argv)


def _build_config(args: argparse.Namespace) -> RunConfig:
    fields = {field: getattr(args, field) for _flag, field, _help in _FIELD_OPTIONS}
    fields["specType"] = args.spec_type
    fields["forceRange"] = args.restrict_to_range
    fields["autoAdjust"] = not args.no_auto_adjust
    return parse_form(fields)


def _run_with_interrupt(controller: SearchController) -> SearchResult:
    """Run the search in a worker thread so Ctrl-C cancels it cooperatively."""
    outcome: dict[str, object] = {}

    def _target() -> None:
        try:
            outcome["result"] = controller.run()
        except BaseException as exc:
            outcome["error"] = exc

    worker = threading.Thread(target=_target, name="cpk-search", daemon=True)
    worker.start()
    try:
        while worker.is_alive():
            worker.join(0.1)
    except KeyboardInterrupt:
        logger.info("Stopping generation process...")
        controller.cancel_token.cancel()
        worker.join()

    if "error" in outcome:
        raise outcome["error"]
    return outcome["result"]


def _log_progress(report: ProgressReport) -> None:
    logger.info(report.message.replace("\n", " | "))


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = _parse_args(argv)
    level = logging.WARNING if args.quiet else logging.DEBUG if args.verbose else logging.INFO
    logging.basicConfig(level=level, format="%(levelname)s %(name)s: %(message)s")

    try:
        config = _build_config(args)
    except InvalidInput as exc:
        print(f"Invalid input: {exc}", file=sys.stderr)
        return EXIT_INVALID

    controller = SearchController(
        config.spec,
        config.value_range,
        config.params,
        seed=args.seed,
        cancel_token=CancellationToken(),
        on_progress=_log_progress if args.verbose else None,
    )
    result = _run_with_interrupt(controller)

    if result.outcome is SearchOutcome.REJECTED:
        print(result.message, file=sys.stderr)
        return EXIT_INVALID
    if result.sample is None:
        print(result.message, file=sys.stderr)
        return EXIT_CANCELLED

    params = config.params
    summary = summarize_sample(result.sample, config.spec, config.value_range, params.subgroup_size)
    print(format_values(result.sample, params.decimal_precision))
    if not args.quiet:
        print(status_text(result, summary, config.value_range), file=sys.stderr)

    if args.output is not None:
        path = write_values(result.sample, args.output, params.decimal_precision, params.subgroup_size)
        logger.info("Values saved to %s", path.resolve())
    if args.plot is not None:
        path = render_report(
            result.sample,
            summary,
            config.spec,
            config.value_range,
            f"Generated sample for target Cpk {params.target_cpk:g}",
            args.plot,
        )
        logger.info("Report saved to %s", path.resolve())

    return EXIT_CANCELLED if result.outcome is SearchOutcome.CANCELLED else 0


if __name__ == "__main__":
    sys.exit(main())
