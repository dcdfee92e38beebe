"""
Command line entry point: ``spmv-check [input_matrix]``.

Loads a CSR matrix (default ``Protein_csr.dat``), runs the batched SpMV check
and exits 0 when every run matches, 1 otherwise. Settings come from ``SPMV_*``
environment variables; flag-like arguments are rejected.
"""

import click
import structlog

from spmv_dispatch.config import Config
from spmv_dispatch.csr import load
from spmv_dispatch.errors import CorruptInputError, IoError, KernelError
from spmv_dispatch.harness import run_check
from spmv_dispatch.log import configure_logging
from spmv_dispatch.verify import VerifyReport

logger = structlog.get_logger()

USAGE = "Usage: spmv-check [input_matrix]"


def _print_report(report: VerifyReport) -> None:
    click.echo(f"Max rel error = {report.max_rel_error:g}")
    click.echo(f"Error index = {report.index}")
    click.echo(f"Error ref = {report.reference_value}")
    click.echo(f"Error res = {report.candidate_value}")
    click.echo(f"Error count = {report.error_count}")


@click.command(
    context_settings={"ignore_unknown_options": True},
    add_help_option=False,
)
@click.argument("args", nargs=-1, type=click.UNPROCESSED)
@click.pass_context
def main(ctx: click.Context, args):
    """Batched sparse matrix-vector multiply check against a CPU reference."""
    matrix_path = None
    for arg in args:
        if arg.startswith("-"):
            click.echo("Unknown option. Exiting...", err=True)
            click.echo(USAGE, err=True)
            ctx.exit(1)
        matrix_path = arg
        break

    try:
        config = Config.from_env(matrix_path=matrix_path)
    except ValueError as e:
        click.echo(f"Invalid configuration: {e}", err=True)
        ctx.exit(1)

    configure_logging(config.log_level)

    try:
        csr = load(config.matrix_path)
    except (IoError, CorruptInputError) as e:
        logger.error("matrix_load_failed", path=config.matrix_path, error=str(e))
        click.echo(str(e), err=True)
        ctx.exit(1)

    click.echo(
        f"Using {csr.num_rows}-by-{csr.num_cols} matrix with {csr.num_nonzeros} nonzero values"
    )

    try:
        result = run_check(csr, config)
    except KernelError as e:
        logger.error("kernel_failed", run=e.run, row_start=e.row_start, error=str(e))
        click.echo(f"Kernel failure: {e}", err=True)
        ctx.exit(1)

    for report in result.determinism:
        if not report.passed:
            click.echo(f"ERROR: Discrepancy in {report.label}!")
            _print_report(report)

    if not result.passed:
        if result.correctness is not None and not result.correctness.passed:
            _print_report(result.correctness)
        click.echo("FAILED")
        ctx.exit(1)

    click.echo("Result matches reference CPU implementation")
    click.echo("PASSED")
    ctx.exit(0)


if __name__ == "__main__":
    main()
