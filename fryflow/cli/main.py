"""Command-line interface for fryflow.

Provides the index, quant, run-workflow, add-chemistry and inspect
commands. ``parse_command_line`` turns an argv list into the same options
object a direct invocation produces; workflow replay uses it so recorded
commands have exactly the semantics of typed ones.
"""

import json
import logging
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple

import click

from fryflow import __version__
from fryflow.config import HOME_ENV_VAR, AppHome
from fryflow.core.errors import ConfigurationError, FryflowError
from fryflow.core.options import (
    DEFAULT_KMER_LENGTH,
    DEFAULT_MIN_READS,
    DEFAULT_MINIMIZER_LENGTH,
    DEFAULT_THREADS,
    IndexOptions,
    QuantOptions,
    RunWorkflowOptions,
)
from fryflow.core.provenance import describe_failure
from fryflow.core.types import (
    RESOLUTION_MODES,
    Orientation,
    ReferenceType,
    UnfilteredPermitList,
)


def setup_logging(verbose: bool = False, debug: bool = False) -> logging.Logger:
    """Setup logging for CLI commands."""
    level = logging.DEBUG if debug else (logging.INFO if verbose else logging.WARNING)
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(levelname)s - %(message)s",
        datefmt="%H:%M:%S",
    )
    return logging.getLogger("fryflow")


def _fail(ctx: click.Context, error: FryflowError) -> None:
    """Report a fryflow error and exit with status 1."""
    ctx.obj["logger"].debug("%s: %s", type(error).__name__, describe_failure(error))
    click.echo(f"Error: {error}", err=True)
    sys.exit(1)


def _require_home(ctx: click.Context) -> AppHome:
    home = ctx.obj.get("home")
    if home is None:
        raise ConfigurationError(
            f"${HOME_ENV_VAR} is unset, please set this environment variable to continue.",
            suggestion=f"export {HOME_ENV_VAR}=/path/to/af_home or pass --home",
        )
    return home


def _split_paths(ctx, param, value: Optional[str]) -> Tuple[Path, ...]:
    """Parse a comma-separated list of paths."""
    if value is None:
        return ()
    return tuple(Path(p) for p in value.split(",") if p)


def _parse_ref_type(ctx, param, value: str) -> ReferenceType:
    try:
        return ReferenceType.parse(value)
    except ValueError as e:
        raise click.BadParameter(str(e)) from None


def _echo_dry_run(plan) -> None:
    click.echo("Dry run - no stages will be executed")
    for line in plan.describe():
        click.echo(f"  {line}")


@click.group()
@click.version_option(version=__version__, prog_name="fryflow")
@click.option("--home", type=click.Path(file_okay=False, path_type=Path), envvar=HOME_ENV_VAR,
              help=f"fryflow home directory (default: ${HOME_ENV_VAR})")
@click.option("-v", "--verbose", is_flag=True, help="Enable verbose output")
@click.option("--debug", is_flag=True, help="Enable debug output")
@click.pass_context
def cli(ctx: click.Context, home: Optional[Path], verbose: bool, debug: bool) -> None:
    """fryflow: simplified alevin-fry workflows.

    Builds references and indices, and runs mapping, permit list
    generation, collation and quantification by driving salmon or piscem,
    alevin-fry and pyroe.

    Examples:

        # Build a spliced+intronic piscem index
        fryflow index --fasta genome.fa --gtf genes.gtf --rlen 91 --use-piscem -o idx

        # Quantify a 10x v3 sample against it
        fryflow quant -c 10xv3 -i idx/index -1 r1.fq.gz -2 r2.fq.gz -u -r cr-like -o quant

        # Replay recorded commands
        fryflow run-workflow -j workflow.json
    """
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["debug"] = debug
    ctx.obj["log_level"] = "DEBUG" if debug else "INFO"
    ctx.obj["home"] = AppHome(home) if home is not None else None
    ctx.obj["logger"] = setup_logging(verbose, debug)


@cli.command()
@click.option("--ref-type", default=ReferenceType.SPLICED_INTRONIC.value, callback=_parse_ref_type,
              help="Expanded reference: spliced+intronic (splici) or spliced+unspliced (spliceu)")
@click.option("--fasta", "-f", type=click.Path(path_type=Path),
              help="Reference genome for expanded reference construction")
@click.option("--gtf", "-g", type=click.Path(path_type=Path),
              help="Reference GTF file for expanded reference construction")
@click.option("--rlen", "-r", type=click.IntRange(min=1),
              help="Target read length the splici index is built for")
@click.option("--dedup", is_flag=True, help="Deduplicate identical sequences when building the reference")
@click.option("--ref-seq", "--refseq", "ref_seq", type=click.Path(path_type=Path),
              help="Target sequences to index directly (no expanded reference)")
@click.option("--spliced", type=click.Path(path_type=Path),
              help="FASTA file with extra spliced sequence to add to the index")
@click.option("--unspliced", type=click.Path(path_type=Path),
              help="FASTA file with extra unspliced sequence to add to the index")
@click.option("--use-piscem", is_flag=True, help="Use piscem instead of salmon for indexing")
@click.option("--minimizer-length", "-m", type=int, default=DEFAULT_MINIMIZER_LENGTH, show_default=True,
              help="Minimizer length for the piscem index (must be < k)")
@click.option("--output", "-o", required=True, type=click.Path(path_type=Path),
              help="Output directory (created if it doesn't exist)")
@click.option("--overwrite", is_flag=True, help="Overwrite an existing index")
@click.option("--threads", "-t", type=click.IntRange(min=1), default=DEFAULT_THREADS, show_default=True,
              help="Number of threads")
@click.option("--kmer-length", "-k", type=int, default=DEFAULT_KMER_LENGTH, show_default=True,
              help="k-mer length of the index")
@click.option("--keep-duplicates", is_flag=True, help="Keep duplicated identical sequences")
@click.option("--sparse", "-p", is_flag=True, help="Build a sparse salmon index")
@click.option("--dry-run", is_flag=True, help="Show execution plan without running")
@click.pass_context
def index(ctx: click.Context, dry_run: bool, **params: Any) -> None:
    """Build the (expanded) reference index."""
    from fryflow.core.engine import run_index

    try:
        options = build_index_options(params)
        result = run_index(
            _require_home(ctx), options, dry_run=dry_run, log_level=ctx.obj["log_level"]
        )
    except FryflowError as e:
        _fail(ctx, e)
        return

    if dry_run:
        _echo_dry_run(result.plan)
    else:
        click.echo(f"Index written to {result.layout.index_dir}")


@cli.command()
@click.option("--chemistry", "-c", required=True, help="Chemistry name (10xv2, 10xv3, custom name or geometry)")
@click.option("--output", "-o", required=True, type=click.Path(path_type=Path), help="Output directory")
@click.option("--threads", "-t", type=click.IntRange(min=1), default=DEFAULT_THREADS, show_default=True,
              help="Number of threads")
@click.option("--index", "-i", type=click.Path(path_type=Path), help="Path to index")
@click.option("--reads1", "-1", callback=_split_paths, help="Comma-separated list of read 1 files")
@click.option("--reads2", "-2", callback=_split_paths, help="Comma-separated list of read 2 files")
@click.option("--use-selective-alignment", "-s", is_flag=True,
              help="Use selective-alignment for salmon mapping")
@click.option("--use-piscem", is_flag=True, help="Map with piscem (--index is the piscem index prefix)")
@click.option("--map-dir", type=click.Path(path_type=Path),
              help="Mapped output directory containing a RAD file; skips mapping")
@click.option("--knee", "-k", is_flag=True, help="Use knee filtering mode")
@click.option("--unfiltered-pl", "-u", is_flag=False, flag_value="", default=None,
              help="Use an unfiltered permit list; without a value the 10x list for the chemistry is used")
@click.option("--forced-cells", "-f", type=click.IntRange(min=1), help="Use a forced number of cells")
@click.option("--explicit-pl", "-x", type=click.Path(path_type=Path),
              help="Use a filtered, explicit permit list")
@click.option("--expect-cells", "-e", type=click.IntRange(min=1), help="Use an expected number of cells")
@click.option("--expected-ori", "-d", type=click.Choice([o.value for o in Orientation]),
              help="Expected alignment orientation (default: fw for 10xv2/10xv3, both otherwise)")
@click.option("--min-reads", type=click.IntRange(min=0), default=DEFAULT_MIN_READS, show_default=True,
              help="Minimum read count for a cell to be retained; only used with --unfiltered-pl")
@click.option("--t2g-map", "-m", type=click.Path(path_type=Path), help="Transcript to gene map")
@click.option("--resolution", "-r", required=True, type=click.Choice(RESOLUTION_MODES),
              help="UMI resolution mode")
@click.option("--dry-run", is_flag=True, help="Show execution plan without running")
@click.pass_context
def quant(ctx: click.Context, dry_run: bool, **params: Any) -> None:
    """Quantify a sample."""
    from fryflow.core.engine import run_quant

    try:
        options = build_quant_options(params)
        result = run_quant(
            _require_home(ctx), options, dry_run=dry_run, log_level=ctx.obj["log_level"]
        )
    except FryflowError as e:
        _fail(ctx, e)
        return

    if dry_run:
        _echo_dry_run(result.plan)
    else:
        click.echo(f"Quantification written to {result.layout.quant_dir}")


@cli.command("run-workflow")
@click.option("--jsons", "-j", required=True, callback=_split_paths,
              help="Comma-separated list of workflow files (JSON or YAML)")
@click.option("--dry-run", is_flag=True, help="Show execution plans without running")
@click.pass_context
def run_workflow_command(ctx: click.Context, jsons: Tuple[Path, ...], dry_run: bool) -> None:
    """Run the index and quant commands recorded in workflow files."""
    from fryflow.core.workflow import run_workflow

    try:
        options = RunWorkflowOptions(jsons=jsons)
        commands = run_workflow(_require_home(ctx), options.jsons, dry_run=dry_run)
    except FryflowError as e:
        _fail(ctx, e)
        return

    verb = "Planned" if dry_run else "Ran"
    click.echo(f"{verb} {len(commands)} recorded command(s)")


@cli.command("add-chemistry")
@click.option("--name", "-n", required=True, help="Name to give the chemistry")
@click.option("--geometry", "-g", required=True, help="Geometry the chemistry maps to")
@click.pass_context
def add_chemistry(ctx: click.Context, name: str, geometry: str) -> None:
    """Add a custom chemistry to geometry mapping."""
    from fryflow.core.geometry import validate_geometry

    try:
        validate_geometry(geometry)
        home = _require_home(ctx)
        previous = home.add_custom_chemistry(name, geometry)
    except FryflowError as e:
        _fail(ctx, e)
        return

    if previous is not None:
        click.echo(f"Updated chemistry {name}: {previous} -> {geometry}")
    else:
        click.echo(f"Added chemistry {name}: {geometry}")


@cli.command()
@click.pass_context
def inspect(ctx: click.Context) -> None:
    """Show the tool registry and custom chemistries."""
    try:
        home = _require_home(ctx)
        record = home.load_registry_record()
        chemistries = (
            home.load_custom_chemistries() if home.custom_chemistry_file.is_file() else None
        )
    except FryflowError as e:
        _fail(ctx, e)
        return

    click.echo("\n----- fryflow info -----")
    click.echo(json.dumps(record, indent=2))
    if chemistries is not None:
        click.echo(f"\nCustom chemistries exist at path: {home.custom_chemistry_file}")
        click.echo("----- custom chemistries -----")
        click.echo(json.dumps(chemistries, indent=2))


# ============================================================================
# Options construction
# ============================================================================


def build_index_options(params: Dict[str, Any]) -> IndexOptions:
    """IndexOptions from parsed ``index`` parameters."""
    params = {k: v for k, v in params.items() if k != "dry_run"}
    return IndexOptions(**params)


def build_quant_options(params: Dict[str, Any]) -> QuantOptions:
    """QuantOptions from parsed ``quant`` parameters."""
    params = {k: v for k, v in params.items() if k != "dry_run"}

    unfiltered = params.pop("unfiltered_pl")
    if unfiltered is None:
        params["unfiltered_pl"] = UnfilteredPermitList.absent()
    elif unfiltered == "":
        params["unfiltered_pl"] = UnfilteredPermitList.auto_detect()
    else:
        params["unfiltered_pl"] = UnfilteredPermitList.with_path(Path(unfiltered))

    ori = params.pop("expected_ori")
    params["expected_ori"] = Orientation(ori) if ori is not None else None
    return QuantOptions(**params)


OPTION_BUILDERS = {
    "index": build_index_options,
    "quant": build_quant_options,
    "run-workflow": lambda params: RunWorkflowOptions(jsons=params["jsons"]),
}


def parse_command_line(argv: Sequence[str]):
    """Parse a subcommand argv (e.g. ``["quant", "-c", "10xv3", ...]``) into options.

    Nothing is executed.

    Raises
    ------
    ConfigurationError
        If the subcommand is unknown or its arguments do not parse.
    """
    argv: List[str] = list(argv)
    if not argv:
        raise ConfigurationError("Empty command line")
    name, args = argv[0], argv[1:]
    builder = OPTION_BUILDERS.get(name)
    command = cli.commands.get(name)
    if builder is None or command is None:
        raise ConfigurationError(
            f"'{name}' is not a command that can be parsed into options",
            suggestion=f"Use one of: {', '.join(OPTION_BUILDERS)}",
        )
    try:
        with command.make_context(name, args) as ctx:
            params = dict(ctx.params)
    except click.ClickException as e:
        raise ConfigurationError(
            f"Could not parse '{name} {' '.join(args)}': {e.format_message()}"
        ) from None
    except click.exceptions.Exit:
        raise ConfigurationError(f"'{name} {' '.join(args)}' does not describe a run") from None
    return builder(params)


def main() -> None:
    """Main entry point for CLI."""
    cli(obj={})


if __name__ == "__main__":
    main()
