from pathlib import Path

import structlog
import typer
from rich.table import Table

from sbomgraph.core.config import get_config
from sbomgraph.core.decorators import handle_errors
from sbomgraph.core.logging import console
from sbomgraph.models.result import AnalysisResult
from sbomgraph.models.result import Excludes
from sbomgraph.services.pnpm import PnpmAnalyzer
from sbomgraph.services.pnpm import PnpmListing

logger = structlog.get_logger('analyze')
app = typer.Typer()


def print_summary(result: AnalysisResult, elapsed: float) -> None:
    graph = result.dependency_graph
    table = Table(title='Analysis Summary')
    table.add_column('Metric', style='cyan')
    table.add_column('Value', style='magenta', justify='right')
    table.add_row('Projects', str(len(result.projects)))
    table.add_row('Packages', str(len(result.packages)))
    table.add_row('Excluded Packages', str(len(result.packages) - len(result.get_packages(omit_excluded=True))))
    table.add_row('Graph Fragments', str(graph.fragment_count))
    table.add_row('Graph Edges', str(len(graph.edges)))
    table.add_row('Issues', str(sum(len(issues) for issues in result.issues.values())))
    table.add_row('Total Duration', f"{elapsed:.2f}s")
    console.print(table)


@app.callback(invoke_without_command=True)
@handle_errors
def main(
    listing: Path = typer.Option(
        ..., help='Output of `pnpm list --json --recursive --prod`',
    ),
    dev_listing: Path | None = typer.Option(
        None, help='Output of `pnpm list --json --recursive --dev`',
    ),
    root: Path = typer.Option(Path('.'), help='Root directory of the workspace'),
    output: Path | None = typer.Option(None, help='Analysis result JSON file'),
    exclude_path: list[str] = typer.Option(
        [], help='Glob matching definition files of projects to exclude',
    ),
    exclude_scope: list[str] = typer.Option(
        [], help='Regular expression matching scope names to exclude',
    ),
):
    """
    Resolve the dependency graph of a pnpm workspace.
    """
    config = get_config()
    output = output or config.paths.result_file

    pnpm_listing = PnpmListing.load(listing, dev_listing)
    analyzer = PnpmAnalyzer(
        root, pnpm_listing, Excludes(paths=exclude_path, scopes=exclude_scope),
    )
    result = analyzer.analyze()

    output.parent.mkdir(parents=True, exist_ok=True)
    output.write_text(result.model_dump_json(by_alias=True, indent=2), encoding='utf-8')
    logger.info('Analysis result written', output=str(output))

    print_summary(result, analyzer.graph_builder.stats.elapsed_time)
