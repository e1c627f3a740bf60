import typer

from sbomgraph.commands import analyze
from sbomgraph.commands import report
from sbomgraph.core.logging import setup_logging

app = typer.Typer(
    help='sbomgraph: Dependency graphs and SPDX documents for pnpm workspaces.',
    no_args_is_help=True,
    pretty_exceptions_show_locals=False,
)

app.add_typer(analyze.app, name='analyze', help='Resolve the dependency graph of a workspace')
app.add_typer(report.app, name='report', help='Generate an SPDX document')


@app.callback()
def main(
    debug: bool = typer.Option(False, '--debug', help='Enable debug logging'),
):
    """
    sbomgraph CLI - Resolve workspaces, report SBOMs.
    """
    level = 'DEBUG' if debug else 'INFO'
    setup_logging(level=level)


if __name__ == '__main__':
    app()
