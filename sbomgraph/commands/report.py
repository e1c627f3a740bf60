import json
import time
from enum import Enum
from pathlib import Path

import structlog
import typer
import yaml
from rich.table import Table

from sbomgraph.core.config import get_config
from sbomgraph.core.decorators import handle_errors
from sbomgraph.core.logging import console
from sbomgraph.core.validation import validate_result_file
from sbomgraph.models.result import AnalysisResult
from sbomgraph.models.spdx import SpdxDocument
from sbomgraph.services.licenses import DirectoryLicenseTextProvider
from sbomgraph.services.licenses import ResultLicenseInfoResolver
from sbomgraph.services.spdx_mapper import SpdxDocumentMapper
from sbomgraph.services.spdx_mapper import SpdxDocumentParams

logger = structlog.get_logger('report')
app = typer.Typer()


class OutputFormat(str, Enum):
    JSON = 'json'
    YAML = 'yaml'

    def __str__(self) -> str:
        return self.value


def write_document(document: SpdxDocument, output: Path, output_format: OutputFormat) -> None:
    data = document.to_dict()
    output.parent.mkdir(parents=True, exist_ok=True)
    with open(output, 'w', encoding='utf-8') as f:
        if output_format is OutputFormat.YAML:
            yaml.safe_dump(data, f, sort_keys=False, allow_unicode=True)
        else:
            json.dump(data, f, indent=2, ensure_ascii=False)


@app.callback(invoke_without_command=True)
@handle_errors
def main(
    result_file: Path | None = typer.Option(
        None, '--result', help='Analysis result JSON file',
    ),
    output_format: OutputFormat = typer.Option(
        OutputFormat.JSON, '--format', help='Output format',
    ),
    output: Path | None = typer.Option(None, help='SPDX document output path'),
    name: str | None = typer.Option(None, help='Document name'),
    person: str | None = typer.Option(None, help='Creator person'),
    organization: str | None = typer.Option(None, help='Creator organization'),
    license_text_dir: list[Path] = typer.Option(
        [], help='Directory containing license texts',
    ),
    file_information: bool = typer.Option(
        True, help='Include per-file license findings',
    ),
):
    """
    Generate an SPDX document from an analysis result.
    """
    start_time = time.time()
    config = get_config()
    result_file = result_file or config.paths.result_file
    output = output or config.paths.get_report_path(str(output_format))

    validate_result_file(result_file)
    result = AnalysisResult.model_validate_json(result_file.read_text(encoding='utf-8'))

    params = SpdxDocumentParams(
        document_name=name or config.spdx.document_name,
        document_comment=config.spdx.document_comment,
        creation_info_comment=config.spdx.creation_info_comment,
        creation_info_person=person if person is not None else config.spdx.creation_info_person,
        creation_info_organization=(
            organization if organization is not None else config.spdx.creation_info_organization
        ),
        file_information_enabled=file_information and config.spdx.file_information_enabled,
    )
    text_provider = DirectoryLicenseTextProvider(
        [*license_text_dir, *config.paths.license_text_dirs],
    )

    document = SpdxDocumentMapper().map(
        result, ResultLicenseInfoResolver(result), text_provider, params,
    )
    write_document(document, output, output_format)
    logger.info('SPDX document written', output=str(output), output_format=str(output_format))

    table = Table(title='Report Summary')
    table.add_column('Metric', style='cyan')
    table.add_column('Value', style='magenta', justify='right')
    table.add_row('Described Projects', str(len(document.document_describes)))
    table.add_row('SPDX Packages', str(len(document.packages)))
    table.add_row('Relationships', str(len(document.relationships)))
    table.add_row('Files', str(len(document.files)))
    table.add_row('Extracted Licenses', str(len(document.has_extracted_licensing_infos)))
    table.add_row('Total Duration', f"{time.time() - start_time:.2f}s")
    console.print(table)
