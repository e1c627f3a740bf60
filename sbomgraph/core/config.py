"""Configuration management for sbomgraph."""
import os
from dataclasses import dataclass
from dataclasses import field
from pathlib import Path

import dotenv


def _split_paths(value: str | None) -> list[Path]:
    if not value:
        return []
    return [Path(part) for part in value.split(os.pathsep) if part.strip()]


@dataclass
class PathConfig:
    """File locations used by the CLI."""
    output_dir: Path = field(default_factory=lambda: Path('sbomgraph-out'))
    license_text_dirs: list[Path] = field(
        default_factory=lambda: _split_paths(
            os.getenv('SBOMGRAPH_LICENSE_TEXT_DIRS'),
        ),
    )

    @property
    def result_file(self) -> Path:
        return self.output_dir / 'analysis-result.json'

    def get_report_path(self, output_format: str) -> Path:
        """Default location of the SPDX document for a given format."""
        suffix = 'yml' if output_format == 'yaml' else 'json'
        return self.output_dir / f'bom.spdx.{suffix}'


@dataclass
class SpdxConfig:
    """Defaults for the SPDX document creation info."""
    document_name: str = field(
        default_factory=lambda: os.getenv(
            'SBOMGRAPH_DOCUMENT_NAME', 'Unnamed document',
        ),
    )
    document_comment: str = ''
    creation_info_comment: str = ''
    creation_info_person: str = field(
        default_factory=lambda: os.getenv('SBOMGRAPH_CREATOR_PERSON', ''),
    )
    creation_info_organization: str = field(
        default_factory=lambda: os.getenv(
            'SBOMGRAPH_CREATOR_ORGANIZATION', '',
        ),
    )
    file_information_enabled: bool = True


@dataclass
class SbomGraphConfig:
    paths: PathConfig = field(default_factory=PathConfig)
    spdx: SpdxConfig = field(default_factory=SpdxConfig)

    @classmethod
    def load(cls) -> 'SbomGraphConfig':
        dotenv.load_dotenv()
        return cls()


_config: SbomGraphConfig | None = None


def get_config() -> SbomGraphConfig:
    global _config
    if _config is None:
        _config = SbomGraphConfig.load()
    return _config
