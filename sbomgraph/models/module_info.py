"""Models for the JSON written by `pnpm list --json --recursive`."""
import json
from pathlib import Path

from pydantic import BaseModel
from pydantic import ConfigDict
from pydantic import Field
from pydantic import TypeAdapter
from pydantic import ValidationError

from sbomgraph.core.errors import ListingError


class PnpmDependency(BaseModel):
    """A raw dependency reference. Children are keyed by package name."""
    from_: str = Field(alias='from')
    version: str = ''
    resolved: str | None = None
    path: str
    dependencies: dict[str, 'PnpmDependency'] = Field(default_factory=dict)
    optional_dependencies: dict[str, 'PnpmDependency'] = Field(
        alias='optionalDependencies', default_factory=dict,
    )

    model_config = ConfigDict(populate_by_name=True, extra='ignore')


class ModuleInfo(BaseModel):
    """One workspace project entry of a recursive listing."""
    name: str | None = None
    version: str | None = None
    path: str
    dependencies: dict[str, PnpmDependency] = Field(default_factory=dict)
    dev_dependencies: dict[str, PnpmDependency] = Field(
        alias='devDependencies', default_factory=dict,
    )
    optional_dependencies: dict[str, PnpmDependency] = Field(
        alias='optionalDependencies', default_factory=dict,
    )

    model_config = ConfigDict(populate_by_name=True, extra='ignore')


_module_info_list = TypeAdapter(list[ModuleInfo])


def parse_pnpm_list(text: str) -> list[ModuleInfo]:
    """Parse the JSON listing into ModuleInfo objects."""
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise ListingError(f"Listing is not valid JSON: {e}")

    # pnpm prints a single object instead of an array for non-recursive runs.
    if isinstance(data, dict):
        data = [data]

    try:
        return _module_info_list.validate_python(data)
    except ValidationError as e:
        raise ListingError(f"Unexpected listing structure: {e}")


def load_pnpm_list(path: str | Path) -> list[ModuleInfo]:
    path = Path(path)
    try:
        text = path.read_text(encoding='utf-8')
    except OSError as e:
        raise ListingError(f"Cannot read listing {path}: {e}")
    return parse_pnpm_list(text)
