import json
from pathlib import Path
from typing import Any

from pydantic import AliasChoices
from pydantic import BaseModel
from pydantic import ConfigDict
from pydantic import Field
from pydantic import field_validator
from pydantic import PrivateAttr
from pydantic import ValidationError

from sbomgraph.core.errors import ManifestError


class Repository(BaseModel):
    type: str | None = None
    url: str | None = None
    directory: str | None = None

    model_config = ConfigDict(extra='ignore')


class Person(BaseModel):
    name: str | None = None
    email: str | None = None
    url: str | None = None

    model_config = ConfigDict(extra='ignore')


def _license_name(item: Any) -> str | None:
    if isinstance(item, str):
        return item
    if isinstance(item, dict):
        return item.get('type') or item.get('name')
    return None


class PackageJson(BaseModel):
    """The subset of package.json fields needed to describe a package."""
    name: str | None = None
    version: str | None = None
    description: str | None = None
    homepage: str | None = None
    licenses: list[str] = Field(
        default_factory=list, validation_alias=AliasChoices('license', 'licenses'),
    )
    authors: list[Person | str] = Field(
        default_factory=list, validation_alias=AliasChoices('author', 'authors'),
    )
    repository: Repository | None = None
    git_head: str | None = Field(default=None, alias='gitHead')

    # Fields prefixed with "_" are written by npm itself and are private to it.
    resolved: str | None = Field(
        default=None, validation_alias=AliasChoices('_resolved', 'resolved'),
    )
    from_: str | None = Field(
        default=None, validation_alias=AliasChoices('_from', 'from'),
    )
    integrity: str | None = Field(
        default=None, validation_alias=AliasChoices('_integrity', 'integrity'),
    )

    model_config = ConfigDict(populate_by_name=True, extra='ignore')

    _invalid_fields: list[str] = PrivateAttr(default_factory=list)

    @property
    def invalid_fields(self) -> list[str]:
        """Manifest keys that were dropped because their values had the wrong shape."""
        return self._invalid_fields

    @field_validator('licenses', mode='before')
    @classmethod
    def parse_licenses(cls, v: Any) -> list[str]:
        if not v:
            return []
        items = v if isinstance(v, list) else [v]
        return [name for name in map(_license_name, items) if name is not None]

    @field_validator('authors', mode='before')
    @classmethod
    def parse_people(cls, v: Any) -> list[Any]:
        if not v:
            return []
        return v if isinstance(v, list) else [v]

    @field_validator('repository', mode='before')
    @classmethod
    def parse_repository(cls, v: Any) -> Any:
        if isinstance(v, str):
            return {'url': v}
        return v


def _manifest_keys(key: str) -> set[str]:
    """All manifest keys that populate the same field as `key`."""
    for name, info in PackageJson.model_fields.items():
        keys = {name}
        if info.alias:
            keys.add(info.alias)
        if isinstance(info.validation_alias, str):
            keys.add(info.validation_alias)
        elif isinstance(info.validation_alias, AliasChoices):
            keys.update(c for c in info.validation_alias.choices if isinstance(c, str))
        if key in keys:
            return keys
    return {key}


def parse_package_json(path: str | Path) -> PackageJson:
    """
    Read a package.json file. Unreadable files, invalid JSON and a non-object
    top level are fatal for the caller. Fields with malformed values are
    dropped and listed in `invalid_fields`.
    """
    path = Path(path)
    try:
        with open(path, encoding='utf-8') as f:
            data = json.load(f)
    except OSError as e:
        raise ManifestError(path, str(e))
    except json.JSONDecodeError as e:
        raise ManifestError(path, f"invalid JSON: {e}")

    if not isinstance(data, dict):
        raise ManifestError(path, 'expected a JSON object')

    invalid_fields: list[str] = []
    while True:
        try:
            package_json = PackageJson.model_validate(data)
            break
        except ValidationError as e:
            keys = {
                key
                for error in e.errors() if error['loc']
                for key in _manifest_keys(str(error['loc'][0]))
                if key in data
            }
            if not keys:
                raise ManifestError(path, str(e))
            for key in sorted(keys):
                del data[key]
                invalid_fields.append(key)

    package_json._invalid_fields = invalid_fields
    return package_json
