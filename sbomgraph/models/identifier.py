from urllib.parse import quote

from pydantic import BaseModel
from pydantic import ConfigDict

# Package manager types that map onto a different purl type.
PURL_TYPES = {
    'NPM': 'npm',
    'PNPM': 'npm',
}


class Identifier(BaseModel):
    """Uniquely names a project or package within an analysis result."""
    type: str
    namespace: str = ''
    name: str
    version: str = ''

    model_config = ConfigDict(frozen=True)

    def to_coordinates(self) -> str:
        return f"{self.type}:{self.namespace}:{self.name}:{self.version}"

    @classmethod
    def from_coordinates(cls, coordinates: str) -> 'Identifier':
        parts = coordinates.split(':', 3)
        if len(parts) != 4:
            raise ValueError(
                f"Coordinates must have four ':' separated parts: {coordinates!r}",
            )
        type_, namespace, name, version = parts
        return cls(type=type_, namespace=namespace, name=name, version=version)

    def to_purl(self) -> str:
        purl_type = PURL_TYPES.get(self.type, self.type.lower())
        path = quote(self.name, safe='')
        if self.namespace:
            path = f"{quote(self.namespace, safe='')}/{path}"
        purl = f"pkg:{purl_type}/{path}"
        if self.version:
            purl += f"@{quote(self.version, safe='')}"
        return purl

    def __lt__(self, other: 'Identifier') -> bool:
        if not isinstance(other, Identifier):
            return NotImplemented
        return self.to_coordinates() < other.to_coordinates()

    def __str__(self) -> str:
        return self.to_coordinates()
