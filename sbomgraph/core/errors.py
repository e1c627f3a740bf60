"""Exception hierarchy for sbomgraph."""


class SbomGraphError(Exception):
    """Base class for all fatal sbomgraph errors."""


class ManifestError(SbomGraphError):
    """A package.json manifest could not be read or parsed."""

    def __init__(self, path, reason: str):
        self.path = path
        self.reason = reason
        super().__init__(f"Invalid manifest {path}: {reason}")


class ListingError(SbomGraphError):
    """A package manager module listing is malformed or incomplete."""
