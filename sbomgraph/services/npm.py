"""Helpers for interpreting npm style package metadata."""
import re
from urllib.parse import urlparse

from sbomgraph.models.package import VcsInfo
from sbomgraph.models.package_json import PackageJson
from sbomgraph.models.package_json import Person
from sbomgraph.models.spdx import NOASSERTION
from sbomgraph.models.spdx import NONE

# Version used for packages that do not declare any.
NON_EXISTING_SEMVER = '0.0.0-non-existing'

_SHORTCUT_HOSTS = {
    'github': 'https://github.com/{path}.git{revision}',
    'gitlab': 'https://gitlab.com/{path}.git{revision}',
    'bitbucket': 'https://bitbucket.org/{path}.git{revision}',
    'gist': 'https://gist.github.com/{path}{revision}',
}

_GITHUB_SHORTCUT_PATH = re.compile(r'^[\w.-]+/[\w.-]+$')

_ARTIFACTORY_API_PATH = re.compile(r'(.*artifactory.*)/api/npm/(.*)')

# "Name <email> (url)"
_AUTHOR_PATTERN = re.compile(r'^\s*([^<(]*?)\s*(?:<[^>]*>)?\s*(?:\([^)]*\))?\s*$')


def split_npm_namespace_and_name(raw_name: str) -> tuple[str, str]:
    """Split "@scope/name" into ("@scope", "name")."""
    namespace, _, name = raw_name.rpartition('/')
    return namespace, name


def expand_npm_shortcut_url(url: str) -> str:
    """
    Expand npm repository shortcuts like "github:owner/repo", "gitlab:owner/repo"
    or a bare "owner/repo" to full URLs. Anything else is returned unchanged.
    """
    if not url:
        return url

    parsed = urlparse(url)
    if parsed.netloc or parsed.query or not parsed.path:
        return url

    path = parsed.path.removesuffix('.git')
    revision = f"#{parsed.fragment}" if parsed.fragment else ''

    if not parsed.scheme:
        # scp-like "git@host:owner/repo" has no scheme either.
        if _GITHUB_SHORTCUT_PATH.match(path) and not path.startswith('.'):
            return _SHORTCUT_HOSTS['github'].format(path=path, revision=revision)
        return url

    template = _SHORTCUT_HOSTS.get(parsed.scheme)
    if template is None:
        return url
    return template.format(path=path, revision=revision)


def fix_npm_download_url(url: str) -> str:
    """Work around registries that report wrong tarball URLs."""
    if url.startswith('http://registry.npmjs.org/'):
        return 'https://' + url.removeprefix('http://')

    # Artifactory reports API URLs instead of download URLs.
    match = _ARTIFACTORY_API_PATH.match(url)
    if match:
        return f"{match.group(1)}/{match.group(2)}"

    return url


def map_npm_licenses(licenses: list[str]) -> set[str]:
    declared = set()
    for license_name in licenses:
        license_name = license_name.strip()
        if not license_name:
            continue
        # npm uses this for packages that must not be used by others at all.
        if license_name == 'UNLICENSED':
            declared.add(NONE)
        elif license_name.startswith('SEE LICENSE IN '):
            declared.add(NOASSERTION)
        else:
            declared.add(license_name)
    return declared


def parse_npm_author(author: Person | str | None) -> str | None:
    if author is None:
        return None
    if isinstance(author, Person):
        return (author.name or '').strip() or None

    match = _AUTHOR_PATTERN.match(author)
    name = match.group(1) if match else author
    return name.strip() or None


def parse_npm_authors(package_json: PackageJson) -> set[str]:
    return {
        name for name in map(parse_npm_author, package_json.authors)
        if name
    }


def parse_npm_vcs_info(package_json: PackageJson) -> VcsInfo:
    head = package_json.git_head or ''
    repository = package_json.repository
    if repository is None:
        return VcsInfo(revision=head)

    return VcsInfo(
        type=(repository.type or '').strip(),
        url=expand_npm_shortcut_url((repository.url or '').strip()),
        revision=head,
        path=(repository.directory or '').strip(),
    )
