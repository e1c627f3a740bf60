"""Parsing and normalization of VCS URLs for the well-known hosting services."""
import re
from urllib.parse import urlparse

from sbomgraph.models.package import VcsInfo

GIT = 'Git'

_VCS_TYPES = {
    'git': GIT,
    'hg': 'Mercurial',
    'mercurial': 'Mercurial',
    'svn': 'Subversion',
    'subversion': 'Subversion',
}

_KNOWN_HOSTS = ('github.com', 'gitlab.com', 'bitbucket.org')

# git@github.com:owner/repo.git
_SCP_LIKE = re.compile(r'^(?:[\w.-]+@)?(?P<host>[\w.-]+):(?P<path>[^/].*)$')

_ARCHIVE_SUFFIXES = ('.tar.gz', '.tar.bz2', '.tgz', '.zip')

_GIT_SUFFIX = re.compile(r'\.git(?:[#/]|$)')


def normalize_vcs_type(vcs_type: str) -> str:
    return _VCS_TYPES.get(vcs_type.strip().lower(), vcs_type.strip())


def normalize_vcs_url(url: str) -> str:
    """Turn the various git URL flavors of known hosts into plain https URLs."""
    url = url.strip()
    if not url:
        return url

    url = url.removeprefix('git+')

    scp = _SCP_LIKE.match(url)
    if scp and '://' not in url and scp.group('host') in _KNOWN_HOSTS:
        url = f"https://{scp.group('host')}/{scp.group('path')}"

    parsed = urlparse(url)
    host = parsed.hostname or ''
    if host not in _KNOWN_HOSTS:
        return url

    path = parsed.path.strip('/')
    if host in ('github.com', 'gitlab.com') and path.count('/') == 1 and not path.endswith('.git'):
        path += '.git'

    normalized = f"https://{host}/{path}"
    if parsed.fragment:
        normalized += f"#{parsed.fragment}"
    return normalized


def _strip_archive_suffix(name: str) -> str:
    for suffix in _ARCHIVE_SUFFIXES:
        if name.endswith(suffix):
            return name.removesuffix(suffix)
    return name


def _parse_github(segments: list[str]) -> tuple[str, str, str] | None:
    if len(segments) < 2:
        return None
    owner, repo = segments[0], segments[1].removesuffix('.git')
    rest = segments[2:]
    revision, path = '', ''
    if len(rest) >= 2 and rest[0] in ('tree', 'blob', 'commit'):
        revision, path = rest[1], '/'.join(rest[2:])
    elif len(rest) >= 2 and rest[0] == 'archive':
        revision = _strip_archive_suffix(rest[-1])
    elif len(rest) >= 2 and rest[0] in ('tarball', 'zipball'):
        revision = rest[1]
    return f"https://github.com/{owner}/{repo}.git", revision, path


def _parse_codeload(segments: list[str]) -> tuple[str, str, str] | None:
    # codeload.github.com/owner/repo/tar.gz/<revision>
    if len(segments) < 4:
        return None
    owner, repo = segments[0], segments[1]
    return f"https://github.com/{owner}/{repo}.git", segments[3], ''


def _parse_gitlab(segments: list[str]) -> tuple[str, str, str] | None:
    if '-' in segments:
        separator = segments.index('-')
        project, rest = segments[:separator], segments[separator + 1:]
    else:
        project, rest = segments, []
    if len(project) < 2:
        return None
    project[-1] = project[-1].removesuffix('.git')
    revision, path = '', ''
    if len(rest) >= 2 and rest[0] in ('tree', 'blob', 'archive'):
        revision = rest[1]
        if rest[0] != 'archive':
            path = '/'.join(rest[2:])
    return f"https://gitlab.com/{'/'.join(project)}.git", revision, path


def _parse_bitbucket(segments: list[str]) -> tuple[str, str, str] | None:
    if len(segments) < 2:
        return None
    owner, repo = segments[0], segments[1].removesuffix('.git')
    rest = segments[2:]
    revision, path = '', ''
    if len(rest) >= 2 and rest[0] == 'src':
        revision, path = rest[1], '/'.join(rest[2:])
    elif len(rest) >= 2 and rest[0] == 'get':
        revision = _strip_archive_suffix(rest[1])
    return f"https://bitbucket.org/{owner}/{repo}.git", revision, path


_HOST_PARSERS = {
    'github.com': _parse_github,
    'codeload.github.com': _parse_codeload,
    'gitlab.com': _parse_gitlab,
    'bitbucket.org': _parse_bitbucket,
}


def parse_vcs_url(url: str) -> VcsInfo:
    """
    Derive VCS information from a URL. URLs of unknown hosts are returned
    unchanged, with the type guessed from the URL itself.
    """
    normalized = normalize_vcs_url(url)
    parsed = urlparse(normalized)
    parser = _HOST_PARSERS.get(parsed.hostname or '')
    if parser is not None:
        segments = [s for s in parsed.path.split('/') if s]
        parts = parser(segments)
        if parts is not None:
            repo_url, revision, path = parts
            # Only git URLs use the fragment for the revision, web pages use it for anchors.
            if not revision and (url.startswith('git') or _GIT_SUFFIX.search(url)):
                revision = parsed.fragment
            return VcsInfo(type=GIT, url=repo_url, revision=revision, path=path)

    guessed_type = GIT if url.endswith('.git') or url.startswith('git') else ''
    return VcsInfo(type=guessed_type, url=url)


def is_known_host(url: str) -> bool:
    host = urlparse(normalize_vcs_url(url)).hostname or ''
    return host in _HOST_PARSERS


def to_archive_download_url(vcs: VcsInfo) -> str | None:
    """Source archive URL for a revision on a known host, if derivable."""
    if not vcs.revision or not is_known_host(vcs.url):
        return None

    parsed = urlparse(normalize_vcs_url(vcs.url))
    project = parsed.path.strip('/').removesuffix('.git')
    revision = vcs.revision
    host = parsed.hostname

    if host == 'github.com':
        return f"https://github.com/{project}/archive/{revision}.tar.gz"
    if host == 'gitlab.com':
        repo = project.rsplit('/', 1)[-1]
        return f"https://gitlab.com/{project}/-/archive/{revision}/{repo}-{revision}.tar.gz"
    if host == 'bitbucket.org':
        return f"https://bitbucket.org/{project}/get/{revision}.tar.gz"
    return None


def process_package_vcs(vcs: VcsInfo, *fallback_urls: str) -> VcsInfo:
    """
    Normalize the VCS information declared by a package. A declared URL on a
    known host is reduced to its repository URL; without a declared URL the
    first fallback URL pointing to a known host is used.
    """
    normalized = VcsInfo(
        type=normalize_vcs_type(vcs.type),
        url=normalize_vcs_url(vcs.url),
        revision=vcs.revision,
        path=vcs.path,
    )

    if normalized.url:
        if not is_known_host(normalized.url):
            return normalized
        parsed = parse_vcs_url(normalized.url)
        return VcsInfo(
            type=normalized.type or parsed.type,
            url=parsed.url,
            revision=normalized.revision or parsed.revision,
            path=normalized.path or parsed.path,
        )

    for url in fallback_urls:
        if url and is_known_host(url):
            return normalized.merge(parse_vcs_url(url))

    return normalized
