import pytest

from sbomgraph.models.package import VcsInfo
from sbomgraph.services.vcs import is_known_host
from sbomgraph.services.vcs import normalize_vcs_type
from sbomgraph.services.vcs import normalize_vcs_url
from sbomgraph.services.vcs import parse_vcs_url
from sbomgraph.services.vcs import process_package_vcs
from sbomgraph.services.vcs import to_archive_download_url


@pytest.mark.parametrize(
    'url,expected', [
        ('git+https://github.com/acme/repo.git', 'https://github.com/acme/repo.git'),
        ('git+ssh://git@github.com/acme/repo.git', 'https://github.com/acme/repo.git'),
        ('git@github.com:acme/repo.git', 'https://github.com/acme/repo.git'),
        ('https://github.com/acme/repo', 'https://github.com/acme/repo.git'),
        ('https://example.com/acme/repo', 'https://example.com/acme/repo'),
    ],
)
def test_normalize_vcs_url(url, expected):
    assert normalize_vcs_url(url) == expected


def test_normalize_vcs_type():
    assert normalize_vcs_type('git') == 'Git'
    assert normalize_vcs_type('hg') == 'Mercurial'
    assert normalize_vcs_type('Custom') == 'Custom'


class TestParseVcsUrl:
    """Tests for parse_vcs_url."""

    def test_github_tree_url(self):
        vcs = parse_vcs_url('https://github.com/acme/repo/tree/main/packages/x')
        assert vcs == VcsInfo(
            type='Git', url='https://github.com/acme/repo.git', revision='main', path='packages/x',
        )

    def test_git_url_fragment_is_revision(self):
        vcs = parse_vcs_url('https://github.com/acme/repo.git#v1.0.0')
        assert vcs.url == 'https://github.com/acme/repo.git'
        assert vcs.revision == 'v1.0.0'

    def test_homepage_anchor_is_not_revision(self):
        vcs = parse_vcs_url('https://github.com/acme/repo#readme')
        assert vcs.url == 'https://github.com/acme/repo.git'
        assert vcs.revision == ''

    def test_codeload_tarball(self):
        vcs = parse_vcs_url('https://codeload.github.com/acme/repo/tar.gz/deadbeef')
        assert vcs.url == 'https://github.com/acme/repo.git'
        assert vcs.revision == 'deadbeef'

    def test_gitlab_archive(self):
        vcs = parse_vcs_url('https://gitlab.com/group/project/-/archive/v2/project-v2.tar.gz')
        assert vcs.url == 'https://gitlab.com/group/project.git'
        assert vcs.revision == 'v2'

    def test_unknown_host_returned_unchanged(self):
        url = 'https://registry.npmjs.org/a/-/a-1.0.0.tgz'
        assert parse_vcs_url(url) == VcsInfo(url=url)


def test_is_known_host():
    assert is_known_host('git@github.com:acme/repo.git')
    assert not is_known_host('https://registry.npmjs.org/a')


class TestArchiveDownloadUrl:

    def test_github(self):
        vcs = VcsInfo(type='Git', url='https://github.com/acme/repo.git', revision='abc')
        assert to_archive_download_url(vcs) == 'https://github.com/acme/repo/archive/abc.tar.gz'

    def test_gitlab(self):
        vcs = VcsInfo(type='Git', url='https://gitlab.com/group/project.git', revision='v1')
        assert to_archive_download_url(vcs) == \
            'https://gitlab.com/group/project/-/archive/v1/project-v1.tar.gz'

    def test_bitbucket(self):
        vcs = VcsInfo(type='Git', url='https://bitbucket.org/team/repo.git', revision='abc')
        assert to_archive_download_url(vcs) == 'https://bitbucket.org/team/repo/get/abc.tar.gz'

    def test_requires_revision(self):
        assert to_archive_download_url(VcsInfo(url='https://github.com/acme/repo.git')) is None

    def test_requires_known_host(self):
        assert to_archive_download_url(VcsInfo(url='https://example.com/repo.git', revision='abc')) is None


class TestProcessPackageVcs:

    def test_declared_url_normalized(self):
        vcs = VcsInfo(type='git', url='git+https://github.com/acme/shared.git', revision='abc123')
        assert process_package_vcs(vcs) == VcsInfo(
            type='Git', url='https://github.com/acme/shared.git', revision='abc123',
        )

    def test_declared_tree_url_reduced_to_repository(self):
        vcs = VcsInfo(url='https://github.com/acme/mono/tree/main/packages/a')
        processed = process_package_vcs(vcs)
        assert processed.url == 'https://github.com/acme/mono.git'
        assert processed.revision == 'main'
        assert processed.path == 'packages/a'

    def test_fallback_to_homepage(self):
        processed = process_package_vcs(VcsInfo(), 'https://github.com/acme/repo#readme')
        assert processed == VcsInfo(type='Git', url='https://github.com/acme/repo.git')

    def test_unknown_fallback_ignored(self):
        assert process_package_vcs(VcsInfo(), 'https://example.com').is_empty()
