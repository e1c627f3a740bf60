import pytest
from pydantic import ValidationError

from conftest import write_listing
from conftest import write_manifest
from sbomgraph.core.errors import ListingError
from sbomgraph.core.errors import ManifestError
from sbomgraph.models.identifier import Identifier
from sbomgraph.models.module_info import ModuleInfo
from sbomgraph.models.module_info import PnpmDependency
from sbomgraph.models.package import HashAlgorithm
from sbomgraph.models.package import PackageLinkage
from sbomgraph.models.package import Severity
from sbomgraph.services.npm import NON_EXISTING_SEMVER
from sbomgraph.services.pnpm import get_scope_dependencies
from sbomgraph.services.pnpm import parse_package
from sbomgraph.services.pnpm import parse_project
from sbomgraph.services.pnpm import PnpmAnalyzer
from sbomgraph.services.pnpm import PnpmDependencyHandler
from sbomgraph.services.pnpm import PnpmListing
from sbomgraph.services.pnpm import Scope


def dependency(name, version, path, **children) -> PnpmDependency:
    return PnpmDependency.model_validate({
        'from': name, 'version': version, 'path': str(path), 'dependencies': children,
    })


class TestPnpmDependencyHandler:
    """Tests for PnpmDependencyHandler."""

    @pytest.fixture
    def handler(self, workspace):
        handler = PnpmDependencyHandler()
        handler.set_workspace_module_dirs([workspace.app_dir, workspace.lib_dir])
        return handler

    def test_project_identified_by_canonical_path(self, handler, workspace):
        ref = dependency('@acme/lib', 'link:../lib', workspace.app_dir / '..' / 'lib')
        assert handler.is_project(ref)
        assert handler.identifier_for(ref) == Identifier(
            type='PNPM', namespace='@acme', name='lib', version='2.0.0',
        )
        assert handler.linkage_for(ref) == PackageLinkage.PROJECT_DYNAMIC
        assert handler.create_package(ref, []) is None

    def test_external_package(self, handler, workspace):
        ref = dependency('shared', '1.2.3', workspace.shared_dir)
        assert not handler.is_project(ref)
        assert handler.identifier_for(ref) == Identifier(type='NPM', name='shared', version='1.2.3')
        assert handler.linkage_for(ref) == PackageLinkage.DYNAMIC

        issues = []
        package = handler.create_package(ref, issues)
        assert package.id == Identifier(type='NPM', name='shared', version='1.2.3')
        assert issues == []

    @pytest.mark.parametrize('version', ['link:../vendored', 'file:../vendored.tgz'])
    def test_local_versions_degrade_to_empty(self, handler, tmp_path, version):
        ref = dependency('vendored', version, tmp_path / 'vendored')
        assert handler.identifier_for(ref).version == ''

    def test_fingerprint_uses_canonical_path_and_version(self, handler, workspace):
        first = dependency('shared', '1.2.3', workspace.shared_dir)
        second = dependency('shared', '1.2.3', workspace.shared_dir / '..' / 'shared')
        assert handler.fingerprint(first) == handler.fingerprint(second)

    def test_dependencies_merge_optional(self, handler, workspace):
        ref = PnpmDependency.model_validate({
            'from': 'shared', 'version': '1.2.3', 'path': str(workspace.shared_dir),
            'dependencies': {'leaf': {'from': 'leaf', 'version': '0.1.0', 'path': str(workspace.leaf_dir)}},
            'optionalDependencies': {'opt': {'from': 'opt', 'version': '1.0.0', 'path': '/nowhere/opt'}},
        })
        assert [d.from_ for d in handler.dependencies_for(ref)] == ['leaf', 'opt']

    def test_broken_project_manifest_is_fatal(self, handler, workspace):
        (workspace.lib_dir / 'package.json').write_text('{broken')
        ref = dependency('@acme/lib', 'link:../lib', workspace.lib_dir)
        with pytest.raises(ManifestError):
            handler.identifier_for(ref)


class TestParsePackage:
    """Tests for the manifest to package mapping."""

    def test_full_manifest(self, workspace):
        issues = []
        package = parse_package(workspace.shared_dir / 'package.json', issues)

        assert package.id == Identifier(type='NPM', name='shared', version='1.2.3')
        assert package.authors == {'Jane Doe'}
        assert package.declared_licenses_processed.spdx_expression == 'MIT'
        assert package.binary_artifact.url == ''
        assert package.source_artifact.url == 'https://registry.npmjs.org/shared/-/shared-1.2.3.tgz'
        assert package.source_artifact.hash.algorithm == HashAlgorithm.SHA512
        assert package.source_artifact.hash.value == '00' * 64
        assert package.vcs_processed.url == 'https://github.com/acme/shared.git'
        assert package.vcs_processed.revision == 'abc123'
        assert package.purl == 'pkg:npm/shared@1.2.3'
        assert issues == []

    def test_download_url_fixed_up(self, workspace):
        package = parse_package(workspace.leaf_dir / 'package.json')
        assert package.source_artifact.url == 'https://registry.npmjs.org/leaf/-/leaf-0.1.0.tgz'
        assert package.declared_licenses_processed.spdx_expression == 'LicenseRef-public-domain'

    def test_download_url_from_shortcut_in_from_field(self, tmp_path):
        manifest = write_manifest(
            tmp_path / 'thing', name='thing', version='1.0.0',
            _from='thing@github:acme/thing#deadbeef',
            repository='https://example.com/mirror/thing',
        )
        package = parse_package(manifest)

        assert package.source_artifact.url == 'https://github.com/acme/thing/archive/deadbeef.tar.gz'
        assert package.vcs.url == 'https://github.com/acme/thing.git'
        assert package.vcs.revision == 'deadbeef'
        assert package.vcs_processed.url == 'https://github.com/acme/thing.git'

    def test_from_field_without_shortcut_ignored(self, tmp_path):
        manifest = write_manifest(tmp_path / 'a', name='a', version='1.0.0', _from='a@^1.0.0')
        issues = []
        package = parse_package(manifest, issues)
        assert package.source_artifact.url == ''
        assert [i.severity for i in issues] == [Severity.HINT]

    def test_missing_version_uses_sentinel(self, tmp_path):
        manifest = write_manifest(tmp_path / 'a', name='a')
        issues = []
        package = parse_package(manifest, issues)
        assert package.id.version == NON_EXISTING_SEMVER
        assert any(i.severity == Severity.WARNING and 'No version' in i.message for i in issues)

    def test_invalid_integrity_recorded_as_issue(self, tmp_path):
        manifest = write_manifest(
            tmp_path / 'a', name='a', version='1.0.0', _integrity='sha512-!!!',
            _resolved='https://registry.npmjs.org/a/-/a-1.0.0.tgz',
        )
        issues = []
        package = parse_package(manifest, issues)
        assert package.source_artifact.hash.is_empty()
        assert len(issues) == 1

    def test_missing_name_is_fatal(self, tmp_path):
        manifest = write_manifest(tmp_path / 'a', version='1.0.0')
        with pytest.raises(ValidationError, match='has no name'):
            parse_package(manifest)

    def test_scoped_name(self, tmp_path):
        manifest = write_manifest(tmp_path / 'a', name='@scope/a', version='1.0.0')
        package = parse_package(manifest)
        assert package.id.namespace == '@scope'
        assert package.id.name == 'a'

    def test_malformed_optional_fields_recorded_as_issues(self, tmp_path):
        manifest = write_manifest(
            tmp_path / 'a', name='a', version='1.0.0', license='MIT',
            description=42, homepage={'url': 'https://example.com'}, author=7,
            _resolved='https://registry.npmjs.org/a/-/a-1.0.0.tgz',
        )
        issues = []
        package = parse_package(manifest, issues)

        assert package.id == Identifier(type='NPM', name='a', version='1.0.0')
        assert package.description == ''
        assert package.homepage_url == ''
        assert package.authors == set()
        assert package.declared_licenses == {'MIT'}
        warnings = [i.message for i in issues if i.severity == Severity.WARNING]
        assert len(warnings) == 3
        for key in ('author', 'description', 'homepage'):
            assert any(f"'{key}'" in message for message in warnings)

    def test_non_object_manifest_is_fatal(self, tmp_path):
        manifest = tmp_path / 'package.json'
        manifest.write_text('["a"]')
        with pytest.raises(ManifestError, match='JSON object'):
            parse_package(manifest)


class TestParseProject:

    def test_project(self, workspace):
        project = parse_project(workspace.app_dir / 'package.json', workspace.root)
        assert project.id == Identifier(type='PNPM', name='app', version='1.0.0')
        assert project.definition_file_path == 'packages/app/package.json'
        assert project.vcs_processed.url == 'https://github.com/acme/monorepo.git'

    def test_fallback_name(self, workspace):
        manifest = write_manifest(workspace.root / 'tools' / 'scripts', private=True)
        project = parse_project(manifest, workspace.root)
        assert project.id.name == 'tools/scripts'
        assert project.id.version == ''

    def test_malformed_repository_ignored(self, workspace):
        manifest = write_manifest(workspace.root / 'tools' / 'lint', name='lint', version='1.0.0', repository=5)
        project = parse_project(manifest, workspace.root)
        assert project.id.name == 'lint'
        assert project.vcs.url == ''


def test_scope_dependencies():
    module_info = ModuleInfo.model_validate({
        'path': '/ws/app',
        'dependencies': {'a': {'from': 'a', 'version': '1', 'path': '/a'}},
        'optionalDependencies': {'b': {'from': 'b', 'version': '1', 'path': '/b'}},
        'devDependencies': {'c': {'from': 'c', 'version': '1', 'path': '/c'}},
    })
    assert [d.from_ for d in get_scope_dependencies(module_info, Scope.DEPENDENCIES)] == ['a', 'b']
    assert [d.from_ for d in get_scope_dependencies(module_info, Scope.DEV_DEPENDENCIES)] == ['c']


class TestPnpmListing:

    def test_load(self, workspace):
        prod, dev = workspace.write_listings()
        listing = PnpmListing.load(prod, dev)
        assert listing.scopes == [Scope.DEPENDENCIES, Scope.DEV_DEPENDENCIES]
        assert listing.workspace_module_dirs() == sorted([workspace.app_dir.resolve(), workspace.lib_dir.resolve()])

    def test_load_without_dev_listing(self, workspace):
        prod, _ = workspace.write_listings()
        assert PnpmListing.load(prod).scopes == [Scope.DEPENDENCIES]

    def test_missing_project_entry(self, workspace):
        prod, _ = workspace.write_listings()
        dev = write_listing(workspace.root / 'dev-partial.json', workspace.dev_entries()[:1])
        listing = PnpmListing.load(prod, dev)
        with pytest.raises(ListingError):
            listing.module_info_for(Scope.DEV_DEPENDENCIES, workspace.lib_dir.resolve())


class TestPnpmAnalyzer:
    """End-to-end resolution of the workspace fixture."""

    def test_shared_dependency_resolved_once(self, workspace):
        prod, dev = workspace.write_listings()
        analyzer = PnpmAnalyzer(workspace.root, PnpmListing.load(prod, dev))

        result = analyzer.analyze()
        graph = result.dependency_graph

        assert [p.id.name for p in result.projects] == ['app', 'lib']
        assert [p.id.name for p in result.packages] == ['leaf', 'shared', 'tester']
        assert len(graph.nodes_for(Identifier(type='NPM', name='shared', version='1.2.3'))) == 1
        assert graph.fragment_count == 3
        assert analyzer.graph_builder.stats.memo_hits == 1

    def test_scopes(self, workspace):
        prod, dev = workspace.write_listings()
        result = PnpmAnalyzer(workspace.root, PnpmListing.load(prod, dev)).analyze()

        lib = result.get_project(Identifier(type='PNPM', namespace='@acme', name='lib', version='2.0.0'))
        assert lib.scope_names == {'dependencies', 'devDependencies'}
        assert result.dependency_graph.scope_roots('@acme:lib:2.0.0:devDependencies') == []
        assert len(result.dependency_graph.scope_roots(':app:1.0.0:devDependencies')) == 1

    def test_linked_project_is_project_node(self, workspace):
        prod, dev = workspace.write_listings(link_lib=True)
        result = PnpmAnalyzer(workspace.root, PnpmListing.load(prod, dev)).analyze()
        graph = result.dependency_graph

        lib_id = Identifier(type='PNPM', namespace='@acme', name='lib', version='2.0.0')
        (node,) = graph.nodes_for(lib_id)
        assert graph.nodes[node].linkage == PackageLinkage.PROJECT_DYNAMIC
        assert result.get_package(lib_id) is None

    def test_unreadable_dependency_manifest_is_fatal(self, workspace):
        (workspace.leaf_dir / 'package.json').unlink()
        prod, dev = workspace.write_listings()
        with pytest.raises(ManifestError):
            PnpmAnalyzer(workspace.root, PnpmListing.load(prod, dev)).analyze()
