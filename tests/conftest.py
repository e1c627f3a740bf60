import base64
import json
from dataclasses import dataclass
from pathlib import Path

import pytest

SHARED_INTEGRITY = 'sha512-' + base64.b64encode(bytes(64)).decode()


def write_manifest(directory: Path, **fields) -> Path:
    directory.mkdir(parents=True, exist_ok=True)
    manifest = directory / 'package.json'
    manifest.write_text(json.dumps(fields), encoding='utf-8')
    return manifest


def write_listing(path: Path, entries: list[dict]) -> Path:
    path.write_text(json.dumps(entries), encoding='utf-8')
    return path


@dataclass
class Workspace:
    root: Path
    app_dir: Path
    lib_dir: Path
    shared_dir: Path
    leaf_dir: Path
    tester_dir: Path

    def dependency(self, name: str, version: str, path: Path, **children) -> dict:
        return {
            'from': name,
            'version': version,
            'path': str(path),
            'dependencies': children,
        }

    def shared(self) -> dict:
        leaf = self.dependency('leaf', '0.1.0', self.leaf_dir)
        return self.dependency('shared', '1.2.3', self.shared_dir, leaf=leaf)

    def prod_entries(self, link_lib: bool = False) -> list[dict]:
        app_dependencies = {'shared': self.shared()}
        if link_lib:
            app_dependencies['@acme/lib'] = self.dependency('@acme/lib', 'link:../lib', self.lib_dir)
        return [
            {'name': 'app', 'version': '1.0.0', 'path': str(self.app_dir), 'dependencies': app_dependencies},
            {'name': '@acme/lib', 'version': '2.0.0', 'path': str(self.lib_dir), 'dependencies': {'shared': self.shared()}},
        ]

    def dev_entries(self) -> list[dict]:
        return [
            {
                'name': 'app', 'version': '1.0.0', 'path': str(self.app_dir),
                'devDependencies': {'tester': self.dependency('tester', '3.0.0', self.tester_dir)},
            },
            {'name': '@acme/lib', 'version': '2.0.0', 'path': str(self.lib_dir)},
        ]

    def write_listings(self, link_lib: bool = False) -> tuple[Path, Path]:
        prod = write_listing(self.root / 'prod.json', self.prod_entries(link_lib))
        dev = write_listing(self.root / 'dev.json', self.dev_entries())
        return prod, dev


@pytest.fixture
def workspace(tmp_path) -> Workspace:
    """Two projects sharing one external dependency, plus a dev dependency of app."""
    root = tmp_path / 'repo'
    store = root / 'node_modules' / '.pnpm'
    ws = Workspace(
        root=root,
        app_dir=root / 'packages' / 'app',
        lib_dir=root / 'packages' / 'lib',
        shared_dir=store / 'shared@1.2.3' / 'node_modules' / 'shared',
        leaf_dir=store / 'leaf@0.1.0' / 'node_modules' / 'leaf',
        tester_dir=store / 'tester@3.0.0' / 'node_modules' / 'tester',
    )

    write_manifest(
        ws.app_dir, name='app', version='1.0.0', license='MIT',
        repository='github:acme/monorepo',
    )
    write_manifest(ws.lib_dir, name='@acme/lib', version='2.0.0', license='Apache-2.0')
    write_manifest(
        ws.shared_dir,
        name='shared',
        version='1.2.3',
        license='MIT',
        author='Jane Doe <jane@example.com>',
        repository={'type': 'git', 'url': 'git+https://github.com/acme/shared.git'},
        gitHead='abc123',
        _resolved='https://registry.npmjs.org/shared/-/shared-1.2.3.tgz',
        _integrity=SHARED_INTEGRITY,
    )
    write_manifest(
        ws.leaf_dir,
        name='leaf',
        version='0.1.0',
        license='public domain',
        _resolved='http://registry.npmjs.org/leaf/-/leaf-0.1.0.tgz',
    )
    write_manifest(ws.tester_dir, name='tester', version='3.0.0', license='ISC')
    return ws
