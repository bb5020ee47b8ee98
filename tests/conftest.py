"""Shared fixtures: temporary extensions roots and generated extension packages."""

from __future__ import annotations

import json
import textwrap

import pytest

from twinpane.bridge import ContextBridge, PaneState
from twinpane.extensions import ExtensionRuntime

_TEMPLATE = '''\
from twinpane.extensions import {bases}, ExtensionColumn, ExtensionCommand


class {class_name}({bases}):
    id = {ext_id!r}
    name = {class_name!r}
    version = "1.0"
    author = "tests"

    def __init__(self):
        self.inits = 0
        self.shutdowns = 0
        self.context = None

    async def initialize(self, context):
        self.inits += 1
        self.context = context
        context.navigate_left_to(self.id)
        if {fail_init!r}:
            raise RuntimeError("init exploded")

    async def shutdown(self):
        self.shutdowns += 1
        if {fail_shutdown!r}:
            raise RuntimeError("shutdown exploded")
'''

_BODIES = {
    "CommandProvider": '''
    def get_commands(self):
        return [ExtensionCommand("hello", "Hello")]

    async def execute_command(self, command_id, context):
        if command_id == "boom":
            raise RuntimeError("command exploded")
        return f"{command_id} from {context.extension_id}"
''',
    "ColumnProvider": '''
    def get_columns(self):
        return [ExtensionColumn("length", "Length")]

    async def get_value(self, column_id, path):
        return len(path)
''',
    "Extension": "",
}


def extension_source(
    ext_id: str,
    capabilities: tuple[str, ...] = ("CommandProvider",),
    class_name: str = "Sample",
    fail_init: bool = False,
    fail_shutdown: bool = False,
) -> str:
    source = _TEMPLATE.format(
        bases=", ".join(capabilities),
        class_name=class_name,
        ext_id=ext_id,
        fail_init=fail_init,
        fail_shutdown=fail_shutdown,
    )
    return source + "".join(_BODIES[c] for c in capabilities)


@pytest.fixture
def ext_root(tmp_path):
    root = tmp_path / "extensions"
    root.mkdir()
    return root


@pytest.fixture
def write_extension(ext_root):
    """Write a package (or loose binary) into ext_root and return its path."""

    def _write(
        name: str,
        ext_id: str | None = None,
        capabilities: tuple[str, ...] = ("CommandProvider",),
        *,
        source: str | None = None,
        manifest: dict | None = None,
        files: dict[str, str] | None = None,
        loose: bool = False,
        fail_init: bool = False,
        fail_shutdown: bool = False,
    ):
        if source is None:
            source = extension_source(
                ext_id if ext_id is not None else name,
                capabilities,
                fail_init=fail_init,
                fail_shutdown=fail_shutdown,
            )
        else:
            source = textwrap.dedent(source)
        if loose:
            path = ext_root / f"{name}.py"
            path.write_text(source)
            return path
        pkg = ext_root / name
        pkg.mkdir(parents=True, exist_ok=True)
        (pkg / f"{name}.py").write_text(source)
        if manifest is not None:
            (pkg / "extension.json").write_text(json.dumps(manifest))
        for rel, content in (files or {}).items():
            target = pkg / rel
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_text(textwrap.dedent(content))
        return pkg

    return _write


@pytest.fixture
def bridge(tmp_path):
    return ContextBridge(
        PaneState(path="/left"), PaneState(path="/right"), data_root=tmp_path / "data"
    )


@pytest.fixture
async def runtime(ext_root, bridge):
    rt = ExtensionRuntime(ext_root, bridge)
    yield rt
    await rt.shutdown()
