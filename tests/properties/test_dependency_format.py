"""Property-based tests for the packaging metadata in pyproject.toml."""

import ast
import re
import sys
from pathlib import Path

import tomli
from hypothesis import given
from hypothesis import strategies as st

ROOT = Path(__file__).parent.parent.parent

# import name -> distribution name where they differ
DISTRIBUTION_NAMES = {"yaml": "pyyaml"}

REQUIREMENT = re.compile(
    r"^[a-zA-Z0-9]([a-zA-Z0-9._-]*[a-zA-Z0-9])?"  # package name
    r"(\[[a-zA-Z0-9,_-]+\])?"  # optional extras
    r"(([><=!~]+[0-9][a-zA-Z0-9.*+-]*(,[><=!~]+[0-9][a-zA-Z0-9.*+-]*)*)?)?$"  # version specs
)


def load_pyproject_toml():
    with open(ROOT / "pyproject.toml", "rb") as f:
        return tomli.load(f)


def is_valid_requirement(dep: str) -> bool:
    """Check a PEP 508 requirement of the form name[extras]>=version."""
    return bool(REQUIREMENT.match(dep.strip()))


def requirement_name(dep: str) -> str:
    return re.split(r"[><=!~\[]", dep)[0].strip().lower()


def imported_packages() -> set[str]:
    """Top-level packages imported anywhere in node_maintainer."""
    names = set()
    for path in (ROOT / "node_maintainer").rglob("*.py"):
        tree = ast.parse(path.read_text(encoding="utf-8"))
        for node in ast.walk(tree):
            if isinstance(node, ast.Import):
                names.update(alias.name.split(".")[0] for alias in node.names)
            elif isinstance(node, ast.ImportFrom) and node.level == 0 and node.module:
                names.add(node.module.split(".")[0])
    return names


def test_dependencies_are_valid_requirements():
    pyproject = load_pyproject_toml()

    dependencies = pyproject["project"]["dependencies"]
    assert dependencies, "Project should have dependencies defined"
    for dep in dependencies:
        assert is_valid_requirement(dep), f"Dependency '{dep}' is not a valid requirement"

    for group_name, group_deps in pyproject["project"].get("optional-dependencies", {}).items():
        for dep in group_deps:
            assert is_valid_requirement(dep), f"Optional dependency '{dep}' in group '{group_name}' is invalid"


def test_dependencies_are_constrained():
    for dep in load_pyproject_toml()["project"]["dependencies"]:
        assert any(op in dep for op in [">=", "==", "~="]), f"Dependency '{dep}' should have a version constraint"


def test_every_third_party_import_is_declared():
    declared = {requirement_name(d) for d in load_pyproject_toml()["project"]["dependencies"]}
    stdlib = set(sys.stdlib_module_names)

    for name in imported_packages() - stdlib - {"node_maintainer"}:
        assert DISTRIBUTION_NAMES.get(name, name) in declared, f"'{name}' is imported but not declared"


def test_console_script_points_at_cli():
    scripts = load_pyproject_toml()["project"]["scripts"]

    assert scripts["node-maint"] == "node_maintainer.cli:main"


@given(
    package_name=st.from_regex(r"^[a-zA-Z0-9]([a-zA-Z0-9._-]*[a-zA-Z0-9])?$", fullmatch=True).filter(
        lambda x: x.isascii()
    ),
    version=st.from_regex(r"^[0-9]+\.[0-9]+\.[0-9]+$", fullmatch=True).filter(lambda x: x.isascii()),
    operator=st.sampled_from([">=", "==", "~=", ">", "<", "!="]),
)
def test_valid_requirements_accepted(package_name, version, operator):
    dep = f"{package_name}{operator}{version}"

    assert is_valid_requirement(dep)
    assert requirement_name(dep) == package_name.lower()


@given(invalid_dep=st.sampled_from(["", "   ", "-invalid", "invalid-", "invalid package", "package@1.0.0"]))
def test_invalid_requirements_rejected(invalid_dep):
    assert not is_valid_requirement(invalid_dep)
