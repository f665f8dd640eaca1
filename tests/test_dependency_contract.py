"""Dependency contract tests for the runtime stack.

This module locks expected runtime dependency behavior.
"""

from pathlib import Path
import tomllib


def _pyproject() -> dict:
    repo_root = Path(__file__).resolve().parents[1]
    return tomllib.loads((repo_root / "pyproject.toml").read_text(encoding="utf-8"))


def test_runtime_dependencies_contract() -> None:
    """Ensure runtime dependencies cover imaging, logging and the worker.

    Returns
    -------
    None
    """
    deps = [dep.lower() for dep in _pyproject()["project"]["dependencies"]]
    for name in ("numpy", "loguru", "pyside6", "rasterio", "matplotlib"):
        assert any(dep.startswith(name) for dep in deps), name


def test_no_gis_vector_stack() -> None:
    """Ensure vector GIS and deep learning packages are not required.

    Returns
    -------
    None
    """
    deps = [dep.lower() for dep in _pyproject()["project"]["dependencies"]]
    for name in ("geopandas", "shapely", "torch", "pyqtgraph"):
        assert not any(dep.startswith(name) for dep in deps), name


def test_pytest_declared_as_test_extra() -> None:
    """Ensure the test runner is an optional dependency.

    Returns
    -------
    None
    """
    extras = _pyproject()["project"]["optional-dependencies"]
    assert any(dep.startswith("pytest") for dep in extras["test"])
