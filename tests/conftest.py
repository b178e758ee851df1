import logging
from pathlib import Path

import pytest

from cuckoo_tap.kernel.installer import InstallLayout
from tests.kernel.mocks import tarball_bytes

PLACEHOLDER_VARS = ("SOURCE_ARCHIVE_URL", "SOURCE_SHA256", "CIRCLE_BUILD_NUM", "ARTIFACT_SHA256")


# --- Environment isolation ---

@pytest.fixture(autouse=True)
def isolated_home(tmp_path, monkeypatch):
    """
    Every test gets its own app home, prefix and cache, and starts without
    any placeholder values or logging configuration leaking in.
    """
    home = tmp_path / "home"
    monkeypatch.setenv("CUCKOO_TAP_HOME", str(home))
    monkeypatch.setenv("CUCKOO_TAP_PREFIX", str(tmp_path / "prefix"))
    monkeypatch.setenv("CUCKOO_TAP_CACHE", str(tmp_path / "cache"))
    monkeypatch.delenv("CUCKOO_TAP_FORMULA_PATH", raising=False)
    monkeypatch.delenv("CUCKOO_TAP_LOG_LEVEL", raising=False)
    for name in PLACEHOLDER_VARS:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setattr("cuckoo_tap.internal.logging._LOGGING_CONFIGURED", False)
    yield home
    for handler in logging.root.handlers[:]:
        if type(handler).__module__.startswith("_pytest"):
            continue
        handler.close()
        logging.root.removeHandler(handler)


@pytest.fixture
def layout(tmp_path) -> InstallLayout:
    return InstallLayout(prefix=tmp_path / "prefix", cache_dir=tmp_path / "cache")


@pytest.fixture
def source_tarball() -> bytes:
    return tarball_bytes({
        "cuckoo-1.0/README.md": b"# cuckoo\n",
        "cuckoo-1.0/source/main.go": b"package main\n\nfunc main() {}\n",
    })


@pytest.fixture
def write_formula(tmp_path):
    """
    Writes a formula file into a fresh formula directory and returns the
    directory.
    """
    formula_dir = tmp_path / "formulas"
    formula_dir.mkdir(exist_ok=True)

    def _write(filename: str, content: str) -> Path:
        (formula_dir / filename).write_text(content, encoding="utf-8")
        return formula_dir

    return _write
