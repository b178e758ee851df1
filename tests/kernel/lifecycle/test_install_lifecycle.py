import os
from pathlib import Path

import pytest

from cuckoo_tap.kernel.descriptor import descriptor_from_mapping
from cuckoo_tap.kernel.errors import FormulaNotFoundError
from cuckoo_tap.kernel.installer import InstallService, artifact_filename
from tests.kernel.mocks import (
    MockArtifactFetcher,
    MockCommandRunner,
    MockToolchainProbe,
    builds_binary,
    exits_with,
    sha256_of,
)

SOURCE_URL = "https://example.com/cuckoo-1.0.tar.gz"
PREBUILT_URL = "https://circleci.com/api/v1.1/project/github/borchero/cuckoo/42/artifacts/0/cuckoo"
PREBUILT_BYTES = b"#!/bin/sh\necho usage\n"


@pytest.fixture
def source_descriptor(source_tarball):
    return descriptor_from_mapping({
        "name": "cuckoo",
        "desc": "CLI Tool for GitLab CI and Kubernetes Deployments.",
        "url": SOURCE_URL,
        "sha256": sha256_of(source_tarball),
        "depends_on": ["go@1.14"],
        "install": {
            "build_from_source": {"workdir": "source", "command": "go build -v", "output": "source/cuckoo"},
        },
    })


@pytest.fixture
def prebuilt_descriptor():
    return descriptor_from_mapping({
        "name": "cuckoo",
        "desc": "CLI Tool for GitLab CI and Kubernetes Deployments.",
        "url": PREBUILT_URL,
        "sha256": sha256_of(PREBUILT_BYTES),
        "install": {"install_prebuilt": {"artifact": "cuckoo"}},
    })


@pytest.fixture
def fetcher(source_tarball):
    return MockArtifactFetcher({SOURCE_URL: source_tarball, PREBUILT_URL: PREBUILT_BYTES})


@pytest.fixture
def toolchain():
    return MockToolchainProbe({"go": "1.14.15"})


@pytest.fixture
def runner():
    return MockCommandRunner().on("go", builds_binary("cuckoo")).on("cuckoo", exits_with(0, stdout="Usage: cuckoo"))


@pytest.fixture
def service(fetcher, toolchain, runner, layout):
    return InstallService(fetcher=fetcher, toolchain=toolchain, runner=runner, layout=layout)


# --- Build from source ---

def test_build_from_source_runs_every_stage_in_order(service, source_descriptor):
    events = list(service.execute(source_descriptor))

    assert [e.status for e in events] == [
        "fetching",
        "verifying",
        "checking_prerequisites",
        "staging",
        "building",
        "placing",
        "testing",
        "completed",
    ]
    assert all(e.name == "cuckoo" for e in events)


def test_build_runs_in_the_declared_workdir_with_the_toolchain_on_path(service, runner, source_descriptor, toolchain):
    service.install(source_descriptor)

    build_call = runner.calls[0]
    assert build_call.args == ["go", "build", "-v"]
    assert build_call.cwd.name == "source"
    assert build_call.env["PATH"].split(os.pathsep)[0] == str(toolchain.tool_dir)


def test_build_from_source_places_the_built_binary(service, layout, source_descriptor):
    report = service.install(source_descriptor)

    binary = layout.bin_dir / "cuckoo"
    assert report.binary_path == binary
    assert report.built
    assert report.verified is True
    assert report.stages == ["fetch", "verify", "prerequisites", "stage", "build", "place", "test"]
    assert binary.is_file()
    assert os.access(binary, os.X_OK)


def test_smoke_check_runs_the_installed_binary_with_help(service, runner, layout, source_descriptor):
    service.install(source_descriptor)

    smoke_call = runner.calls[-1]
    assert smoke_call.args == [str(layout.bin_dir / "cuckoo"), "help"]
    assert smoke_call.timeout == 60


def test_staging_directory_is_removed_after_install(service, layout, source_descriptor):
    service.install(source_descriptor)
    assert list(layout.staging_root.iterdir()) == []


# --- Install prebuilt ---

def test_install_prebuilt_skips_prerequisites_and_build(service, runner, toolchain, prebuilt_descriptor):
    events = list(service.execute(prebuilt_descriptor))

    assert [e.status for e in events] == [
        "fetching",
        "verifying",
        "staging",
        "placing",
        "testing",
        "completed",
    ]
    assert toolchain.locate_calls == []
    assert runner.programs_called() == ["cuckoo"]


def test_install_prebuilt_places_the_artifact_as_executable(service, layout, prebuilt_descriptor):
    report = service.install(prebuilt_descriptor)

    binary = layout.bin_dir / "cuckoo"
    assert report.binary_path == binary
    assert not report.built
    assert binary.read_bytes() == PREBUILT_BYTES
    assert os.access(binary, os.X_OK)


def test_completed_event_reports_the_binary(service, layout, prebuilt_descriptor):
    completed = list(service.execute(prebuilt_descriptor))[-1]

    assert completed.status == "completed"
    assert completed.output == {
        "binary": str(layout.bin_dir / "cuckoo"),
        "variant": "install_prebuilt",
        "verified": True,
    }


def test_skip_test_leaves_verification_unknown(service, runner, prebuilt_descriptor):
    report = service.install(prebuilt_descriptor, run_test=False)

    assert report.verified is None
    assert "test" not in report.stages
    assert runner.calls == []
    assert service.receipts.load("cuckoo").verified is None


# --- Download cache ---

def test_cached_artifact_with_matching_hash_is_reused(service, fetcher, prebuilt_descriptor):
    service.install(prebuilt_descriptor)
    service.install(prebuilt_descriptor)

    assert fetcher.fetch_calls == [PREBUILT_URL]


def test_corrupt_cached_artifact_is_fetched_again(service, fetcher, layout, prebuilt_descriptor):
    cached = layout.downloads_dir / f"{prebuilt_descriptor.integrity_hash}--{artifact_filename(PREBUILT_URL)}"
    cached.parent.mkdir(parents=True)
    cached.write_bytes(b"truncated")

    report = service.install(prebuilt_descriptor)

    assert fetcher.fetch_calls == [PREBUILT_URL]
    assert report.installed


# --- Receipts, re-test and uninstall ---

def test_install_writes_a_receipt(service, layout, source_descriptor):
    service.install(source_descriptor)

    receipt = service.receipts.load("cuckoo")
    assert receipt.variant == "build_from_source"
    assert receipt.source_location == SOURCE_URL
    assert receipt.integrity_hash == source_descriptor.integrity_hash
    assert receipt.binary_path == str(layout.bin_dir / "cuckoo")
    assert receipt.smoke_args == ["help"]
    assert receipt.verified is True


def test_smoke_test_reruns_the_check_from_the_receipt(service, runner, prebuilt_descriptor):
    service.install(prebuilt_descriptor, run_test=False)

    result = service.smoke_test("cuckoo")

    assert result.success
    assert runner.calls[-1].args[1:] == ["help"]
    assert service.receipts.load("cuckoo").verified is True


def test_smoke_test_of_unknown_formula_fails(service):
    with pytest.raises(FormulaNotFoundError):
        service.smoke_test("cuckoo")


def test_uninstall_removes_binary_and_receipt(service, layout, prebuilt_descriptor):
    service.install(prebuilt_descriptor)

    removed = service.uninstall("cuckoo")

    assert removed == layout.bin_dir / "cuckoo"
    assert not removed.exists()
    assert service.installed() == []


def test_uninstall_of_unknown_formula_fails(service):
    with pytest.raises(FormulaNotFoundError):
        service.uninstall("cuckoo")


@pytest.mark.parametrize("url, expected", [
    ("https://example.com/cuckoo-1.0.tar.gz", "cuckoo-1.0.tar.gz"),
    (PREBUILT_URL, "cuckoo"),
    ("https://example.com/releases/cuckoo%20v1.zip?token=1", "cuckoo v1.zip"),
    ("https://example.com/", "artifact"),
])
def test_artifact_filename(url, expected):
    assert artifact_filename(url) == expected


def test_binary_path_is_under_prefix_bin(layout):
    assert layout.binary_path("cuckoo") == Path(layout.prefix) / "bin" / "cuckoo"
