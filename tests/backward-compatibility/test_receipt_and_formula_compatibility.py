import json

import pytest

from cuckoo_tap.adapters.formula_fs import load_formula_file
from cuckoo_tap.kernel.descriptor import descriptor_from_mapping, descriptor_to_mapping
from cuckoo_tap.kernel.errors import DescriptorError
from cuckoo_tap.kernel.receipts import ReceiptStore

# --- Golden data (as written by cuckoo-tap 0.1) ---

RECEIPT_V1 = {
    "name": "cuckoo",
    "variant": "install_prebuilt",
    "source_location": "https://circleci.com/api/v1.1/project/github/borchero/cuckoo/1234/artifacts/0/cuckoo",
    "integrity_hash": "f" * 64,
    "binary_path": "/opt/cuckoo-tap/bin/cuckoo",
    "smoke_args": ["help"],
    "smoke_timeout": 60,
    "version": None,
    "installed_at": "2026-01-05T10:00:00+00:00",
    "verified": True,
}

FORMULA_V1 = {
    "schema_version": 1,
    "name": "cuckoo",
    "desc": "CLI Tool for GitLab CI and Kubernetes Deployments.",
    "channels": {
        "prebuilt": {
            "url": "https://example.com/cuckoo",
            "sha256": "f" * 64,
            "install": {"install_prebuilt": {"artifact": "cuckoo"}},
        }
    },
}


def test_v1_receipt_loads(tmp_path):
    (tmp_path / "cuckoo.json").write_text(json.dumps(RECEIPT_V1))

    receipt = ReceiptStore(tmp_path).load("cuckoo")

    assert receipt.variant == "install_prebuilt"
    assert receipt.verified is True
    assert receipt.installed_at == "2026-01-05T10:00:00+00:00"


def test_receipt_with_unknown_keys_still_loads(tmp_path):
    data = dict(RECEIPT_V1, installed_by="cuckoo-tap 9.0")
    (tmp_path / "cuckoo.json").write_text(json.dumps(data))

    assert ReceiptStore(tmp_path).load("cuckoo").name == "cuckoo"


def test_v1_receipt_without_optional_keys_loads(tmp_path):
    data = {k: v for k, v in RECEIPT_V1.items() if k not in ("version", "verified", "smoke_timeout")}
    (tmp_path / "cuckoo.json").write_text(json.dumps(data))

    receipt = ReceiptStore(tmp_path).load("cuckoo")

    assert receipt.verified is None
    assert receipt.smoke_timeout == 60


def test_v1_formula_file_loads(tmp_path):
    path = tmp_path / "cuckoo.json"
    path.write_text(json.dumps(FORMULA_V1))

    formula = load_formula_file(path)

    assert formula.template().resolve({}).variant == "install_prebuilt"


@pytest.mark.parametrize("schema_version", [0, 2])
def test_other_schema_versions_are_rejected(tmp_path, schema_version):
    path = tmp_path / "cuckoo.json"
    path.write_text(json.dumps(dict(FORMULA_V1, schema_version=schema_version)))

    with pytest.raises(DescriptorError) as excinfo:
        load_formula_file(path)
    assert "schema_version" in "\n".join(excinfo.value.details)


def test_descriptor_mapping_keys_are_stable():
    descriptor = descriptor_from_mapping({
        "name": "cuckoo",
        "url": "https://example.com/cuckoo",
        "sha256": "f" * 64,
        "install": {"install_prebuilt": {}},
    })
    assert sorted(descriptor_to_mapping(descriptor)) == [
        "binary", "depends_on", "desc", "install", "name", "sha256", "test", "url",
    ]
