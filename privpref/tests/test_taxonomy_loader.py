import json
from pathlib import Path

import pytest

from privpref.core.policy_engine.limits import EngineLimits
from privpref.core.policy_engine.policy_exceptions import PolicyConfigurationError
from privpref.core.policy_engine.taxonomy import validate_taxonomy
from privpref.core.policy_engine.taxonomy_loader import (
    DEFAULT_TAXONOMY_DIR,
    build_policy_document,
    load_policy_file,
    load_tree_file,
    resolve_taxonomy_path,
)


def test_default_snapshot_resolves_by_name():
    path = resolve_taxonomy_path("default")
    assert Path(path) == (DEFAULT_TAXONOMY_DIR / "default.json").resolve()


def test_default_snapshot_is_a_valid_policy():
    policy = load_policy_file(resolve_taxonomy_path("default"), limits=EngineLimits())

    assert policy.version == "1"
    assert len(policy.attributes) == 5
    assert len(policy.purposes) == 3
    validate_taxonomy(policy.attributes)
    validate_taxonomy(policy.purposes)


def test_tree_document_numbers_to_default_snapshot():
    built = load_tree_file(str(DEFAULT_TAXONOMY_DIR / "default_tree.json"))
    with open(DEFAULT_TAXONOMY_DIR / "default.json", "r", encoding="utf-8") as f:
        shipped = json.load(f)
    assert built == shipped


def test_each_axis_is_numbered_from_one():
    doc = build_policy_document(
        {"attributes": [{"name": "A"}], "purposes": [{"name": "P", "children": [{"name": "Q"}]}]}
    )

    assert "version" not in doc
    assert doc["attributes"] == [{"id": "A", "name": "A", "left": 1, "right": 2}]
    assert doc["purposes"] == [
        {"id": "P", "name": "P", "left": 1, "right": 4},
        {"id": "Q", "name": "Q", "left": 2, "right": 3},
    ]


def test_build_policy_document_rejects_bad_input():
    with pytest.raises(ValueError):
        build_policy_document(["not", "a", "doc"])
    with pytest.raises(PolicyConfigurationError):
        build_policy_document({"attributes": {"name": "A"}})


def test_named_lookup_under_custom_dir(tmp_path):
    (tmp_path / "retail.json").write_text("{}", encoding="utf-8")

    path = resolve_taxonomy_path("retail", base_dir=str(tmp_path))
    assert Path(path) == (tmp_path / "retail.json").resolve()


def test_existing_file_path_is_returned_as_is(tmp_path):
    f = tmp_path / "policy.json"
    f.write_text("{}", encoding="utf-8")
    assert resolve_taxonomy_path(str(f)) == str(f)


def test_path_traversal_is_blocked(tmp_path):
    base = tmp_path / "snapshots"
    base.mkdir()
    (tmp_path / "secret.json").write_text("{}", encoding="utf-8")

    with pytest.raises(ValueError, match="traversal"):
        resolve_taxonomy_path("../secret.json", base_dir=str(base), allow_arbitrary_paths=False)


def test_missing_snapshot_raises(tmp_path):
    with pytest.raises(FileNotFoundError):
        resolve_taxonomy_path("nope", base_dir=str(tmp_path))


def test_shipped_snapshots_are_package_data():
    import tomllib

    from privpref.core.policy_engine import taxonomy_loader

    package_root = Path(taxonomy_loader.__file__).resolve().parents[2]
    assert package_root.name == "privpref"
    assert DEFAULT_TAXONOMY_DIR.parent == package_root
    assert (DEFAULT_TAXONOMY_DIR / "default.json").is_file()

    with open(package_root.parent / "pyproject.toml", "rb") as f:
        pyproject = tomllib.load(f)
    assert "*.json" in pyproject["tool"]["setuptools"]["package-data"]["privpref.taxonomies"]
