from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, Optional

from .limits import EngineLimits
from .payloads import materialize_policy
from .request_models import PolicyData
from .taxonomy import build_taxonomy

# Shipped taxonomy snapshots are installed as package data under privpref/taxonomies.
DEFAULT_TAXONOMY_DIR = Path(__file__).resolve().parents[2] / "taxonomies"


def load_policy_file(path: str, *, limits: Optional[EngineLimits] = None) -> PolicyData:
    """Load a nested-set policy snapshot from a JSON file.

    The file holds {"version": ..., "attributes": [nodes], "purposes": [nodes]}
    with explicit left/right bounds. Raises InputMaterializationError on bad
    content and OSError when the file cannot be read.

    Time:  O(n)
    Space: O(n)
    """

    lim = limits or EngineLimits.from_env()
    data = Path(path).read_bytes()
    return materialize_policy(data, lim)


def build_policy_document(tree_doc: Dict[str, Any]) -> Dict[str, Any]:
    """Number a tree-form policy document into its nested-set JSON form.

    Input: {"version"?: str, "attributes": [tree], "purposes": [tree]} where each
    tree node is {"name", "id"?, "children"?}. Each axis is numbered
    independently starting at 1.
    """

    if not isinstance(tree_doc, dict):
        raise ValueError("taxonomy tree document must be an object")

    out: Dict[str, Any] = {}
    if tree_doc.get("version") is not None:
        out["version"] = str(tree_doc["version"])

    for axis in ("attributes", "purposes"):
        taxonomy = build_taxonomy(tree_doc.get(axis) or [])
        out[axis] = [
            {"id": n.id, "name": n.name, "left": n.left, "right": n.right} for n in taxonomy
        ]
    return out


def load_tree_file(path: str) -> Dict[str, Any]:
    """Read a tree-form policy document and return its nested-set JSON form."""

    with open(path, "r", encoding="utf-8") as f:
        return build_policy_document(json.load(f))


def resolve_taxonomy_path(
    ref: str,
    *,
    base_dir: Optional[str] = None,
    allow_arbitrary_paths: bool = True,
) -> str:
    """Resolve a taxonomy reference to a safe filesystem path.

    - If ref is an existing path and allow_arbitrary_paths is True, return it.
    - Otherwise, treat ref as a name within base_dir (default: shipped snapshots);
      "default" resolves to default.json.

    Security notes:
    - Prevent path traversal by forcing resolution under base_dir.
    """

    p = Path(ref)
    if allow_arbitrary_paths and p.is_file():
        return str(p)

    base = Path(base_dir or DEFAULT_TAXONOMY_DIR).resolve()
    candidate = (base / ref).resolve()
    if base not in candidate.parents:
        raise ValueError("taxonomy path traversal blocked")
    if not candidate.exists() and candidate.suffix == "":
        candidate = Path(str(candidate) + ".json").resolve()
    if not candidate.is_file():
        raise FileNotFoundError(str(candidate))
    return str(candidate)
