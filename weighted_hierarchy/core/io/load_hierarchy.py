from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

import yaml

from weighted_hierarchy.core.errors import HierarchyLoadError

logger = logging.getLogger(__name__)


def load_hierarchy(path: str) -> dict[str, Any]:
    """Load a YAML/JSON hierarchy document.

    Accepts either the bare milestone object or the API envelope
    ``{"hierarchy": {...}}`` (optionally nested under ``data``). Returns a dict
    with keys: hierarchy, __file__. Does not coerce types; the validator owns
    shape checking.
    """

    p = Path(path)
    if not p.exists():
        raise HierarchyLoadError(
            code="E_FILE_NOT_FOUND",
            message="file does not exist",
            path=str(p),
        )

    suffix = p.suffix.lower()
    try:
        raw_text = p.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        raise HierarchyLoadError(code="E_FILE_READ", message=str(e), path=str(p)) from e

    try:
        if suffix in {".yaml", ".yml"}:
            data = yaml.safe_load(raw_text)
        elif suffix == ".json":
            data = json.loads(raw_text)
        else:
            raise HierarchyLoadError(
                code="E_UNSUPPORTED_FORMAT",
                message="supported formats are .yaml/.yml and .json",
                path=str(p),
            )
    except HierarchyLoadError:
        raise
    except (yaml.YAMLError, ValueError) as e:
        code = "E_YAML_PARSE" if suffix in {".yaml", ".yml"} else "E_JSON_PARSE"
        raise HierarchyLoadError(code=code, message=str(e), path=str(p)) from e

    if not isinstance(data, dict):
        raise HierarchyLoadError(
            code="E_INVALID_TOP_LEVEL",
            message="top-level document must be a mapping/object",
            path=str(p),
        )

    if isinstance(data.get("data"), dict):
        data = data["data"]
    hierarchy = data.get("hierarchy", data)
    logger.debug("loaded %s (%d bytes, envelope=%s)", p, len(raw_text), "hierarchy" in data)

    return {"hierarchy": hierarchy, "__file__": str(p)}
