"""
Configuration validation script.

Validates the liveness JSON configuration against
shared/config/liveness.schema.json.

Usage:
    python scripts/validate_config.py [path/to/liveness.json]

Design rules:
- No side effects on import
- No runtime startup
- Validation only (no mutation)
"""

from __future__ import annotations

import json
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

from shared.config.liveness import validation_errors


# ------------------------------------------------------------
# Paths
# ------------------------------------------------------------

ROOT = Path(__file__).resolve().parents[1]
DEFAULT_CONFIG = ROOT / "shared" / "config" / "liveness.json"


# ------------------------------------------------------------
# Helpers
# ------------------------------------------------------------

def _load_json(path: Path) -> Dict[str, Any]:
    try:
        with path.open("r", encoding="utf-8") as f:
            data = json.load(f)
    except Exception as e:
        raise ValueError(f"{path.name}: invalid JSON ({e})") from e
    if not isinstance(data, dict):
        raise ValueError(f"{path.name}: root JSON value must be an object")
    return data


def _error(msg: str):
    print(f"[CONFIG ERROR] {msg}", file=sys.stderr)


# ------------------------------------------------------------
# Entry point
# ------------------------------------------------------------

def main(argv: Optional[List[str]] = None) -> int:
    argv = sys.argv[1:] if argv is None else argv
    path = Path(argv[0]) if argv else DEFAULT_CONFIG

    if not path.exists():
        _error(f"{path} not found")
        return 1

    try:
        data = _load_json(path)
    except ValueError as e:
        _error(str(e))
        return 1

    problems = validation_errors(data)
    for problem in problems:
        _error(f"{path.name}: {problem}")

    if problems:
        print("Configuration validation failed.", file=sys.stderr)
        return 1

    print("Configuration validation passed.")
    return 0


if __name__ == "__main__":
    sys.exit(main())
