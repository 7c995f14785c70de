"""
Relaxed JSON (JSON5 / JSON with comments) to canonical JSON conversion.
"""
import json
from typing import Any

import json5

RELAXED_JSON_EXTENSIONS = (".json5", ".jsonc")


def is_relaxed_json(path: str) -> bool:
    return path.lower().endswith(RELAXED_JSON_EXTENSIONS)


def to_canonical_json(data: Any) -> str:
    """Serialize without insignificant whitespace"""
    return json.dumps(data, separators=(',', ':'), ensure_ascii=False)


def convert_relaxed_json(text: str) -> str:
    """
    Parse relaxed JSON text and re-serialize it as canonical JSON.

    Raises:
        ValueError: If the text is not valid relaxed JSON
    """
    return to_canonical_json(json5.loads(text))
