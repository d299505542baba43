"""JSON export of aggregated results."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from core.domain.policy import AggregatedResult


def result_to_dict(result: AggregatedResult) -> dict[str, Any]:
    return {
        "aggregate_type": result.aggregate_type.value,
        "payload": result.payload,
        "errors": [
            {
                "server_id": failure.server_id,
                "server_name": failure.server_name,
                "error": str(failure.error),
            }
            for failure in result.errors
        ],
    }


def export_result_json(*, result: AggregatedResult, output_path: Path) -> Path:
    """Write `result` as stable, UTF-8 JSON."""

    output_path.parent.mkdir(parents=True, exist_ok=True)
    output_path.write_text(
        json.dumps(result_to_dict(result), ensure_ascii=False, indent=2, sort_keys=True, default=str) + "\n",
        encoding="utf-8",
    )
    return output_path
