"""Caller-facing operations for starting, polling and debugging scans."""
from __future__ import annotations

import math
from typing import Any, Dict, Optional, Sequence

from holosun_scan.errors import AlreadyRunning
from holosun_scan.orchestrator import ScanOrchestrator
from holosun_scan.resolver import normalize_zip
from holosun_scan.settings import ScanSettings


def describe_plan(total: int, sparsify: int) -> Dict[str, Any]:
    """Summarize how much of the work list a skip interval covers."""

    selected = math.ceil(total / sparsify) if total else 0
    if sparsify > 1:
        description = f"Processing every {sparsify}th zip code to reduce 100-mile radius overlap"
        time_saved = f"~{math.floor((1 - 1 / sparsify) * 100)}% faster"
    else:
        description = "Processing all zip codes (no skipping)"
        time_saved = "none"
    return {
        "skip_interval": sparsify,
        "description": description,
        "total_zip_codes": total,
        "zip_codes_to_process": selected,
        "estimated_time_saved": time_saved,
    }


class ScanService:
    def __init__(self, orchestrator: ScanOrchestrator, settings: ScanSettings) -> None:
        self.orchestrator = orchestrator
        self.settings = settings

    def start_scan(self, sparsify: int = 1) -> Dict[str, Any]:
        try:
            selected = self.orchestrator.start(sparsify)
        except AlreadyRunning as exc:
            state = exc.snapshot
            return {
                "accepted": False,
                "status": "already_running",
                "message": "A scraping job is already in progress. Poll the status for details.",
                "progress": {
                    "processed_zip_codes": state.processed,
                    "total_zip_codes": state.total,
                    "percent_complete": f"{state.percent_complete:.1f}%",
                },
            }
        plan = describe_plan(len(self.orchestrator.work_items), sparsify)
        plan["zip_codes_to_process"] = selected
        return {
            "accepted": True,
            "status": "started",
            "message": "Scraping job started in the background",
            "optimization": plan,
            "output_file": str(self.orchestrator.writer.path),
        }

    def get_status(self) -> Dict[str, Any]:
        state = self.orchestrator.status()
        payload = state.to_dict()
        if state.status == "idle":
            payload["message"] = "No job running. Start a scan first."
        return payload

    async def run_test_scan(self, work_list: Optional[Sequence[Any]] = None) -> Dict[str, Any]:
        if work_list is None:
            work_list = self.orchestrator.work_items[: self.settings.test_scan_size]
        summary = await self.orchestrator.run_test_scan(work_list)
        return summary.to_dict()

    async def debug_one(self, work_item: Any) -> Dict[str, Any]:
        dealers = await self.orchestrator.debug_one(work_item)
        return {
            "zip_code": normalize_zip(work_item),
            "dealers_found": len(dealers),
            "dealers": dealers,
        }
