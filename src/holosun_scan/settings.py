"""Runtime settings shared by the scan scripts."""
from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

DEFAULT_OUTPUT_PATH = Path("holosun-dealers-ca.csv")
DEFAULT_ZIP_CSV = Path("data/processed/ca_zip_codes.csv")
REQUEST_DELAY_SECONDS = 0.15
TEST_DELAY_SECONDS = 0.01
TEST_SCAN_SIZE = 10
DEFAULT_DISTANCE = 100
DEFAULT_CATEGORY = "both"
DEFAULT_TIMEOUT = 30
DEFAULT_STATUS_INTERVAL = 5.0
DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) "
    "AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/141.0.0.0 Safari/537.36"
)


@dataclass(frozen=True)
class ScanSettings:
    output_path: Path = DEFAULT_OUTPUT_PATH
    zip_csv: Path = DEFAULT_ZIP_CSV
    request_delay: float = REQUEST_DELAY_SECONDS
    test_scan_size: int = TEST_SCAN_SIZE
    distance: int = DEFAULT_DISTANCE
    category: str = DEFAULT_CATEGORY
    timeout: int = DEFAULT_TIMEOUT
    user_agent: str = DEFAULT_USER_AGENT
    status_interval: float = DEFAULT_STATUS_INTERVAL
