"""Record resolver backed by the Holosun dealer locator.

For every ZIP code the resolver obtains centroid coordinates (from the
processed ZIP table when available, otherwise from the Zippopotam.us API),
submits the locator search form and returns the raw dealer dictionaries from
the JSON payload. An unknown ZIP yields an empty list; transport, block and
parse failures raise :class:`~holosun_scan.errors.ResolveError` subclasses so
the orchestrator can count them and move on.
"""
from __future__ import annotations

import csv
import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Protocol, Tuple

import requests

from holosun_scan.errors import BlockedError, InvalidInput, NetworkError, ParseError
from holosun_scan.settings import ScanSettings

LOGGER = logging.getLogger("holosun.resolver")
SEARCH_ENDPOINT = "https://holosun.com/index/dealer/search.html"
GEOCODE_ENDPOINT = "https://api.zippopotam.us/us/{zip_code}"
BLOCK_STATUS_CODES = {403, 429, 503}
ANTI_AUTOMATION_KEYWORDS = (
    "captcha",
    "access denied",
    "forbidden",
    "bot detection",
    "unusual traffic",
)

Coordinates = Tuple[float, float]


class RecordResolver(Protocol):
    def resolve(self, work_item: Any) -> List[Dict[str, Any]]: ...


def normalize_zip(value: Any) -> str:
    """Return ``value`` as a 5-digit ZIP string or raise ``InvalidInput``."""

    if isinstance(value, bool):
        raise InvalidInput(f"Invalid zip code: {value!r}")
    if isinstance(value, int):
        if value < 0:
            raise InvalidInput(f"Invalid zip code: {value!r}")
        value = str(value).zfill(5)
    if not isinstance(value, str):
        raise InvalidInput(f"Invalid zip code: {value!r}")
    zip_code = value.strip()
    if len(zip_code) != 5 or not zip_code.isdigit():
        raise InvalidInput(f"Zip code must be a 5-digit numeric string: {value!r}")
    return zip_code


def _read_zip_rows(csv_path: Path) -> List[Dict[str, str]]:
    if not csv_path.exists():
        raise FileNotFoundError(f"ZIP CSV not found: {csv_path}")
    with csv_path.open(newline="", encoding="utf-8") as handle:
        return list(csv.DictReader(handle))


def load_work_list(csv_path: Path) -> List[str]:
    """Load the ordered list of ZIP codes to scan."""

    zip_codes: List[str] = []
    for row in _read_zip_rows(csv_path):
        raw = (row.get("zip") or "").strip().zfill(5)
        try:
            zip_codes.append(normalize_zip(raw))
        except InvalidInput:
            LOGGER.debug("Skipping non-standard ZIP entry: %s", raw)
    zip_codes = list(dict.fromkeys(zip_codes))
    if not zip_codes:
        raise InvalidInput(f"No ZIP entries loaded from {csv_path}")
    LOGGER.debug("Loaded %d ZIP codes from %s", len(zip_codes), csv_path)
    return zip_codes


def load_zip_centroids(csv_path: Path) -> Dict[str, Coordinates]:
    mapping: Dict[str, Coordinates] = {}
    for row in _read_zip_rows(csv_path):
        zip_code = (row.get("zip") or "").strip().zfill(5)
        try:
            lat = float(row.get("latitude") or "")
            lng = float(row.get("longitude") or "")
        except ValueError:
            continue
        mapping[zip_code] = (lat, lng)
    return mapping


def detect_anti_automation(response: requests.Response, body_text: str) -> List[str]:
    issues: List[str] = []
    status = response.status_code
    if status in BLOCK_STATUS_CODES or status >= 500:
        issues.append(f"Unexpected status code {status}")

    content_type = (response.headers.get("content-type") or "").lower()
    if "json" not in content_type:
        lowered = body_text.lower()
        if any(keyword in lowered for keyword in ANTI_AUTOMATION_KEYWORDS):
            issues.append("Response body appears to be an anti-automation warning page")
    return issues


def extract_dealer_list(payload: Any) -> List[Dict[str, Any]]:
    """Pull the dealer list out of the known locator response shapes."""

    if not isinstance(payload, dict):
        return []
    data = payload.get("data")
    if isinstance(data, dict) and isinstance(data.get("list"), list):
        dealers = data["list"]
    elif isinstance(payload.get("list"), list):
        dealers = payload["list"]
    elif isinstance(data, list):
        dealers = data
    else:
        dealers = []
    return [dealer for dealer in dealers if isinstance(dealer, dict)]


class HolosunResolver:
    def __init__(
        self,
        settings: ScanSettings,
        *,
        session: Optional[requests.Session] = None,
        centroids: Optional[Dict[str, Coordinates]] = None,
    ) -> None:
        self.settings = settings
        self.session = session or requests.Session()
        self.centroids: Dict[str, Coordinates] = dict(centroids or {})
        self._geocode_cache: Dict[str, Coordinates] = {}

    def close(self) -> None:
        self.session.close()

    def geocode(self, zip_code: str) -> Optional[Coordinates]:
        if zip_code in self.centroids:
            return self.centroids[zip_code]
        if zip_code in self._geocode_cache:
            return self._geocode_cache[zip_code]

        url = GEOCODE_ENDPOINT.format(zip_code=zip_code)
        try:
            response = self.session.get(
                url,
                headers={"User-Agent": self.settings.user_agent},
                timeout=self.settings.timeout,
            )
        except requests.RequestException as exc:
            raise NetworkError(f"Geocoding request failed for zip {zip_code}: {exc}") from exc

        if response.status_code == 404:
            return None
        if not response.ok:
            raise NetworkError(f"Geocoding failed for zip {zip_code}: HTTP {response.status_code}")

        try:
            places = response.json().get("places") or []
            coords = (float(places[0]["latitude"]), float(places[0]["longitude"])) if places else None
        except (ValueError, KeyError, TypeError, AttributeError) as exc:
            raise ParseError(f"Unexpected geocoding payload for zip {zip_code}: {exc}") from exc

        if coords is not None:
            self._geocode_cache[zip_code] = coords
        return coords

    def prepare_payload(self, zip_code: str, coords: Coordinates) -> Dict[str, str]:
        lat, lng = coords
        return {
            "keywords": zip_code,
            "distance": str(self.settings.distance),
            "lat": f"{lat:.6f}",
            "lng": f"{lng:.6f}",
            "cate": self.settings.category,
        }

    def perform_request(self, payload: Dict[str, str]) -> requests.Response:
        headers = {
            "User-Agent": self.settings.user_agent,
            "Origin": "https://holosun.com",
            "Referer": "https://holosun.com/where-to-buy.html?c=both",
            "X-Requested-With": "XMLHttpRequest",
            "Content-Type": "application/x-www-form-urlencoded; charset=UTF-8",
            "Accept": "application/json, text/javascript, */*; q=0.01",
        }
        LOGGER.debug("Submitting POST to %s with payload %s", SEARCH_ENDPOINT, payload)
        try:
            return self.session.post(SEARCH_ENDPOINT, data=payload, headers=headers, timeout=self.settings.timeout)
        except requests.RequestException as exc:
            raise NetworkError(f"Dealer search failed for zip {payload.get('keywords')}: {exc}") from exc

    def resolve(self, work_item: Any, *, debug: bool = False) -> List[Dict[str, Any]]:
        zip_code = normalize_zip(work_item)
        log = LOGGER.info if debug else LOGGER.debug

        coords = self.geocode(zip_code)
        if coords is None:
            LOGGER.warning("No geocoding results for zip %s; skipping", zip_code)
            return []
        log("Geocoded zip %s to lat=%s, lng=%s", zip_code, coords[0], coords[1])

        payload = self.prepare_payload(zip_code, coords)
        response = self.perform_request(payload)
        body_text = response.text
        log("Response status for zip %s: %s", zip_code, response.status_code)

        issues = detect_anti_automation(response, body_text)
        if issues:
            raise BlockedError(f"Zip {zip_code}: " + "; ".join(issues))
        if not response.ok:
            raise NetworkError(f"Dealer search failed for zip {zip_code}: HTTP {response.status_code}")

        try:
            body = json.loads(body_text)
        except ValueError as exc:
            if debug:
                LOGGER.info("Body that failed to parse: %s", body_text[:1000])
            raise ParseError(f"Failed to parse JSON for zip {zip_code}: {exc}") from exc

        if isinstance(body, dict) and body.get("code") not in (None, 1):
            raise BlockedError(
                f"Zip {zip_code}: Holosun API returned non-success code {body.get('code')!r} ({body.get('msg')!r})"
            )

        dealers = extract_dealer_list(body)
        log("Zip %s returned %d dealers", zip_code, len(dealers))
        if debug and dealers:
            LOGGER.info("First dealer sample: %s", json.dumps(dealers[0], indent=2, ensure_ascii=False))
        return dealers
