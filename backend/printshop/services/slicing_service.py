# Overview: HTTP client for the external slicing service (SuperSlice).

"""
Slicing Client

Sends one model file plus print parameters to POST {SUPERSLICE_API_URL}/slice
and returns the filament weight and print time estimate. The slicer's own
algorithm is opaque; this module only shapes the request and parses the
response.

Only STL and 3MF are sliced. Other formats (OBJ, GLB, ...) are accepted for
ordering but carry no statistics until an admin reviews them.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional

import httpx

from ..validation import parse_infill, parse_layer_height, parse_wall_count


SLICEABLE_EXTENSIONS = {".stl", ".3mf"}
DEFAULT_FILAMENT_TYPE = "PLA"


class SlicingError(ValueError):
    """Raised when the slicer is unreachable or rejects a file."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


@dataclass(frozen=True)
class SliceRequest:
    layer_height: str
    infill: str
    wall_count: str
    material: str = DEFAULT_FILAMENT_TYPE

    def form_fields(self) -> dict[str, str]:
        """Multipart fields; infill goes over the wire as a bare percent number."""
        parse_layer_height(self.layer_height)
        percent = parse_infill(self.infill)
        parse_wall_count(self.wall_count)
        return {
            "layer_height": str(self.layer_height),
            "infill_density": str(percent),
            "wall_count": str(self.wall_count),
            "filament_type": (self.material or DEFAULT_FILAMENT_TYPE).strip().upper(),
        }


@dataclass(frozen=True)
class SliceStatistics:
    print_time_minutes: float
    filament_weight_g: float
    print_time_formatted: Optional[str] = None
    filament_length_mm: Optional[float] = None
    filament_volume_cm3: Optional[float] = None
    filament_type: Optional[str] = None
    layer_height: Optional[float] = None
    infill_density: Optional[float] = None
    wall_count: Optional[int] = None

    @classmethod
    def from_response(cls, data: dict) -> "SliceStatistics":
        try:
            return cls(
                print_time_minutes=float(data["print_time_minutes"]),
                filament_weight_g=float(data["filament_weight_g"]),
                print_time_formatted=data.get("print_time_formatted"),
                filament_length_mm=_optional_float(data.get("filament_length_mm")),
                filament_volume_cm3=_optional_float(data.get("filament_volume_cm3")),
                filament_type=data.get("filament_type"),
                layer_height=_optional_float(data.get("layer_height")),
                infill_density=_optional_float(data.get("infill_density")),
                wall_count=int(data["wall_count"]) if data.get("wall_count") is not None else None,
            )
        except (KeyError, TypeError, ValueError) as exc:
            raise SlicingError(f"Malformed slicer response: {exc}")

    def snapshot(self) -> dict:
        """The statistics snapshot stored on an order item."""
        return {"printTime": self.print_time_minutes, "filamentWeight": self.filament_weight_g}


def _optional_float(value) -> Optional[float]:
    return float(value) if value is not None else None


def is_sliceable(file_name: str) -> bool:
    return os.path.splitext(file_name or "")[1].lower() in SLICEABLE_EXTENSIONS


class SlicerClient:
    """
    Thin wrapper over the slicer's HTTP API.

    Pass an httpx.Client to share connections or to route requests to a
    mock transport; otherwise one is created per call.
    """

    def __init__(self, base_url: str, *, timeout: float = 300.0, http: httpx.Client | None = None):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._http = http

    def slice(self, file_name: str, content: bytes, request: SliceRequest) -> SliceStatistics:
        """
        Slice one file.

        Raises:
            SlicingError: unsupported format, transport failure, non-2xx
                response or a response missing weight/time.
        """
        if not is_sliceable(file_name):
            raise SlicingError(f"{file_name} is not a sliceable format")

        files = {"file": (file_name, content, "application/octet-stream")}
        data = request.form_fields()
        url = f"{self.base_url}/slice"

        try:
            if self._http is not None:
                response = self._http.post(url, data=data, files=files, timeout=self.timeout)
            else:
                with httpx.Client(timeout=self.timeout) as http:
                    response = http.post(url, data=data, files=files)
        except httpx.HTTPError as exc:
            raise SlicingError(f"Slicing service unreachable: {exc}")

        if response.status_code >= 400:
            raise SlicingError(
                f"Slicing failed with status {response.status_code}: {response.text[:200]}",
                status_code=response.status_code,
            )
        try:
            payload = response.json()
        except ValueError:
            raise SlicingError("Slicing service returned invalid JSON")
        return SliceStatistics.from_response(payload)


def client_from_config(config, *, http: httpx.Client | None = None) -> SlicerClient:
    """Build a SlicerClient from a Flask config mapping."""
    return SlicerClient(
        config.get("SUPERSLICE_API_URL", "http://localhost:8000"),
        timeout=float(config.get("SLICER_TIMEOUT_SECONDS", 300)),
        http=http,
    )
