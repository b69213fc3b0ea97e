"""
Slicer client tests.

Verifies:
- Multipart request shape (infill as a bare percent, upper-case filament type)
- Response parsing into SliceStatistics
- Non-sliceable formats, upstream errors and malformed responses raise SlicingError
"""

import httpx
import pytest

from printshop.services.slicing_service import (
    SliceRequest,
    SliceStatistics,
    SlicerClient,
    SlicingError,
    client_from_config,
    is_sliceable,
)
from printshop.validation import ValidationError

SLICER_RESPONSE = {
    "print_time_minutes": 95,
    "print_time_formatted": "1h 35m",
    "filament_weight_g": 50.4,
    "filament_length_mm": 16900.2,
    "filament_type": "PLA",
    "layer_height": 0.2,
    "infill_density": 20,
    "wall_count": 2,
}


def _client(handler):
    http = httpx.Client(transport=httpx.MockTransport(handler))
    return SlicerClient("http://slicer.test/", http=http)


class TestSliceRequest:

    def test_form_fields(self):
        fields = SliceRequest(layer_height="0.2", infill="20%", wall_count="3", material="petg ").form_fields()
        assert fields == {
            "layer_height": "0.2",
            "infill_density": "20",
            "wall_count": "3",
            "filament_type": "PETG",
        }

    @pytest.mark.parametrize("kwargs", [
        {"layer_height": "0", "infill": "20%", "wall_count": "2"},
        {"layer_height": "0.2", "infill": "20", "wall_count": "2"},
        {"layer_height": "0.2", "infill": "150%", "wall_count": "2"},
        {"layer_height": "0.2", "infill": "20%", "wall_count": "many"},
    ])
    def test_invalid_parameters(self, kwargs):
        with pytest.raises(ValidationError):
            SliceRequest(**kwargs).form_fields()


class TestSlicerClient:

    def test_slice_posts_multipart_and_parses(self):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, json=SLICER_RESPONSE)

        stats = _client(handler).slice(
            "bracket.STL", b"solid bracket", SliceRequest(layer_height="0.2", infill="20%", wall_count="2")
        )

        assert stats.filament_weight_g == 50.4
        assert stats.print_time_minutes == 95
        assert stats.snapshot() == {"printTime": 95, "filamentWeight": 50.4}

        request = seen[0]
        assert str(request.url) == "http://slicer.test/slice"
        assert request.headers["content-type"].startswith("multipart/form-data")
        body = request.content.decode("latin-1")
        assert 'name="infill_density"\r\n\r\n20\r\n' in body
        assert 'name="filament_type"\r\n\r\nPLA\r\n' in body
        assert 'filename="bracket.STL"' in body

    def test_non_sliceable_format_never_calls_out(self):
        def handler(request):
            raise AssertionError("slicer should not be called")

        with pytest.raises(SlicingError):
            _client(handler).slice("model.obj", b"o", SliceRequest("0.2", "20%", "2"))

    def test_upstream_error(self):
        client = _client(lambda request: httpx.Response(422, text="non-manifold mesh"))

        with pytest.raises(SlicingError) as exc:
            client.slice("bracket.stl", b"solid", SliceRequest("0.2", "20%", "2"))
        assert exc.value.status_code == 422
        assert "non-manifold" in str(exc.value)

    def test_unreachable(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        with pytest.raises(SlicingError):
            _client(handler).slice("bracket.stl", b"solid", SliceRequest("0.2", "20%", "2"))

    def test_response_missing_weight(self):
        client = _client(lambda request: httpx.Response(200, json={"print_time_minutes": 5}))

        with pytest.raises(SlicingError):
            client.slice("bracket.stl", b"solid", SliceRequest("0.2", "20%", "2"))


class TestHelpers:

    @pytest.mark.parametrize("name,expected", [
        ("a.stl", True), ("a.3MF", True), ("a.obj", False), ("a.glb", False), ("stl", False),
    ])
    def test_is_sliceable(self, name, expected):
        assert is_sliceable(name) is expected

    def test_optional_fields_default_to_none(self):
        stats = SliceStatistics.from_response({"print_time_minutes": "12", "filament_weight_g": "3.5"})
        assert stats.filament_length_mm is None
        assert stats.wall_count is None
        assert stats.filament_weight_g == 3.5

    def test_client_from_config(self):
        client = client_from_config({"SUPERSLICE_API_URL": "http://slicer:9000/", "SLICER_TIMEOUT_SECONDS": 45})
        assert client.base_url == "http://slicer:9000"
        assert client.timeout == 45.0
