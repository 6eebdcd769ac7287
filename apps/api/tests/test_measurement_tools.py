"""Unit tests for the simulated measurement tools."""

import pytest

from supervisor.services.tools.measurement_tools import (
    DEPTH_RANGES_MM,
    MEASUREMENT_TOOLS,
    analyze_defect_pattern,
    check_surface_roughness,
    classify_pattern,
    measure_defect_depth,
)


class TestToolCatalog:
    """Tests for the tool definitions the navigator binds."""

    def test_exactly_three_tools(self) -> None:
        assert [t.name for t in MEASUREMENT_TOOLS] == [
            "measureDefectDepth",
            "checkSurfaceRoughness",
            "analyzeDefectPattern",
        ]

    def test_schemas_list_required_fields(self) -> None:
        required = {t.name: t.args_schema.model_json_schema()["required"] for t in MEASUREMENT_TOOLS}

        assert sorted(required["measureDefectDepth"]) == ["defect_type", "location"]
        assert required["checkSurfaceRoughness"] == ["measurement_points"]
        assert required["analyzeDefectPattern"] == ["defect_description"]

    def test_descriptions_present(self) -> None:
        assert all(t.description for t in MEASUREMENT_TOOLS)


class TestMeasureDefectDepth:
    """Tests for the depth gauge simulation."""

    @pytest.mark.parametrize("defect_type", ["scratch", "pit", "gouge"])
    def test_depth_within_type_range(self, defect_type: str) -> None:
        low, high = DEPTH_RANGES_MM[defect_type]

        for location in ("center", "edge", "face", "inner rim"):
            result = measure_defect_depth(location, defect_type)
            assert low <= result["depth_mm"] <= high
            assert result["tolerance_limit_mm"] == 0.02
            assert result["tolerance_exceeded"] == (result["depth_mm"] > 0.02)

    def test_readings_are_deterministic(self) -> None:
        assert measure_defect_depth("edge", "pit") == measure_defect_depth("edge", "pit")

    def test_gouge_at_least_tolerance(self) -> None:
        result = measure_defect_depth("center", "gouge")

        assert result["depth_mm"] >= 0.02


class TestCheckSurfaceRoughness:
    """Tests for the roughness gauge simulation."""

    def test_reading_shape(self) -> None:
        result = check_surface_roughness(5)

        assert len(result["measurements_ra_um"]) == 5
        assert all(0.8 <= r <= 2.0 for r in result["measurements_ra_um"])
        assert result["spec_limit_ra_um"] == 1.6
        assert result["within_spec"] == (result["average_ra_um"] <= 1.6)
        assert result["measurement_points"] == 5

    def test_readings_are_deterministic(self) -> None:
        assert check_surface_roughness(3) == check_surface_roughness(3)


class TestAnalyzeDefectPattern:
    """Tests for keyword-based pattern classification."""

    @pytest.mark.parametrize(
        ("description", "expected"),
        [
            ("circular scratches around the hub", "circular"),
            ("concentric rings", "circular"),
            ("straight marks across the face", "linear"),
            ("parallel stripes", "linear"),
            ("random pitting", "random"),
            ("a dull patch", "random"),
        ],
    )
    def test_classifies_pattern(self, description: str, expected: str) -> None:
        assert classify_pattern(description) == expected

    def test_circular_checked_first(self) -> None:
        """A description matching several groups resolves in group order."""
        assert classify_pattern("round spots in a straight line") == "circular"

    def test_result_fields(self) -> None:
        result = analyze_defect_pattern("straight lines")

        assert result["pattern_type"] == "linear"
        assert result["description"] == "straight lines"
        assert "Handling" in result["likely_cause"]
        assert result["severity_assessment"]
