"""LangChain @tool definitions for the simulated measurement instruments.

The navigator binds these tools so the model sees their names, descriptions
and argument schemas; the action executor dispatches to them by exact name.

Readings are simulated but deterministic: each call seeds its own PRNG from a
stable hash of the tool name and arguments, so the same request always gets
the same reading.
"""

import hashlib
import json
import random
from typing import Any, Literal

from langchain_core.tools import BaseTool, tool
from pydantic import BaseModel, Field

DEPTH_TOLERANCE_MM = 0.02
ROUGHNESS_SPEC_RA_UM = 1.6

# Simulated depth range (min, max) in mm per defect type
DEPTH_RANGES_MM: dict[str, tuple[float, float]] = {
    "scratch": (0.0, 0.03),
    "pit": (0.01, 0.03),
    "gouge": (0.02, 0.04),
}

# Machined rotor roughness readings fall in Ra 0.8-2.0µm
ROUGHNESS_RANGE_RA_UM = (0.8, 2.0)

# Checked in order; first group with a keyword hit wins
PATTERN_KEYWORDS: dict[str, tuple[str, ...]] = {
    "circular": ("circular", "round", "ring", "spiral", "concentric"),
    "linear": ("straight", "line", "linear", "parallel", "stripe"),
    "random": ("random", "scattered", "multiple", "pitting", "spots"),
}
DEFAULT_PATTERN = "random"

PATTERN_CAUSES = {
    "circular": "Machining process (lathe or grinding operation)",
    "linear": "Handling or transport damage (scratch during movement)",
    "random": "Material defect or contamination during casting/forging",
}

PATTERN_SEVERITY = {
    "circular": "Low to moderate - typical machining marks",
    "linear": "Moderate - may indicate handling issues",
    "random": "Moderate to high - potential material quality issue",
}


# --- Input schemas ---


class MeasureDefectDepthInput(BaseModel):
    """Input for defect depth measurement."""

    location: str = Field(
        min_length=1,
        description='Location of defect on the rotor (e.g., "center", "edge", "face", "inner rim")',
    )
    defect_type: Literal["scratch", "pit", "gouge"] = Field(
        description="Type of defect being measured"
    )


class CheckSurfaceRoughnessInput(BaseModel):
    """Input for surface roughness check."""

    measurement_points: int = Field(
        ge=1,
        le=20,
        description="Number of points to measure across the surface (typically 3-5)",
    )


class AnalyzeDefectPatternInput(BaseModel):
    """Input for defect pattern analysis."""

    defect_description: str = Field(
        min_length=1,
        description=(
            "Worker's description of what the defect looks like "
            "(e.g., 'circular scratches', 'random pitting', 'straight lines')"
        ),
    )


# --- Instrument simulations ---


def _seeded_rng(tool_name: str, arguments: dict[str, Any]) -> random.Random:
    payload = json.dumps({"tool": tool_name, **arguments}, sort_keys=True)
    digest = hashlib.sha256(payload.encode("utf-8")).hexdigest()
    return random.Random(int(digest[:16], 16))


def measure_defect_depth(location: str, defect_type: str) -> dict[str, Any]:
    rng = _seeded_rng("measureDefectDepth", {"location": location, "defect_type": defect_type})
    low, high = DEPTH_RANGES_MM[defect_type]
    depth = round(low + rng.random() * (high - low), 3)
    return {
        "depth_mm": depth,
        "location": location,
        "defect_type": defect_type,
        "tolerance_exceeded": depth > DEPTH_TOLERANCE_MM,
        "tolerance_limit_mm": DEPTH_TOLERANCE_MM,
    }


def check_surface_roughness(measurement_points: int) -> dict[str, Any]:
    rng = _seeded_rng("checkSurfaceRoughness", {"measurement_points": measurement_points})
    low, high = ROUGHNESS_RANGE_RA_UM
    readings = [round(low + rng.random() * (high - low), 2) for _ in range(measurement_points)]
    average = round(sum(readings) / measurement_points, 2)
    return {
        "measurements_ra_um": readings,
        "average_ra_um": average,
        "spec_limit_ra_um": ROUGHNESS_SPEC_RA_UM,
        "within_spec": average <= ROUGHNESS_SPEC_RA_UM,
        "measurement_points": measurement_points,
    }


def classify_pattern(defect_description: str) -> str:
    text = defect_description.lower()
    for pattern, keywords in PATTERN_KEYWORDS.items():
        if any(keyword in text for keyword in keywords):
            return pattern
    return DEFAULT_PATTERN


def analyze_defect_pattern(defect_description: str) -> dict[str, Any]:
    pattern = classify_pattern(defect_description)
    return {
        "pattern_type": pattern,
        "description": defect_description,
        "likely_cause": PATTERN_CAUSES[pattern],
        "severity_assessment": PATTERN_SEVERITY[pattern],
    }


# --- Tools ---


@tool("measureDefectDepth", args_schema=MeasureDefectDepthInput)
def measure_defect_depth_tool(location: str, defect_type: str) -> dict[str, Any]:
    """Measures the depth of surface defects on brake rotors using a surface roughness
    gauge. Returns depth in millimeters."""
    return measure_defect_depth(location, defect_type)


@tool("checkSurfaceRoughness", args_schema=CheckSurfaceRoughnessInput)
def check_surface_roughness_tool(measurement_points: int) -> dict[str, Any]:
    """Checks overall surface roughness of a brake rotor using a calibrated gauge.
    Returns Ra (roughness average) values in micrometers."""
    return check_surface_roughness(measurement_points)


@tool("analyzeDefectPattern", args_schema=AnalyzeDefectPatternInput)
def analyze_defect_pattern_tool(defect_description: str) -> dict[str, Any]:
    """Analyzes and identifies the pattern type of surface defects to determine the
    likely cause (machining, handling, material defect)."""
    return analyze_defect_pattern(defect_description)


MEASUREMENT_TOOLS: list[BaseTool] = [
    measure_defect_depth_tool,
    check_surface_roughness_tool,
    analyze_defect_pattern_tool,
]
