"""Executes navigator tool calls and renders their results as narrative text."""

import json
import logging
from typing import Any

from langchain_core.tools import BaseTool
from pydantic import ValidationError

from supervisor.schemas.pipeline import ToolCallRequest, ToolResult
from supervisor.services.tools.measurement_tools import MEASUREMENT_TOOLS

logger = logging.getLogger(__name__)

# Session measurement key and the result field it is read from
MEASUREMENT_FIELDS: dict[str, tuple[str, str]] = {
    "measureDefectDepth": ("defect_depth", "depth_mm"),
    "checkSurfaceRoughness": ("surface_roughness", "average_ra_um"),
    "analyzeDefectPattern": ("defect_pattern", "pattern_type"),
}


# Worker-facing text for a tool that failed while running
TOOL_FAILURE_MESSAGE = "The {tool} reading could not be taken"


class ToolExecutionError(Exception):
    """A tool call could not be decoded, validated, or run."""


def decode_arguments(call: ToolCallRequest) -> dict[str, Any]:
    """Return the call's arguments as a mapping.

    Raises:
        ToolExecutionError: If raw arguments are not a JSON object.
    """
    if isinstance(call.arguments, dict):
        return call.arguments
    try:
        decoded = json.loads(call.arguments) if call.arguments.strip() else {}
    except json.JSONDecodeError as e:
        raise ToolExecutionError(f"Could not parse arguments for {call.name}: {e.msg}") from e
    if not isinstance(decoded, dict):
        raise ToolExecutionError(f"Arguments for {call.name} must be a JSON object")
    return decoded


def validate_arguments(tool: BaseTool, arguments: dict[str, Any]) -> dict[str, Any]:
    """Check arguments against the tool's schema before dispatch.

    Raises:
        ToolExecutionError: On missing or invalid fields.
    """
    schema = tool.args_schema
    if schema is None or not isinstance(schema, type):
        return arguments
    try:
        return schema.model_validate(arguments).model_dump()
    except ValidationError as e:
        missing = [".".join(str(p) for p in err["loc"]) for err in e.errors() if err["type"] == "missing"]
        if missing:
            raise ToolExecutionError(
                f"Missing required parameter(s) for {tool.name}: {', '.join(missing)}"
            ) from e
        first = e.errors()[0]
        field = ".".join(str(p) for p in first["loc"])
        raise ToolExecutionError(f"Invalid parameter '{field}' for {tool.name}: {first['msg']}") from e


def extract_measurements(result: ToolResult) -> dict[str, Any]:
    """Session measurements contributed by a successful tool result."""
    if result.error or not result.result or result.tool_name not in MEASUREMENT_FIELDS:
        return {}
    key, source = MEASUREMENT_FIELDS[result.tool_name]
    if source not in result.result:
        return {}
    return {key: result.result[source]}


def _format_depth(result: dict[str, Any]) -> str:
    verdict = "EXCEEDS TOLERANCE" if result["tolerance_exceeded"] else "Within tolerance"
    return (
        f"Defect depth measurement: {result['depth_mm']:.3f}mm at {result['location']}. "
        f"Tolerance limit is {result['tolerance_limit_mm']}mm. {verdict}."
    )


def _format_roughness(result: dict[str, Any]) -> str:
    verdict = "Within spec" if result["within_spec"] else "EXCEEDS SPEC"
    return (
        f"Surface roughness: average Ra {result['average_ra_um']:.2f}µm "
        f"(measured at {result['measurement_points']} points). "
        f"Spec limit is {result['spec_limit_ra_um']}µm. {verdict}."
    )


def _format_pattern(result: dict[str, Any]) -> str:
    return (
        f"Defect pattern analysis: {result['pattern_type']} pattern detected. "
        f"Likely cause: {result['likely_cause']}. {result['severity_assessment']}."
    )


RESULT_TEMPLATES = {
    "measureDefectDepth": _format_depth,
    "checkSurfaceRoughness": _format_roughness,
    "analyzeDefectPattern": _format_pattern,
}


def format_tool_results(results: list[ToolResult]) -> str:
    """Render results with the per-tool template, separated by blank lines."""
    parts = []
    for result in results:
        if result.error:
            parts.append(f"Error executing {result.tool_name}: {result.message}")
            continue
        template = RESULT_TEMPLATES.get(result.tool_name)
        if template is None:
            parts.append(f"{result.tool_name} completed: {json.dumps(result.result)}")
        else:
            parts.append(template(result.result or {}))
    return "\n\n".join(parts)


class ActionExecutor:
    """Dispatch table over the measurement tools.

    A failure on one call is reported in that call's ToolResult and never
    stops the rest of the batch.
    """

    def __init__(self, tools: list[BaseTool] | None = None) -> None:
        self.tools: dict[str, BaseTool] = {t.name: t for t in (tools or MEASUREMENT_TOOLS)}

    def execute_one(self, call: ToolCallRequest) -> ToolResult:
        parameters: dict[str, Any] = {}
        try:
            parameters = decode_arguments(call)
            tool = self.tools.get(call.name)
            if tool is None:
                raise ToolExecutionError(f"Unknown tool: {call.name}")
            validated = validate_arguments(tool, parameters)
            output = tool.invoke(validated)
        except ToolExecutionError as e:
            logger.warning("Tool call rejected: tool=%s, reason=%s", call.name, e)
            return ToolResult(tool_name=call.name, parameters=parameters, error=True, message=str(e))
        except Exception:
            logger.exception("Tool execution error: %s", call.name)
            return ToolResult(
                tool_name=call.name,
                parameters=parameters,
                error=True,
                message=TOOL_FAILURE_MESSAGE.format(tool=call.name),
            )

        logger.info("Tool executed: tool=%s, parameters=%s", call.name, validated)
        return ToolResult(tool_name=call.name, parameters=validated, result=output)

    async def execute(self, calls: list[ToolCallRequest]) -> list[ToolResult]:
        return [self.execute_one(call) for call in calls]
