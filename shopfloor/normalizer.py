"""
Response Normalization Module

Turns the model's free-form text into a canonical, validated itinerary.

Pipeline (each stage independently callable):
1. parse_model_response(text) -> ParseAttempt
   Ordered chain of parser attempts, short-circuiting on the first success:
   direct JSON parse, fenced code block, first embedded {...} object.
   Raises ModelResponseUnparseable when every attempt fails.
2. reconcile_shape(parsed) -> (ResponseShape, raw_steps)
   Recognizes the three known upstream shapes: an object with a "steps" array,
   an object with a "machining_steps" array (alternate field names), or a bare
   array of step objects. An object with neither key yields no steps.
3. normalize_steps(raw_steps, shape, snapshot) -> (steps, warnings)
   Maps every raw step onto ItineraryStep: field-name fallback chains, type
   coercion, defaults for missing fields, inventory enforcement and
   structural consistency.
4. compute_total_cost(steps) -> float
   The total is always recomputed; a total supplied by the model is discarded.

normalize_response(text, snapshot) runs all four stages. Running stages 2-4
again on a canonical payload returns it unchanged.
"""

import json
import logging
import math
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Optional

from .errors import ModelResponseUnparseable
from .models import InventorySnapshot, ItineraryPayload, ItineraryStep

logger = logging.getLogger(__name__)


UNKNOWN_MACHINE_TYPE = "Unknown machine type"
UNKNOWN_TOOL_TYPE = "Unknown tool type"
DEFAULT_RECOMMENDATION = "Additional equipment needed"
UNSPECIFIED_PARAMETER = "Unspecified tool parameter"
UNSPECIFIED_REQUIREMENT = "Unspecified requirement"


# ============================================================================
# STAGE 1: Parser chain
# ============================================================================

class ParseStrategy(str, Enum):
    """Which parser attempt produced the JSON value."""
    DIRECT = "direct"
    FENCED = "fenced"
    EMBEDDED_OBJECT = "embedded_object"


@dataclass
class ParseAttempt:
    """Outcome of a single parser attempt."""
    strategy: ParseStrategy
    ok: bool
    value: Any = None
    error: Optional[str] = None


_FENCE_PATTERN = re.compile(r"```(?:json|JSON)?\s*([\s\S]*?)\s*```")


def parse_direct(text: str) -> ParseAttempt:
    """Parse the whole text as JSON."""
    try:
        return ParseAttempt(ParseStrategy.DIRECT, ok=True, value=json.loads(text))
    except (json.JSONDecodeError, TypeError) as exc:
        return ParseAttempt(ParseStrategy.DIRECT, ok=False, error=str(exc))


def parse_fenced(text: str) -> ParseAttempt:
    """Parse the contents of the first fenced code block."""
    match = _FENCE_PATTERN.search(text)
    if match is None:
        return ParseAttempt(ParseStrategy.FENCED, ok=False, error="no fenced code block")
    try:
        return ParseAttempt(ParseStrategy.FENCED, ok=True, value=json.loads(match.group(1)))
    except json.JSONDecodeError as exc:
        return ParseAttempt(ParseStrategy.FENCED, ok=False, error=str(exc))


def parse_embedded_object(text: str) -> ParseAttempt:
    """Parse the top-level {...} object starting at the first opening brace."""
    start = text.find("{")
    if start == -1:
        return ParseAttempt(ParseStrategy.EMBEDDED_OBJECT, ok=False, error="no '{' in text")
    try:
        value, _end = json.JSONDecoder().raw_decode(text, start)
    except json.JSONDecodeError as exc:
        return ParseAttempt(ParseStrategy.EMBEDDED_OBJECT, ok=False, error=str(exc))
    return ParseAttempt(ParseStrategy.EMBEDDED_OBJECT, ok=True, value=value)


PARSERS: tuple[Callable[[str], ParseAttempt], ...] = (
    parse_direct,
    parse_fenced,
    parse_embedded_object,
)


def parse_model_response(text: str) -> ParseAttempt:
    """
    Run the parser chain and return the first successful attempt.

    Raises:
        ModelResponseUnparseable: if no parser succeeds. details carries each
            attempt's error and the raw text.
    """
    failures: list[ParseAttempt] = []
    for parser in PARSERS:
        attempt = parser(text)
        if attempt.ok:
            logger.info("parsed model response with strategy=%s", attempt.strategy.value)
            return attempt
        logger.debug("parse strategy %s failed: %s", attempt.strategy.value, attempt.error)
        failures.append(attempt)

    raise ModelResponseUnparseable(
        "Failed to parse AI response",
        details={
            "attempts": {a.strategy.value: a.error for a in failures},
            "aiResponse": text,
        },
    )


# ============================================================================
# STAGE 2: Shape reconciliation
# ============================================================================

class ResponseShape(str, Enum):
    """Known upstream response shapes."""
    CANONICAL = "steps"
    MACHINING_STEPS = "machining_steps"
    BARE_ARRAY = "bare_array"
    UNRECOGNIZED = "unrecognized"


def reconcile_shape(parsed: Any) -> tuple[ResponseShape, list[Any]]:
    """
    Identify which known shape a parsed value has and return its raw steps.

    An object without a usable steps array yields UNRECOGNIZED and no steps;
    an empty itinerary is valid. A JSON scalar is not an itinerary at all.

    Raises:
        ModelResponseUnparseable: if parsed is neither an object nor an array.
    """
    if isinstance(parsed, dict):
        if isinstance(parsed.get("machining_steps"), list):
            return ResponseShape.MACHINING_STEPS, parsed["machining_steps"]
        if isinstance(parsed.get("steps"), list):
            return ResponseShape.CANONICAL, parsed["steps"]
        logger.info("response object has no usable steps array; keys=%s", sorted(parsed)[:10])
        return ResponseShape.UNRECOGNIZED, []
    if isinstance(parsed, list):
        return ResponseShape.BARE_ARRAY, parsed
    raise ModelResponseUnparseable(
        "AI response is not a recognized itinerary shape",
        details={"type": type(parsed).__name__},
    )


# ============================================================================
# STAGE 3: Step normalization
# ============================================================================

# Canonical field -> source keys tried in order
FIELD_ALIASES: dict[str, tuple[str, ...]] = {
    "description": ("description", "operation", "feature"),
    "machine_id": ("machine_id",),
    "machine_name": ("machine_name",),
    "tooling_id": ("tooling_id", "tool_id"),
    "tool_name": ("tool_name", "tooling_name"),
    "time": ("estimated_time", "time"),
    "cost": ("cost",),
    "unservable": ("unservable",),
    "parameter_issue": ("parameter_issue",),
    "inadequate_parameter": ("inadequate_parameter",),
    "required_parameter": ("required_parameter",),
    "required_machine_type": ("required_machine_type",),
    "required_tool_type": ("required_tool_type",),
    "recommendation": ("recommendation",),
    "fixture_requirements": ("fixture_requirements", "fixturing"),
    "setup_description": ("setup_description", "setup"),
}

DEFAULT_DESCRIPTION: dict[ResponseShape, str] = {
    ResponseShape.CANONICAL: "Unknown operation",
    ResponseShape.MACHINING_STEPS: "Machining step",
    ResponseShape.BARE_ARRAY: "Unknown operation",
    ResponseShape.UNRECOGNIZED: "Unknown operation",
}

_LEADING_NUMBER = re.compile(r"^\s*[-+]?(?:\d+(?:\.\d*)?|\.\d+)(?:[eE][-+]?\d+)?")

_TRUE_STRINGS = {"true", "yes", "y", "1"}


def _is_missing(value: Any) -> bool:
    return value is None or (isinstance(value, str) and value.strip() == "")


def _first_present(raw: dict[str, Any], keys: tuple[str, ...]) -> Any:
    for key in keys:
        value = raw.get(key)
        if not _is_missing(value):
            return value
    return None


def coerce_number(value: Any) -> Optional[float]:
    """
    Coerce a string-or-number to a finite float.

    Strings use their leading numeric prefix ("12.50 USD" -> 12.5).
    Returns None when no number can be read.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        match = _LEADING_NUMBER.match(value)
        if match is None:
            return None
        number = float(match.group(0))
    else:
        return None
    if math.isnan(number) or math.isinf(number):
        return None
    return number


def coerce_text(value: Any) -> Optional[str]:
    """Coerce a value to a stripped string; empty becomes None."""
    if value is None:
        return None
    if isinstance(value, str):
        text = value.strip()
        return text or None
    if isinstance(value, (dict, list)):
        return json.dumps(value, sort_keys=True)
    return str(value)


def coerce_flag(value: Any) -> bool:
    """Coerce a loosely-typed flag; missing means False."""
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return value.strip().lower() in _TRUE_STRINGS
    if isinstance(value, (int, float)):
        return value != 0
    return False


def _map_fields(raw: dict[str, Any], shape: ResponseShape) -> dict[str, Any]:
    """Pick each canonical field from its alias chain."""
    mapped = {name: _first_present(raw, keys) for name, keys in FIELD_ALIASES.items()}
    status = raw.get("status")
    if isinstance(status, str) and status.strip().lower() == "unservable":
        mapped["unservable"] = True
    if mapped["description"] is None:
        mapped["description"] = DEFAULT_DESCRIPTION[shape]
    return mapped


def _coerce_fields(mapped: dict[str, Any], warn: Callable[[str], None]) -> dict[str, Any]:
    step: dict[str, Any] = {}
    for name, value in mapped.items():
        if name in ("time", "cost"):
            number = coerce_number(value)
            if number is None:
                if value is not None:
                    warn(f"{name} {value!r} is not a number; using 0")
                number = 0.0
            elif number < 0:
                warn(f"{name} {number} is negative; using 0")
                number = 0.0
            step[name] = number
        elif name in ("unservable", "parameter_issue"):
            step[name] = coerce_flag(value)
        else:
            step[name] = coerce_text(value)
    if step["description"] is None:
        step["description"] = DEFAULT_DESCRIPTION[ResponseShape.CANONICAL]
    return step


def _clear_tool(step: dict[str, Any]) -> None:
    step["tooling_id"] = None
    step["tool_name"] = None
    step["parameter_issue"] = False
    step["unservable"] = True


def _enforce_inventory(
    step: dict[str, Any],
    snapshot: InventorySnapshot,
    warn: Callable[[str], None],
) -> None:
    """Apply the selection protocol against the actual inventory."""
    if step["machine_id"] is not None:
        machine = snapshot.find_machine(step["machine_id"])
        if machine is None:
            warn(f"machine {step['machine_id']!r} is not in inventory; marking unservable")
            step["machine_id"] = None
            step["machine_name"] = None
            step["unservable"] = True
        elif step["machine_name"] != machine.name:
            step["machine_name"] = machine.name

    if step["tooling_id"] is not None:
        tool = snapshot.find_tool_on_machine(step["machine_id"], step["tooling_id"])
        if tool is None:
            warn(
                f"tool {step['tooling_id']!r} is not mounted on machine "
                f"{step['machine_id']!r}; marking unservable"
            )
            _clear_tool(step)
        elif step["tool_name"] != tool.name:
            step["tool_name"] = tool.name


def _enforce_structure(step: dict[str, Any], warn: Callable[[str], None]) -> None:
    """Both-or-neither references and the tooling tri-state."""
    if step["machine_id"] is None and step["machine_name"] is not None:
        step["machine_name"] = None

    if step["tooling_id"] is None and step["tool_name"] is not None:
        step["tool_name"] = None

    if step["tooling_id"] is not None and step["machine_id"] is None:
        warn(f"tool {step['tooling_id']!r} assigned without a machine; marking unservable")
        _clear_tool(step)

    if step["parameter_issue"] and step["tooling_id"] is None:
        warn("parameter_issue without an assigned tool; marking unservable")
        step["parameter_issue"] = False
        step["unservable"] = True

    if step["parameter_issue"]:
        if step["inadequate_parameter"] is None:
            step["inadequate_parameter"] = UNSPECIFIED_PARAMETER
        if step["required_parameter"] is None:
            step["required_parameter"] = UNSPECIFIED_REQUIREMENT
        if step["recommendation"] is None:
            step["recommendation"] = DEFAULT_RECOMMENDATION

    # machine and a working tool resolved: the step is servable
    if step["unservable"] and step["tooling_id"] is not None and not step["parameter_issue"]:
        warn(f"unservable cleared: tool {step['tooling_id']!r} is assigned on machine {step['machine_id']!r}")
        step["unservable"] = False

    if step["unservable"]:
        if step["machine_id"] is None and step["required_machine_type"] is None:
            step["required_machine_type"] = UNKNOWN_MACHINE_TYPE
        if step["tooling_id"] is None and step["required_tool_type"] is None:
            step["required_tool_type"] = UNKNOWN_TOOL_TYPE
        if step["recommendation"] is None:
            step["recommendation"] = DEFAULT_RECOMMENDATION

    # a working assigned tool cannot also be a missing tool
    if (
        step["tooling_id"] is not None
        and not step["parameter_issue"]
        and step["required_tool_type"] is not None
    ):
        warn("required_tool_type dropped: a suitable tool is assigned")
        step["required_tool_type"] = None


def normalize_step(
    raw: dict[str, Any],
    shape: ResponseShape = ResponseShape.CANONICAL,
    snapshot: Optional[InventorySnapshot] = None,
    warnings: Optional[list[str]] = None,
    index: int = 0,
) -> ItineraryStep:
    """
    Map one raw step object onto the canonical ItineraryStep.

    Args:
        raw: Step object as returned by the model
        shape: Shape the step came from (selects the default description)
        snapshot: Inventory to enforce tool/machine attribution against
        warnings: List that repair messages are appended to
        index: Step position, used in repair messages

    Returns:
        A fully-populated ItineraryStep
    """
    sink = warnings if warnings is not None else []

    def warn(message: str) -> None:
        sink.append(f"step {index}: {message}")

    step = _coerce_fields(_map_fields(raw, shape), warn)
    if snapshot is not None:
        _enforce_inventory(step, snapshot, warn)
    _enforce_structure(step, warn)
    return ItineraryStep(**step)


def normalize_steps(
    raw_steps: list[Any],
    shape: ResponseShape = ResponseShape.CANONICAL,
    snapshot: Optional[InventorySnapshot] = None,
) -> tuple[list[ItineraryStep], list[str]]:
    """
    Normalize every raw step; non-object entries are dropped with a warning.

    Returns:
        (steps, warnings)
    """
    warnings: list[str] = []
    steps: list[ItineraryStep] = []
    for index, raw in enumerate(raw_steps):
        if not isinstance(raw, dict):
            warnings.append(f"step {index}: dropped non-object entry of type {type(raw).__name__}")
            continue
        steps.append(normalize_step(raw, shape, snapshot, warnings, index))
    return steps, warnings


# ============================================================================
# STAGE 4: Cost rollup
# ============================================================================

def compute_total_cost(steps: list[ItineraryStep]) -> float:
    """Sum of step costs. The only source of an itinerary's total."""
    return sum((step.cost for step in steps), 0.0)


# ============================================================================
# ENTRYPOINTS
# ============================================================================

@dataclass
class NormalizationResult:
    """Normalized itinerary plus how it was obtained."""
    steps: list[ItineraryStep]
    total_cost: float
    shape: ResponseShape
    strategy: Optional[ParseStrategy] = None
    warnings: list[str] = field(default_factory=list)

    def to_payload(self) -> ItineraryPayload:
        return ItineraryPayload(steps=self.steps, total_cost=self.total_cost)


def normalize_parsed(
    parsed: Any,
    snapshot: Optional[InventorySnapshot] = None,
) -> NormalizationResult:
    """
    Reconcile, normalize and roll up an already-parsed JSON value.

    Raises:
        ModelResponseUnparseable: if parsed is a JSON scalar.
    """
    shape, raw_steps = reconcile_shape(parsed)
    steps, warnings = normalize_steps(raw_steps, shape, snapshot)

    if isinstance(parsed, dict) and "total_cost" in parsed:
        claimed = coerce_number(parsed.get("total_cost"))
        total = compute_total_cost(steps)
        if claimed != total:
            warnings.append(f"discarded model total_cost {parsed.get('total_cost')!r}; recomputed {total}")

    return NormalizationResult(
        steps=steps,
        total_cost=compute_total_cost(steps),
        shape=shape,
        warnings=warnings,
    )


def normalize_response(
    text: str,
    snapshot: Optional[InventorySnapshot] = None,
) -> NormalizationResult:
    """
    Parse and normalize raw model text into a canonical itinerary.

    Args:
        text: Raw model response
        snapshot: Inventory used to enforce and enrich tool/machine references

    Returns:
        NormalizationResult; steps may be empty

    Raises:
        ModelResponseUnparseable: if the text holds no parseable JSON or the
            JSON is not an object or array.
    """
    attempt = parse_model_response(text)
    result = normalize_parsed(attempt.value, snapshot)
    result.strategy = attempt.strategy

    logger.info(
        "normalized itinerary: strategy=%s shape=%s steps=%d unservable=%d total_cost=%.2f",
        attempt.strategy.value,
        result.shape.value,
        len(result.steps),
        sum(1 for s in result.steps if s.unservable),
        result.total_cost,
    )
    if result.warnings:
        logger.info("normalization repairs: %s", result.warnings)

    return result
