# /shopbot/workflows/validator.py

"""
Pure validation functions for flow definitions.

This module provides deterministic, side-effect-free checks that a
FlowDefinition is internally consistent:
- The initial step exists and is a trigger
- Every step reference (next_step, transitions, on_invalid, on_match)
  points at a step of the same definition

All functions are:
- Pure (no side effects)
- Deterministic (same input = same output)
- No logging
"""

from typing import Iterator, Optional, Tuple, TypedDict

from shopbot.models.flow import (
    ActionStep,
    ChoiceStep,
    FlowDefinition,
    ImageInputStep,
    InputStep,
    TerminalStep,
    TriggerStep,
)


class ValidationResult(TypedDict):
    """Result of a validation check."""
    is_valid: bool
    error_code: Optional[str]
    message: Optional[str]
    step_id: Optional[str]


def _ok() -> ValidationResult:
    return {"is_valid": True, "error_code": None, "message": None, "step_id": None}


def _fail(error_code: str, message: str, step_id: Optional[str] = None) -> ValidationResult:
    return {"is_valid": False, "error_code": error_code, "message": message, "step_id": step_id}


def iter_step_references(step) -> Iterator[Tuple[str, str]]:
    """
    Yields ``(where, target_step_id)`` for every outgoing reference of a step.

    Args:
        step: Any step variant

    Returns:
        An iterator of (description, target) pairs; terminal steps yield nothing
    """
    if isinstance(step, TriggerStep):
        yield "on_match.next_step", step.on_match.next_step
    elif isinstance(step, ChoiceStep):
        for option_id, transition in step.transitions.items():
            yield f"transitions.{option_id}.next_step", transition.next_step
        yield "on_invalid.next_step", step.on_invalid.next_step
    elif isinstance(step, (InputStep, ImageInputStep, ActionStep)):
        yield "next_step", step.next_step
    elif isinstance(step, TerminalStep):
        return
    else:
        raise TypeError(f"Unknown step type: {type(step).__name__}")


def validate_initial_step(flow: FlowDefinition) -> ValidationResult:
    """
    Validate that the flow's initial step exists and is a trigger step.

    Args:
        flow: The flow definition to check

    Returns:
        ValidationResult with is_valid=True if the initial step is a trigger
    """
    if not flow.initial_step:
        return _fail("EMPTY_INITIAL_STEP", "Initial step cannot be empty")

    step = flow.steps.get(flow.initial_step)
    if step is None:
        return _fail(
            "UNKNOWN_INITIAL_STEP",
            f"Initial step '{flow.initial_step}' is not defined in flow '{flow.id}'",
            flow.initial_step,
        )

    if not isinstance(step, TriggerStep):
        return _fail(
            "INITIAL_STEP_NOT_TRIGGER",
            f"Initial step '{flow.initial_step}' must be a trigger step, got '{step.type}'",
            flow.initial_step,
        )

    return _ok()


def validate_step_references(flow: FlowDefinition) -> ValidationResult:
    """
    Validate that every step reference points at an existing step.

    Args:
        flow: The flow definition to check

    Returns:
        ValidationResult naming the first dangling reference, if any
    """
    for step_id, step in flow.steps.items():
        for where, target in iter_step_references(step):
            if target not in flow.steps:
                return _fail(
                    "DANGLING_STEP_REFERENCE",
                    f"Step '{step_id}' {where} references unknown step '{target}'",
                    step_id,
                )
    return _ok()


def validate_choice_options(flow: FlowDefinition) -> ValidationResult:
    """Validate that every choice step declares at least one option and unique option ids."""
    for step_id, step in flow.steps.items():
        if not isinstance(step, ChoiceStep):
            continue
        if not step.options:
            return _fail("EMPTY_OPTIONS", f"Choice step '{step_id}' declares no options", step_id)
        option_ids = [option.id for option in step.options]
        if len(option_ids) != len(set(option_ids)):
            return _fail("DUPLICATE_OPTION", f"Choice step '{step_id}' declares duplicate option ids", step_id)
    return _ok()


def validate_flow(flow: FlowDefinition) -> ValidationResult:
    """Run every structural check, returning the first failure."""
    for check in (validate_initial_step, validate_step_references, validate_choice_options):
        result = check(flow)
        if not result["is_valid"]:
            return result
    return _ok()
