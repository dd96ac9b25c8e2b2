"""
Schema validation for raw rule definitions and rule packages
"""
import logging
from typing import Any, List

from pydantic import ValidationError

from ..models.rule import RuleDefinition, RuleVersion, get_current_timestamp_ms
from ..models.package import RulePackage
from ..models.evaluation import SchemaFieldError, SchemaValidationResult

logger = logging.getLogger(__name__)


def _format_errors(exc: ValidationError, prefix: str = "") -> List[SchemaFieldError]:
    """Flatten a pydantic ValidationError into field-level errors"""
    errors = []
    for err in exc.errors():
        path = ".".join(str(part) for part in err.get("loc", ()))
        if prefix:
            path = f"{prefix}.{path}" if path else prefix
        ctx = err.get("ctx") or {}
        received = err.get("input")
        errors.append(SchemaFieldError(
            path=path,
            message=err.get("msg", "Invalid value"),
            expected=str(ctx["expected"]) if "expected" in ctx else err.get("type"),
            received=type(received).__name__ if received is not None else "undefined"
        ))
    return errors


def definition_warnings(rule: RuleDefinition) -> List[str]:
    """
    Non-blocking problems with a valid definition

    Args:
        rule: Validated rule definition

    Returns:
        Warning messages
    """
    warnings = []
    if rule.draft and rule.active:
        warnings.append(f"Rule {rule.id} is marked both draft and active")
    if rule.expiration_date and rule.effective_date and rule.expiration_date <= rule.effective_date:
        warnings.append(f"Rule {rule.id} expires before it becomes effective")
    return warnings


def validate_rule_definition(raw: Any) -> SchemaValidationResult:
    """
    Validate a raw rule definition

    Args:
        raw: Parsed JSON object

    Returns:
        SchemaValidationResult with the typed RuleDefinition on success
    """
    if not isinstance(raw, dict):
        return SchemaValidationResult(
            success=False,
            errors=[SchemaFieldError(
                path="",
                message="Rule definition must be an object",
                expected="object",
                received=type(raw).__name__
            )]
        )
    try:
        rule = RuleDefinition.model_validate(raw)
    except ValidationError as e:
        return SchemaValidationResult(success=False, errors=_format_errors(e))

    return SchemaValidationResult(success=True, data=rule, warnings=definition_warnings(rule))


def validate_rule_package(raw: Any) -> SchemaValidationResult:
    """
    Validate a raw rule package, recursing into its rules

    Args:
        raw: Parsed JSON object

    Returns:
        SchemaValidationResult with the typed RulePackage on success
    """
    if not isinstance(raw, dict):
        return SchemaValidationResult(
            success=False,
            errors=[SchemaFieldError(
                path="",
                message="Rule package must be an object",
                expected="object",
                received=type(raw).__name__
            )]
        )
    try:
        package = RulePackage.model_validate(raw)
    except ValidationError as e:
        return SchemaValidationResult(success=False, errors=_format_errors(e))

    warnings = []
    for rule in package.rules:
        warnings.extend(definition_warnings(rule))
    return SchemaValidationResult(success=True, data=package, warnings=warnings)


def create_rule_template(program_id: str, name: str) -> RuleDefinition:
    """
    Create a draft rule skeleton for authoring

    Args:
        program_id: Program the rule belongs to
        name: Human-readable rule name

    Returns:
        Inactive draft RuleDefinition at version 0.1.0-draft
    """
    now = get_current_timestamp_ms()
    slug = "-".join(name.lower().split())
    return RuleDefinition(
        id=f"{program_id}-{slug}"[:128],
        program_id=program_id,
        name=name,
        description="",
        rule_logic={"var": "placeholder"},
        rule_type="eligibility",
        version=RuleVersion(major=0, minor=1, patch=0, label="draft"),
        active=False,
        draft=True,
        test_cases=[],
        created_at=now,
        updated_at=now
    )
