"""
Structural validation of rule expression trees
"""
import logging
from typing import Any, Iterable, List, Optional, Set

from ..config import settings
from ..exceptions import ErrorCode
from ..models.evaluation import LogicValidationResult, ValidationIssue
from .logic_evaluator import ARRAY_OPERATORS, LogicEvaluator

logger = logging.getLogger(__name__)

STANDARD_OPERATORS = {
    'if', '?:', 'and', 'or', '!', '!!',
    '==', '===', '!=', '!==', '>', '>=', '<', '<=',
    '+', '-', '*', '/', '%', 'min', 'max',
    'map', 'filter', 'reduce', 'all', 'some', 'none', 'merge',
    'in', 'cat', 'substr', 'var', 'missing', 'missing_some', 'log'
}

BENEFIT_OPERATORS = set(LogicEvaluator.benefit_operators())

# Minimum operand counts for operators that cannot work with fewer
MIN_OPERANDS = {
    '==': 2, '===': 2, '!=': 2, '!==': 2,
    '>': 2, '>=': 2, '<': 2, '<=': 2,
    '/': 2, '%': 2, 'in': 2, 'substr': 1,
    'map': 2, 'filter': 2, 'reduce': 2, 'all': 2, 'some': 2, 'none': 2,
    'between': 3, 'within_percent': 3, 'snap_income_eligible': 2, 'matches_any': 2,
    'missing_some': 2,
}


class LogicValidator:
    """Validates operator whitelist, depth, complexity and operand shape"""

    def __init__(
        self,
        max_depth: Optional[int] = None,
        max_complexity: Optional[int] = None,
        allowed_operators: Optional[Iterable[str]] = None,
        disallowed_operators: Optional[Iterable[str]] = None,
        strict: bool = False
    ):
        self.max_depth = max_depth or settings.validation_max_depth
        self.max_complexity = max_complexity or settings.validation_max_complexity
        self.allowed_operators: Set[str] = set(allowed_operators) if allowed_operators else STANDARD_OPERATORS | BENEFIT_OPERATORS
        self.disallowed_operators: Set[str] = set(disallowed_operators or [])
        self.strict = strict

    def validate(self, tree: Any) -> LogicValidationResult:
        """
        Validate an expression tree

        Args:
            tree: Expression tree

        Returns:
            LogicValidationResult; valid is False if any error was found
        """
        errors: List[ValidationIssue] = []
        warnings: List[ValidationIssue] = []
        operators: Set[str] = set()
        variables: Set[str] = set()

        max_depth_seen = self._walk(tree, "", 0, errors, warnings, operators, variables)
        complexity = self.calculate_complexity(tree)

        if max_depth_seen > self.max_depth:
            errors.append(ValidationIssue(
                code=ErrorCode.VAL_MAX_DEPTH,
                message=f"Rule depth {max_depth_seen} exceeds maximum of {self.max_depth}"
            ))

        if complexity > self.max_complexity:
            errors.append(ValidationIssue(
                code=ErrorCode.VAL_MAX_COMPLEXITY,
                message=f"Rule complexity {complexity} exceeds maximum of {self.max_complexity}"
            ))
        elif complexity > self.max_complexity * 0.8:
            warnings.append(ValidationIssue(
                code=ErrorCode.VAL_MAX_COMPLEXITY,
                message=f"Rule complexity {complexity} is close to the maximum of {self.max_complexity}",
                severity="warning"
            ))

        return LogicValidationResult(
            valid=not errors,
            errors=errors,
            warnings=warnings,
            complexity=complexity,
            depth=max_depth_seen,
            operators=sorted(operators),
            variables=sorted(variables)
        )

    def _walk(self, node, path, depth, errors, warnings, operators, variables) -> int:
        if isinstance(node, list):
            deepest = depth
            for i, item in enumerate(node):
                deepest = max(deepest, self._walk(item, f"{path}[{i}]", depth + 1, errors, warnings, operators, variables))
            return deepest

        if not isinstance(node, dict):
            return depth

        if len(node) != 1:
            errors.append(ValidationIssue(
                code=ErrorCode.VAL_INVALID_STRUCTURE,
                message=f"Operation must have exactly one operator key, found {len(node)}",
                path=path
            ))
            return depth

        op, args = next(iter(node.items()))
        op_path = f"{path}.{op}" if path else op
        operators.add(op)

        if op in self.disallowed_operators:
            errors.append(ValidationIssue(
                code=ErrorCode.VAL_DISALLOWED_OPERATOR,
                message=f"Operator '{op}' is not allowed",
                path=op_path
            ))
        elif op not in self.allowed_operators:
            issue = ValidationIssue(
                code=ErrorCode.VAL_UNKNOWN_OPERATOR,
                message=f"Unknown operator '{op}'",
                path=op_path,
                severity="error" if self.strict else "warning"
            )
            (errors if self.strict else warnings).append(issue)

        arg_list = args if isinstance(args, list) else [args]
        needed = MIN_OPERANDS.get(op)
        if needed is not None and len(arg_list) < needed:
            errors.append(ValidationIssue(
                code=ErrorCode.VAL_INVALID_OPERANDS,
                message=f"Operator '{op}' needs at least {needed} operands, got {len(arg_list)}",
                path=op_path
            ))

        if op == "var" and arg_list:
            name = arg_list[0]
            if isinstance(name, bool) or isinstance(name, float):
                errors.append(ValidationIssue(
                    code=ErrorCode.VAL_INVALID_OPERANDS,
                    message="var expects a string path",
                    path=op_path
                ))
            elif isinstance(name, (str, int)) and name != "":
                variables.add(str(name))

        deepest = depth
        for i, arg in enumerate(arg_list):
            if op == "switch" and i > 0 and isinstance(arg, dict):
                # switch cases are {case, do} / {default} objects, not operations
                for key, node in arg.items():
                    deepest = max(deepest, self._walk(
                        node, f"{op_path}[{i}].{key}", depth + 1, errors, warnings, operators, variables
                    ))
                continue
            deepest = max(deepest, self._walk(arg, f"{op_path}[{i}]", depth + 1, errors, warnings, operators, variables))
        return deepest

    def calculate_complexity(self, tree: Any, depth: int = 0) -> float:
        """
        Score how expensive a tree is to read and evaluate

        Each operator scores 1, array operators 3, var 0.5, plus twice the
        nesting depth at which each operator sits.
        """
        if isinstance(tree, list):
            return sum(self.calculate_complexity(item, depth) for item in tree)
        if not isinstance(tree, dict) or len(tree) != 1:
            return 0

        op, args = next(iter(tree.items()))
        if op == "var":
            score = 0.5
        elif op in ARRAY_OPERATORS:
            score = 3
        else:
            score = 1
        score += depth * 2

        arg_list = args if isinstance(args, list) else [args]
        return score + sum(self.calculate_complexity(arg, depth + 1) for arg in arg_list)


def extract_variables(tree: Any) -> List[str]:
    """All var paths referenced by a tree"""
    return LogicValidator().validate(tree).variables


def extract_operators(tree: Any) -> List[str]:
    """All operators used by a tree"""
    return LogicValidator().validate(tree).operators


def validate_logic(tree: Any, **options) -> LogicValidationResult:
    """Validate a tree with a one-off validator"""
    return LogicValidator(**options).validate(tree)
