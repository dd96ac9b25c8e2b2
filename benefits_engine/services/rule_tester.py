"""
Runs the test cases embedded in a rule definition
"""
import logging
from typing import Optional

from ..models.rule import RuleDefinition
from ..models.evaluation import RuleTestCaseResult, RuleTestRunResult
from .logic_evaluator import LogicEvaluator

logger = logging.getLogger(__name__)


def run_rule_tests(rule: RuleDefinition, evaluator: Optional[LogicEvaluator] = None) -> RuleTestRunResult:
    """
    Evaluate every embedded test case of a rule

    Args:
        rule: Rule with testCases
        evaluator: Evaluator to use (a fresh isolated one by default)

    Returns:
        RuleTestRunResult with per-case outcomes
    """
    evaluator = evaluator or LogicEvaluator(monitor=None)
    run = RuleTestRunResult(rule_id=rule.id)

    for case in rule.test_cases or []:
        outcome = evaluator.evaluate(rule.rule_logic, case.input)
        passed = outcome.success and outcome.result == case.expected
        run.results.append(RuleTestCaseResult(
            id=case.id,
            description=case.description,
            passed=passed,
            expected=case.expected,
            actual=outcome.result,
            error=outcome.error,
            execution_time=outcome.execution_time or 0.0
        ))
        run.total += 1
        if passed:
            run.passed += 1
        else:
            run.failed += 1

    if run.failed:
        logger.info(f"Rule {rule.id}: {run.failed}/{run.total} test cases failed")
    return run
