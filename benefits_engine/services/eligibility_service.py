"""
Eligibility service for evaluating a household against program rules
"""
import logging
import re
from collections import OrderedDict
from typing import Any, Dict, List, Optional, Tuple

from ..config import settings
from ..exceptions import ChecksumMismatchError, RuleEngineError, ErrorCode
from ..models.eligibility import (
    Calculation,
    EligibilityExplanation,
    EligibilityResults,
    EligibilityStatus,
    ConfidenceLevel,
    ProgramEligibilityResult,
    EvaluationRequest
)
from ..models.package import RulePackage
from ..models.rule import NextStep, RequiredDocument, RuleClassification, RuleDefinition
from ..utils.checksum import verify_checksum
from ..utils.field_names import format_field_name, has_value
from ..utils.validators import validate_rule_package
from ..utils.versions import compare_versions, format_version
from .import_export_service import record_to_rule_definition
from .logic_evaluator import LogicEvaluator, snap_income_threshold, to_number
from .rule_store import RuleStore, mongo_rule_store

logger = logging.getLogger(__name__)

INCOME_KEYWORDS = [
    "income",
    "fpl",
    "poverty",
    "threshold",
    "gross-income",
    "net-income",
    "income-limit",
    "income-limits",
    "income_eligible",
    "householdincome",
    "snap_income_eligible",
]
AMI_PATTERN = re.compile(r"\bami\b")

# Failed requirements that no amount of extra information can overturn
DISQUALIFIER_PATTERN = re.compile(r"\b(age|aged|years old|disabil\w*|blind\w*|pregnan\w*|child\w*)\b", re.IGNORECASE)

CITIZENSHIP_LABELS = {
    "us_citizen": "U.S. Citizen",
    "permanent_resident": "Permanent Resident",
    "refugee": "Refugee",
    "asylee": "Asylee",
}


def is_income_rule(rule: RuleDefinition) -> bool:
    """
    Decide whether a rule belongs to the income phase

    The explicit classification wins; rules without one fall back to
    keyword matching on id and name.
    """
    if rule.classification is not None:
        return rule.classification == RuleClassification.INCOME

    text = f"{rule.id} {rule.name}".lower()
    if any(keyword in text for keyword in INCOME_KEYWORDS):
        return True
    return bool(AMI_PATTERN.search(text))


def determine_status(passed: int, total: int, income_failure: bool = False) -> Tuple[EligibilityStatus, ConfidenceLevel, int]:
    """
    Map a pass tally to status, confidence level and confidence score

    Args:
        passed: Rules passed
        total: Rules evaluated
        income_failure: An income rule failed

    Returns:
        (status, confidence, score)
    """
    if income_failure:
        return "not-qualified", "high", 95
    if total == 0:
        return "indeterminate", "low", 0

    ratio = passed / total
    if ratio >= 1.0:
        return "qualified", "high", 95
    if ratio >= settings.likely_threshold:
        return "likely", "medium", 75
    if ratio >= settings.maybe_threshold:
        return "maybe", "medium", 60
    if ratio >= settings.unlikely_threshold:
        return "unlikely", "low", 40
    return "not-qualified", "high", 90


def get_reason_text(status: EligibilityStatus, passed: int, total: int) -> str:
    if status == "qualified":
        return f"You meet all {total} eligibility requirements for this program."
    if status == "likely":
        return f"You meet {passed} of {total} eligibility requirements. You likely qualify for this program."
    if status == "maybe":
        return f"You meet {passed} of {total} requirements. Additional verification may be needed."
    if status == "unlikely":
        return f"You meet only {passed} of {total} requirements. It's unlikely you qualify."
    if status == "not-qualified":
        return "You do not meet the eligibility requirements for this program at this time."
    return "Eligibility could not be determined."


def _format_amount(value: Any) -> str:
    number = to_number(value)
    if number == int(number):
        return f"{int(number):,}"
    return f"{number:,.2f}"


def generate_rule_calculation(rule: RuleDefinition, profile: Dict[str, Any]) -> Optional[Calculation]:
    """Figures worth showing next to a rule's outcome, chosen by rule id"""
    rule_id = rule.id.lower()

    if "snap" in rule_id and "income" in rule_id:
        income, size = profile.get("householdIncome"), profile.get("householdSize")
        if not has_value(income) or not has_value(size):
            return None
        threshold = snap_income_threshold(size)
        verdict = "qualifies" if to_number(income) <= threshold else "exceeds limit"
        return Calculation(
            label="Monthly income limit (130% of poverty)",
            value=f"${threshold:,}",
            comparison=f"Your income: ${_format_amount(income)}/month ({verdict})"
        )

    if "household" in rule_id:
        size = profile.get("householdSize")
        if not has_value(size):
            return None
        return Calculation(
            label="Household size",
            value=size,
            comparison=f"{size} {'person' if size == 1 else 'people'}"
        )

    if "citizenship" in rule_id:
        citizenship = profile.get("citizenship")
        if not citizenship:
            return None
        return Calculation(
            label="Citizenship status",
            value=CITIZENSHIP_LABELS.get(citizenship, citizenship),
            comparison="Meets program requirements"
        )

    if re.search(r"(^|[-_])age([-_]|$)", rule_id):
        age = profile.get("age")
        if not has_value(age):
            return None
        return Calculation(label="Age", value=age, comparison=f"{age} years old")

    return None


def collect_requirements(rules: List[RuleDefinition], passed: int) -> Tuple[List[RequiredDocument], List[NextStep]]:
    """
    Gather required documents (deduped by id) and next steps (deduped by
    step text); both are empty when no rule passed
    """
    if passed <= 0:
        return [], []

    documents: "OrderedDict[str, RequiredDocument]" = OrderedDict()
    steps: "OrderedDict[str, NextStep]" = OrderedDict()
    for rule in rules:
        for doc in rule.required_documents or []:
            documents.setdefault(doc.id, doc)
        for step in rule.next_steps or []:
            steps.setdefault(step.step, step)
    return list(documents.values()), list(steps.values())


def is_income_hard_stop(result: ProgramEligibilityResult) -> bool:
    if result.income_hard_stop:
        return True
    if result.status not in ("not-qualified", "unlikely"):
        return False
    reason = result.explanation.reason.lower()
    if "income" in reason or "hard stop" in reason:
        return True
    return any("income" in rule_id.lower() for rule_id in result.failed_rule_ids)


def has_definitive_disqualifier(result: ProgramEligibilityResult) -> bool:
    """A failed categorical rule, or a failed detail about age, disability, blindness, pregnancy or children"""
    if result.categorical_failure:
        return True
    failed_details = [d for d in result.explanation.details if d.startswith("✗")]
    return any(DISQUALIFIER_PATTERN.search(detail) for detail in failed_details)


def categorize_results(results: List[ProgramEligibilityResult]) -> EligibilityResults:
    """
    Partition program results into qualified, likely, maybe and notQualified

    Income hard stops are also listed in their own incomeHardStops bucket.
    """
    categorized = EligibilityResults(total_programs=len(results))

    for result in results:
        if result.status == "qualified":
            categorized.qualified.append(result)
        elif result.status in ("likely", "maybe") and not has_definitive_disqualifier(result):
            getattr(categorized, result.status).append(result)
        else:
            categorized.not_qualified.append(result)

        if result.status != "qualified" and is_income_hard_stop(result):
            categorized.income_hard_stops.append(result)

    logger.info(
        f"Categorized {len(results)} programs: {len(categorized.qualified)} qualified, "
        f"{len(categorized.likely)} likely, {len(categorized.maybe)} maybe, "
        f"{len(categorized.not_qualified)} not qualified ({len(categorized.income_hard_stops)} income hard stops)"
    )
    return categorized


class EligibilityService:
    """Runs the two-phase (income first) evaluation for each program"""

    def __init__(self, evaluator: Optional[LogicEvaluator] = None, store: Optional[RuleStore] = None):
        self.evaluator = evaluator or LogicEvaluator()
        self.store = store if store is not None else mongo_rule_store

    def _evaluate_rule(self, rule: RuleDefinition, profile: Dict[str, Any], state: Dict[str, Any]) -> bool:
        try:
            outcome = self.evaluator.evaluate(rule.rule_logic, profile, rule_id=rule.id)
            if not outcome.success:
                logger.warning(f"Error evaluating rule {rule.id}: [{outcome.error_code}] {outcome.error}")
            passed = outcome.success and outcome.result is True
        except Exception as e:
            logger.error(f"Error evaluating rule {rule.id}: {e}")
            passed = False

        # the calculation is display-only and never changes the verdict
        try:
            calculation = generate_rule_calculation(rule, profile)
            if calculation:
                state["calculations"].append(calculation)
        except Exception as e:
            logger.warning(f"Skipping calculation for rule {rule.id}: {e}")

        if rule.explanation:
            state["details"].append(f"{'✓' if passed else '✗'} {rule.explanation}")
        for field in rule.required_fields or []:
            status = "Met" if has_value(profile.get(field)) else "Not provided"
            state["details"].append(f"{format_field_name(field)}: {status}")
        state["rules_cited"].append(rule.id)

        state["total"] += 1
        if passed:
            state["passed"] += 1
        else:
            state["failed_rule_ids"].append(rule.id)
            if rule.classification == RuleClassification.CATEGORICAL:
                state["categorical_failure"] = True
        return passed

    def evaluate_program(
        self,
        program_id: str,
        rules: List[RuleDefinition],
        profile: Dict[str, Any],
        program_info: Optional[Dict[str, Any]] = None
    ) -> ProgramEligibilityResult:
        """
        Evaluate one program's rules against a household profile

        Income rules run first; if any fails the program is an income hard
        stop and no other rule is evaluated.

        Args:
            program_id: Program identifier
            rules: The program's rules (inactive and draft rules are ignored)
            profile: Household field to value map
            program_info: name, description, jurisdiction and rulesVersion

        Returns:
            ProgramEligibilityResult
        """
        info = program_info or {}
        applicable = [r for r in rules if r.active and not r.draft and r.rule_type == "eligibility"]
        income_rules = [r for r in applicable if is_income_rule(r)]
        other_rules = [r for r in applicable if not is_income_rule(r)]

        state: Dict[str, Any] = {
            "passed": 0,
            "total": 0,
            "details": [],
            "rules_cited": [],
            "calculations": [],
            "failed_rule_ids": [],
            "categorical_failure": False,
        }

        income_failure = False
        for rule in income_rules:
            if not self._evaluate_rule(rule, profile, state):
                income_failure = True

        if income_failure:
            logger.info(f"Income hard stop for program {program_id}")
        else:
            for rule in other_rules:
                self._evaluate_rule(rule, profile, state)

        status, confidence, score = determine_status(state["passed"], state["total"], income_failure)
        documents, steps = collect_requirements(applicable, state["passed"])

        return ProgramEligibilityResult(
            program_id=program_id,
            program_name=info.get("name") or program_id,
            program_description=info.get("description") or "",
            jurisdiction=info.get("jurisdiction") or settings.default_jurisdiction,
            status=status,
            confidence=confidence,
            confidence_score=score,
            explanation=EligibilityExplanation(
                reason=get_reason_text(status, state["passed"], state["total"]),
                details=state["details"],
                rules_cited=state["rules_cited"],
                calculations=state["calculations"] or None
            ),
            required_documents=documents,
            next_steps=steps,
            rules_version=info.get("rulesVersion") or "",
            income_hard_stop=income_failure,
            failed_rule_ids=state["failed_rule_ids"],
            categorical_failure=state["categorical_failure"]
        )

    def _evaluate_grouped(
        self,
        grouped: "OrderedDict[str, List[RuleDefinition]]",
        infos: Dict[str, Dict[str, Any]],
        profile: Dict[str, Any],
        program_ids: Optional[List[str]]
    ) -> List[ProgramEligibilityResult]:
        results = []
        for program_id, rules in grouped.items():
            if program_ids and program_id not in program_ids:
                continue
            results.append(self.evaluate_program(program_id, rules, profile, infos.get(program_id)))
        return results

    def evaluate_packages(
        self,
        packages: List[Any],
        profile: Dict[str, Any],
        program_ids: Optional[List[str]] = None
    ) -> List[ProgramEligibilityResult]:
        """
        Evaluate rules supplied as packages

        Raises:
            RuleEngineError: If a package is malformed (INVALID_FORMAT) or its
                checksum does not match (CHECKSUM_MISMATCH)
        """
        grouped: "OrderedDict[str, List[RuleDefinition]]" = OrderedDict()
        infos: Dict[str, Dict[str, Any]] = {}

        for raw in packages:
            if isinstance(raw, RulePackage):
                package = raw
            else:
                validation = validate_rule_package(raw)
                if not validation.success:
                    first = validation.errors[0]
                    raise RuleEngineError(
                        f"Invalid package format - {first.path}: {first.message}", code=ErrorCode.INVALID_FORMAT
                    )
                if not verify_checksum(raw):
                    raise ChecksumMismatchError("Package checksum mismatch - package may be corrupted")
                package = validation.data

            meta = package.metadata
            for rule in package.rules:
                grouped.setdefault(rule.program_id, []).append(rule)
                infos.setdefault(rule.program_id, {
                    "name": meta.name,
                    "description": meta.description,
                    "jurisdiction": meta.jurisdiction,
                    "rulesVersion": format_version(meta.version),
                })

        return self._evaluate_grouped(grouped, infos, profile, program_ids)

    async def evaluate_all_programs(
        self,
        profile: Dict[str, Any],
        program_ids: Optional[List[str]] = None
    ) -> List[ProgramEligibilityResult]:
        """Evaluate every program with rules in the rule store"""
        try:
            if program_ids:
                records = []
                for program_id in program_ids:
                    records.extend(await self.store.find_by_program_id(program_id))
            else:
                records = await self.store.find_all()
        except Exception as e:
            logger.error(f"Failed to load rules for evaluation: {e}")
            raise

        grouped: "OrderedDict[str, List[RuleDefinition]]" = OrderedDict()
        infos: Dict[str, Dict[str, Any]] = {}
        for record in sorted(records, key=lambda r: (r.program_id, r.rule_id)):
            rule = RuleDefinition.model_validate(record_to_rule_definition(record))
            grouped.setdefault(rule.program_id, []).append(rule)
            info = infos.setdefault(rule.program_id, {"rulesVersion": format_version(rule.version)})
            if compare_versions(rule.version, info["rulesVersion"]) > 0:
                info["rulesVersion"] = format_version(rule.version)
            if rule.jurisdiction and "jurisdiction" not in info:
                info["jurisdiction"] = rule.jurisdiction

        return self._evaluate_grouped(grouped, infos, profile, program_ids)

    async def check_eligibility(self, request: EvaluationRequest) -> EligibilityResults:
        """
        Evaluate and categorize, using inline packages when supplied and
        the rule store otherwise
        """
        if request.packages:
            results = self.evaluate_packages(request.packages, request.profile, request.program_ids)
        else:
            results = await self.evaluate_all_programs(request.profile, request.program_ids)
        return categorize_results(results)


# Global eligibility service instance
eligibility_service = EligibilityService()
