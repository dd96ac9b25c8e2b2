"""
Logic evaluator for JSON-encoded rule expression trees

An expression is either a literal, a list of expressions, or a single-key
dict {operator: arguments}. Each evaluator instance owns its operator table,
so custom operators never leak between concurrent evaluations.
"""
import asyncio
import logging
import time
from datetime import date, datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Tuple

from ..config import settings
from ..exceptions import ErrorCode, LogicEvaluationError
from ..models.evaluation import EvaluationResult
from .performance_monitor import PerformanceMonitor, performance_monitor

logger = logging.getLogger(__name__)


class _Undefined:
    """Result of looking up a variable that is not in the data"""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self):
        return False

    def __repr__(self):
        return "undefined"


UNDEFINED = _Undefined()

# 2024 SNAP gross income limits, 130% of the federal poverty level, monthly
SNAP_130_FPL_MONTHLY = {1: 1696, 2: 2292, 3: 2888, 4: 3483, 5: 4079, 6: 4675, 7: 5271, 8: 5867}
SNAP_130_FPL_ADDITIONAL_MEMBER = 596

# Operators whose arguments are evaluated by the operator itself
LAZY_OPERATORS = {"if", "?:", "and", "or", "map", "filter", "reduce", "all", "some", "none"}
ARRAY_OPERATORS = {"map", "filter", "reduce", "all", "some", "none"}


def is_missing(value) -> bool:
    return value is None or value is UNDEFINED


def truthy(value) -> bool:
    """JSON Logic truthiness: empty lists are false"""
    if isinstance(value, (list, tuple)):
        return len(value) > 0
    return bool(value)


def to_number(value):
    """Coerce a value to int or float, raising ValueError if impossible"""
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, (int, float)):
        return value
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return 0
        number = float(text)
        return int(number) if number.is_integer() and "." not in text and "e" not in text.lower() else number
    raise ValueError(f"Cannot convert {value!r} to a number")


def loose_equals(a, b) -> bool:
    """Equality with numeric coercion between numbers, numeric strings and booleans"""
    if is_missing(a) or is_missing(b):
        return is_missing(a) and is_missing(b)
    if type(a) is type(b):
        return a == b
    scalar = (int, float, str, bool)
    if isinstance(a, scalar) and isinstance(b, scalar):
        try:
            return to_number(a) == to_number(b)
        except ValueError:
            return False
    return a == b


def strict_equals(a, b) -> bool:
    if is_missing(a) or is_missing(b):
        return a is b
    numeric = (int, float)
    if isinstance(a, bool) or isinstance(b, bool):
        return isinstance(a, bool) and isinstance(b, bool) and a == b
    if isinstance(a, numeric) and isinstance(b, numeric):
        return a == b
    return type(a) is type(b) and a == b


def _compare(a, b, op: Callable[[Any, Any], bool]) -> bool:
    # Comparisons against a missing value are false rather than errors
    if is_missing(a) or is_missing(b):
        return False
    if isinstance(a, str) and isinstance(b, str):
        return op(a, b)
    try:
        return op(to_number(a), to_number(b))
    except (ValueError, TypeError):
        return False


def snap_income_threshold(household_size) -> int:
    """Monthly SNAP gross income limit for a household size"""
    size = int(to_number(household_size))
    if size < 1:
        raise ValueError(f"Invalid household size: {household_size}")
    if size <= 8:
        return SNAP_130_FPL_MONTHLY[size]
    return SNAP_130_FPL_MONTHLY[8] + SNAP_130_FPL_ADDITIONAL_MEMBER * (size - 8)


def _parse_datetime(value) -> datetime:
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    text = str(value).strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    return datetime.fromisoformat(text)


def _now_like(moment: datetime) -> datetime:
    return datetime.now(timezone.utc) if moment.tzinfo else datetime.now()


class LogicEvaluator:
    """Evaluates expression trees against a data context"""

    def __init__(
        self,
        custom_operators: Optional[Dict[str, Callable[..., Any]]] = None,
        include_benefit_operators: bool = True,
        monitor: Optional[PerformanceMonitor] = performance_monitor,
        max_depth: Optional[int] = None,
        timeout_ms: Optional[int] = None,
        strict: bool = False,
        measure_time: bool = True,
        capture_context: bool = False
    ):
        self.max_depth = max_depth or settings.evaluation_max_depth
        self.timeout_ms = timeout_ms or settings.evaluation_timeout_ms
        self.strict = strict
        self.measure_time = measure_time
        self.capture_context = capture_context
        self.monitor = monitor

        self.operators: Dict[str, Callable[..., Any]] = {
            '==': lambda a=None, b=None: loose_equals(a, b),
            '===': lambda a=None, b=None: strict_equals(a, b),
            '!=': lambda a=None, b=None: not loose_equals(a, b),
            '!==': lambda a=None, b=None: not strict_equals(a, b),
            '>': lambda a=None, b=None: _compare(a, b, lambda x, y: x > y),
            '>=': lambda a=None, b=None: _compare(a, b, lambda x, y: x >= y),
            '<': self._lt,
            '<=': self._lte,
            '!': lambda a=None, *rest: not truthy(a),
            '!!': lambda a=None, *rest: truthy(a),
            '+': self._add,
            '-': self._subtract,
            '*': self._multiply,
            '/': self._divide,
            '%': self._modulo,
            'min': self._min,
            'max': self._max,
            'merge': self._merge,
            'in': self._in,
            'cat': self._cat,
            'substr': self._substr,
            'log': self._log,
        }
        if include_benefit_operators:
            self.operators.update(self.benefit_operators())
        if custom_operators:
            self.operators.update(custom_operators)

    # ------------------------------------------------------------------
    # Domain operators
    # ------------------------------------------------------------------

    @staticmethod
    def benefit_operators() -> Dict[str, Callable[..., Any]]:
        """Operators specific to benefit program rules"""

        def between(value, low, high):
            return _compare(value, low, lambda x, y: x >= y) and _compare(value, high, lambda x, y: x <= y)

        def within_percent(value, target, percent):
            value, target, percent = to_number(value), to_number(target), to_number(percent)
            return abs(value - target) <= abs(target) * (percent / 100)

        def age_from_dob(dob):
            birth = _parse_datetime(dob).date()
            today = date.today()
            age = today.year - birth.year
            if (today.month, today.day) < (birth.month, birth.day):
                age -= 1
            return age

        def date_in_past(value):
            moment = _parse_datetime(value)
            return moment < _now_like(moment)

        def date_in_future(value):
            moment = _parse_datetime(value)
            return moment > _now_like(moment)

        def matches_any(value, options=None):
            if is_missing(value) or not isinstance(options, list):
                return False
            lowered = str(value).lower()
            return any(str(item).lower() == lowered for item in options)

        def count_true(values=None):
            return sum(1 for v in (values or []) if truthy(v))

        def all_true(values=None):
            return all(truthy(v) for v in (values or []))

        def any_true(values=None):
            return any(truthy(v) for v in (values or []))

        def snap_income_eligible(household_income, household_size):
            if is_missing(household_income) or is_missing(household_size):
                return False
            return to_number(household_income) <= snap_income_threshold(household_size)

        def wic_benefit_amount(benefit_info):
            return benefit_info

        def switch(value, *cases):
            default = None
            for case in cases:
                if isinstance(case, dict) and "default" in case:
                    default = case["default"]
                    break
            for case in cases:
                if isinstance(case, dict) and "case" in case and strict_equals(case["case"], value):
                    return case.get("do")
            return default

        return {
            'between': between,
            'within_percent': within_percent,
            'age_from_dob': age_from_dob,
            'date_in_past': date_in_past,
            'date_in_future': date_in_future,
            'matches_any': matches_any,
            'count_true': count_true,
            'all_true': all_true,
            'any_true': any_true,
            'snap_income_threshold_130_fpl': snap_income_threshold,
            'snap_income_eligible': snap_income_eligible,
            'wic_benefit_amount': wic_benefit_amount,
            'switch': switch,
        }

    def known_operators(self) -> List[str]:
        """Every operator this instance can evaluate"""
        return sorted(set(self.operators) | LAZY_OPERATORS | {"var", "missing", "missing_some"})

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    def evaluate(
        self,
        tree: Any,
        data: Any = None,
        rule_id: Optional[str] = None,
        operators: Optional[Dict[str, Callable[..., Any]]] = None
    ) -> EvaluationResult:
        """
        Evaluate an expression tree; never raises

        Args:
            tree: Expression tree
            data: Data context (usually a household profile)
            rule_id: Rule being evaluated, for performance records
            operators: Extra operators for this call only

        Returns:
            EvaluationResult with success flag, result and timing
        """
        start_time = time.perf_counter()
        table = {**self.operators, **operators} if operators else self.operators
        depth_reached = [0]

        try:
            if data is None:
                data = {}
            if self.strict and not isinstance(data, (dict, list)):
                raise LogicEvaluationError(
                    f"Data must be an object, got {type(data).__name__}",
                    code=ErrorCode.EVAL_INVALID_DATA
                )
            value = self._apply(tree, data, table, 0, depth_reached)
            success, error, error_code = True, None, None
            if value is UNDEFINED:
                value = None
        except LogicEvaluationError as e:
            value, success, error, error_code = None, False, e.message, e.code
        except RecursionError:
            value, success = None, False
            error, error_code = "Maximum evaluation depth exceeded", ErrorCode.EVAL_MAX_DEPTH
        except (ValueError, TypeError, ZeroDivisionError, KeyError, IndexError, AttributeError) as e:
            value, success = None, False
            error, error_code = f"Operator error: {e}", ErrorCode.EVAL_OPERATOR_ERROR
        except Exception as e:
            logger.error(f"Unexpected error evaluating rule {rule_id}: {e}")
            value, success = None, False
            error, error_code = str(e) or "Unknown evaluation error", ErrorCode.EVAL_UNKNOWN

        execution_time = (time.perf_counter() - start_time) * 1000 if self.measure_time else None
        if self.monitor is not None and execution_time is not None:
            self.monitor.record(execution_time, rule_id=rule_id, success=success, depth=depth_reached[0])

        return EvaluationResult(
            success=success,
            result=value,
            error=error,
            error_code=error_code,
            execution_time=execution_time,
            context={"data": data} if self.capture_context and isinstance(data, dict) else None
        )

    async def evaluate_async(
        self,
        tree: Any,
        data: Any = None,
        rule_id: Optional[str] = None,
        timeout_ms: Optional[int] = None,
        operators: Optional[Dict[str, Callable[..., Any]]] = None
    ) -> EvaluationResult:
        """
        Evaluate in a worker thread, bounded by a timeout

        The timeout bounds how long the caller waits; it does not interrupt
        the evaluation itself.
        """
        timeout = (timeout_ms or self.timeout_ms) / 1000
        try:
            return await asyncio.wait_for(
                asyncio.to_thread(self.evaluate, tree, data, rule_id, operators),
                timeout=timeout
            )
        except asyncio.TimeoutError:
            logger.warning(f"Evaluation of rule {rule_id} timed out after {timeout_ms or self.timeout_ms}ms")
            return EvaluationResult(
                success=False,
                error=f"Evaluation timeout after {timeout_ms or self.timeout_ms}ms",
                error_code=ErrorCode.EVAL_TIMEOUT,
                execution_time=timeout * 1000
            )

    def batch_evaluate(self, items: List[Tuple[Any, Any]]) -> List[EvaluationResult]:
        """
        Evaluate (tree, data) pairs in input order

        A failing pair yields a failed result; the batch always completes.
        """
        return [self.evaluate(tree, data) for tree, data in items]

    def evaluate_multiple(self, trees: Dict[str, Any], data: Any = None) -> Dict[str, EvaluationResult]:
        """Evaluate several named trees against one data context"""
        return {name: self.evaluate(tree, data, rule_id=name) for name, tree in trees.items()}

    # ------------------------------------------------------------------
    # Core recursion
    # ------------------------------------------------------------------

    def _apply(self, tree, data, table, depth, depth_reached):
        if depth > self.max_depth:
            raise LogicEvaluationError(
                f"Maximum depth of {self.max_depth} exceeded",
                code=ErrorCode.EVAL_MAX_DEPTH
            )
        if depth > depth_reached[0]:
            depth_reached[0] = depth

        if isinstance(tree, list):
            return [self._apply(item, data, table, depth + 1, depth_reached) for item in tree]
        if not isinstance(tree, dict) or len(tree) != 1:
            return tree

        op, raw_args = next(iter(tree.items()))
        if not isinstance(raw_args, list):
            raw_args = [raw_args]

        def ev(node, context=data):
            return self._apply(node, context, table, depth + 1, depth_reached)

        if op in LAZY_OPERATORS and op not in table:
            return self._apply_lazy(op, raw_args, data, ev)
        if op == "var":
            return self._var([ev(a) for a in raw_args], data)
        if op == "missing":
            return self._missing([ev(a) for a in raw_args], data)
        if op == "missing_some":
            return self._missing_some([ev(a) for a in raw_args], data)
        if op == "switch" and "switch" in table:
            # Case objects are data; only their values are expressions
            value = ev(raw_args[0]) if raw_args else None
            cases = [
                {key: ev(node) for key, node in case.items()} if isinstance(case, dict) else ev(case)
                for case in raw_args[1:]
            ]
            return table["switch"](value, *cases)

        func = table.get(op)
        if func is None:
            raise LogicEvaluationError(f"Unrecognized operation: {op}", code=ErrorCode.EVAL_INVALID_RULE)

        args = [ev(a) for a in raw_args]
        return func(*args)

    def _apply_lazy(self, op, args, data, ev):
        if op in ("if", "?:"):
            # if/then pairs with an optional trailing else
            i = 0
            while i < len(args) - 1:
                if truthy(ev(args[i])):
                    return ev(args[i + 1])
                i += 2
            return ev(args[i]) if i < len(args) else None

        if op == "and":
            value = None
            for arg in args:
                value = ev(arg)
                if not truthy(value):
                    return value
            return value

        if op == "or":
            value = None
            for arg in args:
                value = ev(arg)
                if truthy(value):
                    return value
            return value

        items = ev(args[0]) if args else []
        if not isinstance(items, list):
            items = []
        logic = args[1] if len(args) > 1 else None

        if op == "map":
            return [ev(logic, item) for item in items]
        if op == "filter":
            return [item for item in items if truthy(ev(logic, item))]
        if op == "reduce":
            accumulator = ev(args[2]) if len(args) > 2 else None
            for item in items:
                accumulator = ev(logic, {"current": item, "accumulator": accumulator})
            return accumulator
        if op == "all":
            return bool(items) and all(truthy(ev(logic, item)) for item in items)
        if op == "some":
            return any(truthy(ev(logic, item)) for item in items)
        if op == "none":
            return not any(truthy(ev(logic, item)) for item in items)

        raise LogicEvaluationError(f"Unrecognized operation: {op}", code=ErrorCode.EVAL_INVALID_RULE)

    # ------------------------------------------------------------------
    # Data access
    # ------------------------------------------------------------------

    @staticmethod
    def lookup(data, path):
        """Resolve a dotted path; returns UNDEFINED when any segment is missing"""
        if path is None or path == "" or path == []:
            return data
        current = data
        for segment in str(path).split("."):
            if isinstance(current, dict):
                if segment not in current:
                    return UNDEFINED
                current = current[segment]
            elif isinstance(current, list) and segment.lstrip("-").isdigit():
                index = int(segment)
                if index >= len(current) or index < -len(current):
                    return UNDEFINED
                current = current[index]
            else:
                return UNDEFINED
        return current

    def _var(self, args, data):
        path = args[0] if args else None
        value = self.lookup(data, path)
        if (value is UNDEFINED or value is None) and len(args) > 1:
            return args[1]
        return value

    def _missing(self, args, data):
        keys = args[0] if args and isinstance(args[0], list) else args
        missing = []
        for key in keys:
            value = self.lookup(data, key)
            if is_missing(value) or value == "":
                missing.append(key)
        return missing

    def _missing_some(self, args, data):
        need = int(to_number(args[0])) if args else 0
        keys = args[1] if len(args) > 1 and isinstance(args[1], list) else []
        missing = self._missing([keys], data)
        if len(keys) - len(missing) >= need:
            return []
        return missing

    # ------------------------------------------------------------------
    # Standard operators
    # ------------------------------------------------------------------

    def _lt(self, a=None, b=None, c=None):
        if c is not None:
            return _compare(a, b, lambda x, y: x < y) and _compare(b, c, lambda x, y: x < y)
        return _compare(a, b, lambda x, y: x < y)

    def _lte(self, a=None, b=None, c=None):
        if c is not None:
            return _compare(a, b, lambda x, y: x <= y) and _compare(b, c, lambda x, y: x <= y)
        return _compare(a, b, lambda x, y: x <= y)

    def _add(self, *args):
        return sum(to_number(a) for a in args)

    def _subtract(self, a=None, b=None):
        if b is None:
            return -to_number(a)
        return to_number(a) - to_number(b)

    def _multiply(self, *args):
        result = 1
        for a in args:
            result *= to_number(a)
        return result

    def _divide(self, a, b):
        return to_number(a) / to_number(b)

    def _modulo(self, a, b):
        return to_number(a) % to_number(b)

    def _min(self, *args):
        return min(to_number(a) for a in args) if args else None

    def _max(self, *args):
        return max(to_number(a) for a in args) if args else None

    def _merge(self, *args):
        merged = []
        for a in args:
            if isinstance(a, list):
                merged.extend(a)
            else:
                merged.append(a)
        return merged

    def _in(self, a=None, b=None):
        if is_missing(a) or is_missing(b):
            return False
        if isinstance(b, str):
            return str(a) in b
        if isinstance(b, list):
            return a in b
        return False

    def _cat(self, *args):
        return "".join("" if is_missing(a) else str(a) for a in args)

    def _substr(self, source, start=0, length=None):
        text = "" if is_missing(source) else str(source)
        start = int(to_number(start))
        if start < 0:
            start = max(len(text) + start, 0)
        if length is None:
            return text[start:]
        length = int(to_number(length))
        if length < 0:
            return text[start:len(text) + length]
        return text[start:start + length]

    def _log(self, value=None, *rest):
        logger.info(f"Rule log: {value!r}")
        return value


def create_evaluator(custom_operators: Optional[Dict[str, Callable[..., Any]]] = None, **kwargs) -> LogicEvaluator:
    """Build an isolated evaluator with the benefit operators and any extras"""
    return LogicEvaluator(custom_operators=custom_operators, **kwargs)
