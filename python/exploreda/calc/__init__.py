"""exploreda.calc - Calculated-column engine for exploreda datasets."""

from exploreda.calc._errors import (
    CalculationError,
    CyclicDependencyError,
    DuplicateNameError,
    EvaluationError,
    ParseError,
    UnknownCalculationError,
    UnknownFunctionError,
    UnresolvedReferenceError,
)
from exploreda.calc._evaluator import Binding, BindingSource, Evaluator, RowBindings
from exploreda.calc._functions import FUNCTION_CATALOG, FunctionDefinition, FunctionRegistry, is_supported
from exploreda.calc._graph import DependencyGraph
from exploreda.calc._manager import CalculationManager
from exploreda.calc._parser import Expression, parse_expression, tokenize
from exploreda.calc._protocol import (
    NO_RESULT,
    CalculationDefinition,
    EvaluationResult,
    ExpressionParser,
)
from exploreda.calc._registry import CalculationRegistry

__all__ = [
    "Binding",
    "BindingSource",
    "CalculationDefinition",
    "CalculationError",
    "CalculationManager",
    "CalculationRegistry",
    "CyclicDependencyError",
    "DependencyGraph",
    "DuplicateNameError",
    "EvaluationError",
    "EvaluationResult",
    "Evaluator",
    "Expression",
    "ExpressionParser",
    "FUNCTION_CATALOG",
    "FunctionDefinition",
    "FunctionRegistry",
    "NO_RESULT",
    "ParseError",
    "RowBindings",
    "UnknownCalculationError",
    "UnknownFunctionError",
    "UnresolvedReferenceError",
    "is_supported",
    "parse_expression",
    "tokenize",
]
