"""exploreda - calculated columns for exploratory data analysis.

Usage::

    from exploreda import CalculationDefinition, CalculationManager, Dataset

    data = Dataset.from_records([{"price": 10, "qty": 3}, {"price": 4, "qty": 5}])
    manager = CalculationManager(data)
    manager.add_calculation(CalculationDefinition.from_source("total", "price * qty"))
    manager.execute_calculations()
    print(manager.get_virtual_columns()["total"])  # {0: 30, 1: 20}
"""

from exploreda._dataset import ROW_ID, Dataset
from exploreda.calc import (
    NO_RESULT,
    CalculationDefinition,
    CalculationManager,
    parse_expression,
)

__version__ = "0.4.0"

__all__ = [
    "__version__",
    "CalculationDefinition",
    "CalculationManager",
    "Dataset",
    "NO_RESULT",
    "ROW_ID",
    "parse_expression",
]
