"""CalculationManager: registry, dependency graph and per-row results cache.

One manager is built per dataset.  It is the only thing that mutates its
registry, graph and cache; the dataset itself is shared and read-only.
Execution is synchronous and runs every row to completion.  A row that fails
to evaluate stores :data:`NO_RESULT` and never aborts the batch.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Iterable, Mapping

from exploreda._dataset import ROW_ID, Dataset, Row
from exploreda.calc._errors import CyclicDependencyError, DuplicateNameError, UnknownCalculationError
from exploreda.calc._evaluator import Evaluator, RowBindings
from exploreda.calc._functions import FunctionRegistry
from exploreda.calc._graph import DependencyGraph
from exploreda.calc._parser import Expression, parse_expression
from exploreda.calc._protocol import NO_RESULT, CalculationDefinition, EvaluationResult
from exploreda.calc._registry import CalculationRegistry

logger = logging.getLogger(__name__)


def _as_dataset(data: Dataset | Iterable[Mapping[str, Any]]) -> Dataset:
    if isinstance(data, Dataset):
        return data
    return Dataset(data)


class CalculationManager:
    """Adds, updates, removes and executes calculations over one dataset.

    Usage::

        manager = CalculationManager(Dataset.from_records(records))
        manager.add_calculation(CalculationDefinition.from_source("total", "a + b"))
        results = manager.execute_calculation(manager.get_calculation("total"))
    """

    def __init__(
        self,
        data: Dataset | Iterable[Mapping[str, Any]],
        *,
        functions: FunctionRegistry | None = None,
        parser: Callable[[str], Expression] = parse_expression,
    ) -> None:
        self._data = _as_dataset(data)
        self._functions = functions if functions is not None else FunctionRegistry()
        self._parser = parser
        self._registry = CalculationRegistry()
        self._graph = DependencyGraph()
        # calculation name -> row id -> value (or NO_RESULT)
        self._results: dict[str, dict[int, Any]] = {}

    @property
    def data(self) -> Dataset:
        return self._data

    @property
    def graph(self) -> DependencyGraph:
        return self._graph

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------

    def add_calculation(self, definition: CalculationDefinition) -> set[str]:
        """Register *definition* and return the affected column names.

        Raises DuplicateNameError or CyclicDependencyError without touching
        any state.  Nothing is executed.
        """
        name = definition.result_column_name
        if name in self._registry:
            raise DuplicateNameError(name)

        deps = definition.dependencies
        cycle = self._graph.find_cycle(name, deps)
        if cycle is not None:
            raise CyclicDependencyError(cycle)

        self._registry.add(definition)
        self._graph.set_dependencies(name, deps)
        logger.info("Added calculation %s = %s", name, definition.expression.raw_input)

        return {name} | self._graph.dependents(name)

    def remove_calculation(self, name: str) -> None:
        """Drop *name*, its cached results and its graph node.

        Other calculations lose their edge to *name* but keep their own
        expressions and cached results.
        """
        if self._registry.remove(name) is None:
            logger.debug("remove_calculation: %s is not registered", name)
            return
        self._results.pop(name, None)
        self._graph.remove(name)
        logger.info("Removed calculation %s", name)

    def update_calculation(
        self,
        name: str,
        *,
        expression: Expression | str | None = None,
        result_column_name: str | None = None,
        display_name: str | None = None,
        is_active: bool | None = None,
    ) -> set[str]:
        """Apply a partial update and return the affected column names.

        Source text is parsed first, so a ParseError leaves everything as it
        was.  Results of the calculation and its dependents are invalidated;
        those that were already evaluated are executed again.
        """
        current = self._registry.get(name)
        if current is None:
            raise UnknownCalculationError(name)

        if isinstance(expression, str):
            expression = self._parser(expression)

        changes: dict[str, Any] = {}
        if expression is not None:
            changes["expression"] = expression
        if result_column_name is not None:
            changes["result_column_name"] = result_column_name
        if display_name is not None:
            changes["name"] = display_name
        if is_active is not None:
            changes["is_active"] = is_active
        updated = current.evolve(**changes)

        new_name = updated.result_column_name
        renamed = new_name != name
        if renamed and new_name in self._registry:
            raise DuplicateNameError(new_name)

        deps = updated.dependencies
        graph = self._graph
        if renamed:
            graph = self._graph.copy()
            graph.remove(name, sever=False)
        cycle = graph.find_cycle(new_name, deps)
        if cycle is not None:
            raise CyclicDependencyError(cycle)

        self._registry.replace(name, updated)
        if renamed:
            # readers of the old name keep their edge; it now resolves to nothing
            self._graph.remove(name, sever=False)
        self._graph.set_dependencies(new_name, deps)

        affected = {name, new_name} | self._graph.dependents(name) | self._graph.dependents(new_name)
        evaluated = {n for n in affected if n in self._results}
        for n in affected:
            self._results.pop(n, None)
        logger.info("Updated calculation %s -> %s = %s", name, new_name,
                    updated.expression.raw_input)

        refresh: list[CalculationDefinition] = []
        for n in self._graph.topological_order(new_name if n == name else n for n in evaluated):
            definition = self._registry.get(n)
            if definition is not None and definition.is_active:
                refresh.append(definition)
        if refresh:
            executed: set[str] = set()
            for definition in refresh:
                self._execute(definition, executed)

        return affected

    def invalidate_calculation(self, name: str) -> set[str]:
        """Drop cached results for *name* and everything that depends on it."""
        names = {name} | self._graph.dependents(name)
        for n in names:
            self._results.pop(n, None)
        return names

    def replace_data(self, data: Dataset | Iterable[Mapping[str, Any]]) -> set[str]:
        """Swap in a newly imported dataset; every cached result is dropped.

        Definitions stay registered.  Returns every calculation name.
        """
        self._data = _as_dataset(data)
        self._results.clear()
        logger.info("Dataset replaced (%d rows); calculation results cleared", len(self._data))
        return set(self._registry.names())

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_calculations(self) -> list[CalculationDefinition]:
        return self._registry.snapshot()

    def get_calculation(self, name: str) -> CalculationDefinition | None:
        return self._registry.get(name)

    def preceding_calculations(self, definition: CalculationDefinition) -> list[CalculationDefinition]:
        """Every registered calculation *definition* transitively depends on.

        Returned precedents-first.  Names that do not resolve to a registered
        calculation are dropped.
        """
        name = definition.result_column_name
        if name in self._graph:
            names = self._graph.precedents(name)
        else:
            names = set()
            for dep in definition.dependencies:
                if dep in self._graph:
                    names.add(dep)
                    names |= self._graph.precedents(dep)
            names.discard(name)

        found: list[CalculationDefinition] = []
        for n in self._graph.topological_order(names):
            precedent = self._registry.get(n)
            if precedent is not None:
                found.append(precedent)
        return found

    def get_calculation_results(self, name: str) -> dict[int, Any] | None:
        results = self._results.get(name)
        return dict(results) if results is not None else None

    def get_calculation_result_for_row(self, name: str, row_id: int) -> Any:
        """Cached value for one row: the value, NO_RESULT, or None if not computed."""
        results = self._results.get(name)
        if results is None:
            return None
        return results.get(row_id)

    def get_virtual_columns(self) -> dict[str, dict[int, Any]]:
        """Cached results of the active calculations, keyed by column name."""
        columns: dict[str, dict[int, Any]] = {}
        for definition in self._registry:
            if not definition.is_active:
                continue
            results = self._results.get(definition.result_column_name)
            if results is not None:
                columns[definition.result_column_name] = dict(results)
        return columns

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    def execute_calculation(self, definition: CalculationDefinition) -> dict[int, Any]:
        """Execute the precedents of *definition*, then *definition* itself.

        Each precedent runs once per call.  Returns row id -> value, with
        NO_RESULT for rows that failed.  The cache is updated as a side effect
        only when *definition* is the one registered under its name.
        """
        return dict(self._execute(definition, set()))

    def execute_calculations(self) -> dict[str, dict[int, Any]]:
        """Execute every active calculation once, in dependency order."""
        results: dict[str, dict[int, Any]] = {}
        for name in self._graph.topological_order(self._registry.names()):
            definition = self._registry.get(name)
            if definition is None or not definition.is_active:
                continue
            results[name] = dict(self._run(definition))
        return results

    def preview(
        self,
        expression: Expression | str,
        limit: int = 10,
    ) -> dict[int, EvaluationResult]:
        """Evaluate an unregistered expression on the first *limit* rows.

        Uses the current cache for computed columns and mutates nothing.
        """
        if isinstance(expression, str):
            expression = self._parser(expression)
        outcomes: dict[int, EvaluationResult] = {}
        for row in self._data.head(limit):
            evaluator = Evaluator(self._bindings_for_row(row), self._functions)
            outcomes[row[ROW_ID]] = evaluator.evaluate(expression)
        return outcomes

    def _execute(self, definition: CalculationDefinition, executed: set[str]) -> dict[int, Any]:
        for precedent in self.preceding_calculations(definition):
            if precedent.result_column_name not in executed:
                self._run(precedent)
                executed.add(precedent.result_column_name)
        results = self._run(definition)
        executed.add(definition.result_column_name)
        return results

    def _run(self, definition: CalculationDefinition) -> dict[int, Any]:
        name = definition.result_column_name
        results: dict[int, Any] = {}
        failures = 0
        first_error: Exception | None = None

        for row in self._data:
            row_id = row[ROW_ID]
            evaluator = Evaluator(self._bindings_for_row(row, exclude=name), self._functions)
            outcome = evaluator.evaluate(definition.expression)
            if outcome.success:
                results[row_id] = outcome.value
            else:
                results[row_id] = NO_RESULT
                failures += 1
                if first_error is None:
                    first_error = outcome.error
                logger.debug("Calculation error for %s (row %s): %s", name, row_id, outcome.error)

        if failures:
            logger.warning("Calculation %s failed on %d of %d rows: %s",
                           name, failures, len(self._data), first_error)

        # drafts and stale copies never reach the cache
        if self._registry.get(name) == definition:
            self._results[name] = results
        return results

    def _bindings_for_row(self, row: Row, exclude: str | None = None) -> RowBindings:
        row_id = row[ROW_ID]
        computed: dict[str, Any] = {}
        for calc_name in self._registry.names():
            results = self._results.get(calc_name)
            if calc_name != exclude and results is not None and row_id in results:
                computed[calc_name] = results[row_id]
        return RowBindings(fields=row, computed=computed)
