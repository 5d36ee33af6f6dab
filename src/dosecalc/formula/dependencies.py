"""Formula dependency tracking for DoseCalc.

Tracks which named formulas of a batch reference each other so they can be
evaluated in dependency order, and detects circular references.
"""

from collections import defaultdict, deque
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field

from dosecalc.formula.resolver import VariableResolver


@dataclass
class EvaluationPlan:
    """Outcome of ordering a set of formulas."""

    order: list[str] = field(default_factory=list)
    # Formulas that can never become ready: members of a cycle and
    # everything downstream of one
    unresolved: list[str] = field(default_factory=list)

    @property
    def has_cycle(self) -> bool:
        return bool(self.unresolved)


class FormulaDependencyGraph:
    """
    Track dependencies between named formulas.

    Maintains a bidirectional graph:
    - dependencies: name -> set of formula names that depend on it
    - reverse: name -> set of formula names it depends on
    """

    def __init__(self):
        """Initialize empty dependency graph."""
        # name -> formulas that reference it
        self.dependencies: dict[str, set[str]] = defaultdict(set)

        # name -> formulas it references
        self.reverse: dict[str, set[str]] = defaultdict(set)

        # Insertion order of formulas, used to keep ties stable
        self._names: dict[str, None] = {}

    @classmethod
    def from_formulas(
        cls,
        formulas: Mapping[str, str],
        resolver: VariableResolver | None = None,
    ) -> "FormulaDependencyGraph":
        """
        Build a graph from a batch of named formulas.

        A variable reference that exactly matches a sibling formula name is a
        dependency on that formula; every other reference is a context
        variable and does not appear in the graph.

        Args:
            formulas: Mapping of formula name to expression
            resolver: Resolver used to extract variable references

        Returns:
            Populated dependency graph (cycles included)
        """
        resolver = resolver or VariableResolver()
        graph = cls()
        for name, expression in formulas.items():
            references = resolver.extract_variables(expression)
            depends_on = {ref for ref in references if ref in formulas}
            graph.set_formula(name, depends_on)
        return graph

    def set_formula(self, name: str, depends_on: set[str]) -> None:
        """
        Register a formula and its dependencies, replacing any previous ones.

        Cycles are accepted here; use get_evaluation_plan to find them.
        """
        if name in self.reverse:
            for old_dep in self.reverse[name]:
                self.dependencies[old_dep].discard(name)

        self._names[name] = None
        self.reverse[name] = set(depends_on)
        for dep in depends_on:
            self.dependencies[dep].add(name)

    def get_transitive_dependencies(self, name: str) -> set[str]:
        """Every formula that must be evaluated before this one."""
        return self._reachable(name, self.reverse, set(self.reverse))

    def get_evaluation_plan(self, names: Iterable[str] | None = None) -> EvaluationPlan:
        """
        Order formulas so each comes after everything it depends on.

        Uses topological sort (Kahn's algorithm). The acyclic part of a graph
        with a cycle is still ordered.

        Args:
            names: Formulas to order (default: all)

        Returns:
            EvaluationPlan with the evaluable order and the unresolved names
        """
        selected = list(self._names) if names is None else list(dict.fromkeys(names))
        in_degree = {name: 0 for name in selected}

        for name in selected:
            for dep in self.reverse.get(name, ()):
                if dep in in_degree:
                    in_degree[name] += 1

        queue = deque(name for name in selected if in_degree[name] == 0)

        order = []
        while queue:
            name = queue.popleft()
            order.append(name)

            for dependent in self._ordered(self.dependencies.get(name, ())):
                if dependent in in_degree:
                    in_degree[dependent] -= 1
                    if in_degree[dependent] == 0:
                        queue.append(dependent)

        done = set(order)
        unresolved = [name for name in selected if name not in done]
        return EvaluationPlan(order=order, unresolved=unresolved)

    def find_cycles(self) -> list[list[str]]:
        """
        Find the strongly connected groups that form cycles.

        Self-references count as one-member cycles. Used for reporting, so
        each cycle is listed once with members in insertion order.
        """
        plan = self.get_evaluation_plan()
        stuck = set(plan.unresolved)
        cycles: list[list[str]] = []
        assigned: set[str] = set()

        for name in plan.unresolved:
            if name in assigned:
                continue
            reachable = self._reachable(name, self.reverse, stuck)
            if name not in reachable:
                # Only downstream of a cycle
                continue
            upstream = self._reachable(name, self.dependencies, stuck)
            members = [n for n in plan.unresolved if n in reachable and n in upstream]
            assigned.update(members)
            cycles.append(members)

        return cycles

    def get_dependencies(self, name: str) -> set[str]:
        """
        Get direct dependencies of a formula.

        Args:
            name: Formula name

        Returns:
            Set of formula names it depends on
        """
        return self.reverse.get(name, set()).copy()

    def _ordered(self, names: Iterable[str]) -> list[str]:
        position = {name: i for i, name in enumerate(self._names)}
        return sorted(names, key=lambda n: position.get(n, len(position)))

    @staticmethod
    def _reachable(start: str, edges: Mapping[str, set[str]], within: set[str]) -> set[str]:
        """Names reachable from start by at least one edge, restricted to within."""
        reached: set[str] = set()
        stack = list(edges.get(start, ()))
        while stack:
            current = stack.pop()
            if current in reached or current not in within:
                continue
            reached.add(current)
            stack.extend(edges.get(current, ()))
        return reached

    def __len__(self) -> int:
        return len(self._names)

    def __repr__(self) -> str:
        """String representation for debugging."""
        return (
            f"FormulaDependencyGraph("
            f"formulas={len(self._names)}, "
            f"edges={sum(len(deps) for deps in self.dependencies.values())})"
        )
