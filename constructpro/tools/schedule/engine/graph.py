from collections import deque
from typing import Dict, Iterable, List, Optional, Tuple

from constructpro.app.db.models import TaskModel


class DependencyGraph:
    """Read-only adjacency over a task set.

    Edges run prerequisite -> dependent. References to ids that are not in the
    task set are ignored, so a dangling ``depends_on`` entry never breaks a
    lookup.
    """

    def __init__(self, tasks: Iterable[TaskModel]):
        tasks = list(tasks)
        self.tasks: Dict[str, TaskModel] = {t.id: t for t in tasks}
        self.order: List[str] = [t.id for t in tasks]
        self._preds: Dict[str, List[str]] = {t.id: [] for t in tasks}
        self._succ: Dict[str, List[str]] = {t.id: [] for t in tasks}
        for t in tasks:
            for dep in t.depends_on or []:
                if dep in self._succ and dep != t.id and dep not in self._preds[t.id]:
                    self._preds[t.id].append(dep)
                    self._succ[dep].append(t.id)

    def __contains__(self, task_id: str) -> bool:
        return task_id in self.tasks

    def predecessors(self, task_id: str) -> List[str]:
        return list(self._preds.get(task_id, []))

    def successors(self, task_id: str) -> List[str]:
        return list(self._succ.get(task_id, []))

    def edges(self) -> List[Tuple[str, str]]:
        return [(dep, task_id) for task_id in self.order for dep in self._preds[task_id]]

    def topological_order(self) -> Optional[List[str]]:
        """Kahn's algorithm; returns None when the graph contains a cycle."""
        indeg = {u: len(self._preds[u]) for u in self.order}
        q = deque([u for u in self.order if indeg[u] == 0])
        order: List[str] = []
        while q:
            u = q.popleft()
            order.append(u)
            for v in self._succ[u]:
                indeg[v] -= 1
                if indeg[v] == 0:
                    q.append(v)
        if len(order) != len(self.order):
            return None
        return order

    def find_cycle(self) -> List[str]:
        """Return one cycle as a closed path (first id repeated at the end), or [] if acyclic."""
        visited = set()
        stack: List[str] = []
        on_stack = set()

        def dfs(node: str) -> List[str]:
            visited.add(node)
            stack.append(node)
            on_stack.add(node)
            for nxt in self._succ[node]:
                if nxt in on_stack:
                    return stack[stack.index(nxt):] + [nxt]
                if nxt not in visited:
                    found = dfs(nxt)
                    if found:
                        return found
            stack.pop()
            on_stack.discard(node)
            return []

        for node in self.order:
            if node not in visited:
                cycle = dfs(node)
                if cycle:
                    return cycle
        return []

    def ancestors(self, task_id: str) -> List[str]:
        """Every task the given one transitively depends on."""
        seen: List[str] = []
        pending = list(self._preds.get(task_id, []))
        while pending:
            p = pending.pop()
            if p in seen:
                continue
            seen.append(p)
            pending.extend(self._preds.get(p, []))
        return seen


def format_dependency_graph(graph: DependencyGraph) -> str:
    """Return a human-readable listing of the nodes and edges of a DependencyGraph."""
    lines: List[str] = []
    lines.append("Dependency Graph")
    lines.append("")
    lines.append("Tasks (start -> end):")
    for task_id in graph.order:
        t = graph.tasks[task_id]
        lines.append(f" - {task_id} {t.name}: {t.start_date.isoformat()} -> {t.end_date.isoformat()}")
    lines.append("")
    lines.append("Edges (prerequisite -> task):")
    edges = graph.edges()
    if edges:
        for u, v in edges:
            lines.append(f" - {u} -> {v}")
    else:
        lines.append(" - (no dependencies)")
    return "\n".join(lines)
