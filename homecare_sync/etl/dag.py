"""
Small DAG engine the sync cycle runs on.

Tasks run one at a time in dependency order; each receives the shared
context dict with the results of its upstream tasks merged in. When a task
raises, the engine either skips its dependents and carries on with unrelated
branches, or (``stop_on_failure=True``) skips everything left and raises
``TaskFailedError`` so the caller can treat the run as fatal.
"""

from __future__ import annotations

import logging
import time
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable

logger = logging.getLogger(__name__)


class TaskStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    SUCCESS = "success"
    FAILED = "failed"
    SKIPPED = "skipped"


class TaskFailedError(Exception):
    """Raised by ``DAG.run`` when a task fails and the DAG stops on failure."""

    def __init__(self, task_name: str, error: str, summary: dict[str, Any]):
        super().__init__(f"Task '{task_name}' failed: {error}")
        self.task_name = task_name
        self.error = error
        self.summary = summary


@dataclass
class TaskNode:
    """A single unit of work inside a DAG."""

    name: str
    execute_fn: Callable[[dict[str, Any]], dict[str, Any] | None]
    depends_on: list[str] = field(default_factory=list)
    status: TaskStatus = TaskStatus.PENDING
    result: dict[str, Any] = field(default_factory=dict)
    error: str | None = None
    duration_ms: float = 0.0


class DAG:
    """
    A directed acyclic graph of TaskNodes.

    Usage:
        dag = DAG("sync_cycle", stop_on_failure=True)
        dag.add_task("fetch_appointments", fetch_appointments)
        dag.add_task("resolve_references", resolve, depends_on=["fetch_appointments"])
        result = dag.run(initial_context={"source": source, "store": store})
    """

    def __init__(self, name: str, stop_on_failure: bool = False):
        self.name = name
        self.stop_on_failure = stop_on_failure
        self.tasks: dict[str, TaskNode] = {}

    def add_task(
        self,
        name: str,
        execute_fn: Callable[[dict[str, Any]], dict[str, Any] | None],
        depends_on: list[str] | None = None,
    ) -> DAG:
        if name in self.tasks:
            raise ValueError(f"Duplicate task name: {name}")
        self.tasks[name] = TaskNode(
            name=name, execute_fn=execute_fn, depends_on=depends_on or []
        )
        return self

    def _topological_sort(self) -> list[str]:
        """Kahn's algorithm; ties keep insertion order."""
        in_degree: dict[str, int] = {name: 0 for name in self.tasks}
        for task in self.tasks.values():
            for dep in task.depends_on:
                if dep not in self.tasks:
                    raise ValueError(
                        f"Task '{task.name}' depends on unknown task '{dep}'"
                    )
                in_degree[task.name] += 1

        queue = deque(name for name, deg in in_degree.items() if deg == 0)
        order: list[str] = []

        while queue:
            current = queue.popleft()
            order.append(current)
            for name, task in self.tasks.items():
                if current in task.depends_on:
                    in_degree[name] -= 1
                    if in_degree[name] == 0:
                        queue.append(name)

        if len(order) != len(self.tasks):
            raise ValueError("Cycle detected in DAG")
        return order

    def run(self, initial_context: dict[str, Any] | None = None) -> dict[str, Any]:
        """
        Execute all tasks in topological order and return a run summary.

        Raises TaskFailedError on the first failure when ``stop_on_failure``
        is set; the summary attached to the error lists every task's state.
        """
        execution_order = self._topological_sort()
        context = dict(initial_context or {})
        summary: dict[str, Any] = {"pipeline": self.name, "tasks": {}}
        failed_task: TaskNode | None = None

        logger.info("Starting pipeline '%s' with %d tasks", self.name, len(self.tasks))

        for task_name in execution_order:
            task = self.tasks[task_name]

            upstream_failed = any(
                self.tasks[dep].status in (TaskStatus.FAILED, TaskStatus.SKIPPED)
                for dep in task.depends_on
            )
            if (failed_task is not None and self.stop_on_failure) or upstream_failed:
                task.status = TaskStatus.SKIPPED
                logger.warning("Skipping '%s' – earlier task failed", task_name)
                summary["tasks"][task_name] = {"status": TaskStatus.SKIPPED.value}
                continue

            for dep in task.depends_on:
                context.update(self.tasks[dep].result)

            task.status = TaskStatus.RUNNING
            logger.info("Running task '%s'", task_name)
            start = time.perf_counter()
            try:
                task.result = task.execute_fn(context) or {}
                task.status = TaskStatus.SUCCESS
            except Exception as exc:
                task.status = TaskStatus.FAILED
                task.error = str(exc) or type(exc).__name__
                failed_task = failed_task or task
                logger.error("Task '%s' failed: %s", task_name, task.error)
            finally:
                task.duration_ms = (time.perf_counter() - start) * 1000

            summary["tasks"][task_name] = {
                "status": task.status.value,
                "duration_ms": round(task.duration_ms, 2),
                "error": task.error,
            }

        all_success = all(t.status == TaskStatus.SUCCESS for t in self.tasks.values())
        summary["status"] = "completed" if all_success else "failed"
        logger.info("Pipeline '%s' finished – %s", self.name, summary["status"])

        if failed_task is not None and self.stop_on_failure:
            raise TaskFailedError(failed_task.name, failed_task.error or "", summary)
        return summary

    def to_dict(self) -> dict[str, Any]:
        """Serialize the DAG definition (stored in sync_runs.dag_definition)."""
        return {
            "name": self.name,
            "tasks": {
                name: {"depends_on": task.depends_on}
                for name, task in self.tasks.items()
            },
        }
