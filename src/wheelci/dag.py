# dag.py
from __future__ import annotations

from collections import deque
from typing import Dict, List, Set, Tuple

from .expansion import expand_job
from .model import Job, JobInstance, WorkflowError


def build_dag(jobs: List[Job]) -> Tuple[Dict[str, Set[str]], Dict[str, int]]:
    """
    Build a DAG from Job objects.

    Requires:
      - job.id: str (unique)
      - job.needs: iterable[str] (ids of jobs that must finish BEFORE this job)
    """
    ids = [j.id for j in jobs]
    if len(set(ids)) != len(ids):
        dupes = sorted({n for n in ids if ids.count(n) > 1})
        raise WorkflowError(f"Duplicate job ids found: {dupes}")

    id_set = set(ids)
    adj: Dict[str, Set[str]] = {n: set() for n in id_set}
    indeg: Dict[str, int] = {n: 0 for n in id_set}

    for job in jobs:
        for need in job.needs or []:
            if need not in id_set:
                raise WorkflowError(
                    f"Job '{job.id}' needs missing job '{need}'. "
                    f"Known jobs: {sorted(id_set)}"
                )
            # edge need -> job.id
            if job.id not in adj[need]:
                adj[need].add(job.id)
                indeg[job.id] += 1

    return adj, indeg


def topo_levels(adj: Dict[str, Set[str]], indeg: Dict[str, int]) -> List[List[str]]:
    """
    Convert DAG into topological "levels" (stages).
    Each stage can run in parallel.
    """
    indeg = dict(indeg)  # copy (we mutate it)
    q = deque(sorted([n for n, d in indeg.items() if d == 0]))

    levels: List[List[str]] = []
    processed = 0

    while q:
        level_size = len(q)
        level: List[str] = []

        for _ in range(level_size):
            node = q.popleft()
            level.append(node)
            processed += 1

            for child in sorted(adj.get(node, set())):
                indeg[child] -= 1
                if indeg[child] == 0:
                    q.append(child)

        levels.append(level)

    if processed != len(indeg):
        remaining = sorted([n for n, d in indeg.items() if d > 0])
        raise WorkflowError(f"DAG has a cycle. Stuck jobs: {remaining}")

    return levels


class InstanceGraph:
    """
    Instance-level dependency graph.

    An instance of job B that needs job A waits for every instance of A,
    so a matrix job gates its dependents as a whole.
    """

    def __init__(self, jobs: List[Job]):
        adj, indeg = build_dag(jobs)
        # fails on cycles before anything is expanded
        self.levels = topo_levels(adj, indeg)

        self.instances: Dict[str, JobInstance] = {}
        self.by_job: Dict[str, List[str]] = {}
        for job in jobs:
            keys = []
            for inst in expand_job(job):
                if inst.key in self.instances:
                    raise WorkflowError(f"Duplicate job instance: {inst.key}")
                self.instances[inst.key] = inst
                keys.append(inst.key)
            self.by_job[job.id] = keys

        self.needs: Dict[str, Set[str]] = {k: set() for k in self.instances}
        self.dependents: Dict[str, Set[str]] = {k: set() for k in self.instances}
        for job in jobs:
            for need in job.needs:
                for upstream in self.by_job[need]:
                    for downstream in self.by_job[job.id]:
                        self.needs[downstream].add(upstream)
                        self.dependents[upstream].add(downstream)

    def roots(self) -> List[str]:
        return [k for k, deps in self.needs.items() if not deps]

    def siblings(self, key: str) -> List[str]:
        """Other cells of the same matrix job."""
        job_id = self.instances[key].job.id
        return [k for k in self.by_job[job_id] if k != key]

    def descendants(self, key: str) -> Set[str]:
        out: Set[str] = set()
        stack = list(self.dependents[key])
        while stack:
            k = stack.pop()
            if k in out:
                continue
            out.add(k)
            stack.extend(self.dependents[k])
        return out
