# expansion.py
from __future__ import annotations

from itertools import product
from typing import Any, Dict, List

from .model import Job, JobInstance, Matrix, WorkflowError


def _matches(combo: Dict[str, Any], partial: Dict[str, Any]) -> bool:
    return all(k in combo and str(combo[k]) == str(v) for k, v in partial.items())


def combinations(m: Matrix) -> List[Dict[str, Any]]:
    """
    Expand a matrix into its ordered list of value combinations.

    Axes are expanded in declaration order (first axis varies slowest),
    then `exclude` removes, then `include` appends.
    """
    for axis, values in m.axes.items():
        if not isinstance(values, list) or not values:
            raise WorkflowError(f"matrix axis {axis!r} must be a non-empty list")

    keys = list(m.axes.keys())
    combos: List[Dict[str, Any]] = [dict(zip(keys, vals)) for vals in product(*m.axes.values())]

    if m.exclude:
        combos = [c for c in combos if not any(_matches(c, ex) for ex in m.exclude)]

    for extra in m.include:
        # extend every combo whose axis values agree with the include,
        # otherwise the include becomes a combination of its own
        axis_part = {k: v for k, v in extra.items() if k in m.axes}
        extended = False
        for c in combos:
            if _matches(c, axis_part):
                c.update(extra)
                extended = True
        if not extended:
            combos.append(dict(extra))

    if not combos:
        raise WorkflowError("matrix expands to zero combinations")
    return combos


def instance_key(job_id: str, values: Dict[str, Any]) -> str:
    if not values:
        return job_id
    return f"{job_id} ({', '.join(str(v) for v in values.values())})"


def expand_job(job: Job) -> List[JobInstance]:
    """One JobInstance per matrix cell; a plain job expands to itself."""
    if job.matrix is None:
        return [JobInstance(job=job, key=job.id)]

    out: List[JobInstance] = []
    seen = set()
    for values in combinations(job.matrix):
        key = instance_key(job.id, values)
        if key in seen:
            raise WorkflowError(f"matrix of job {job.id!r} produces duplicate cell {key!r}")
        seen.add(key)
        out.append(JobInstance(job=job, key=key, matrix_values=values))
    return out
