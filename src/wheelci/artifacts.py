# artifacts.py
from __future__ import annotations

import hashlib
import json
import shutil
import threading
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterable, List, Optional

# ---------------------------------------------------------------------
# Core idea
# ---------------------------------------------------------------------
# Run-scoped artifact store, the only channel between jobs:
#
#   <root>/
#     <run_id>/
#       artifacts/
#         <name>/
#           files/...          (relative layout preserved from the upload)
#           manifest.json      (sha256 per file, producers, consumers)
#
# - uploads to the same name merge (matrix cells all upload `dist`)
# - the same relative file uploaded twice is overwritten, not duplicated
# - reset_run() wipes a run id so re-running a tag re-produces the same
#   names instead of accumulating versions
# ---------------------------------------------------------------------


DEFAULT_STATE_DIR = ".wheelci"


class ArtifactError(Exception):
    """Upload matched nothing, download of an unknown name, bad paths."""


@dataclass
class ArtifactFile:
    path: str
    sha256: str
    size: int
    producer: str


@dataclass
class Artifact:
    name: str
    files: Dict[str, ArtifactFile] = field(default_factory=dict)
    producers: List[str] = field(default_factory=list)
    consumers: List[str] = field(default_factory=list)
    uploaded_at_unix: float = 0.0

    def to_dict(self) -> Dict:
        return {
            "name": self.name,
            "files": {k: vars(v) for k, v in sorted(self.files.items())},
            "producers": self.producers,
            "consumers": self.consumers,
            "uploaded_at_unix": self.uploaded_at_unix,
        }

    @classmethod
    def from_dict(cls, data: Dict) -> "Artifact":
        return cls(
            name=data["name"],
            files={k: ArtifactFile(**v) for k, v in (data.get("files") or {}).items()},
            producers=list(data.get("producers") or []),
            consumers=list(data.get("consumers") or []),
            uploaded_at_unix=float(data.get("uploaded_at_unix") or 0.0),
        )


def _hash_file_contents(path: Path) -> str:
    h = hashlib.sha256()
    with path.open("rb") as f:
        while True:
            chunk = f.read(1024 * 1024)
            if not chunk:
                break
            h.update(chunk)
    return h.hexdigest()


def _json_dumps_stable(obj) -> str:
    return json.dumps(obj, sort_keys=True, indent=2, ensure_ascii=False)


def _relpath(p: Path, root: Path) -> str:
    return str(p.resolve().relative_to(root.resolve())).replace("\\", "/")


def _iter_files_under(root: Path) -> Iterable[Path]:
    # deterministic traversal
    for p in sorted(root.rglob("*")):
        if p.is_file():
            yield p


def _common_base(workspace: Path, pattern: str) -> Path:
    """
    Directory prefix of a path pattern before its first wildcard.

    Uploaded files are stored relative to this base, so `python/target/wheels/*`
    stores `foo.whl`, not `python/target/wheels/foo.whl`.
    """
    parts = Path(pattern).parts
    fixed: List[str] = []
    for part in parts:
        if any(ch in part for ch in "*?["):
            break
        fixed.append(part)
    base = workspace.joinpath(*fixed) if fixed else workspace
    if len(fixed) == len(parts):
        # no wildcard: a file stores under its name, a dir under its contents
        return base if base.is_dir() else base.parent
    return base


def _resolve_upload(workspace: Path, patterns: List[str]) -> List[tuple[Path, str]]:
    """Expand upload patterns into (absolute file, stored relative path) pairs."""
    out: List[tuple[Path, str]] = []
    seen = set()
    for pat in patterns:
        pat = pat.strip()
        if not pat:
            continue
        base = _common_base(workspace, pat)
        p = workspace / pat
        if p.exists():
            matches = [p]
        else:
            matches = sorted(workspace.glob(pat))

        for m in matches:
            files = [m] if m.is_file() else list(_iter_files_under(m))
            for f in files:
                rp = str(f.resolve())
                if rp in seen:
                    continue
                seen.add(rp)
                out.append((f, _relpath(f, base)))
    return out


class ArtifactStore:
    """File-based, run-scoped artifact store shared by every job instance of a run."""

    def __init__(self, root: str | Path = DEFAULT_STATE_DIR, run_id: str = "local"):
        self.root = Path(root).resolve()
        self.run_id = run_id
        self._lock = threading.Lock()
        self.run_dir.mkdir(parents=True, exist_ok=True)

    @property
    def run_dir(self) -> Path:
        return self.root / "runs" / self.run_id / "artifacts"

    def _artifact_dir(self, name: str) -> Path:
        if not name or "/" in name or "\\" in name or name in (".", ".."):
            raise ArtifactError(f"invalid artifact name: {name!r}")
        return self.run_dir / name

    def _manifest_path(self, name: str) -> Path:
        return self._artifact_dir(name) / "manifest.json"

    def _load(self, name: str) -> Optional[Artifact]:
        man = self._manifest_path(name)
        if not man.exists():
            return None
        return Artifact.from_dict(json.loads(man.read_text(encoding="utf-8")))

    def _write_manifest(self, artifact: Artifact) -> None:
        man = self._manifest_path(artifact.name)
        tmp = man.with_suffix(".json.tmp")
        tmp.write_text(_json_dumps_stable(artifact.to_dict()), encoding="utf-8")
        tmp.replace(man)

    # -----------------------------------------------------------------

    def reset_run(self) -> None:
        """Drop everything a previous run with this id produced."""
        with self._lock:
            if self.run_dir.exists():
                shutil.rmtree(self.run_dir)
            self.run_dir.mkdir(parents=True, exist_ok=True)

    def upload(self, name: str, paths: List[str], *, workspace: str | Path, producer: str) -> Artifact:
        """
        Copy files matching `paths` (relative to `workspace`) into artifact `name`.

        Raises ArtifactError if nothing matches.
        """
        ws = Path(workspace).resolve()
        resolved = _resolve_upload(ws, paths)
        if not resolved:
            raise ArtifactError(f"artifact {name!r}: no files found for {paths}")

        with self._lock:
            files_dir = self._artifact_dir(name) / "files"
            files_dir.mkdir(parents=True, exist_ok=True)
            artifact = self._load(name) or Artifact(name=name)

            for src, rel in resolved:
                dest = files_dir / rel
                dest.parent.mkdir(parents=True, exist_ok=True)
                tmp = dest.with_name(dest.name + ".tmp")
                shutil.copy2(src, tmp)
                tmp.replace(dest)
                artifact.files[rel] = ArtifactFile(
                    path=rel,
                    sha256=_hash_file_contents(dest),
                    size=dest.stat().st_size,
                    producer=producer,
                )

            if producer not in artifact.producers:
                artifact.producers.append(producer)
            artifact.uploaded_at_unix = time.time()
            self._write_manifest(artifact)
            return artifact

    def download(self, name: str, dest: str | Path, *, consumer: str) -> List[Path]:
        """Copy a snapshot of artifact `name` into `dest`. Returns written paths."""
        with self._lock:
            artifact = self._load(name)
            if artifact is None:
                raise ArtifactError(
                    f"artifact {name!r} not found in run {self.run_id!r}. "
                    f"Known artifacts: {self.names()}"
                )
            files_dir = self._artifact_dir(name) / "files"
            dest_p = Path(dest)
            dest_p.mkdir(parents=True, exist_ok=True)

            written: List[Path] = []
            for rel in sorted(artifact.files):
                target = dest_p / rel
                target.parent.mkdir(parents=True, exist_ok=True)
                shutil.copy2(files_dir / rel, target)
                written.append(target)

            if consumer not in artifact.consumers:
                artifact.consumers.append(consumer)
                self._write_manifest(artifact)
            return written

    def get(self, name: str) -> Optional[Artifact]:
        with self._lock:
            return self._load(name)

    def names(self) -> List[str]:
        if not self.run_dir.exists():
            return []
        return sorted(p.name for p in self.run_dir.iterdir() if (p / "manifest.json").exists())

    def list(self) -> List[Artifact]:
        with self._lock:
            return [a for a in (self._load(n) for n in self.names()) if a is not None]


def list_runs(root: str | Path = DEFAULT_STATE_DIR) -> List[str]:
    runs = Path(root).resolve() / "runs"
    if not runs.exists():
        return []
    return sorted(p.name for p in runs.iterdir() if p.is_dir())
