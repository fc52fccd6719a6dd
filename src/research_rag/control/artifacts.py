"""Content-addressable local artifact store with lineage."""

from __future__ import annotations

from hashlib import sha256
from pathlib import Path

from research_rag.types import ArtifactRef


class LocalArtifactStore:
    """Stores bytes under `base_dir/{id}.{type}` where id is a content hash prefix.

    Identical bytes always map to the same id and path, so saving them again
    does not add an object. Writes are not atomic.
    """

    def __init__(self, base_dir: str | Path) -> None:
        self.base_dir = Path(base_dir)

    def save(
        self, type: str, data: bytes | str, lineage: list[str] | None = None
    ) -> ArtifactRef:
        payload = data.encode("utf-8") if isinstance(data, str) else data
        content_hash = sha256(payload).hexdigest()
        artifact_id = content_hash[:16]
        path = self.base_dir / f"{artifact_id}.{type}"

        self.base_dir.mkdir(parents=True, exist_ok=True)
        if not path.exists():
            path.write_bytes(payload)

        return ArtifactRef(
            id=artifact_id,
            content_hash=content_hash,
            type=type,
            path=str(path),
            lineage=list(lineage or []),
        )

    def load(self, ref: ArtifactRef) -> bytes:
        return Path(ref.path).read_bytes()

    def count(self) -> int:
        if not self.base_dir.exists():
            return 0
        return sum(1 for path in self.base_dir.iterdir() if path.is_file())
