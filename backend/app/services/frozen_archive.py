from __future__ import annotations

import json
import logging
from pathlib import Path

from pydantic import ValidationError

from app.schemas.portfolio import FrozenBundle


logger = logging.getLogger("navboard.archive")


class ArchiveError(Exception):
    pass


class FrozenArchive:
    """Immutable analytics snapshots of closed schemes, keyed by archive name."""

    def __init__(self, bundles: dict[str, FrozenBundle]) -> None:
        self._bundles = dict(bundles)

    def get(self, key: str) -> FrozenBundle:
        try:
            return self._bundles[key]
        except KeyError:
            raise ArchiveError(f"No frozen archive named {key!r}.") from None


def load_bundle(path: Path) -> FrozenBundle:
    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        raise ArchiveError(f"Cannot read frozen archive {path}: {exc}") from exc
    try:
        return FrozenBundle.model_validate(payload)
    except ValidationError as exc:
        raise ArchiveError(f"Frozen archive {path} does not match the analytics shape: {exc}") from exc


def load_archive(directory: str | Path) -> FrozenArchive:
    root = Path(directory)
    if not root.is_dir():
        logger.warning("Frozen archive directory %s does not exist.", root)
        return FrozenArchive({})
    bundles = {path.stem: load_bundle(path) for path in sorted(root.glob("*.json"))}
    logger.info("Loaded %s frozen scheme bundles from %s.", len(bundles), root)
    return FrozenArchive(bundles)
