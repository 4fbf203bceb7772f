"""Package Store: persistence for authored story packages.

Packages are read far more often than written (every turn resolves against
the static graph), so reads go through a RowCache.
"""

import json
import logging
from pathlib import Path

import yaml
from pydantic import ValidationError

from ..config import Config
from ..story.models import StoryPackage
from .cache import RowCache
from .models import StoryPackageRow
from .session import create_session as create_db_session

logger = logging.getLogger(__name__)


class PackageStore:
    """Persists StoryPackage documents to the ``story_packages`` table."""

    def __init__(self, cache: RowCache[str, StoryPackage] | None = None):
        self._cache = cache or RowCache("package-cache", Config.CACHE_MAX_ENTRIES)

    @property
    def cache(self) -> RowCache[str, StoryPackage]:
        return self._cache

    def save(self, package: StoryPackage) -> None:
        """Insert or replace a package and drop any cached copy."""
        data = json.dumps(package.to_dict())
        db = create_db_session()
        try:
            existing = db.get(StoryPackageRow, package.id)
            if existing:
                existing.title = package.title
                existing.genre = package.genre
                existing.art_style = package.art_style
                existing.meta_json = data
            else:
                db.add(StoryPackageRow(
                    id=package.id,
                    title=package.title,
                    genre=package.genre,
                    art_style=package.art_style,
                    meta_json=data,
                ))
            db.commit()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()
        self._cache.invalidate(package.id)
        logger.info(f"Saved story package '{package.id}' ({len(package.plot.acts)} acts)")

    def load(self, package_id: str) -> StoryPackage | None:
        """Load a package by ID (cached)."""
        return self._cache.get_or_load(package_id, self._load_row)

    def _load_row(self, package_id: str) -> StoryPackage | None:
        db = create_db_session()
        try:
            row = db.get(StoryPackageRow, package_id)
            if row is None:
                return None
            return StoryPackage.model_validate(json.loads(row.meta_json))
        finally:
            db.close()

    def delete(self, package_id: str) -> bool:
        db = create_db_session()
        try:
            count = db.query(StoryPackageRow).filter(StoryPackageRow.id == package_id).delete()
            db.commit()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()
        self._cache.invalidate(package_id)
        return count > 0

    def list_packages(self) -> list[dict]:
        """List packages with basic info."""
        db = create_db_session()
        try:
            rows = db.query(StoryPackageRow).order_by(StoryPackageRow.created_at.desc()).all()
            return [
                {
                    "id": r.id,
                    "title": r.title,
                    "genre": r.genre,
                    "art_style": r.art_style,
                    "created_at": r.created_at.isoformat() if r.created_at else None,
                }
                for r in rows
            ]
        finally:
            db.close()

    def import_file(self, path: str | Path) -> StoryPackage:
        """Load a package from a .json/.yaml/.yml file, validate and save it."""
        path = Path(path)
        with open(path, encoding="utf-8") as f:
            if path.suffix.lower() in (".yaml", ".yml"):
                data = yaml.safe_load(f)
            else:
                data = json.load(f)

        if not isinstance(data, dict):
            raise ValueError(f"{path.name}: expected a mapping at the top level")
        data.setdefault("id", path.stem)
        try:
            package = StoryPackage.model_validate(data)
        except ValidationError as e:
            raise ValueError(f"{path.name}: invalid story package: {e}") from e

        self.save(package)
        return package
