"""
One-shot import of the JSON catalog written by earlier releases.

The file holds either {"tabs": [...], "categories": [...], "settings": {...}}
or a bare list of tabs. After a successful import it is renamed to *.bak so
the import never runs twice.
"""

import json
import logging
from dataclasses import dataclass
from pathlib import Path

from tabshelf.core.models import AutoSyncFrequency, Category, Settings, SyncStrategy, Tab

from .models import EntityStoreError
from .store import EntityStore

logger = logging.getLogger(__name__)


@dataclass
class LegacyImportResult:
    """Counts of imported records."""
    tabs: int = 0
    categories: int = 0
    settings: bool = False
    backup_path: Path | None = None


def _tab_from_json(data: dict, known_categories: set[str]) -> Tab:
    category_ids = list(data.get("categoryIds") or [])
    if data.get("categoryId"):
        category_ids.insert(0, data["categoryId"])
    return Tab(
        id=str(data["id"]),
        title=data.get("title") or Path(data.get("filePath", "")).stem,
        file_path=data.get("filePath", ""),
        artist=data.get("artist", ""),
        album=data.get("album", ""),
        type=data.get("type", "unknown"),
        is_managed=bool(data.get("isManaged", False)),
        cover_path=data.get("coverPath", ""),
        category_ids=[c for c in category_ids if c in known_categories],
        country=data.get("country", ""),
        language=data.get("language", ""),
        tag=data.get("tag", ""),
        added_at=int(data.get("addedAt", 0) or 0),
        last_opened=int(data.get("lastOpened", 0) or 0),
    )


def _category_from_json(data: dict) -> Category:
    return Category(
        id=str(data["id"]),
        name=data.get("name", ""),
        parent_id=data.get("parentId", ""),
        cover_path=data.get("coverPath", ""),
    )


def _parse_records(raw_records, parse, kind: str, json_path: Path) -> list:
    records = []
    for raw in raw_records or []:
        try:
            records.append(parse(raw))
        except (KeyError, TypeError, AttributeError, ValueError) as e:
            raise EntityStoreError(f"Malformed legacy {kind} in {json_path}: {raw!r}") from e
    return records


def _settings_from_json(current: Settings, data: dict) -> Settings | None:
    changes: dict = {}
    if data.get("syncPaths"):
        changes["sync_paths"] = [str(p) for p in data["syncPaths"] if p]
    if data.get("syncStrategy") in {s.value for s in SyncStrategy}:
        changes["sync_strategy"] = SyncStrategy(data["syncStrategy"])
    if "autoSyncEnabled" in data:
        changes["auto_sync_enabled"] = bool(data["autoSyncEnabled"])
    if data.get("autoSyncFrequency") in {f.value for f in AutoSyncFrequency}:
        changes["auto_sync_frequency"] = AutoSyncFrequency(data["autoSyncFrequency"])
    if data.get("lastSyncTime"):
        changes["last_sync_time"] = int(data["lastSyncTime"])
    if not changes:
        return None
    return current.with_changes(**changes)


def import_legacy_json(store: EntityStore, json_path: Path | str) -> LegacyImportResult | None:
    """
    Import a legacy JSON catalog into an empty store.

    Every record is parsed before anything is written, and the write is a
    single transaction, so a bad file leaves the store empty and the import
    is retried on the next start.

    Args:
        store: Initialized entity store
        json_path: Location of the legacy tabs.json

    Returns:
        The import counts, or None when there was nothing to import

    Raises:
        EntityStoreError: If the file cannot be read, parsed or stored
    """
    json_path = Path(json_path)
    if not json_path.exists() or store.has_data():
        return None

    try:
        data = json.loads(json_path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        raise EntityStoreError(f"Failed to read legacy catalog {json_path}: {e}") from e

    if isinstance(data, list):
        data = {"tabs": data}
    if not isinstance(data, dict):
        raise EntityStoreError(f"Unrecognized legacy catalog format: {json_path}")

    categories = _parse_records(
        data.get("categories"), _category_from_json, "category", json_path
    )
    known = {c.id for c in categories}
    tabs = _parse_records(
        data.get("tabs"), lambda raw: _tab_from_json(raw, known), "tab", json_path
    )
    settings = None
    if isinstance(data.get("settings"), dict):
        try:
            settings = _settings_from_json(store.settings, data["settings"])
        except (TypeError, ValueError) as e:
            raise EntityStoreError(f"Malformed legacy settings in {json_path}") from e

    store.import_catalog(categories, tabs, settings)
    result = LegacyImportResult(
        tabs=len(tabs), categories=len(categories), settings=settings is not None
    )

    backup_path = json_path.with_name(json_path.name + ".bak")
    try:
        json_path.rename(backup_path)
    except OSError as e:
        raise EntityStoreError(f"Failed to back up legacy catalog: {e}") from e
    result.backup_path = backup_path

    logger.info(
        f"Imported legacy catalog, backup at {backup_path}",
        extra={"tabs": result.tabs, "categories": result.categories},
    )
    return result
