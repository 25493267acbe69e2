"""The installed-plugins ledger (plugins/installed_plugins.json).

The host reads this document to know which plugins exist and where they
live. Entries are keyed ``<plugin>@<marketplace>`` and hold a list of install
records, one per scope::

    {
      "version": 2,
      "plugins": {
        "claude-core@claude-code-plugins": [
          {"scope": "user", "installPath": "...", "version": "1.0.0",
           "installedAt": "...", "lastUpdated": "...", "gitCommitSha": "",
           "status": "installed", "mode": "copy", "assets": [...]}
        ]
      }
    }

Writes are keyed upserts, so installing the same plugin twice leaves one
record behind.
"""

from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

from .errors import SettingsError

LEDGER_VERSION = 2


class PluginStatus(str, Enum):
    NOT_INSTALLED = "not_installed"
    INSTALLED = "installed"
    PARTIALLY_INSTALLED = "partially_installed"


def utc_timestamp(now: Optional[datetime] = None) -> str:
    """ISO-8601 UTC timestamp with millisecond precision, e.g. 2026-01-02T03:04:05.678Z"""
    now = now or datetime.now(timezone.utc)
    return now.strftime("%Y-%m-%dT%H:%M:%S.") + f"{now.microsecond // 1000:03d}Z"


def make_record(
    install_path: Path,
    version: str,
    status: PluginStatus,
    mode: str,
    assets: Iterable[Path],
    scope: str = "user",
    now: Optional[str] = None,
) -> Dict[str, Any]:
    """Build a ledger record for a fresh install."""
    timestamp = now or utc_timestamp()
    return {
        "scope": scope,
        "installPath": str(install_path),
        "version": version,
        "installedAt": timestamp,
        "lastUpdated": timestamp,
        "gitCommitSha": "",
        "status": status.value,
        "mode": mode,
        "assets": sorted(str(p) for p in assets),
    }


def _plugins_map(ledger: Dict[str, Any]) -> Dict[str, Any]:
    plugins = ledger.setdefault("plugins", {})
    if not isinstance(plugins, dict):
        raise SettingsError("installed_plugins.json: 'plugins' must be a JSON object")
    return plugins


def _records(value: Any) -> List[Dict[str, Any]]:
    # Version 1 ledgers store a single record instead of a list
    if isinstance(value, dict):
        return [value]
    if isinstance(value, list):
        return [r for r in value if isinstance(r, dict)]
    return []


def upsert(ledger: Dict[str, Any], key: str, record: Dict[str, Any]) -> Dict[str, Any]:
    """Insert or replace the record for key with the same scope.

    The original ``installedAt`` of a replaced record is kept. Records for
    other scopes and other keys are left alone. Modifies ledger in place and
    returns it.
    """
    ledger.setdefault("version", LEDGER_VERSION)
    plugins = _plugins_map(ledger)
    records = _records(plugins.get(key))

    for i, existing in enumerate(records):
        if existing.get("scope") == record.get("scope"):
            merged = dict(record)
            if existing.get("installedAt"):
                merged["installedAt"] = existing["installedAt"]
            records[i] = merged
            break
    else:
        records.append(dict(record))

    plugins[key] = records
    return ledger


def remove(ledger: Dict[str, Any], keys: Iterable[str]) -> List[str]:
    """Drop keys from the ledger, returning the ones that were present."""
    plugins = ledger.get("plugins")
    if not isinstance(plugins, dict):
        return []
    removed = []
    for key in keys:
        if key in plugins:
            del plugins[key]
            removed.append(key)
    return removed


def recorded_assets(ledger: Dict[str, Any], key: str) -> List[Path]:
    """Destination paths recorded for key across all of its records."""
    plugins = ledger.get("plugins")
    if not isinstance(plugins, dict):
        return []
    paths = set()
    for record in _records(plugins.get(key)):
        for asset in record.get("assets") or []:
            paths.add(Path(asset))
    return sorted(paths)


def _exists(path: Path) -> bool:
    return path.exists() or path.is_symlink()


def plugin_status(ledger: Dict[str, Any], key: str, scope: str = "user") -> PluginStatus:
    """Status of a plugin as persisted in the ledger, checked against disk.

    A plugin recorded as installed whose recorded assets are no longer all
    present (e.g. deleted by hand) is reported as partially installed.
    """
    plugins = ledger.get("plugins")
    if not isinstance(plugins, dict):
        return PluginStatus.NOT_INSTALLED

    record = next((r for r in _records(plugins.get(key)) if r.get("scope") == scope), None)
    if record is None:
        return PluginStatus.NOT_INSTALLED

    try:
        status = PluginStatus(record.get("status", PluginStatus.INSTALLED.value))
    except ValueError:
        status = PluginStatus.INSTALLED

    assets = [Path(a) for a in record.get("assets") or []]
    if any(not _exists(a) for a in assets):
        return PluginStatus.PARTIALLY_INSTALLED
    return status
