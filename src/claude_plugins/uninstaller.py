"""Reverse an install: delete placed assets and clean the host documents."""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterable, List, Optional

from . import ledger as ledger_doc
from .config import InstallerConfig, console
from .installer import remove_path
from .jsonstore import load_json, lock_file, locked_document
from .layout import check_plugin_name, destination_for, plugin_key, resolve_plugin
from .settings import strip


@dataclass
class UninstallResult:
    removed: Dict[str, List[Path]] = field(default_factory=dict)
    ledger_keys: List[str] = field(default_factory=list)
    settings_cleaned: bool = False
    marketplace_removed: bool = False

    @property
    def removed_count(self) -> int:
        return sum(len(paths) for paths in self.removed.values())


def _within(path: Path, root: Path) -> bool:
    # abspath, not resolve(): a symlinked asset must not be followed into the source tree
    try:
        Path(os.path.abspath(path)).relative_to(os.path.abspath(root))
        return True
    except ValueError:
        return False


def planned_removals(config: InstallerConfig, name: str, ledger: Dict) -> List[Path]:
    """Paths an install of ``name`` would have created.

    Combines what the ledger recorded with what the source tree would
    install today, so assets are found even when one of the two is stale.
    Paths outside the host configuration root are never returned.
    """
    paths = set(ledger_doc.recorded_assets(ledger, plugin_key(name, config.marketplace)))

    if (config.plugins_source / name).is_dir():
        assets = resolve_plugin(config.source_dir, name)
        for category, sources in assets.by_category():
            for source in sources:
                paths.add(destination_for(category, source, config.claude_dir))

    return sorted(p for p in paths if _within(p, config.claude_dir))


def _hook_commands(config: InstallerConfig, paths: Iterable[Path]) -> List[str]:
    hooks_dir = os.path.abspath(config.claude_dir / "hooks")
    commands = set()
    for p in paths:
        if os.path.dirname(os.path.abspath(p)) == hooks_dir:
            commands.update((str(p), os.path.abspath(p)))
    return sorted(commands)


def uninstall(config: InstallerConfig, plugins: Optional[List[str]] = None) -> UninstallResult:
    """Uninstall plugins (every plugin in the registry by default).

    Deleting a path that is already gone is a no-op, so partial installs
    uninstall cleanly. settings.json and installed_plugins.json are only
    rewritten when they exist. A full uninstall also removes their lock
    sidecars.
    """
    names = [check_plugin_name(n) for n in plugins] if plugins else list(config.registry)
    full = set(names) >= set(config.registry)
    result = UninstallResult()
    ledger = load_json(config.ledger_path, {})
    load_json(config.settings_path, {})

    planned: Dict[str, List[Path]] = {}
    for name in names:
        planned[name] = planned_removals(config, name, ledger)

    console.print("🗑  Removing plugin files...")
    for name in names:
        removed = []
        for path in planned[name]:
            if remove_path(path):
                removed.append(path)
                if config.verbose:
                    console.print(f"    [dim]removed {path}[/dim]")
        result.removed[name] = removed
        if removed:
            console.print(f"  [green]✓[/green] {name}: removed {len(removed)} file(s)")

        remove_path(config.marketplace_dir / "plugins" / name)

    mirrors = config.marketplace_dir / "plugins"
    if config.marketplace_dir.exists() and (not mirrors.is_dir() or not any(mirrors.iterdir())):
        remove_path(config.marketplace_dir)
        result.marketplace_removed = True
        console.print(f"  [green]✓[/green] Removed {config.marketplace_dir}")

    all_planned = [p for paths in planned.values() for p in paths]
    keys = [plugin_key(name, config.marketplace) for name in names]

    if config.settings_path.exists():
        console.print("📝 Cleaning settings.json...")
        drop_status_line = full or config.statusline_path in all_planned
        with locked_document(config.settings_path, create=False) as doc:
            cleaned = strip(doc, keys, _hook_commands(config, all_planned), drop_status_line)
            doc.clear()
            doc.update(cleaned)
        result.settings_cleaned = True
        console.print("  [green]✓[/green] Removed enabledPlugins entries and hook registrations")

    if config.ledger_path.exists():
        console.print("📝 Cleaning installed_plugins.json...")
        with locked_document(config.ledger_path, create=False) as doc:
            result.ledger_keys = ledger_doc.remove(doc, keys)
        console.print(f"  [green]✓[/green] Removed {len(result.ledger_keys)} plugin entr{'y' if len(result.ledger_keys) == 1 else 'ies'}")

    if full:
        for document in (config.settings_path, config.ledger_path):
            remove_path(lock_file(document))

    return result
