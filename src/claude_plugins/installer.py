"""Place plugin assets under the host configuration root by link or copy."""

import os
import shutil
import stat
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from .config import InstallerConfig, console, err_console
from .errors import SourceError
from .jsonstore import load_json, locked_document
from .layout import PluginAssets, destination_for, plugin_key, read_plugin_version, resolve_plugin
from .ledger import PluginStatus, make_record, upsert
from .settings import DesiredSettings, HookRegistration, hook_registrations, load_template, reconcile


@dataclass
class InstallResult:
    """Outcome of installing one plugin."""

    plugin: str
    installed: Dict[str, List[Path]] = field(default_factory=dict)
    failures: List[Tuple[Path, str]] = field(default_factory=list)

    @property
    def assets(self) -> List[Path]:
        return [p for paths in self.installed.values() for p in paths]

    @property
    def status(self) -> PluginStatus:
        if self.failures:
            return PluginStatus.PARTIALLY_INSTALLED
        return PluginStatus.INSTALLED


def remove_path(path: Path) -> bool:
    """Delete a file, symlink or directory tree.

    Symlinks (dangling ones and links to directories included) are unlinked,
    never traversed. Returns False when nothing was there.
    """
    if path.is_symlink() or path.is_file():
        path.unlink()
        return True
    if path.is_dir():
        shutil.rmtree(path)
        return True
    return False


def make_executable(path: Path) -> None:
    mode = path.stat().st_mode
    path.chmod(mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)


def _is_link_to(target: Path, source: Path) -> bool:
    if not target.is_symlink():
        return False
    return Path(os.readlink(target)) == source


def install_asset(source: Path, target: Path, mode: str = "copy") -> str:
    """Install one asset at target, replacing whatever is there.

    Link mode behaves like ``ln -sfn``. If the platform refuses to create the
    symlink the asset is copied instead. Copy mode overwrites files and
    merges directories into an existing tree.

    Returns "linked" or "copied".
    """
    target.parent.mkdir(parents=True, exist_ok=True)

    if mode == "link":
        if _is_link_to(target, source):
            return "linked"
        remove_path(target)
        try:
            target.symlink_to(source, target_is_directory=source.is_dir())
            return "linked"
        except OSError:
            console.print(f"[dim]  (copying {source.name} - symlink unavailable)[/dim]")

    if target.is_symlink():
        target.unlink()
    if source.is_dir():
        if target.exists() and not target.is_dir():
            target.unlink()
        shutil.copytree(source, target, dirs_exist_ok=True)
    else:
        if target.is_dir():
            shutil.rmtree(target)
        shutil.copy2(source, target)
    return "copied"


def _needs_exec_bit(category: str, source: Path) -> bool:
    return category == "hooks" or (category == "scripts" and source.suffix == ".sh")


def install_plugin(
    assets: PluginAssets,
    claude_dir: Path,
    mode: str = "copy",
    verbose: bool = False,
) -> InstallResult:
    """Install every asset group of a plugin under claude_dir.

    Empty groups (including ones whose directory is missing) are skipped.
    A failure on a single asset is reported and recorded; the remaining
    assets are still installed.
    """
    result = InstallResult(plugin=assets.name)

    for category, sources in assets.by_category():
        if not sources:
            continue

        done: List[Path] = []
        for source in sources:
            target = destination_for(category, source, claude_dir)
            try:
                how = install_asset(source, target, mode)
                if how == "copied" and _needs_exec_bit(category, source):
                    make_executable(target)
            except OSError as e:
                result.failures.append((source, str(e)))
                err_console.print(f"  [yellow]⚠[/yellow]  Could not install {source.name}: {e}")
                continue
            done.append(target)
            if verbose:
                console.print(f"    [dim]{how} {target}[/dim]")

        if done:
            result.installed[category] = done
            console.print(f"  [green]✓[/green] {category.capitalize()}")

    return result


def install_marketplace(
    source_dir: Path,
    marketplace_dir: Path,
    plugins: List[PluginAssets],
    mode: str = "copy",
) -> Optional[Path]:
    """Mirror the marketplace metadata and the selected plugins.

    Lays out ``<marketplace_dir>/.claude-plugin`` and
    ``<marketplace_dir>/plugins/<name>`` so the host can find them as an
    installed marketplace. Returns the marketplace metadata path if one was
    mirrored.
    """
    marketplace_dir.mkdir(parents=True, exist_ok=True)

    metadata: Optional[Path] = None
    meta_source = Path(source_dir) / ".claude-plugin"
    if meta_source.is_dir():
        metadata = marketplace_dir / ".claude-plugin"
        install_asset(meta_source.resolve(), metadata, mode)

    for assets in plugins:
        install_asset(assets.plugin_dir, marketplace_dir / "plugins" / assets.name, mode)

    return metadata


def install(config: InstallerConfig, names: List[str]) -> List[InstallResult]:
    """Install plugins and record them in the ledger and settings.json.

    Everything that can fail on bad input (missing source tree, broken hook
    manifests, unreadable or malformed JSON documents) is checked before
    the first file is placed.
    """
    if not config.plugins_source.is_dir():
        raise SourceError(f"No plugins/ directory found in {config.source_dir}")

    names = list(dict.fromkeys(names))
    resolved = [a for a in (resolve_plugin(config.source_dir, n) for n in names) if a is not None]
    if not resolved:
        raise SourceError("None of the requested plugins exist in the source tree")

    registrations: List[HookRegistration] = []
    for assets in resolved:
        registrations.extend(hook_registrations(assets, config.claude_dir))
    template = load_template(config.source_dir)
    keys = [plugin_key(a.name, config.marketplace) for a in resolved]

    # Dry-run both merges so a malformed document fails before any file is placed
    reconcile(
        load_json(config.settings_path, {}),
        DesiredSettings(
            enabled_plugins=keys,
            hooks=registrations,
            status_line=str(config.statusline_path),
            template_env=template["env"],
            template_plugins=template["enabledPlugins"],
        ),
        prefer_template=config.prefer_template,
    )
    ledger = load_json(config.ledger_path, {})
    for key in keys:
        upsert(ledger, key, {"scope": "user"})

    console.print("📦 Copying marketplace...")
    install_marketplace(config.source_dir, config.marketplace_dir, resolved, config.mode)

    results = []
    for assets in resolved:
        console.print(f"📦 Installing {assets.name}...")
        results.append(install_plugin(assets, config.claude_dir, config.mode, config.verbose))

    console.print("\n📝 Updating installed_plugins.json...")
    with locked_document(config.ledger_path) as doc:
        for assets, result in zip(resolved, results):
            record = make_record(
                install_path=config.marketplace_dir / "plugins" / assets.name,
                version=read_plugin_version(assets.plugin_dir),
                status=result.status,
                mode=config.mode,
                assets=result.assets,
            )
            upsert(doc, plugin_key(assets.name, config.marketplace), record)

    console.print("📝 Updating settings.json...")
    status_line = str(config.statusline_path) if config.statusline_path.is_file() else None
    desired = DesiredSettings(
        enabled_plugins=keys,
        hooks=[r for r in registrations if Path(r.command).exists()],
        status_line=status_line,
        template_env=template["env"],
        template_plugins=template["enabledPlugins"],
    )
    with locked_document(config.settings_path) as doc:
        merged = reconcile(doc, desired, prefer_template=config.prefer_template)
        doc.clear()
        doc.update(merged)

    return results
