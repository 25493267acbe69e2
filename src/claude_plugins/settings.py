"""Reconcile the host settings.json with the plugins being installed.

Only a handful of keys are touched: ``enabledPlugins``, ``hooks``,
``statusLine`` and ``env``. Everything else in the document is carried over
as-is. The functions here are pure: they take a document and return a new
one, leaving file access to jsonstore.
"""

import copy
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Set

import yaml

from .config import HOOKS_MANIFEST_NAMES, SETTINGS_TEMPLATE, err_console
from .errors import SettingsError, SourceError
from .jsonstore import load_json
from .layout import PluginAssets, destination_for

# Host lifecycle events a hook script can be registered for
HOOK_EVENTS = [
    "SessionStart",
    "SessionEnd",
    "UserPromptSubmit",
    "PreToolUse",
    "PostToolUse",
    "Notification",
    "Stop",
    "SubagentStart",
    "SubagentStop",
    "PreCompact",
]


@dataclass(frozen=True)
class HookRegistration:
    event: str
    command: str
    matcher: Optional[str] = None
    timeout: Optional[int] = None

    def as_group(self) -> Dict[str, Any]:
        """Matcher group in the shape settings.json expects."""
        hook: Dict[str, Any] = {"type": "command", "command": self.command}
        if self.timeout is not None:
            hook["timeout"] = self.timeout
        group: Dict[str, Any] = {}
        if self.matcher is not None:
            group["matcher"] = self.matcher
        group["hooks"] = [hook]
        return group


@dataclass
class DesiredSettings:
    """What an install run wants settings.json to contain."""

    enabled_plugins: List[str] = field(default_factory=list)
    hooks: List[HookRegistration] = field(default_factory=list)
    status_line: Optional[str] = None
    template_env: Dict[str, Any] = field(default_factory=dict)
    template_plugins: Dict[str, Any] = field(default_factory=dict)


# =============================================================================
# Hook registrations
# =============================================================================

def _kebab(name: str) -> str:
    return re.sub(r"(?<!^)(?=[A-Z])", "-", name).lower()


def event_for_script(script: Path) -> Optional[str]:
    """Infer the lifecycle event from a hook script's name.

    ``session-start.sh`` maps to SessionStart and ``post-tool-use-async.sh``
    to PostToolUse. Returns None when no event name prefixes the stem.
    """
    stem = script.stem.lower()
    for event in sorted(HOOK_EVENTS, key=len, reverse=True):
        kebab = _kebab(event)
        if stem == kebab or stem.startswith(kebab + "-"):
            return event
    return None


def _load_hooks_manifest(hooks_dir: Path) -> Optional[Dict[str, Any]]:
    for name in HOOKS_MANIFEST_NAMES:
        manifest = hooks_dir / name
        if not manifest.is_file():
            continue
        try:
            with open(manifest, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise SourceError(f"{manifest} is not valid YAML: {e}") from e
        if not isinstance(data, dict):
            raise SourceError(f"{manifest} must map event names to lists of hooks")
        return data
    return None


def hook_registrations(assets: PluginAssets, claude_dir: Path) -> List[HookRegistration]:
    """Registrations for the hook scripts a plugin installs.

    hooks/hooks.yaml, when present, lists them explicitly::

        PostToolUse:
          - script: post-tool-use-async.sh
            matcher: "Edit|Write"
            timeout: 30

    Without a manifest each script is registered for the event its name
    starts with; scripts that match no event are installed but not
    registered. Commands are absolute paths of the installed scripts.
    """
    scripts = {p.name: p for p in assets.hooks}
    manifest = _load_hooks_manifest(assets.plugin_dir / "hooks")

    if manifest is None:
        registrations = []
        for script in assets.hooks:
            event = event_for_script(script)
            if event:
                command = str(destination_for("hooks", script, claude_dir))
                registrations.append(HookRegistration(event=event, command=command))
        return registrations

    registrations = []
    for event, entries in manifest.items():
        if event not in HOOK_EVENTS:
            err_console.print(f"  [yellow]⚠[/yellow]  {assets.name}: unknown hook event {event} (skipping)")
            continue
        for entry in entries or []:
            if isinstance(entry, str):
                entry = {"script": entry}
            if not isinstance(entry, dict) or not entry.get("script"):
                raise SourceError(f"{assets.name}: hook entries under {event} need a 'script'")
            script = scripts.get(entry["script"])
            if script is None:
                err_console.print(
                    f"  [yellow]⚠[/yellow]  {assets.name}: hook script {entry['script']} not found (skipping)"
                )
                continue
            timeout = entry.get("timeout")
            registrations.append(HookRegistration(
                event=event,
                command=str(destination_for("hooks", script, claude_dir)),
                matcher=entry.get("matcher"),
                timeout=int(timeout) if timeout is not None else None,
            ))
    return registrations


def load_template(source_dir: Path) -> Dict[str, Dict[str, Any]]:
    """Read the env and enabledPlugins maps from settings.template.json."""
    template = load_json(Path(source_dir) / SETTINGS_TEMPLATE, {})
    result = {}
    for key in ("env", "enabledPlugins"):
        value = template.get(key, {})
        if not isinstance(value, dict):
            raise SettingsError(f"{SETTINGS_TEMPLATE}: '{key}' must be a JSON object")
        result[key] = value
    return result


# =============================================================================
# Merge and strip
# =============================================================================

def _section(doc: Dict[str, Any], key: str) -> Dict[str, Any]:
    value = doc.setdefault(key, {})
    if not isinstance(value, dict):
        raise SettingsError(f"settings.json: '{key}' must be a JSON object")
    return value


def _commands(group: Any) -> List[str]:
    if not isinstance(group, dict):
        return []
    return [h.get("command") for h in group.get("hooks") or [] if isinstance(h, dict)]


def _union(existing: Dict[str, Any], template: Dict[str, Any], prefer_template: bool) -> None:
    for key, value in template.items():
        if prefer_template or key not in existing:
            existing[key] = copy.deepcopy(value)


def reconcile(
    current: Dict[str, Any],
    desired: DesiredSettings,
    prefer_template: bool = True,
) -> Dict[str, Any]:
    """Return a copy of current merged with the desired state.

    Template maps are unioned first (template values win unless
    prefer_template is False), then the selected plugins are enabled, hooks
    are appended unless a hook with the same command is already registered
    for the event, and the status line is set when one is given.
    """
    doc = copy.deepcopy(current)

    if desired.template_env:
        _union(_section(doc, "env"), desired.template_env, prefer_template)
    if desired.template_plugins:
        _union(_section(doc, "enabledPlugins"), desired.template_plugins, prefer_template)

    if desired.enabled_plugins:
        enabled = _section(doc, "enabledPlugins")
        for key in desired.enabled_plugins:
            enabled[key] = True

    if desired.hooks:
        hooks = _section(doc, "hooks")
        for registration in desired.hooks:
            groups = hooks.setdefault(registration.event, [])
            if not isinstance(groups, list):
                raise SettingsError(f"settings.json: hooks.{registration.event} must be a list")
            if any(registration.command in _commands(g) for g in groups):
                continue
            groups.append(registration.as_group())

    if desired.status_line:
        doc["statusLine"] = {"type": "command", "command": desired.status_line}

    return doc


def _references(command: Any, targets: Set[str]) -> bool:
    # An argument must equal an installed hook path; a shared file name is not enough
    if not isinstance(command, str):
        return False
    for token in command.split():
        token = os.path.expanduser(token.strip("\"'"))
        if token.replace("\\", "/") in targets:
            return True
    return False


def strip(
    current: Dict[str, Any],
    plugin_keys: Iterable[str],
    hook_commands: Iterable[str],
    drop_status_line: bool = True,
) -> Dict[str, Any]:
    """Return a copy of current without the given plugins' settings.

    Removes the enabledPlugins keys, every hook whose command points at one
    of hook_commands (dropping matcher groups and events left empty, and the
    hooks map itself once empty) and, unless drop_status_line is False,
    the statusLine.
    """
    doc = copy.deepcopy(current)
    targets = {c.replace("\\", "/") for c in hook_commands}

    enabled = doc.get("enabledPlugins")
    if isinstance(enabled, dict):
        for key in plugin_keys:
            enabled.pop(key, None)

    hooks = doc.get("hooks")
    if isinstance(hooks, dict) and targets:
        for event in list(hooks):
            groups = hooks[event]
            if not isinstance(groups, list):
                continue
            kept_groups = []
            for group in groups:
                if not isinstance(group, dict) or not isinstance(group.get("hooks"), list):
                    kept_groups.append(group)
                    continue
                kept = [
                    h for h in group["hooks"]
                    if not (isinstance(h, dict) and _references(h.get("command"), targets))
                ]
                if kept:
                    kept_groups.append({**group, "hooks": kept})
            if kept_groups:
                hooks[event] = kept_groups
            else:
                del hooks[event]
        if not hooks:
            del doc["hooks"]

    if drop_status_line:
        doc.pop("statusLine", None)
    return doc
