"""Locate the assets a plugin ships in the marketplace source tree."""

import json
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Tuple

import yaml

from .config import DEFAULT_PLUGIN_VERSION, MARKETPLACE_NAME, err_console
from .errors import SourceError

# Asset categories in install order
CATEGORIES = ("agents", "skills", "rules", "hooks", "scripts")

# A plugin name is a single directory name under plugins/
PLUGIN_NAME_RE = re.compile(r"[A-Za-z0-9][A-Za-z0-9._-]*")


@dataclass
class PluginAssets:
    """Absolute source paths of one plugin's assets, grouped by category.

    A category whose subdirectory does not exist is an empty list.
    """

    name: str
    plugin_dir: Path
    agents: List[Path] = field(default_factory=list)
    skills: List[Path] = field(default_factory=list)
    rules: List[Path] = field(default_factory=list)
    hooks: List[Path] = field(default_factory=list)
    scripts: List[Path] = field(default_factory=list)

    def by_category(self) -> Iterator[Tuple[str, List[Path]]]:
        for category in CATEGORIES:
            yield category, getattr(self, category)

    def all_paths(self) -> List[Path]:
        return [p for _, paths in self.by_category() for p in paths]

    def is_empty(self) -> bool:
        return not self.all_paths()


def check_plugin_name(name: str) -> str:
    """Return name if it is a plain directory name, else raise SourceError."""
    if not isinstance(name, str) or not PLUGIN_NAME_RE.fullmatch(name) or name.endswith("."):
        raise SourceError(f"Invalid plugin name: {name!r}")
    return name


def plugin_key(name: str, marketplace: str = MARKETPLACE_NAME) -> str:
    """Key used for a plugin in enabledPlugins and the ledger."""
    return f"{name}@{marketplace}"


def _files(directory: Path, pattern: str) -> List[Path]:
    if not directory.is_dir():
        return []
    return sorted(p for p in directory.glob(pattern) if p.is_file() and not p.name.startswith("."))


def _skill_dirs(directory: Path) -> List[Path]:
    if not directory.is_dir():
        return []
    return sorted(p for p in directory.iterdir() if p.is_dir() and not p.name.startswith("."))


def resolve_plugin(source_dir: Path, name: str) -> Optional[PluginAssets]:
    """Return the assets of plugin ``name`` under ``source_dir/plugins``.

    Unknown plugins print a warning and return None so that the caller can
    carry on with the next one. Names that are not a plain directory name
    raise SourceError.
    """
    check_plugin_name(name)
    plugin_dir = (Path(source_dir) / "plugins" / name).resolve()
    if not plugin_dir.is_dir():
        err_console.print(f"[yellow]⚠[/yellow]  Plugin not found: {name} (skipping)")
        return None

    return PluginAssets(
        name=name,
        plugin_dir=plugin_dir,
        agents=_files(plugin_dir / "agents", "*.md"),
        skills=_skill_dirs(plugin_dir / "skills"),
        rules=_files(plugin_dir / "rules", "*.md"),
        hooks=_files(plugin_dir / "hooks", "*.sh"),
        scripts=_files(plugin_dir / "scripts", "*"),
    )


def destination_for(category: str, source: Path, claude_dir: Path) -> Path:
    """Map a source asset to its path under the host configuration root.

    Scripts land directly in the root (e.g. ~/.claude/statusline-command.sh),
    every other category in a subdirectory of the same name.
    """
    if category not in CATEGORIES:
        raise ValueError(f"Unknown asset category: {category}")
    if category == "scripts":
        return claude_dir / source.name
    return claude_dir / category / source.name


def read_plugin_version(plugin_dir: Path) -> str:
    """Read the version from .claude-plugin/plugin.json, if the plugin has one."""
    manifest = plugin_dir / ".claude-plugin" / "plugin.json"
    if not manifest.is_file():
        return DEFAULT_PLUGIN_VERSION
    try:
        with open(manifest, "r", encoding="utf-8") as f:
            data = json.load(f)
    except (json.JSONDecodeError, OSError):
        return DEFAULT_PLUGIN_VERSION
    if isinstance(data, dict) and data.get("version"):
        return str(data["version"])
    return DEFAULT_PLUGIN_VERSION


def read_frontmatter(path: Path) -> Dict[str, Any]:
    """Parse the YAML frontmatter block of a Markdown file.

    Returns an empty dict when there is no frontmatter or it does not parse.
    """
    try:
        content = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError):
        return {}
    if not content.startswith("---"):
        return {}
    parts = content.split("---", 2)
    if len(parts) < 3:
        return {}
    try:
        frontmatter = yaml.safe_load(parts[1])
    except yaml.YAMLError:
        return {}
    return frontmatter if isinstance(frontmatter, dict) else {}


def describe_asset(path: Path) -> str:
    """Short description of an asset for listings.

    Skills are described by their SKILL.md. The frontmatter ``description``
    wins, otherwise the first line that is not a heading is used.
    """
    doc = path / "SKILL.md" if path.is_dir() else path
    if doc.suffix != ".md" or not doc.is_file():
        return ""

    desc = read_frontmatter(doc).get("description")
    if isinstance(desc, str) and desc.strip():
        return desc.strip()[:80]

    try:
        content = doc.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError):
        return ""
    in_frontmatter = content.startswith("---")
    for i, line in enumerate(content.strip().split("\n")):
        line = line.strip()
        if line == "---":
            in_frontmatter = i == 0
            continue
        if in_frontmatter:
            continue
        if line and not line.startswith("#"):
            return line[:80]
    return ""
