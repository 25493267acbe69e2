"""Constants and runtime configuration for claude-plugins."""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import List

from rich.console import Console


# =============================================================================
# Constants
# =============================================================================

MARKETPLACE_NAME = "claude-code-plugins"

# Fixed registry of plugins shipped by the marketplace repository
ALL_PLUGINS = [
    "claude-core",
    "claude-frontend",
    "claude-backend",
    "claude-mobile",
    "claude-devops",
    "claude-quality",
    "claude-devtools",
]

# Official plugins recommended alongside ours (installed through the claude CLI)
OFFICIAL_MARKETPLACE = "claude-plugins-official"
RECOMMENDED_OFFICIAL_PLUGINS = ["stripe", "supabase", "sentry", "vercel"]

STATUSLINE_SCRIPT = "statusline-command.sh"
SETTINGS_TEMPLATE = "settings.template.json"
HOOKS_MANIFEST_NAMES = ("hooks.yaml", "hooks.yml")
DEFAULT_PLUGIN_VERSION = "1.0.0"

SYNC_MODES = ("copy", "link")

# Claude local path after `claude migrate-installer` (removes from PATH, creates alias here)
CLAUDE_LOCAL_PATH = Path.home() / ".claude" / "local" / "claude"

console = Console()
err_console = Console(stderr=True)


def default_claude_home() -> Path:
    """Return the host configuration root.

    Honors CLAUDE_CONFIG_DIR the same way the claude CLI does.
    """
    override = os.getenv("CLAUDE_CONFIG_DIR", "").strip()
    if override:
        return Path(override).expanduser()
    return Path.home() / ".claude"


@dataclass
class InstallerConfig:
    """Resolved paths and options for one install or uninstall run."""

    claude_dir: Path
    source_dir: Path
    mode: str = "copy"
    prefer_template: bool = True
    verbose: bool = False
    marketplace: str = MARKETPLACE_NAME
    registry: List[str] = field(default_factory=lambda: list(ALL_PLUGINS))

    def __post_init__(self):
        self.claude_dir = Path(self.claude_dir).expanduser()
        self.source_dir = Path(self.source_dir).expanduser()
        if self.mode not in SYNC_MODES:
            raise ValueError(f"mode must be one of {', '.join(SYNC_MODES)}, got {self.mode!r}")

    @property
    def plugins_source(self) -> Path:
        return self.source_dir / "plugins"

    @property
    def settings_path(self) -> Path:
        return self.claude_dir / "settings.json"

    @property
    def ledger_path(self) -> Path:
        return self.claude_dir / "plugins" / "installed_plugins.json"

    @property
    def marketplace_dir(self) -> Path:
        return self.claude_dir / "plugins" / "marketplaces" / self.marketplace

    @property
    def statusline_path(self) -> Path:
        return self.claude_dir / STATUSLINE_SCRIPT
