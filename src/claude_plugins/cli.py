"""claude-plugins command line interface.

Usage:
    claude-plugins install                     # all plugins
    claude-plugins install claude-core         # just one
    claude-plugins install -i                  # pick interactively
    claude-plugins uninstall
    claude-plugins status
"""

import json
import platform
import shutil
import subprocess
import sys
from pathlib import Path
from typing import Dict, List, Optional

import httpx
import readchar
import typer
from rich.live import Live
from rich.panel import Panel
from rich.table import Table

from . import __version__
from .config import (
    ALL_PLUGINS,
    CLAUDE_LOCAL_PATH,
    OFFICIAL_MARKETPLACE,
    RECOMMENDED_OFFICIAL_PLUGINS,
    InstallerConfig,
    console,
    default_claude_home,
    err_console,
)
from .errors import PluginsError
from .installer import install as install_plugins
from .jsonstore import load_json
from .layout import CATEGORIES, PLUGIN_NAME_RE, describe_asset, plugin_key, read_plugin_version, resolve_plugin
from .ledger import PluginStatus, plugin_status, recorded_assets
from .uninstaller import uninstall as uninstall_plugins

PACKAGE_NAME = "claude-code-plugins"

app = typer.Typer(
    name="claude-plugins",
    help="Install the Claude Code plugin bundle into ~/.claude",
    add_completion=False,
)


@app.callback(invoke_without_command=True)
def main_callback(ctx: typer.Context):
    """
    Install and uninstall the claude-code-plugins bundle.
    """
    if ctx.invoked_subcommand is None:
        show_banner()
        console.print(ctx.get_help())


# =============================================================================
# Shared options
# =============================================================================

ClaudeDirOption = typer.Option(
    None, "--claude-dir",
    envvar="CLAUDE_CONFIG_DIR",
    help="Claude configuration directory (default: ~/.claude)",
)
SourceOption = typer.Option(
    Path("."), "--source", "-s",
    envvar="CLAUDE_PLUGINS_SOURCE",
    help="Marketplace repository containing plugins/",
)
VerboseOption = typer.Option(False, "--verbose", "-v", help="Show every file touched")


def show_banner():
    console.print("[bold cyan]=== Claude Code Plugins ===[/bold cyan]")


def build_config(
    claude_dir: Optional[Path],
    source: Path,
    mode: str = "copy",
    prefer_template: bool = True,
    verbose: bool = False,
) -> InstallerConfig:
    try:
        return InstallerConfig(
            claude_dir=claude_dir or default_claude_home(),
            source_dir=source,
            mode=mode,
            prefer_template=prefer_template,
            verbose=verbose,
        )
    except ValueError as e:
        err_console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)


# =============================================================================
# Interactive Selection
# =============================================================================

def get_key() -> str:
    """Get a single keypress in a cross-platform way using readchar."""
    try:
        key = readchar.readkey()
    except Exception:
        return 'esc'

    if key == readchar.key.UP or key == readchar.key.CTRL_P:
        return 'up'
    if key == readchar.key.DOWN or key == readchar.key.CTRL_N:
        return 'down'
    if key == readchar.key.ENTER:
        return 'enter'
    if key == readchar.key.ESC:
        return 'esc'
    if key == readchar.key.CTRL_C:
        raise KeyboardInterrupt
    if key == ' ':
        return 'space'
    if key.lower() == 'a':
        return 'a'
    return key


def select_plugins_interactive(
    options: Dict[str, str],
    preselected: Optional[List[str]] = None,
    prompt_text: str = "Select plugins to install",
) -> List[str]:
    """
    Multi-select over plugin names using arrow keys and space.

    Controls:
    - ↑/↓: Navigate
    - Space: Toggle selection
    - A: Select/deselect all
    - Enter: Confirm
    - Esc: Cancel

    Without a TTY the preselection is returned unchanged.
    """
    option_keys = list(options.keys())
    selected = set(preselected or [])

    if not sys.stdin.isatty() or not option_keys:
        return [k for k in option_keys if k in selected]

    cursor_index = 0

    def create_selection_panel():
        lines = []
        for i, key in enumerate(option_keys):
            cursor = "→" if i == cursor_index else " "
            check = "✓" if key in selected else " "
            desc = f" [dim]{options[key]}[/dim]" if options[key] else ""
            if i == cursor_index:
                lines.append(f"[bold cyan]{cursor} [{check}] {key}[/bold cyan]{desc}")
            else:
                lines.append(f"[white]{cursor} [{check}] {key}[/white]{desc}")
        lines.append("")
        lines.append("[dim]↑/↓: navigate  Space: toggle  A: all  Enter: confirm  Esc: cancel[/dim]")
        return Panel(
            "\n".join(lines),
            title=f"[bold cyan]{prompt_text}[/bold cyan]",
            border_style="cyan",
        )

    try:
        with Live(create_selection_panel(), console=console, transient=True, refresh_per_second=10) as live:
            while True:
                key = get_key()
                if key == 'up':
                    cursor_index = (cursor_index - 1) % len(option_keys)
                elif key == 'down':
                    cursor_index = (cursor_index + 1) % len(option_keys)
                elif key == 'space':
                    current = option_keys[cursor_index]
                    if current in selected:
                        selected.remove(current)
                    else:
                        selected.add(current)
                elif key == 'a':
                    if len(selected) == len(option_keys):
                        selected.clear()
                    else:
                        selected = set(option_keys)
                elif key == 'enter':
                    break
                elif key == 'esc':
                    console.print("\n[yellow]Selection cancelled[/yellow]")
                    raise typer.Exit(1)
                live.update(create_selection_panel())
    except KeyboardInterrupt:
        console.print("\n[yellow]Selection cancelled[/yellow]")
        raise typer.Exit(1)

    return [k for k in option_keys if k in selected]


def available_plugins(source: Path) -> Dict[str, str]:
    """Plugin directories in the source tree with their plugin.json description."""
    plugins_dir = source / "plugins"
    if not plugins_dir.is_dir():
        return {}
    options = {}
    for plugin_dir in sorted(p for p in plugins_dir.iterdir() if p.is_dir() and PLUGIN_NAME_RE.fullmatch(p.name)):
        try:
            manifest = load_json(plugin_dir / ".claude-plugin" / "plugin.json", {})
        except PluginsError:
            manifest = {}
        options[plugin_dir.name] = str(manifest.get("description", ""))[:60]
    return options


# =============================================================================
# Official plugins (claude CLI)
# =============================================================================

def find_claude_cli() -> Optional[str]:
    """Locate the claude executable.

    `claude migrate-installer` removes claude from PATH and leaves an alias
    at ~/.claude/local/claude instead.
    """
    found = shutil.which("claude")
    if found:
        return found
    if CLAUDE_LOCAL_PATH.exists() and CLAUDE_LOCAL_PATH.is_file():
        return str(CLAUDE_LOCAL_PATH)
    return None


def print_official_instructions(plugins: List[str]):
    for name in plugins:
        console.print(f"  claude plugin install {name}@{OFFICIAL_MARKETPLACE}")


def install_official_plugins(plugins: List[str]) -> bool:
    """Install official marketplace plugins through the claude CLI.

    Never fails the run: without the CLI, or when a command fails, the
    manual command is printed instead. Returns True if all succeeded.
    """
    cli = find_claude_cli()
    if cli is None:
        err_console.print("[yellow]⚠[/yellow]  claude CLI not found. Install these manually:")
        print_official_instructions(plugins)
        return False

    ok = True
    for name in plugins:
        spec = f"{name}@{OFFICIAL_MARKETPLACE}"
        try:
            result = subprocess.run(
                [cli, "plugin", "install", spec],
                capture_output=True,
                text=True,
            )
        except OSError as e:
            err_console.print(f"[red]✗[/red] Failed to run claude for {spec}: {e}")
            print_official_instructions([name])
            ok = False
            continue
        if result.returncode == 0:
            console.print(f"[green]✓[/green] Installed {spec}")
        else:
            err_console.print(f"[red]✗[/red] Failed to install {spec}: {(result.stderr or '').strip()[:100]}")
            print_official_instructions([name])
            ok = False
    return ok


# =============================================================================
# Install / Uninstall
# =============================================================================

@app.command()
def install(
    plugins: Optional[List[str]] = typer.Argument(
        None, help="Plugins to install (default: all 7)"
    ),
    claude_dir: Optional[Path] = ClaudeDirOption,
    source: Path = SourceOption,
    mode: str = typer.Option(
        "copy", "--mode", "-m",
        envvar="CLAUDE_PLUGINS_MODE",
        help="copy files, or link them so source updates show up without reinstalling",
    ),
    interactive: bool = typer.Option(
        False, "--interactive", "-i",
        help="Choose plugins with an interactive selector",
    ),
    preserve_settings: bool = typer.Option(
        False, "--preserve-settings",
        help="Keep existing env/enabledPlugins values when the settings template disagrees",
    ),
    with_official: bool = typer.Option(
        False, "--with-official",
        help="Also install the recommended official plugins with the claude CLI",
    ),
    verbose: bool = VerboseOption,
):
    """
    Install plugins into the Claude configuration directory.

    Examples:
        claude-plugins install
        claude-plugins install claude-core claude-frontend
        claude-plugins install --mode link -s ~/src/claude-code-plugins
    """
    show_banner()
    config = build_config(claude_dir, source, mode, not preserve_settings, verbose)

    if interactive:
        options = available_plugins(config.source_dir)
        selected = select_plugins_interactive(options, preselected=plugins or list(ALL_PLUGINS))
        if not selected:
            console.print("[yellow]No plugins selected. Exiting.[/yellow]")
            raise typer.Exit(1)
    else:
        selected = list(plugins) if plugins else list(ALL_PLUGINS)

    console.print(f"Installing: {' '.join(selected)}\n")

    try:
        results = install_plugins(config, selected)
    except PluginsError as e:
        err_console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)

    partial = [r.plugin for r in results if r.status == PluginStatus.PARTIALLY_INSTALLED]
    if partial:
        err_console.print(f"\n[yellow]⚠[/yellow]  Partially installed: {', '.join(partial)}")

    console.print("\n[green]✅ Installation complete![/green]\n")

    if with_official:
        console.print("[cyan]Installing official plugins...[/cyan]")
        install_official_plugins(RECOMMENDED_OFFICIAL_PLUGINS)
    else:
        console.print("Recommended: Also install official MCP plugins:")
        print_official_instructions(RECOMMENDED_OFFICIAL_PLUGINS)

    console.print("\nRestart Claude Code to activate plugins.")


@app.command()
def uninstall(
    plugins: Optional[List[str]] = typer.Argument(
        None, help="Plugins to remove (default: every known plugin)"
    ),
    claude_dir: Optional[Path] = ClaudeDirOption,
    source: Path = SourceOption,
    verbose: bool = VerboseOption,
):
    """Remove installed plugin files and clean settings.json and the ledger."""
    show_banner()
    config = build_config(claude_dir, source, verbose=verbose)

    try:
        result = uninstall_plugins(config, plugins or None)
    except PluginsError as e:
        err_console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)

    console.print(f"\n[green]✅ Uninstall complete![/green] Removed {result.removed_count} file(s).\n")
    console.print("Restart Claude Code to apply changes.")


# =============================================================================
# Status / List
# =============================================================================

STATUS_STYLES = {
    PluginStatus.INSTALLED: "[green]installed[/green]",
    PluginStatus.PARTIALLY_INSTALLED: "[yellow]partial[/yellow]",
    PluginStatus.NOT_INSTALLED: "[dim]not installed[/dim]",
}


@app.command()
def status(
    claude_dir: Optional[Path] = ClaudeDirOption,
):
    """Show what the ledger and settings.json say about each plugin."""
    config = build_config(claude_dir, Path("."))

    try:
        ledger = load_json(config.ledger_path, {})
        settings = load_json(config.settings_path, {})
    except PluginsError as e:
        err_console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)

    enabled = settings.get("enabledPlugins")
    if not isinstance(enabled, dict):
        enabled = {}

    table = Table(title="Plugin Status")
    table.add_column("Plugin", style="cyan")
    table.add_column("Status")
    table.add_column("Assets", justify="right")
    table.add_column("Enabled", style="green")

    for name in config.registry:
        key = plugin_key(name, config.marketplace)
        table.add_row(
            name,
            STATUS_STYLES[plugin_status(ledger, key)],
            str(len(recorded_assets(ledger, key))),
            "✓" if enabled.get(key) is True else "✗",
        )

    console.print(table)
    console.print(f"\n[dim]Settings: {config.settings_path}[/dim]")
    console.print(f"[dim]Ledger:   {config.ledger_path}[/dim]")


@app.command(name="list")
def list_assets(
    category: Optional[str] = typer.Argument(
        None,
        help="Asset category: agents, skills, rules, hooks, scripts (or all if not specified)"
    ),
    source: Path = SourceOption,
    verbose: bool = typer.Option(
        False, "--verbose", "-v",
        help="Show descriptions and paths"
    ),
    json_output: bool = typer.Option(
        False, "--json",
        help="Output as JSON"
    ),
):
    """
    List the assets each plugin in the source tree would install.

    Examples:
        claude-plugins list
        claude-plugins list agents -v
        claude-plugins list --json
    """
    if category and category not in CATEGORIES:
        err_console.print(f"[red]Error:[/red] Unknown asset category: {category}")
        err_console.print(f"Valid categories: {', '.join(CATEGORIES)}")
        raise typer.Exit(1)

    if not (source / "plugins").is_dir():
        err_console.print(f"[red]Error:[/red] No plugins/ directory found in {source}")
        raise typer.Exit(1)

    categories = [category] if category else list(CATEGORIES)
    output: Dict[str, Dict[str, List[Dict[str, str]]]] = {}
    versions: Dict[str, str] = {}
    for name in available_plugins(source):
        assets = resolve_plugin(source, name)
        versions[name] = read_plugin_version(assets.plugin_dir)
        output[name] = {
            cat: [
                {"name": p.name, "path": str(p), "description": describe_asset(p)}
                for p in getattr(assets, cat)
            ]
            for cat in categories
        }

    if json_output:
        typer.echo(json.dumps(output, indent=2))
        return

    for name, groups in output.items():
        console.print(f"\n[bold cyan]{name}[/bold cyan] [dim]v{versions[name]}[/dim]")
        console.print("─" * 60)
        for cat, items in groups.items():
            if not items:
                continue
            console.print(f"  [bold]{cat.capitalize()}[/bold] ({len(items)})")
            for item in items:
                desc = item["description"]
                if verbose:
                    console.print(f"    [green]{item['name']}[/green]")
                    if desc:
                        console.print(f"      [dim]{desc}[/dim]")
                    console.print(f"      [dim italic]{item['path']}[/dim italic]")
                elif desc:
                    if len(desc) > 50:
                        desc = desc[:47] + "..."
                    console.print(f"    [green]{item['name']}[/green] - [dim]{desc}[/dim]")
                else:
                    console.print(f"    [green]{item['name']}[/green]")


# =============================================================================
# Version
# =============================================================================

def get_installed_version() -> str:
    """Get the currently installed version."""
    try:
        import importlib.metadata
        return importlib.metadata.version(PACKAGE_NAME)
    except Exception:
        return __version__


def get_latest_version() -> Optional[str]:
    """Fetch the latest released version from PyPI."""
    try:
        response = httpx.get(
            f"https://pypi.org/pypi/{PACKAGE_NAME}/json",
            timeout=5,
            follow_redirects=True,
        )
    except httpx.HTTPError:
        return None
    if response.status_code != 200:
        return None
    try:
        return response.json().get("info", {}).get("version")
    except ValueError:
        return None


@app.command()
def version(
    check_update: bool = typer.Option(
        False, "--check", "-c",
        help="Check for available updates"
    ),
):
    """Display version and check for updates."""
    installed = get_installed_version()

    table = Table(show_header=False, box=None, padding=(0, 2))
    table.add_column("Key", style="cyan", justify="right")
    table.add_column("Value", style="white")

    table.add_row("Version", installed)
    table.add_row("Python", platform.python_version())
    table.add_row("Platform", platform.system())
    table.add_row("Claude dir", str(default_claude_home()))

    if check_update:
        console.print("[dim]Checking for updates...[/dim]")
        latest = get_latest_version()
        if latest:
            table.add_row("Latest", latest)
            if latest != installed:
                table.add_row("", "[yellow]Update available![/yellow]")
        else:
            table.add_row("Latest", "[dim]Unable to check[/dim]")

    console.print(Panel(
        table,
        title="[bold cyan]Claude Code Plugins[/bold cyan]",
        border_style="cyan",
        padding=(1, 2),
    ))
