"""
Claude Code Plugins - installer for the claude-code-plugins bundle.

Places the bundle's agents, skills, rules, hooks and scripts into the
Claude configuration directory (~/.claude) and registers them in
settings.json and plugins/installed_plugins.json.

Usage:
    uv tool install claude-code-plugins
    claude-plugins install
    claude-plugins install claude-core claude-devtools
    claude-plugins uninstall
"""

# Package version - keep in sync with pyproject.toml
__version__ = "0.1.0"


def main():
    """Main entry point."""
    from .cli import app
    app()


if __name__ == "__main__":
    main()
