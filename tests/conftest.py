"""Shared fixtures: a small marketplace source tree and an empty Claude home."""

import json
from pathlib import Path

import pytest
from typer.testing import CliRunner

from claude_plugins.config import InstallerConfig

from helpers import write


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch):
    for var in ("CLAUDE_CONFIG_DIR", "CLAUDE_PLUGINS_SOURCE", "CLAUDE_PLUGINS_MODE"):
        monkeypatch.delenv(var, raising=False)


@pytest.fixture
def source_tree(tmp_path: Path) -> Path:
    """Marketplace repository with all seven plugins.

    claude-core has every asset group, claude-devtools ships a hooks.yaml,
    and claude-backend has no rules/ directory.
    """
    root = tmp_path / "claude-code-plugins"
    write(root / ".claude-plugin" / "marketplace.json", json.dumps({
        "name": "claude-code-plugins",
        "plugins": [{"name": "claude-core", "source": "./plugins/claude-core"}],
    }))
    write(root / "settings.template.json", json.dumps({
        "env": {"CLAUDE_CODE_MAX_OUTPUT_TOKENS": "64000"},
        "enabledPlugins": {"stripe@claude-plugins-official": True},
    }))

    core = root / "plugins" / "claude-core"
    write(core / ".claude-plugin" / "plugin.json", json.dumps({
        "name": "claude-core", "version": "2.1.0", "description": "Core agents and hooks",
    }))
    write(core / "agents" / "explorer.md", "---\nname: explorer\ndescription: Explores the codebase\n---\n\nBody\n")
    write(core / "agents" / "planner.md", "# Planner\n\nPlans work before coding.\n")
    write(core / "skills" / "code-review" / "SKILL.md", "---\ndescription: Reviews diffs\n---\n")
    write(core / "skills" / "code-review" / "checklist.md", "- [ ] tests\n")
    write(core / "rules" / "coding-style.md", "# Style\n")
    write(core / "hooks" / "session-start.sh", "#!/bin/bash\necho start\n")
    write(core / "hooks" / "pre-tool-use.sh", "#!/bin/bash\n")
    write(core / "hooks" / "post-tool-use-async.sh", "#!/bin/bash\n")
    write(core / "hooks" / "quality-gate.sh", "#!/bin/bash\n")
    write(core / "scripts" / "statusline-command.sh", "#!/bin/bash\necho status\n")

    frontend = root / "plugins" / "claude-frontend"
    write(frontend / "agents" / "ui-designer.md", "# UI designer\n")
    write(frontend / "skills" / "react-patterns" / "SKILL.md", "# React\n")
    write(frontend / "rules" / "frontend.md", "# Frontend\n")

    backend = root / "plugins" / "claude-backend"
    write(backend / "agents" / "api-designer.md", "# API designer\n")

    devtools = root / "plugins" / "claude-devtools"
    write(devtools / "hooks" / "pre-commit.sh", "#!/bin/bash\n")
    write(devtools / "hooks" / "codex-review.sh", "#!/bin/bash\n")
    write(devtools / "hooks" / "hooks.yaml", (
        "PreToolUse:\n"
        "  - script: pre-commit.sh\n"
        "    matcher: Bash\n"
        "    timeout: 30\n"
        "Stop:\n"
        "  - codex-review.sh\n"
    ))

    for name in ("claude-mobile", "claude-devops", "claude-quality"):
        write(root / "plugins" / name / "agents" / f"{name.split('-')[1]}-expert.md", "# Expert\n")

    return root


@pytest.fixture
def claude_home(tmp_path: Path) -> Path:
    home = tmp_path / "home" / ".claude"
    home.mkdir(parents=True)
    return home


@pytest.fixture
def config(source_tree: Path, claude_home: Path) -> InstallerConfig:
    return InstallerConfig(claude_dir=claude_home, source_dir=source_tree)


@pytest.fixture
def link_config(source_tree: Path, claude_home: Path) -> InstallerConfig:
    return InstallerConfig(claude_dir=claude_home, source_dir=source_tree, mode="link")


@pytest.fixture
def runner() -> CliRunner:
    return CliRunner()
