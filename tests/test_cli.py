import json
from pathlib import Path
from types import SimpleNamespace

import httpx

from claude_plugins import cli
from claude_plugins.cli import app

from helpers import read_json, write

CORE = "claude-core@claude-code-plugins"


def run_install(runner, source_tree: Path, claude_home: Path, *args, **kwargs):
    return runner.invoke(
        app,
        ["install", *args, "--source", str(source_tree), "--claude-dir", str(claude_home)],
        **kwargs,
    )


def test_no_command_shows_banner(runner):
    result = runner.invoke(app, [])
    assert result.exit_code == 0
    assert "Claude Code Plugins" in result.output


def test_install_defaults(runner, source_tree: Path, claude_home: Path):
    result = run_install(runner, source_tree, claude_home)

    assert result.exit_code == 0, result.output
    assert "Installation complete" in result.output
    assert "Restart Claude Code" in result.output

    ledger = read_json(claude_home / "plugins" / "installed_plugins.json")
    assert isinstance(ledger["plugins"][CORE], list) and ledger["plugins"][CORE]
    assert read_json(claude_home / "settings.json")["enabledPlugins"][CORE] is True


def test_install_selected_plugins(runner, source_tree: Path, claude_home: Path):
    result = run_install(runner, source_tree, claude_home, "claude-backend")

    assert result.exit_code == 0, result.output
    assert (claude_home / "agents" / "api-designer.md").is_file()
    assert not (claude_home / "agents" / "explorer.md").exists()


def test_install_honors_config_dir_env(runner, source_tree: Path, claude_home: Path):
    result = runner.invoke(
        app,
        ["install", "claude-core", "--source", str(source_tree)],
        env={"CLAUDE_CONFIG_DIR": str(claude_home)},
    )

    assert result.exit_code == 0, result.output
    assert (claude_home / "agents" / "explorer.md").is_file()


def test_install_interactive_without_tty_uses_arguments(runner, source_tree: Path, claude_home: Path):
    result = run_install(runner, source_tree, claude_home, "-i", "claude-frontend")

    assert result.exit_code == 0, result.output
    assert (claude_home / "agents" / "ui-designer.md").is_file()
    assert not (claude_home / "agents" / "explorer.md").exists()


def test_install_link_mode(runner, source_tree: Path, claude_home: Path):
    result = run_install(runner, source_tree, claude_home, "claude-core", "--mode", "link")

    assert result.exit_code == 0, result.output
    assert (claude_home / "agents" / "explorer.md").is_symlink()


def test_install_rejects_unknown_mode(runner, source_tree: Path, claude_home: Path):
    result = run_install(runner, source_tree, claude_home, "--mode", "hardlink")

    assert result.exit_code == 1
    assert not (claude_home / "settings.json").exists()


def test_install_missing_source_exits_1(runner, tmp_path: Path, claude_home: Path):
    result = run_install(runner, tmp_path / "nowhere", claude_home)

    assert result.exit_code == 1
    assert "No plugins/" in result.output
    assert list(claude_home.iterdir()) == []


def test_install_invalid_settings_exits_1(runner, source_tree: Path, claude_home: Path):
    settings = write(claude_home / "settings.json", '{"hooks": {')

    result = run_install(runner, source_tree, claude_home)

    assert result.exit_code == 1
    assert settings.read_text() == '{"hooks": {'
    assert not (claude_home / "agents").exists()


def test_install_prints_official_recommendations(runner, source_tree: Path, claude_home: Path):
    result = run_install(runner, source_tree, claude_home, "claude-core")

    assert "stripe@claude-plugins-official" in result.output


def test_install_with_official(runner, source_tree: Path, claude_home: Path, monkeypatch):
    calls = []

    def fake_run(cmd, **kwargs):
        calls.append(cmd)
        return SimpleNamespace(returncode=0, stdout="", stderr="")

    monkeypatch.setattr(cli.shutil, "which", lambda name: "/usr/local/bin/claude")
    monkeypatch.setattr(cli.subprocess, "run", fake_run)

    result = run_install(runner, source_tree, claude_home, "claude-core", "--with-official")

    assert result.exit_code == 0, result.output
    assert calls[0] == ["/usr/local/bin/claude", "plugin", "install", "stripe@claude-plugins-official"]
    assert len(calls) == 4


def test_install_with_official_without_claude_cli(runner, source_tree: Path, claude_home: Path, monkeypatch, tmp_path):
    monkeypatch.setattr(cli.shutil, "which", lambda name: None)
    monkeypatch.setattr(cli, "CLAUDE_LOCAL_PATH", tmp_path / "no-claude")

    result = run_install(runner, source_tree, claude_home, "claude-core", "--with-official")

    assert result.exit_code == 0, result.output
    assert "claude CLI not found" in result.output
    assert (claude_home / "agents" / "explorer.md").is_file()


def test_install_official_failure_is_reported(monkeypatch, capsys):
    monkeypatch.setattr(cli.shutil, "which", lambda name: "/usr/local/bin/claude")
    monkeypatch.setattr(
        cli.subprocess, "run",
        lambda cmd, **kwargs: SimpleNamespace(returncode=1, stdout="", stderr="marketplace unknown"),
    )

    assert cli.install_official_plugins(["stripe"]) is False
    assert "marketplace unknown" in capsys.readouterr().err


def test_uninstall_command(runner, source_tree: Path, claude_home: Path):
    run_install(runner, source_tree, claude_home)

    result = runner.invoke(app, ["uninstall", "--source", str(source_tree), "--claude-dir", str(claude_home)])

    assert result.exit_code == 0, result.output
    assert "Uninstall complete" in result.output
    assert not (claude_home / "agents" / "explorer.md").exists()
    assert read_json(claude_home / "plugins" / "installed_plugins.json")["plugins"] == {}


def test_status_after_install(runner, source_tree: Path, claude_home: Path):
    run_install(runner, source_tree, claude_home, "claude-core")

    result = runner.invoke(app, ["status", "--claude-dir", str(claude_home)])

    assert result.exit_code == 0, result.output
    assert "claude-core" in result.output
    assert "installed" in result.output
    assert "not installed" in result.output


def test_status_with_broken_ledger(runner, claude_home: Path):
    write(claude_home / "plugins" / "installed_plugins.json", "nope")

    result = runner.invoke(app, ["status", "--claude-dir", str(claude_home)])

    assert result.exit_code == 1


def test_list_json(runner, source_tree: Path):
    result = runner.invoke(app, ["list", "--json", "--source", str(source_tree)])

    assert result.exit_code == 0, result.output
    data = json.loads(result.output)
    assert sorted(data) == sorted([
        "claude-core", "claude-frontend", "claude-backend", "claude-mobile",
        "claude-devops", "claude-quality", "claude-devtools",
    ])
    agents = data["claude-core"]["agents"]
    assert agents[0]["name"] == "explorer.md"
    assert agents[0]["description"] == "Explores the codebase"
    assert [h["name"] for h in data["claude-devtools"]["hooks"]] == ["codex-review.sh", "pre-commit.sh"]


def test_list_single_category(runner, source_tree: Path):
    result = runner.invoke(app, ["list", "skills", "--json", "--source", str(source_tree)])

    assert result.exit_code == 0, result.output
    data = json.loads(result.output)
    assert list(data["claude-core"]) == ["skills"]
    assert data["claude-core"]["skills"][0]["description"] == "Reviews diffs"


def test_list_text(runner, source_tree: Path):
    result = runner.invoke(app, ["list", "agents", "--source", str(source_tree)])

    assert result.exit_code == 0, result.output
    assert "explorer.md" in result.output
    assert "v2.1.0" in result.output


def test_list_unknown_category(runner, source_tree: Path):
    result = runner.invoke(app, ["list", "commands", "--source", str(source_tree)])

    assert result.exit_code == 1
    assert "Unknown asset category" in result.output


def test_list_without_source(runner, tmp_path: Path):
    result = runner.invoke(app, ["list", "--source", str(tmp_path)])
    assert result.exit_code == 1


def test_version(runner):
    result = runner.invoke(app, ["version"])

    assert result.exit_code == 0
    assert "Version" in result.output


def test_version_check_reports_update(runner, monkeypatch):
    monkeypatch.setattr(cli, "get_installed_version", lambda: "0.1.0")
    monkeypatch.setattr(cli, "get_latest_version", lambda: "9.9.9")

    result = runner.invoke(app, ["version", "--check"])

    assert result.exit_code == 0
    assert "9.9.9" in result.output
    assert "Update available" in result.output


def test_get_latest_version(monkeypatch):
    request = httpx.Request("GET", "https://pypi.org/pypi/claude-code-plugins/json")
    monkeypatch.setattr(
        cli.httpx, "get",
        lambda url, **kwargs: httpx.Response(200, json={"info": {"version": "1.2.3"}}, request=request),
    )
    assert cli.get_latest_version() == "1.2.3"

    monkeypatch.setattr(cli.httpx, "get", lambda url, **kwargs: httpx.Response(404, request=request))
    assert cli.get_latest_version() is None

    def offline(url, **kwargs):
        raise httpx.ConnectError("offline", request=request)

    monkeypatch.setattr(cli.httpx, "get", offline)
    assert cli.get_latest_version() is None


def test_uninstall_rejects_path_like_name(runner, source_tree: Path, claude_home: Path):
    run_install(runner, source_tree, claude_home, "claude-core")

    result = runner.invoke(app, ["uninstall", "../..", "--source", str(source_tree), "--claude-dir", str(claude_home)])

    assert result.exit_code == 1
    assert "Invalid plugin name" in result.output
    assert (claude_home / "agents" / "explorer.md").is_file()
