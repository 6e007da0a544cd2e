"""Tests for the template rendering engine."""
from __future__ import annotations

from pathlib import Path

import pytest
from jinja2 import UndefinedError

from hostboot.templates import TemplateEngine

UNIT_CONTEXT = {
    "description": "Run mise install once after reboot",
    "user": "deploy",
    "home": "/home/deploy",
    "shell": "/bin/zsh",
    "command": "/home/linuxbrew/.linuxbrew/bin/mise install",
    "systemctl": "systemctl",
    "unit_name": "mise-install-once.service",
    "unit_path": "/etc/systemd/system/mise-install-once.service",
}


def test_render_to_string_uses_builtin_templates() -> None:
    """Built-in templates render with strict variables."""
    engine = TemplateEngine.with_overrides(None)

    output = engine.render_to_string("systemd/oneshot.service.j2", UNIT_CONTEXT)

    assert "Type=oneshot" in output
    assert "User=deploy" in output
    assert 'ExecStart=/bin/zsh -i -c "/home/linuxbrew/.linuxbrew/bin/mise install"' in output
    assert "systemctl disable mise-install-once.service" in output
    assert output.endswith("\n")


def test_missing_variable_is_an_error() -> None:
    """Undefined variables are not silently rendered as empty strings."""
    engine = TemplateEngine.with_overrides(None)
    context = dict(UNIT_CONTEXT)
    del context["user"]

    with pytest.raises(UndefinedError):
        engine.render_to_string("systemd/oneshot.service.j2", context)


def test_render_to_path_writes_with_mode(tmp_path: Path) -> None:
    """Rendering to a file writes content and respects the requested mode."""
    engine = TemplateEngine.with_overrides(None)
    destination = tmp_path / "unit.service"

    changed = engine.render_to_path(
        "systemd/oneshot.service.j2", destination, UNIT_CONTEXT, mode=0o600
    )

    assert changed is True
    assert destination.exists()
    assert oct(destination.stat().st_mode & 0o777) == "0o600"

    # Second render with same content should be a no-op.
    changed_again = engine.render_to_path(
        "systemd/oneshot.service.j2", destination, UNIT_CONTEXT, mode=0o600
    )
    assert changed_again is False
    assert [p.name for p in tmp_path.iterdir()] == ["unit.service"]


def test_override_path_takes_precedence(tmp_path: Path) -> None:
    """Override templates shadow the built-in ones."""
    override_dir = tmp_path / "templates"
    override_template = override_dir / "systemd" / "oneshot.service.j2"
    override_template.parent.mkdir(parents=True)
    override_template.write_text("override {{ user }}", encoding="utf-8")

    engine = TemplateEngine.with_overrides(override_dir)

    assert engine.render_to_string("systemd/oneshot.service.j2", UNIT_CONTEXT) == "override deploy"


def test_missing_override_dir_falls_back_to_builtin(tmp_path: Path) -> None:
    """A configured but absent override directory is ignored."""
    engine = TemplateEngine.with_overrides(tmp_path / "nowhere")

    assert "Type=oneshot" in engine.render_to_string("systemd/oneshot.service.j2", UNIT_CONTEXT)
