"""Tests for per-app settings storage."""

from __future__ import annotations

from apthelpers.app_settings import AppSettings


class TestAppSettings:
    def test_missing_file(self, tmp_path):
        settings = AppSettings("my_app", tmp_path)
        assert settings.get("phpversion") is None
        assert settings.get("phpversion", "8.2") == "8.2"

    def test_set_get_delete(self, tmp_path):
        settings = AppSettings("my_app", tmp_path)
        settings.set("phpversion", "7.4")
        settings.set("apt_dependencies", "foo, bar (>= 1.0)")

        reloaded = AppSettings("my_app", tmp_path)
        assert reloaded.get("phpversion") == "7.4"
        assert reloaded.get("apt_dependencies") == "foo, bar (>= 1.0)"

        reloaded.delete("phpversion")
        assert AppSettings("my_app", tmp_path).get("phpversion") is None
        assert settings.path == tmp_path / "my_app" / "settings.yml"

    def test_preserves_comments(self, tmp_path):
        path = tmp_path / "my_app" / "settings.yml"
        path.parent.mkdir()
        path.write_text("# managed by hand\ndomain: example.org\n")
        AppSettings("my_app", tmp_path).set("phpversion", "8.2")
        content = path.read_text()
        assert "# managed by hand" in content
        assert "domain: example.org" in content
