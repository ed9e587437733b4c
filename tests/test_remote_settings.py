import pytest
from pydantic import ValidationError

from remote_settings import Settings


@pytest.fixture
def config_file(monkeypatch, tmp_path):
    path = tmp_path / "config.yaml"
    monkeypatch.setitem(Settings.model_config, "yaml_file", path)
    for name in ("GIT_PATH", "EXCLUDED_HOSTS", "DEFAULT_SCHEME", "FORK_DEPTH", "FORK_NAMESPACE", "LOG_LEVEL"):
        monkeypatch.delenv(f"GIT_REMOTE_FORKS_{name}", raising=False)
    return path


class TestSettings:
    def test_defaults(self, config_file):
        settings = Settings()
        assert settings.git_path == "git"
        assert settings.excluded_hosts == []
        assert settings.fork_depth == 1
        assert settings.fork_namespace == "refs/forks"

    def test_excluded_hosts_from_environment(self, config_file, monkeypatch):
        monkeypatch.setenv("GIT_REMOTE_FORKS_EXCLUDED_HOSTS", "github.com/a/r, gitlab.example.org,")
        assert Settings().excluded_hosts == ["github.com/a/r", "gitlab.example.org"]

    def test_yaml_file(self, config_file):
        config_file.write_text(
            "git_path: /usr/bin/git\n"
            "fork_depth: 3\n"
            "fork_namespace: refs/pr/\n"
            "excluded_hosts:\n"
            "  - github.com/mirror/project\n"
        )
        settings = Settings()
        assert settings.git_path == "/usr/bin/git"
        assert settings.fork_depth == 3
        assert settings.fork_namespace == "refs/pr"
        assert settings.excluded_hosts == ["github.com/mirror/project"]

    def test_environment_overrides_yaml(self, config_file, monkeypatch):
        config_file.write_text("fork_depth: 3\n")
        monkeypatch.setenv("GIT_REMOTE_FORKS_FORK_DEPTH", "0")
        assert Settings().fork_depth == 0

    def test_log_level_is_normalised(self, config_file, monkeypatch):
        monkeypatch.setenv("GIT_REMOTE_FORKS_LOG_LEVEL", "debug")
        assert Settings().log_level == "DEBUG"

    def test_unknown_log_level(self, config_file, monkeypatch):
        monkeypatch.setenv("GIT_REMOTE_FORKS_LOG_LEVEL", "chatty")
        with pytest.raises(ValidationError):
            Settings()
