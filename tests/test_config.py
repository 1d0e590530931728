from coachcoo import config as config_mod
from coachcoo.config import RunnerConfig, load_config

ENV_KEYS = (
    "COACHCOO_LISTEN_TIMEOUT_MS",
    "COACHCOO_AUTO_CONFIRM_MS",
    "COACHCOO_LISTEN_SAFETY_MARGIN_MS",
    "COACHCOO_LISTENER_ENABLED",
    "COACHCOO_STUB_LISTENER",
    "COACHCOO_LOG_FAILURE_THRESHOLD",
    "COACHCOO_KEYWORD_MATCH_THRESHOLD",
)


def _isolate(tmp_path, monkeypatch):
    for key in ENV_KEYS:
        monkeypatch.delenv(key, raising=False)
    monkeypatch.chdir(tmp_path)
    monkeypatch.setattr(config_mod, "CONFIG_HOME", tmp_path / "home")
    monkeypatch.setattr(config_mod, "CONFIG_FILE", tmp_path / "home" / "config.toml")


def test_defaults(tmp_path, monkeypatch):
    _isolate(tmp_path, monkeypatch)
    cfg = load_config()
    assert cfg == RunnerConfig()
    assert cfg.listen_timeout_ms == 15000
    assert cfg.auto_confirm_ms == 8000
    assert cfg.listen_safety_margin_ms == 250
    assert cfg.log_failure_threshold == 3


def test_toml_file(tmp_path, monkeypatch):
    _isolate(tmp_path, monkeypatch)
    (tmp_path / "home").mkdir()
    (tmp_path / "home" / "config.toml").write_text(
        "[runner]\nlisten_timeout_ms = 9000\nlistener_enabled = false\nunknown = 1\n"
    )
    cfg = load_config()
    assert cfg.listen_timeout_ms == 9000
    assert cfg.listener_enabled is False
    assert cfg.auto_confirm_ms == 8000


def test_env_overrides_file(tmp_path, monkeypatch):
    _isolate(tmp_path, monkeypatch)
    (tmp_path / "home").mkdir()
    (tmp_path / "home" / "config.toml").write_text("[runner]\nauto_confirm_ms = 100\n")
    monkeypatch.setenv("COACHCOO_AUTO_CONFIRM_MS", "0")
    monkeypatch.setenv("COACHCOO_STUB_LISTENER", "yes")
    cfg = load_config()
    assert cfg.auto_confirm_ms == 0
    assert cfg.use_stub_listener is True


def test_dotenv_file(tmp_path, monkeypatch):
    _isolate(tmp_path, monkeypatch)
    env_file = tmp_path / "coach.env"
    env_file.write_text("COACHCOO_LISTEN_TIMEOUT_MS=4321\n")
    cfg = load_config(env_file)
    assert cfg.listen_timeout_ms == 4321


def test_invalid_values_are_ignored(tmp_path, monkeypatch):
    _isolate(tmp_path, monkeypatch)
    monkeypatch.setenv("COACHCOO_LISTEN_TIMEOUT_MS", "soon")
    assert load_config().listen_timeout_ms == 15000


def test_broken_toml_falls_back_to_defaults(tmp_path, monkeypatch):
    _isolate(tmp_path, monkeypatch)
    (tmp_path / "home").mkdir()
    (tmp_path / "home" / "config.toml").write_text("[runner\n")
    assert load_config() == RunnerConfig()


def test_set_config_home(tmp_path, monkeypatch):
    monkeypatch.setattr(config_mod, "CONFIG_HOME", config_mod.CONFIG_HOME)
    monkeypatch.setattr(config_mod, "CONFIG_FILE", config_mod.CONFIG_FILE)
    config_mod.set_config_home(tmp_path / "elsewhere")
    assert config_mod.CONFIG_FILE == tmp_path / "elsewhere" / "config.toml"
