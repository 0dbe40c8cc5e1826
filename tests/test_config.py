import pytest

from clonewatch.analyzer.similarity import DEFAULT_WEIGHTS
from clonewatch.config import (
    DEFAULT_BRAND_KEYWORDS,
    Config,
    _load_heuristics,
    load_config,
    validate_config,
)

ENV_KEYS = (
    "LEGITIMATE_SITE_URL",
    "CHECK_INTERVAL_MS",
    "BRAND_KEYWORDS",
    "HIGH_THRESHOLD",
    "MEDIUM_THRESHOLD",
    "VISUAL_PIXEL_TOLERANCE",
    "MONITOR_AUTOSTART",
    "SCREENSHOTS_DIR",
)


@pytest.fixture
def env(monkeypatch, tmp_path):
    for key in ENV_KEYS:
        monkeypatch.delenv(key, raising=False)
    monkeypatch.setenv("DATA_DIR", str(tmp_path / "data"))
    monkeypatch.setenv("CONFIG_DIR", str(tmp_path / "config"))
    (tmp_path / "config").mkdir()
    return monkeypatch


def test_defaults(env, tmp_path):
    config = load_config()

    assert config.legitimate_site_url == "https://combankdigital.com"
    assert config.check_interval_seconds == 3600
    assert config.render_timeout_ms == 30000
    assert config.brand_keywords == DEFAULT_BRAND_KEYWORDS
    assert config.similarity_weights == DEFAULT_WEIGHTS
    assert config.monitor_autostart is False
    assert config.screenshots_dir == tmp_path / "data" / "screenshots"
    assert config.screenshots_dir.is_dir()
    assert validate_config(config) == []


def test_environment_overrides(env):
    env.setenv("BRAND_KEYWORDS", "Acme, secure ,,wallet")
    env.setenv("HIGH_THRESHOLD", "80")
    env.setenv("MEDIUM_THRESHOLD", "40")
    env.setenv("CHECK_INTERVAL_MS", "60000")
    env.setenv("MONITOR_AUTOSTART", "TRUE")

    config = load_config()
    settings = config.similarity_settings()

    assert config.brand_keywords == ["acme", "secure", "wallet"]
    assert settings.high_threshold == 80
    assert settings.medium_threshold == 40
    assert config.check_interval_seconds == 60
    assert config.monitor_autostart is True


def test_heuristics_file_overrides_defaults(env, tmp_path):
    (tmp_path / "config" / "heuristics.yaml").write_text(
        """
similarity:
  weights: {text: 0.4, visual: 0.4, dom: 0.1, keyword: 0.1}
  thresholds: {high: 70}
  visual_mismatch_score: 25
keywords:
  brand: [Acme, Login]
"""
    )

    config = load_config()

    assert config.similarity_weights == {"text": 0.4, "visual": 0.4, "dom": 0.1, "keyword": 0.1}
    assert config.high_threshold == 70
    assert config.medium_threshold == 50
    assert config.visual_mismatch_score == 25
    assert config.brand_keywords == ["acme", "login"]


def test_environment_beats_heuristics_file(env, tmp_path):
    (tmp_path / "config" / "heuristics.yaml").write_text("keywords:\n  brand: [acme]\n")
    env.setenv("BRAND_KEYWORDS", "wallet")

    assert load_config().brand_keywords == ["wallet"]


def test_invalid_heuristics_entries_are_ignored(tmp_path):
    (tmp_path / "heuristics.yaml").write_text(
        """
similarity:
  weights: {text: 0.5, visual: lots}
  thresholds: {high: "very"}
"""
    )
    assert _load_heuristics(tmp_path) == {}

    (tmp_path / "heuristics.yaml").write_text("[not, a, mapping]")
    assert _load_heuristics(tmp_path) == {}

    (tmp_path / "heuristics.yaml").write_text("similarity: {weights: [unterminated")
    assert _load_heuristics(tmp_path) == {}


def test_validate_reports_bad_values(tmp_path):
    config = Config(
        legitimate_site_url="combankdigital.com",
        check_interval_ms=0,
        max_concurrent_checks=0,
        similarity_weights={"text": 0.9, "visual": 0.9, "dom": 0.0, "keyword": 0.0},
        data_dir=tmp_path,
        screenshots_dir=tmp_path / "shots",
    )

    errors = validate_config(config)

    assert any("LEGITIMATE_SITE_URL" in e for e in errors)
    assert any("CHECK_INTERVAL_MS" in e for e in errors)
    assert any("MAX_CONCURRENT_CHECKS" in e for e in errors)
    assert any("similarity" in e for e in errors)
