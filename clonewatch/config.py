"""Configuration management for CloneWatch."""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

import yaml
from dotenv import load_dotenv

from .analyzer.similarity import DEFAULT_WEIGHTS, SimilaritySettings

logger = logging.getLogger(__name__)


DEFAULT_LEGITIMATE_SITE = "https://combankdigital.com"

# Brand vocabulary counted in visible text. Override via config/heuristics.yaml
# (keywords.brand) or BRAND_KEYWORDS without touching code.
DEFAULT_BRAND_KEYWORDS: list[str] = [
    "combank",
    "commercial",
    "bank",
    "digital",
    "login",
    "account",
]


@dataclass
class Config:
    """Application configuration loaded from environment."""

    legitimate_site_url: str = DEFAULT_LEGITIMATE_SITE

    # Scheduling
    check_interval_ms: int = 60 * 60 * 1000
    render_timeout_ms: int = 30000
    max_concurrent_checks: int = 3
    monitor_autostart: bool = False
    monitor_run_on_start: bool = False
    headless: bool = True

    # Scoring
    similarity_weights: dict[str, float] = field(default_factory=lambda: dict(DEFAULT_WEIGHTS))
    high_threshold: int = 75
    medium_threshold: int = 50
    visual_pixel_tolerance: float = 0.1
    visual_mismatch_score: int = 50
    brand_keywords: list[str] = field(default_factory=lambda: list(DEFAULT_BRAND_KEYWORDS))

    # Health endpoint
    health_host: str = "0.0.0.0"
    health_port: int = 8081
    health_enabled: bool = True

    # Paths
    data_dir: Path = field(default_factory=lambda: Path("./data"))
    screenshots_dir: Path = field(default_factory=lambda: Path("./data/screenshots"))
    config_dir: Path = field(default_factory=lambda: Path("./config"))

    def __post_init__(self):
        """Ensure paths exist."""
        self.data_dir = Path(self.data_dir)
        self.screenshots_dir = Path(self.screenshots_dir)
        self.config_dir = Path(self.config_dir)

        self.data_dir.mkdir(parents=True, exist_ok=True)
        self.screenshots_dir.mkdir(parents=True, exist_ok=True)

    @property
    def check_interval_seconds(self) -> float:
        return self.check_interval_ms / 1000.0

    @property
    def db_path(self) -> Path:
        return self.data_dir / "clonewatch.db"

    def similarity_settings(self) -> SimilaritySettings:
        return SimilaritySettings(
            weights=dict(self.similarity_weights),
            high_threshold=self.high_threshold,
            medium_threshold=self.medium_threshold,
            visual_pixel_tolerance=self.visual_pixel_tolerance,
            visual_mismatch_score=self.visual_mismatch_score,
        )


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() == "true"


def _load_heuristics(config_dir: Path) -> dict:
    """Load scoring overrides from config/heuristics.yaml (optional)."""
    path = Path(config_dir or ".") / "heuristics.yaml"
    if not path.exists():
        return {}

    try:
        data = yaml.safe_load(path.read_text()) or {}
    except Exception as exc:
        logger.warning("Failed to parse heuristics.yaml: %s", exc)
        return {}
    if not isinstance(data, dict):
        logger.warning("heuristics.yaml must contain a mapping; ignoring it")
        return {}

    def _coerce_weights(raw):
        if not isinstance(raw, dict):
            return None
        weights: dict[str, float] = {}
        for key in DEFAULT_WEIGHTS:
            try:
                weights[key] = float(raw[key])
            except (KeyError, TypeError, ValueError):
                logger.warning("heuristics.yaml: similarity.weights.%s missing or invalid", key)
                return None
        return weights

    def _coerce_int(raw, name):
        if raw is None:
            return None
        try:
            return int(raw)
        except (TypeError, ValueError):
            logger.warning("heuristics.yaml: %s must be an integer", name)
            return None

    def _coerce_float(raw, name):
        if raw is None:
            return None
        try:
            return float(raw)
        except (TypeError, ValueError):
            logger.warning("heuristics.yaml: %s must be a number", name)
            return None

    def _coerce_keywords(raw):
        items = [str(k).strip().lower() for k in raw or [] if str(k or "").strip()]
        return items or None

    similarity_cfg = data.get("similarity") or {}
    thresholds_cfg = similarity_cfg.get("thresholds") or {}
    keywords_cfg = data.get("keywords") or {}

    overrides = {
        "similarity_weights": _coerce_weights(similarity_cfg.get("weights")),
        "high_threshold": _coerce_int(thresholds_cfg.get("high"), "similarity.thresholds.high"),
        "medium_threshold": _coerce_int(thresholds_cfg.get("medium"), "similarity.thresholds.medium"),
        "visual_pixel_tolerance": _coerce_float(
            similarity_cfg.get("visual_pixel_tolerance"), "similarity.visual_pixel_tolerance"
        ),
        "visual_mismatch_score": _coerce_int(
            similarity_cfg.get("visual_mismatch_score"), "similarity.visual_mismatch_score"
        ),
        "brand_keywords": _coerce_keywords(keywords_cfg.get("brand")),
    }
    return {key: value for key, value in overrides.items() if value is not None}


def load_config() -> Config:
    """Load configuration from environment variables and heuristics.yaml.

    Environment variables win over heuristics.yaml, which wins over defaults.
    """
    load_dotenv()

    config_dir = Path(os.getenv("CONFIG_DIR", "./config"))
    kwargs: dict[str, object] = dict(_load_heuristics(config_dir))

    keywords_str = os.getenv("BRAND_KEYWORDS", "")
    if keywords_str.strip():
        kwargs["brand_keywords"] = [k.strip().lower() for k in keywords_str.split(",") if k.strip()]

    for env_name, key, cast in (
        ("HIGH_THRESHOLD", "high_threshold", int),
        ("MEDIUM_THRESHOLD", "medium_threshold", int),
        ("VISUAL_PIXEL_TOLERANCE", "visual_pixel_tolerance", float),
    ):
        raw = os.getenv(env_name, "").strip()
        if raw:
            kwargs[key] = cast(raw)

    data_dir = Path(os.getenv("DATA_DIR", "./data"))
    return Config(
        legitimate_site_url=os.getenv("LEGITIMATE_SITE_URL", DEFAULT_LEGITIMATE_SITE),
        check_interval_ms=int(os.getenv("CHECK_INTERVAL_MS", str(60 * 60 * 1000))),
        render_timeout_ms=int(os.getenv("RENDER_TIMEOUT_MS", "30000")),
        max_concurrent_checks=int(os.getenv("MAX_CONCURRENT_CHECKS", "3")),
        monitor_autostart=_env_bool("MONITOR_AUTOSTART", "false"),
        monitor_run_on_start=_env_bool("MONITOR_RUN_ON_START", "false"),
        headless=_env_bool("HEADLESS", "true"),
        health_host=os.getenv("HEALTH_HOST", "0.0.0.0"),
        health_port=int(os.getenv("HEALTH_PORT", "8081")),
        health_enabled=_env_bool("HEALTH_ENABLED", "true"),
        data_dir=data_dir,
        screenshots_dir=Path(os.getenv("SCREENSHOTS_DIR", str(data_dir / "screenshots"))),
        config_dir=config_dir,
        **kwargs,
    )


def validate_config(config: Config) -> list[str]:
    """Validate configuration and return list of error messages."""
    errors: list[str] = []
    url = (config.legitimate_site_url or "").strip()
    if not url.startswith(("http://", "https://")):
        errors.append("LEGITIMATE_SITE_URL must be an http(s) URL")
    if config.check_interval_ms <= 0:
        errors.append("CHECK_INTERVAL_MS must be positive")
    if config.render_timeout_ms <= 0:
        errors.append("RENDER_TIMEOUT_MS must be positive")
    if config.max_concurrent_checks < 1:
        errors.append("MAX_CONCURRENT_CHECKS must be at least 1")
    if not config.brand_keywords:
        logger.info("No brand keywords configured; keyword similarity will always be 0")

    try:
        config.similarity_settings()
    except ValueError as exc:
        errors.append(f"Invalid similarity settings: {exc}")

    return errors
