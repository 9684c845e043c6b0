"""Configuration management for zotero-md-export.

Handles loading and saving configuration from ~/.zotero-md-export/config.toml
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

try:
    import tomllib
except ImportError:
    import tomli as tomllib  # type: ignore

import tomli_w

from zotero_md_export.api import DEFAULT_BASE_URL
from zotero_md_export.markdown import DEFAULT_PROPERTY_ORDER, normalize_property_order


CONFIG_DIR = Path.home() / ".zotero-md-export"
CONFIG_FILE = CONFIG_DIR / "config.toml"

DEFAULT_TIMEOUT = 30.0


def _string(value: Any, default: str = "") -> str:
    """Trimmed string value, or ``default`` for anything that is not a string."""
    return value.strip() if isinstance(value, str) else default


def _sanitize_overrides(value: Any) -> Dict[str, str]:
    if not isinstance(value, dict):
        return {}
    overrides = {}
    for color_name, heading in value.items():
        heading = _string(heading)
        if isinstance(color_name, str) and color_name.strip() and heading:
            overrides[color_name.strip()] = heading
    return overrides


def _timeout(value: Any) -> float:
    # bool is an int subclass but never a meaningful timeout
    if isinstance(value, bool) or not isinstance(value, (int, float)) or value <= 0:
        return DEFAULT_TIMEOUT
    return float(value)


@dataclass
class TemplateSettings:
    """Frontmatter property order and per-color heading text."""

    property_order: List[str] = field(default_factory=lambda: list(DEFAULT_PROPERTY_ORDER))
    color_heading_overrides: Dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Any) -> "TemplateSettings":
        if not isinstance(data, dict):
            return cls()
        return cls(
            property_order=normalize_property_order(data.get("property_order")),
            color_heading_overrides=_sanitize_overrides(data.get("color_heading_overrides")),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "property_order": normalize_property_order(self.property_order),
            "color_heading_overrides": _sanitize_overrides(self.color_heading_overrides),
        }


@dataclass
class ExportSettings:
    """Complete export configuration."""

    markdown_dir: str = ""
    attachment_base_dir: str = ""
    zotero_api_key: str = ""
    zotero_base_url: str = DEFAULT_BASE_URL
    proxy_url: str = ""
    sqlite_path: str = ""
    bbt_sqlite_path: str = ""
    timeout: float = DEFAULT_TIMEOUT
    template: TemplateSettings = field(default_factory=TemplateSettings)

    @classmethod
    def load(cls, config_path: Optional[Path] = None) -> "ExportSettings":
        """Load configuration from TOML file.

        Every value is treated as untrusted: wrong types fall back to the
        default and template settings are normalized.

        Args:
            config_path: Path to config file. Defaults to ~/.zotero-md-export/config.toml

        Returns:
            ExportSettings with values from file, or defaults if file doesn't exist
        """
        path = config_path or CONFIG_FILE
        if not path.exists():
            return cls()

        with open(path, "rb") as f:
            data = tomllib.load(f)

        paths = data.get("paths") if isinstance(data.get("paths"), dict) else {}
        zotero = data.get("zotero") if isinstance(data.get("zotero"), dict) else {}

        return cls(
            markdown_dir=_string(paths.get("markdown_dir")),
            attachment_base_dir=_string(paths.get("attachment_base_dir")),
            zotero_api_key=_string(zotero.get("api_key")),
            zotero_base_url=_string(zotero.get("base_url")) or DEFAULT_BASE_URL,
            proxy_url=_string(zotero.get("proxy_url")),
            sqlite_path=_string(zotero.get("sqlite_path")),
            bbt_sqlite_path=_string(zotero.get("bbt_sqlite_path")),
            timeout=_timeout(zotero.get("timeout")),
            template=TemplateSettings.from_dict(data.get("template")),
        )

    def save(self, config_path: Optional[Path] = None) -> None:
        """Save configuration to TOML file.

        Args:
            config_path: Path to config file. Defaults to ~/.zotero-md-export/config.toml
        """
        path = config_path or CONFIG_FILE
        path.parent.mkdir(parents=True, exist_ok=True)

        data = {
            "paths": {
                "markdown_dir": self.markdown_dir,
                "attachment_base_dir": self.attachment_base_dir,
            },
            "zotero": {
                "api_key": self.zotero_api_key,
                "base_url": self.zotero_base_url,
                "proxy_url": self.proxy_url,
                "sqlite_path": self.sqlite_path,
                "bbt_sqlite_path": self.bbt_sqlite_path,
                "timeout": self.timeout,
            },
            "template": self.template.to_dict(),
        }

        with open(path, "wb") as f:
            tomli_w.dump(data, f)

    def is_configured(self) -> bool:
        """Whether both output directories and the API base URL are set."""
        return all(value.strip() for value in (
            self.markdown_dir, self.attachment_base_dir, self.zotero_base_url,
        ))


def create_default_config(config_path: Optional[Path] = None) -> ExportSettings:
    """Create and save a default configuration file.

    Returns:
        The created ExportSettings
    """
    settings = ExportSettings()
    # Example layout for an Obsidian-style vault
    settings.markdown_dir = str(Path.home() / "Notes" / "sources")
    settings.attachment_base_dir = str(Path.home() / "Notes")
    settings.save(config_path)
    return settings
