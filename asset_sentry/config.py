# === FILE: asset_sentry/config.py ===
"""
Модуль для загрузки и валидации конфигурации сканера AssetSentry.
Используется Pydantic для описания схемы и проверки данных; поверх файла
накладываются переменные окружения (SKIP_URL_PREFIXES и т.д.).
"""
from __future__ import annotations

import errno
import json
import os
from pathlib import Path
from typing import Any, Dict, List, Literal, Mapping, Optional, Union

import yaml
from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    field_validator,
    model_validator,
)

from asset_sentry.utils import parse_csv_env

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)

DEFAULT_SKIP_SCRIPT_DOMAINS: List[str] = [
    "google-analytics.com",
    "googletagmanager.com",
    "googleapis.com",
    "gstatic.com",
    "doubleclick.net",
    "facebook.net",
    "hotjar.com",
    "cloudflare.com",
    "cloudflareinsights.com",
    "jsdelivr.net",
    "unpkg.com",
]

SPAMHAUS_IGNORE_CODES = ["127.255.255.252", "127.255.255.254", "127.255.255.255"]

SAFE_BROWSING_ENDPOINT = "https://safebrowsing.googleapis.com/v4/threatMatches:find"


class OracleConfig(BaseModel):
    """Один DNSBL: зона и коды ответа, означающие отказ в обслуживании запроса."""
    model_config = ConfigDict(extra="forbid", frozen=True)

    name: str = Field(..., min_length=1)
    zone: str = Field(..., min_length=1)
    kind: Literal["domain", "ip"] = "domain"
    ignore_codes: List[str] = Field(default_factory=list)

    @field_validator("zone", mode="before")
    def _strip_dots(cls, v: Any) -> Any:
        if isinstance(v, str):
            return v.strip().strip(".")
        return v


def _default_oracles() -> List[OracleConfig]:
    return [
        OracleConfig(name="Spamhaus DBL", zone="dbl.spamhaus.org", kind="domain",
                     ignore_codes=SPAMHAUS_IGNORE_CODES),
        OracleConfig(name="SURBL", zone="multi.surbl.org", kind="domain",
                     ignore_codes=["127.0.0.1"]),
        OracleConfig(name="URIBL", zone="multi.uribl.com", kind="domain",
                     ignore_codes=["127.0.0.1"]),
        OracleConfig(name="Spamhaus ZEN", zone="zen.spamhaus.org", kind="ip",
                     ignore_codes=SPAMHAUS_IGNORE_CODES),
    ]


class ScannerConfig(BaseModel):
    """Конфигурация для одного запуска сканирования."""
    model_config = ConfigDict(extra="forbid", frozen=True)

    output_dir: Path = Field(Path("."), description="Корень для found_urls.json и т.п.")
    assets_dir: Optional[Path] = Field(None, description="Куда скачиваются скрипты.")
    reports_dir: Optional[Path] = Field(None, description="Куда пишутся отчёты.")

    max_pages: int = Field(100, ge=1, description="Жесткий лимит по числу страниц.")
    navigation_timeout: float = Field(30.0, gt=0, description="Таймаут навигации (секунд).")
    download_timeout: float = Field(30.0, gt=0, description="Таймаут скачивания скрипта.")
    dns_timeout: float = Field(5.0, gt=0, description="Таймаут одного DNS-запроса.")
    dns_concurrency: Optional[int] = Field(None, ge=1, description="Лимит параллельных DNS-запросов.")
    wait_until: Literal["load", "domcontentloaded", "networkidle", "commit"] = "domcontentloaded"
    user_agent: str = Field(DEFAULT_USER_AGENT, min_length=1, description="Заголовок User-Agent.")

    skip_url_prefixes: List[str] = Field(default_factory=list)
    include_url_prefixes: List[str] = Field(default_factory=list)
    skip_script_domains: List[str] = Field(default_factory=lambda: list(DEFAULT_SKIP_SCRIPT_DOMAINS))

    sitemap_max_depth: int = Field(5, ge=0, description="Глубина вложенности sitemap index.")
    sitemap_max_nodes: int = Field(50, ge=1, description="Лимит загружаемых sitemap-файлов.")

    oracles: List[OracleConfig] = Field(default_factory=_default_oracles)
    safe_browsing_key: Optional[str] = None
    safe_browsing_endpoint: str = SAFE_BROWSING_ENDPOINT

    @field_validator(
        "skip_url_prefixes", "include_url_prefixes", "skip_script_domains", mode="before"
    )
    def _split_csv(cls, v: Any) -> Any:
        if isinstance(v, str):
            return parse_csv_env(v)
        return v

    @model_validator(mode="after")
    def _resolve_dirs(self) -> ScannerConfig:
        # frozen-модель: обходим __setattr__
        if self.assets_dir is None:
            object.__setattr__(self, "assets_dir", self.output_dir / "js_assets")
        if self.reports_dir is None:
            object.__setattr__(self, "reports_dir", self.output_dir / "reports")
        return self

    @property
    def domain_oracles(self) -> List[OracleConfig]:
        return [o for o in self.oracles if o.kind == "domain"]

    @property
    def ip_oracles(self) -> List[OracleConfig]:
        return [o for o in self.oracles if o.kind == "ip"]


_DEFAULT_CFG = Path("configs/default.yaml")

#: переменная окружения → поле конфигурации
_ENV_FIELDS: Dict[str, str] = {
    "SKIP_URL_PREFIXES": "skip_url_prefixes",
    "INCLUDE_URL_PREFIXES": "include_url_prefixes",
    "SKIP_SCRIPT_DOMAINS": "skip_script_domains",
    "MAX_PAGES": "max_pages",
    "GOOGLE_SAFE_BROWSING_KEY": "safe_browsing_key",
    "OUTPUT_DIR": "output_dir",
}


def _read_yaml(path: Path) -> dict[str, Any]:
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as exc:
        raise ValueError(f"Неправильный YAML в {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise TypeError(f"Верхний уровень YAML должен быть mapping, получено {type(data).__name__}")
    return data


def _read_json(path: Path) -> dict[str, Any]:
    try:
        data = json.loads(path.read_text(encoding="utf-8")) or {}
    except json.JSONDecodeError as exc:
        raise ValueError(f"Неправильный JSON в {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise TypeError(f"Верхний уровень JSON должен быть mapping, получено {type(data).__name__}")
    return data


def load_config(path: Union[str, Path, None]) -> ScannerConfig:
    """
    Читает YAML или JSON и возвращает проверенный объект ScannerConfig.
    Без пути берётся configs/default.yaml, а если его нет, значения по умолчанию.
    """
    if path is None:
        if not _DEFAULT_CFG.exists():
            return ScannerConfig()
        path_obj = _DEFAULT_CFG
    else:
        path_obj = Path(path).expanduser().resolve()
        if not path_obj.is_file():
            raise FileNotFoundError(errno.ENOENT, os.strerror(errno.ENOENT), str(path_obj))

    suffix = path_obj.suffix.lower()
    if suffix in (".yaml", ".yml"):
        data = _read_yaml(path_obj)
    elif suffix == ".json":
        data = _read_json(path_obj)
    else:
        raise ValueError(f"Неподдерживаемый формат конфига: {suffix}")

    return ScannerConfig(**data)


def apply_env(cfg: ScannerConfig, environ: Optional[Mapping[str, str]] = None) -> ScannerConfig:
    """Накладывает переменные окружения поверх конфига и заново валидирует результат."""
    env = os.environ if environ is None else environ
    overrides: Dict[str, Any] = {}
    for var, field_name in _ENV_FIELDS.items():
        raw = env.get(var)
        if raw is None or raw.strip() == "":
            continue
        if field_name == "max_pages":
            try:
                overrides[field_name] = int(raw)
            except ValueError as exc:
                raise ValueError(f"{var} должен быть целым числом, получено {raw!r}") from exc
        else:
            overrides[field_name] = raw.strip()
    if not overrides:
        return cfg

    data = cfg.model_dump()
    if "output_dir" in overrides:
        # производные каталоги пересчитываются от нового output_dir
        data["assets_dir"] = None
        data["reports_dir"] = None
    data.update(overrides)
    try:
        return ScannerConfig(**data)
    except ValidationError as exc:
        raise ValueError(f"Некорректные переменные окружения: {exc}") from exc
