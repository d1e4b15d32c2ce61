# File: asset_sentry/utils.py
"""asset_sentry.utils: Утилитарные функции для нормализации URL, извлечения доменов и фильтрации путей."""

from __future__ import annotations

import re
import time
import uuid
from typing import Collection, Iterable, List, Optional, Sequence, TypeVar
from urllib.parse import unquote, urlsplit

from asset_sentry.logger import logger

__all__: Sequence[str] = (
    "URL_PATTERN",
    "canonicalize_url",
    "extract_hostname",
    "is_checkable_domain",
    "find_urls",
    "remove_duplicates",
    "path_excluded",
    "host_matches",
    "unique_script_name",
    "parse_csv_env",
)

_T = TypeVar("_T")

#: Эвристика: абсолютные URL в произвольном тексте (разметка, inline-скрипты, бандлы).
#: Ложные срабатывания и пропуски допустимы, строгим парсером это не заменять.
URL_PATTERN = re.compile(r"https?://[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}(?:[/?#][^\s\"'<>]*)?")

_SAFE_NAME_RE = re.compile(r"[^A-Za-z0-9._-]")
# mailto:, javascript:, data: ... (но не host:8080)
_FOREIGN_SCHEME_RE = re.compile(r"^[a-zA-Z][a-zA-Z0-9+.-]*:(?!\d)")


def canonicalize_url(raw: str) -> Optional[str]:
    """Приводит строку к абсолютному http(s) URL или возвращает None.

    * ``//host/path`` → ``https://host/path``;
    * ``host/path`` (без схемы) → ``https://host/path``;
    * ``host`` (без схемы и слеша) → ``https://host``.
    """
    if not isinstance(raw, str):
        return None
    value = raw.strip()
    if not value:
        return None

    if value.startswith("//"):
        value = "https:" + value
    elif "://" not in value:
        if _FOREIGN_SCHEME_RE.match(value):
            return None
        value = "https://" + value

    try:
        parsed = urlsplit(value)
        # доступ к .port валидирует порт и бросает ValueError на мусоре
        parsed.port
    except ValueError:
        logger.debug("Invalid URL dropped: %r", raw)
        return None

    if parsed.scheme.lower() not in ("http", "https") or not parsed.hostname:
        return None
    return parsed.geturl()


def extract_hostname(raw: str) -> Optional[str]:
    """Возвращает hostname в нижнем регистре или None, если строку не разобрать."""
    if not isinstance(raw, str):
        return None
    value = raw.strip()
    if not value:
        return None
    if "/" not in value and ":" not in value:
        if any(ch.isspace() for ch in value):
            return None
        return value.lower()

    url = canonicalize_url(value)
    if url is None:
        return None
    return urlsplit(url).hostname


def is_checkable_domain(host: str) -> bool:
    """localhost, 127.0.0.1 и имена без точки в проверки репутации не идут."""
    return "localhost" not in host and "127.0.0.1" not in host and "." in host


def find_urls(text: str) -> List[str]:
    """Все подстроки текста, похожие на абсолютный URL (см. :data:`URL_PATTERN`)."""
    return URL_PATTERN.findall(text)


def remove_duplicates(items: Iterable[_T]) -> List[_T]:
    """Удаляет дубликаты, сохраняя порядок первого появления."""
    items = list(items)
    unique = list(dict.fromkeys(items))
    removed = len(items) - len(unique)
    if removed:
        logger.debug("Removed %d duplicate entries", removed)
    return unique


def path_excluded(
    url: str, skip_prefixes: Collection[str], include_prefixes: Collection[str] = ()
) -> bool:
    """True, если путь начинается с одного из skip-префиксов и ни с одного include-префикса."""
    try:
        path = urlsplit(url).path or "/"
    except ValueError:
        return False
    if not any(path.startswith(p) for p in skip_prefixes):
        return False
    return not any(path.startswith(p) for p in include_prefixes)


def host_matches(host: str, domains: Collection[str]) -> bool:
    """Точное совпадение хоста или совпадение по поддомену (``cdn.example.com`` → ``example.com``)."""
    host = host.lower().rstrip(".")
    for domain in domains:
        domain = domain.lower().strip().lstrip(".")
        if domain and (host == domain or host.endswith("." + domain)):
            return True
    return False


def unique_script_name(url: str) -> str:
    """Имя файла вида ``<epoch-ms>-<random>-<basename>``, не конфликтующее между запусками."""
    try:
        path = urlsplit(url).path
    except ValueError:
        path = ""
    basename = unquote(path.rsplit("/", 1)[-1]) if path else ""
    basename = _SAFE_NAME_RE.sub("_", basename).strip("._") or "script.js"
    return f"{int(time.time() * 1000)}-{uuid.uuid4().hex[:8]}-{basename[:100]}"


def parse_csv_env(value: Optional[str]) -> List[str]:
    """``"a, b,,c"`` → ``["a", "b", "c"]``."""
    if not value:
        return []
    return [part.strip() for part in value.split(",") if part.strip()]
