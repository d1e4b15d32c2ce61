# File: asset_sentry/oracles/base.py
"""Verdict model shared by all reputation oracles."""

from __future__ import annotations

import abc
import enum
from dataclasses import dataclass, field
from typing import Any, Collection, Dict, List, Literal, Optional, Sequence

__all__ = ("Classification", "OracleVerdict", "Oracle", "classify_codes")


class Classification(str, enum.Enum):
    CLEAN = "clean"
    LISTED = "listed"
    BLOCKED = "blocked"
    ERROR = "error"


@dataclass(frozen=True, slots=True)
class OracleVerdict:
    """Result of checking one target against one oracle."""

    oracle: str
    target: str
    classification: Classification
    codes: List[str] = field(default_factory=list)
    ignored_codes: List[str] = field(default_factory=list)
    listed_codes: List[str] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def listed(self) -> bool:
        return self.classification is Classification.LISTED

    def to_dict(self) -> Dict[str, Any]:
        return {
            "oracle": self.oracle,
            "target": self.target,
            "status": self.classification.value,
            "codes": list(self.codes),
            "ignoredCodes": list(self.ignored_codes),
            "listedCodes": list(self.listed_codes),
            "error": self.error,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> OracleVerdict:
        return cls(
            oracle=str(data.get("oracle", "")),
            target=str(data.get("target", "")),
            classification=Classification(data.get("status", "error")),
            codes=list(data.get("codes") or []),
            ignored_codes=list(data.get("ignoredCodes") or []),
            listed_codes=list(data.get("listedCodes") or []),
            error=data.get("error"),
        )


def classify_codes(
    oracle: str, target: str, codes: Sequence[str], ignore_codes: Collection[str]
) -> OracleVerdict:
    """Per-code classification: any code outside ``ignore_codes`` means listed.

    Ignored codes alone (query refused or rate-limited) give ``blocked``, never
    ``listed``.
    """
    ignored = [c for c in codes if c in ignore_codes]
    real = [c for c in codes if c not in ignore_codes]
    if real:
        status = Classification.LISTED
    elif ignored:
        status = Classification.BLOCKED
    else:
        status = Classification.CLEAN
    return OracleVerdict(
        oracle=oracle,
        target=target,
        classification=status,
        codes=list(codes),
        ignored_codes=ignored,
        listed_codes=real,
    )


class Oracle(abc.ABC):
    """A reputation check keyed by domain or by IPv4 address.

    :meth:`check` must not raise for lookup failures; those come back as an
    ``error`` verdict so one oracle never hides another's result.
    """

    name: str
    kind: Literal["domain", "ip"]

    @abc.abstractmethod
    async def check(self, target: str) -> OracleVerdict:
        raise NotImplementedError
