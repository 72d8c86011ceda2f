"""Ergebnis einer Summenprüfung."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from decimal import Decimal
from types import MappingProxyType
from typing import Dict, Iterable, Mapping, Tuple

from ..dto import format_amount


@dataclass(frozen=True)
class ValidationResult:
    is_valid: bool
    errors: Tuple[str, ...] = ()
    warnings: Tuple[str, ...] = ()
    corrections: Mapping[str, Decimal] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "errors", tuple(self.errors))
        object.__setattr__(self, "warnings", tuple(self.warnings))
        object.__setattr__(self, "corrections", MappingProxyType(dict(self.corrections)))

    @classmethod
    def build(
        cls,
        errors: Iterable[str],
        warnings: Iterable[str] = (),
        corrections: Mapping[str, Decimal] | None = None,
    ) -> "ValidationResult":
        errors = tuple(errors)
        return cls(
            is_valid=not errors,
            errors=errors,
            warnings=tuple(warnings),
            corrections=corrections or {},
        )

    @classmethod
    def missing_input(cls, message: str) -> "ValidationResult":
        return cls(is_valid=False, errors=(message,))

    def errors_as_string(self, separator: str = "\n") -> str:
        return separator.join(self.errors)

    def corrections_as_strings(self) -> Dict[str, str]:
        return {name: format_amount(value) for name, value in self.corrections.items()}

    def to_dict(self) -> Dict[str, object]:
        return {
            "is_valid": self.is_valid,
            "errors": list(self.errors),
            "warnings": list(self.warnings),
            "corrections": self.corrections_as_strings(),
        }

    def format_diagnostic(self) -> str:
        """Fehler und Korrekturvorschläge als zusammengesetzte Meldung."""

        message = "UBL/Peppol validation failed:\n" + self.errors_as_string("\n")
        if self.corrections:
            message += "\n\nSuggested corrections:\n" + json.dumps(
                self.corrections_as_strings(), indent=2, ensure_ascii=False
            )
        return message
