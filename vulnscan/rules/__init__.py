"""Rule model for the scanner."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import FrozenSet, Tuple

from vulnscan.severity import Severity

from .detectors import Detector

WILDCARD_LANGUAGE = "*"


class Category(str, Enum):
    """Vulnerability categories, one per documentation page."""

    AUTHENTICATION = "authentication"
    AUTHORIZATION = "authorization"
    INJECTION = "injection"
    XML = "xml"
    REDOS = "redos"
    CSRF = "csrf"
    DESERIALIZATION = "deserialization"
    SENSITIVE_DATA = "sensitive-data"
    MEMORY = "memory"
    ERROR_HANDLING = "error-handling"
    SESSION = "session"
    CONFIGURATION = "configuration"
    FILE_HANDLING = "file-handling"
    INPUT_VALIDATION = "input-validation"

    @property
    def title(self) -> str:
        return CATEGORY_TITLES[self]


CATEGORY_TITLES = {
    Category.AUTHENTICATION: "Authentication",
    Category.AUTHORIZATION: "Authorization",
    Category.INJECTION: "Injection",
    Category.XML: "XML Processing",
    Category.REDOS: "Regular Expression Denial of Service",
    Category.CSRF: "Cross-Site Request Forgery",
    Category.DESERIALIZATION: "Insecure Deserialization",
    Category.SENSITIVE_DATA: "Sensitive Data Exposure",
    Category.MEMORY: "Memory Management",
    Category.ERROR_HANDLING: "Error Handling",
    Category.SESSION: "Session Management",
    Category.CONFIGURATION: "Security Misconfiguration",
    Category.FILE_HANDLING: "File Handling",
    Category.INPUT_VALIDATION: "Input Validation",
}


@dataclass(frozen=True)
class Rule:
    """A categorized detector plus the remediation shown with its findings."""

    id: str
    category: Category
    description: str
    detector: Detector
    severity: Severity
    remediation: str
    languages: FrozenSet[str]
    title: str = ""
    references: Tuple[str, ...] = ()

    def applies_to(self, language: str) -> bool:
        return WILDCARD_LANGUAGE in self.languages or language in self.languages

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "category": self.category.value,
            "title": self.title,
            "description": self.description,
            "severity": self.severity.value,
            "languages": sorted(self.languages),
            "detector": self.detector.kind,
            "remediation": self.remediation,
            "references": list(self.references),
        }


__all__ = ["Category", "CATEGORY_TITLES", "Rule", "WILDCARD_LANGUAGE"]
