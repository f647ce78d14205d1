from __future__ import annotations

import json
import logging
import re
from collections.abc import Iterable, Sequence
from pathlib import Path

from applystorm.config import get_settings

logger = logging.getLogger(__name__)

# Ordered: single-label consumers take the first label whose rules fire.
DEFAULT_TAXONOMY: list[tuple[str, list[str]]] = [
    ("barista", [r"barista"]),
    ("waiter/waitress", [r"waiter|waitress|server"]),
    ("kitchen helper", [r"kitchen helper|commis|steward"]),
    ("cook", [r"\bcook\b"]),
    ("chef", [r"chef|commis"]),
    ("baker", [r"baker|pastry"]),
    ("receptionist", [r"receptionist"]),
    ("sales executive", [r"sales(\s|-)?executive|sales rep|salesperson|sales associate"]),
    ("cashier", [r"cashier"]),
    ("storekeeper", [r"storekeeper|store keeper|warehouse assistant"]),
    ("merchandiser", [r"merchandiser"]),
    ("telesales/call center agent", [r"telesales|call center|callcentre|contact center"]),
    ("driver (light)", [r"light\s*driver|delivery driver|motorbike|car driver"]),
    ("driver (heavy)", [r"heavy\s*driver|trailer|truck driver|crane"]),
    ("electrician", [r"electrician"]),
    ("plumber", [r"plumber"]),
    ("ac technician", [r"ac tech|hvac|air ?conditioning"]),
    ("carpenter", [r"carpenter"]),
    ("mason", [r"mason"]),
    ("painter", [r"painter"]),
    ("welder", [r"welder"]),
    ("mechanic", [r"mechanic|technician auto"]),
    ("auto electrician", [r"auto\s*electric"]),
    ("cctv technician", [r"cctv"]),
    ("security guard", [r"security guard|watchman"]),
    ("admin assistant", [r"admin(istrative)? assistant|office assistant|secretary"]),
    ("data entry clerk", [r"data entry"]),
    ("hr assistant", [r"hr assistant|human resources"]),
    ("accountant", [r"accountant"]),
    ("it technician", [r"\bit\b.*(support|technician)|desktop support"]),
    ("web developer", [r"web developer|frontend|front-end|javascript developer"]),
    ("software engineer", [r"software engineer|backend developer|nodejs|java developer"]),
    ("qa/qc engineer", [r"qa|qc|quality assurance|quality control"]),
    ("civil engineer", [r"civil engineer"]),
    ("mechanical engineer", [r"mechanical engineer"]),
    ("electrical engineer", [r"electrical engineer"]),
    ("site engineer", [r"site engineer"]),
    ("draftsman", [r"draftsman|draughtsman|autocad"]),
    ("estimator", [r"estimator|quantity surveyor|qs"]),
    ("foreman", [r"foreman|supervisor"]),
    ("nurse", [r"nurse"]),
    ("pharmacist", [r"pharmacist"]),
    ("teacher", [r"teacher|tutor"]),
    ("hairdresser", [r"hairdresser|barber|stylist"]),
    ("beautician", [r"beautician"]),
    ("butcher", [r"butcher"]),
    ("printer (offset/gto)", [r"gto|offset printer"]),
]

ACRONYMS = {"IT", "CCTV", "ELV", "GTO", "HR", "UAE", "KSA", "GCC", "QA", "QC"}
_TOKEN_RE = re.compile(r"([A-Za-z0-9']+)")


class RoleTaxonomy:
    """Ordered catalog of role labels and the patterns that detect them."""

    def __init__(self, rules: Iterable[tuple[str, Sequence[str | re.Pattern[str]]]]):
        compiled: dict[str, tuple[re.Pattern[str], ...]] = {}
        for label, patterns in rules:
            key = label.strip().lower()
            if not key:
                raise ValueError("taxonomy labels must be non-empty")
            if key in compiled:
                raise ValueError(f"duplicate taxonomy label '{key}'")
            compiled[key] = tuple(_compile(pattern) for pattern in patterns)
        self._rules = compiled

    @classmethod
    def default(cls) -> "RoleTaxonomy":
        return cls(DEFAULT_TAXONOMY)

    @classmethod
    def from_mapping(cls, mapping: dict[str, Sequence[str]]) -> "RoleTaxonomy":
        return cls(mapping.items())

    @classmethod
    def from_json_file(cls, path: Path) -> "RoleTaxonomy":
        """Load `{"label": ["pattern", ...], ...}`; key order is taxonomy order."""
        payload = json.loads(Path(path).read_text(encoding="utf-8"))
        if not isinstance(payload, dict):
            raise ValueError(f"taxonomy file {path} must contain a JSON object")
        rules: list[tuple[str, list[str]]] = []
        for label, patterns in payload.items():
            if isinstance(patterns, str):
                patterns = [patterns]
            rules.append((label, list(patterns)))
        return cls(rules)

    def labels(self) -> tuple[str, ...]:
        return tuple(self._rules)

    def rules_for(self, label: str) -> tuple[re.Pattern[str], ...]:
        return self._rules.get(label.strip().lower(), ())

    def label_matches(self, label: str, text: str) -> bool:
        return any(pattern.search(text) for pattern in self.rules_for(label))

    def matching_labels(self, text: str) -> list[str]:
        return [label for label, patterns in self._rules.items() if any(p.search(text) for p in patterns)]

    def first_match(self, text: str) -> str | None:
        for label, patterns in self._rules.items():
            if any(pattern.search(text) for pattern in patterns):
                return label
        return None

    def __contains__(self, label: object) -> bool:
        return isinstance(label, str) and label.strip().lower() in self._rules

    def __len__(self) -> int:
        return len(self._rules)


def _compile(pattern: str | re.Pattern[str]) -> re.Pattern[str]:
    if isinstance(pattern, re.Pattern):
        return re.compile(pattern.pattern, pattern.flags | re.IGNORECASE)
    return re.compile(pattern, re.IGNORECASE)


def display_label(label: str | None) -> str:
    """Title-case a label for people, keeping trade acronyms upper-case."""
    if not label:
        return ""
    tokens = _TOKEN_RE.split(str(label))
    for idx, token in enumerate(tokens):
        if not token or not re.search(r"[A-Za-z0-9]", token):
            continue
        upper = token.upper()
        if upper in ACRONYMS:
            tokens[idx] = upper
            continue
        lower = token.lower()
        tokens[idx] = lower[:1].upper() + lower[1:]
    return re.sub(r"\s+", " ", "".join(tokens)).strip()


_TAXONOMY: RoleTaxonomy | None = None


def get_taxonomy() -> RoleTaxonomy:
    global _TAXONOMY
    if _TAXONOMY is None:
        path = get_settings().taxonomy_path
        if path:
            logger.info("Loading role taxonomy from %s", path)
            _TAXONOMY = RoleTaxonomy.from_json_file(path)
        else:
            _TAXONOMY = RoleTaxonomy.default()
    return _TAXONOMY


def reset_taxonomy() -> None:
    global _TAXONOMY
    _TAXONOMY = None
