"""
Fast check results - structured view of a rapid check's narrative.

The rapid check prompt asks for three blocks shaped like

    **Assumption 1: Desirability - Owners struggle to find walkers**
    Verdict: WEAK

    Evidence:
    - Pew Research: 38% of owners work away from home all day

and a closing ``**Quick verdict:**`` line. Parsing works on partial text,
so it can be re-run as the stream grows; a block whose verdict has not
arrived yet is reported with ``verdict=None`` and ``complete=False``.
"""

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

MAX_EVIDENCE_ITEMS = 4
MAX_SOURCE_LENGTH = 80

_ASSUMPTION_HEADER = re.compile(r"\*\*Assumption\s+\d+:\s*([^*]+)\*\*")
_HEADER_SEPARATOR = re.compile(r"\s+[-\u2013\u2014]\s+")
_VERDICT = re.compile(r"Verdict:\s*(SUPPORTED|WEAK|CONTRADICTED)", re.IGNORECASE)
_EVIDENCE_SPLIT = re.compile(r"Evidence:", re.IGNORECASE)
_BULLET = re.compile(r"^[-*]\s+(.+)$", re.MULTILINE)
_QUICK_VERDICT = re.compile(r"\*\*Quick verdict:\*\*\s*(.+?)(?:\n|$)")


class Verdict(str, Enum):
    SUPPORTED = "SUPPORTED"
    WEAK = "WEAK"
    CONTRADICTED = "CONTRADICTED"


class AssumptionCategory(str, Enum):
    DESIRABILITY = "Desirability"
    VIABILITY = "Viability"
    COMPETITION = "Competition"


@dataclass
class EvidenceItem:
    source: str  # URL or source name, empty when the bullet names none
    finding: str


@dataclass
class AssumptionResult:
    assumption: str
    category: AssumptionCategory
    verdict: Optional[Verdict] = None
    evidence: List[EvidenceItem] = field(default_factory=list)
    complete: bool = False


def _category(label: str) -> AssumptionCategory:
    if "Viability" in label:
        return AssumptionCategory.VIABILITY
    if "Competition" in label or "Competitor" in label:
        return AssumptionCategory.COMPETITION
    return AssumptionCategory.DESIRABILITY


def _evidence_item(line: str) -> EvidenceItem:
    # "Source: finding"; a URL's own "://" is not a separator
    index = line.find(": ")
    if 0 < index < MAX_SOURCE_LENGTH:
        return EvidenceItem(source=line[:index].strip(), finding=line[index + 2:].strip())
    return EvidenceItem(source="", finding=line.strip())


def parse_assumptions(text: str) -> List[AssumptionResult]:
    """Extract assumption blocks in order of appearance."""
    matches = list(_ASSUMPTION_HEADER.finditer(text))
    # The last block ends where the quick verdict begins
    closing = _QUICK_VERDICT.search(text)
    tail = closing.start() if closing and matches and closing.start() > matches[-1].end() else len(text)

    results = []
    for i, match in enumerate(matches):
        end = matches[i + 1].start() if i + 1 < len(matches) else tail
        block = text[match.start():end]

        header = match.group(1).strip()
        parts = _HEADER_SEPARATOR.split(header, maxsplit=1)
        label = parts[0].strip()
        statement = parts[1].strip() if len(parts) > 1 else ""

        verdict_match = _VERDICT.search(block)
        verdict = Verdict(verdict_match.group(1).upper()) if verdict_match else None

        sections = _EVIDENCE_SPLIT.split(block, maxsplit=1)
        bullets = _BULLET.findall(sections[1]) if len(sections) > 1 else []

        results.append(AssumptionResult(
            assumption=statement or label,
            category=_category(label),
            verdict=verdict,
            evidence=[_evidence_item(b) for b in bullets[:MAX_EVIDENCE_ITEMS]],
            complete=i < len(matches) - 1 or verdict is not None,
        ))
    return results


def parse_quick_verdict(text: str) -> str:
    """The one-sentence quick verdict, or an empty string if not yet written."""
    match = _QUICK_VERDICT.search(text)
    return match.group(1).strip() if match else ""
