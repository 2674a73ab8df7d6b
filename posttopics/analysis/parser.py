"""Parser for numbered-section answers returned by the secondary provider.

Models answer in free text such as::

    1. Pricing: people complain the bundle is too expensive
    2. Shipping: several orders arrived late
       and support did not answer

The parser returns ``Parsed`` with one section per numbered line (with any
following continuation lines folded into the description) or
``Unparseable`` carrying the raw text.
"""

import re
from dataclasses import dataclass, field
from typing import List, Tuple, Union

_SECTION = re.compile(r'^(\d+)\.\s*(.+?):\s*(.+)$')

# Continuation lines shorter than this are treated as noise
MIN_CONTINUATION_LENGTH = 10


@dataclass
class Parsed:
    """Numbered sections found in the answer, as (label, description) pairs."""
    sections: List[Tuple[str, str]] = field(default_factory=list)


@dataclass
class Unparseable:
    """No numbered section was found."""
    raw: str


ParseResult = Union[Parsed, Unparseable]


def parse_numbered_sections(text: str) -> ParseResult:
    """Split ``text`` into numbered ``label: description`` sections."""
    sections: List[Tuple[str, str]] = []
    label = None
    description = ""

    for line in (text or "").splitlines():
        line = line.strip()
        if not line:
            continue

        match = _SECTION.match(line)
        if match:
            if label and description:
                sections.append((label, description))
            label = match.group(2).strip()
            description = match.group(3).strip()
        elif label and len(line) > MIN_CONTINUATION_LENGTH:
            description += " " + line

    if label and description:
        sections.append((label, description))

    if not sections:
        return Unparseable(raw=text or "")
    return Parsed(sections=sections)


def general_topic_text(raw: str, max_label: int = 50, max_description: int = 300) -> Tuple[str, str]:
    """Best-effort (label, description) for an answer with no numbered sections."""
    raw = raw.strip()
    first_sentence = raw.split('.')[0].strip()
    if not first_sentence or len(first_sentence) > max_label:
        label = "AI-identified topic"
    else:
        label = first_sentence
    return label, raw[:max_description]
