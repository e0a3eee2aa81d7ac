import re
from typing import List

from checkwatch.checks.types import LogSection, ParsedLog

_TIMESTAMP = re.compile(r"^\ufeff?\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}(?:\.\d+)?Z ?")

_GROUP = "##[group]"
_ENDGROUP = "##[endgroup]"
_ERROR = "##[error]"


def strip_timestamp(line: str) -> str:
    return _TIMESTAMP.sub("", line, count=1)


def parse_actions_log(text: str) -> ParsedLog:
    """
    Split a GitHub Actions job log into sections.

    Every ``##[group]`` marker opens a new section titled by the rest of the
    marker line; output following ``##[endgroup]`` stays in that section until
    the next group starts. Lines before the first group go into an untitled
    section. ``##[error]`` lines are additionally collected, without the
    marker.
    """
    sections: List[LogSection] = []
    errors: List[str] = []

    title = ""
    lines: List[str] = []

    def flush():
        if title or lines:
            sections.append(LogSection(title=title, lines=tuple(lines)))

    for raw in text.splitlines():
        line = strip_timestamp(raw)
        if line.startswith(_GROUP):
            flush()
            title = line[len(_GROUP) :].strip()
            lines = []
            continue
        if line.startswith(_ENDGROUP):
            continue
        if line.startswith(_ERROR):
            line = line[len(_ERROR) :]
            errors.append(line)
        lines.append(line)

    flush()

    return ParsedLog(sections=tuple(sections), errors=tuple(errors))
