from __future__ import annotations

import csv
import io
import logging
from dataclasses import dataclass, field

from ..constants import ROSTER_COLUMNS
from ..entities import StudentRecord, usn_key

logger = logging.getLogger("digicertify.roster")


class RosterError(ValueError):
    """Raised when an uploaded roster cannot be used at all."""


@dataclass
class RosterParseResult:
    students: list[StudentRecord] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


def _header_key(name: str | None) -> str:
    return (name or "").replace(" ", "").replace("_", "").lower()


def _parse_score(raw: str | None) -> float:
    try:
        value = float((raw or "").strip())
    except ValueError:
        return 0.0
    if value != value:  # NaN
        return 0.0
    return value


def parse_roster(filename: str | None, raw: bytes) -> RosterParseResult:
    if not filename or not filename.lower().endswith(".csv"):
        raise RosterError("Only CSV files are accepted.")
    try:
        text = raw.decode("utf-8-sig")
    except UnicodeDecodeError as exc:
        raise RosterError("Failed to parse CSV.") from exc

    try:
        reader = csv.DictReader(io.StringIO(text))
        header_map = {}
        for name in reader.fieldnames or []:
            key = _header_key(name)
            if key and key not in header_map:
                header_map[key] = name
        missing = [col for col in ROSTER_COLUMNS if _header_key(col) not in header_map]
        if missing:
            raise RosterError(f"Missing columns: {', '.join(missing)}")
        usn_header = header_map["usn"]
        name_header = header_map["name"]
        course_header = header_map["course"]
        score_header = header_map["score"]

        result = RosterParseResult()
        seen: set[str] = set()
        for idx, row in enumerate(reader, start=2):
            usn = (row.get(usn_header) or "").strip()
            if not usn:
                continue
            key = usn_key(usn)
            if key in seen:
                result.warnings.append(f"Row {idx}: duplicate USN '{usn}' skipped")
                continue
            seen.add(key)
            score = _parse_score(row.get(score_header))
            if score < 0 or score > 100:
                result.warnings.append(
                    f"Row {idx}: score {score:g} out of range, clamped"
                )
                score = max(0.0, min(score, 100.0))
            result.students.append(
                StudentRecord(
                    usn=usn,
                    name=(row.get(name_header) or "").strip(),
                    course=(row.get(course_header) or "").strip(),
                    score=score,
                )
            )
    except csv.Error as exc:
        raise RosterError("Failed to parse CSV.") from exc

    logger.info(
        "[cert-roster] parsed file=%s students=%s warnings=%s",
        filename,
        len(result.students),
        len(result.warnings),
    )
    return result
