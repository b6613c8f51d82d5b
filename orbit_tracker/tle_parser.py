"""
TLE / OMM Parser Module

Parses the two textual encodings of mean orbital elements into
OrbitalElementSet records:

- Two-Line Element sets (fixed-column text, optional name line)
- Orbit Mean-Elements Messages (CelesTrak JSON or CSV, CCSDS keywords)

Both encodings normalize to the same record. Fixed-column lines are
checksum-verified; OMM records are checked for required keywords. Failures
raise ParseError naming the offending line and field. Batch parsing skips
bad records and keeps going.

TLE Format:
Line 0 (optional): Satellite name
Line 1: Catalog number, epoch, drag terms, element set number
Line 2: Inclination, RAAN, eccentricity, argument of perigee, mean anomaly, mean motion
"""

import io
import json
import math
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Mapping, Optional, Tuple

from pydantic import ValidationError
from sgp4 import omm

from orbit_tracker.elements import OrbitalElementSet
from orbit_tracker.errors import ParseError, ParseErrorKind

TLE_LINE_LENGTH = 69

# Alpha-5 catalog numbers skip I and O
_ALPHA5 = "ABCDEFGHJKLMNPQRSTUVWXYZ"

OMM_REQUIRED_FIELDS = (
    "NORAD_CAT_ID",
    "EPOCH",
    "MEAN_MOTION",
    "ECCENTRICITY",
    "INCLINATION",
    "RA_OF_ASC_NODE",
    "ARG_OF_PERICENTER",
    "MEAN_ANOMALY",
)


def checksum(line: str) -> int:
    """Calculate TLE checksum (digits summed, '-' counts as one, modulo 10)."""
    total = 0
    for char in line[:68]:
        if char.isdigit():
            total += int(char)
        elif char == "-":
            total += 1
    return total % 10


def parse_tle(line1: str, line2: str, name: str = "") -> OrbitalElementSet:
    """
    Parse a two-line element set.

    Args:
        line1: First line of TLE (69 characters)
        line2: Second line of TLE (69 characters)
        name: Optional satellite name (line 0)

    Returns:
        Normalized OrbitalElementSet

    Raises:
        ParseError: On bad checksum, missing field or unparseable number
    """
    line1 = _check_line(line1, 1)
    line2 = _check_line(line2, 2)

    norad_id = _catalog_number(line1, 1)
    if _catalog_number(line2, 2) != norad_id:
        raise ParseError(ParseErrorKind.FORMAT, "catalog number differs from line 1",
                         field="norad_id", line=2)

    year = _integer(line1, 18, 20, "epoch_year", 1)
    # Two-digit years cover 1957-2056
    year += 2000 if year < 57 else 1900
    day_of_year = _number(line1, 20, 32, "epoch_day", 1)
    epoch = datetime(year, 1, 1, tzinfo=timezone.utc) + timedelta(days=day_of_year - 1.0)

    fields = dict(
        name=_clean_name(name),
        norad_id=norad_id,
        classification=line1[7],
        international_designator=_expand_designator(line1[9:17].strip()),
        epoch=epoch,
        mean_motion_dot=_number(line1, 33, 43, "mean_motion_dot", 1),
        mean_motion_ddot=_implied_decimal(line1, 44, 52, "mean_motion_ddot", 1),
        bstar=_implied_decimal(line1, 53, 61, "bstar", 1),
        ephemeris_type=_integer(line1, 62, 63, "ephemeris_type", 1, default=0),
        element_set_number=_integer(line1, 64, 68, "element_set_number", 1, default=0),
        inclination=_number(line2, 8, 16, "inclination", 2),
        raan=_number(line2, 17, 25, "raan", 2),
        eccentricity=_eccentricity(line2),
        arg_of_perigee=_number(line2, 34, 42, "arg_of_perigee", 2),
        mean_anomaly=_number(line2, 43, 51, "mean_anomaly", 2),
        mean_motion=_number(line2, 52, 63, "mean_motion", 2),
        revolution_number=_integer(line2, 63, 68, "revolution_number", 2, default=0),
    )
    return _build(fields, line=None)


def parse_omm(record: Mapping[str, Any], index: Optional[int] = None) -> OrbitalElementSet:
    """
    Parse one Orbit Mean-Elements Message record.

    Args:
        record: Mapping with CCSDS OMM keywords (CelesTrak JSON/CSV layout)
        index: Position of the record in its batch, reported in errors

    Returns:
        Normalized OrbitalElementSet

    Raises:
        ParseError: On missing keyword or unparseable value
    """
    for key in OMM_REQUIRED_FIELDS:
        value = record.get(key)
        if value is None or (isinstance(value, str) and not value.strip()):
            raise ParseError(ParseErrorKind.MISSING_FIELD, "required keyword absent",
                             field=key, line=index)

    def number(key: str, default: float = 0.0) -> float:
        value = record.get(key)
        if value is None or value == "":
            return default
        try:
            return float(value)
        except (TypeError, ValueError):
            raise ParseError(ParseErrorKind.BAD_NUMBER, f"{value!r} is not a number",
                             field=key, line=index) from None

    def integer(key: str, default: int = 0) -> int:
        value = number(key, default)
        if not float(value).is_integer():
            raise ParseError(ParseErrorKind.BAD_NUMBER, f"{value!r} is not an integer",
                             field=key, line=index)
        return int(value)

    fields = dict(
        name=_clean_name(str(record.get("OBJECT_NAME") or "")),
        norad_id=integer("NORAD_CAT_ID"),
        international_designator=str(record.get("OBJECT_ID") or "").strip(),
        classification=str(record.get("CLASSIFICATION_TYPE") or "U"),
        epoch=_omm_epoch(record["EPOCH"], index),
        mean_motion=number("MEAN_MOTION"),
        mean_motion_dot=number("MEAN_MOTION_DOT"),
        mean_motion_ddot=number("MEAN_MOTION_DDOT"),
        bstar=number("BSTAR"),
        inclination=number("INCLINATION"),
        raan=number("RA_OF_ASC_NODE"),
        eccentricity=number("ECCENTRICITY"),
        arg_of_perigee=number("ARG_OF_PERICENTER"),
        mean_anomaly=number("MEAN_ANOMALY"),
        element_set_number=integer("ELEMENT_SET_NO"),
        revolution_number=integer("REV_AT_EPOCH"),
        ephemeris_type=integer("EPHEMERIS_TYPE"),
    )
    return _build(fields, line=index)


def parse(raw: str) -> OrbitalElementSet:
    """
    Parse a single object's element set in either encoding.

    Args:
        raw: A JSON OMM object (or one-element array), or 2/3 TLE lines

    Returns:
        Normalized OrbitalElementSet
    """
    text = raw.strip()
    if text.startswith("{") or text.startswith("["):
        records = _load_json(text)
        if len(records) != 1:
            raise ParseError(ParseErrorKind.FORMAT,
                             f"expected one OMM record, found {len(records)}")
        return parse_omm(records[0], index=0)

    lines = [line.rstrip() for line in text.splitlines() if line.strip()]
    if len(lines) == 2:
        return parse_tle(lines[0], lines[1])
    if len(lines) == 3:
        return parse_tle(lines[1], lines[2], name=lines[0])
    raise ParseError(ParseErrorKind.FORMAT, "TLE text must contain 2 or 3 lines")


def parse_batch(raw: str) -> Tuple[List[OrbitalElementSet], List[ParseError]]:
    """
    Parse a catalog response holding many element sets.

    Accepts TLE text (2- or 3-line entries), a JSON array of OMM records, or
    OMM CSV. Records that fail to parse are skipped and reported.

    Args:
        raw: Catalog text

    Returns:
        Tuple of (parsed element sets, errors for the skipped records)
    """
    text = raw.strip()
    if not text:
        return [], []

    if text.startswith("{") or text.startswith("["):
        try:
            records = _load_json(text)
        except ParseError as e:
            return [], [e]
        return _parse_records(records)

    if text.startswith("CCSDS_OMM_VERS") or text.startswith("OBJECT_NAME,"):
        records = list(omm.parse_csv(io.StringIO(text)))
        return _parse_records(records)

    return _parse_tle_text(text)


def format_tle(elements: OrbitalElementSet) -> Tuple[str, str]:
    """
    Reconstruct TLE lines from an element set.

    Args:
        elements: Element set to serialize

    Returns:
        Tuple of (line1, line2) strings with valid checksums
    """
    epoch = elements.epoch
    start_of_year = datetime(epoch.year, 1, 1, tzinfo=timezone.utc)
    day_of_year = (epoch - start_of_year).total_seconds() / 86400.0 + 1.0

    line1 = f"1 {_format_catalog(elements.norad_id)}{elements.classification} "
    line1 += f"{_compress_designator(elements.international_designator):<8} "
    line1 += f"{epoch.year % 100:02d}{day_of_year:012.8f} "
    line1 += _format_decimal(elements.mean_motion_dot) + " "
    line1 += _format_exponential(elements.mean_motion_ddot) + " "
    line1 += _format_exponential(elements.bstar) + " "
    line1 += f"{elements.ephemeris_type % 10:d} {elements.element_set_number % 10000:4d}"
    line1 += str(checksum(line1))

    ecc_digits = int(round(elements.eccentricity * 1e7))
    line2 = f"2 {_format_catalog(elements.norad_id)} "
    line2 += f"{elements.inclination:8.4f} "
    line2 += f"{elements.raan:8.4f} "
    line2 += f"{ecc_digits:07d} "
    line2 += f"{elements.arg_of_perigee:8.4f} "
    line2 += f"{elements.mean_anomaly:8.4f} "
    line2 += f"{elements.mean_motion:11.8f}"
    line2 += f"{elements.revolution_number % 100000:5d}"
    line2 += str(checksum(line2))

    return line1, line2


def to_omm(elements: OrbitalElementSet) -> Dict[str, Any]:
    """Serialize an element set as a CelesTrak-style OMM JSON record."""
    return {
        "OBJECT_NAME": elements.name,
        "OBJECT_ID": elements.international_designator,
        "EPOCH": elements.epoch.strftime("%Y-%m-%dT%H:%M:%S.%f"),
        "MEAN_MOTION": elements.mean_motion,
        "ECCENTRICITY": elements.eccentricity,
        "INCLINATION": elements.inclination,
        "RA_OF_ASC_NODE": elements.raan,
        "ARG_OF_PERICENTER": elements.arg_of_perigee,
        "MEAN_ANOMALY": elements.mean_anomaly,
        "EPHEMERIS_TYPE": elements.ephemeris_type,
        "CLASSIFICATION_TYPE": elements.classification,
        "NORAD_CAT_ID": elements.norad_id,
        "ELEMENT_SET_NO": elements.element_set_number,
        "REV_AT_EPOCH": elements.revolution_number,
        "BSTAR": elements.bstar,
        "MEAN_MOTION_DOT": elements.mean_motion_dot,
        "MEAN_MOTION_DDOT": elements.mean_motion_ddot,
    }


def _check_line(line: str, number: int) -> str:
    line = line.rstrip()
    if len(line) < TLE_LINE_LENGTH:
        raise ParseError(ParseErrorKind.FORMAT,
                         f"expected {TLE_LINE_LENGTH} columns, got {len(line)}", line=number)
    if line[0] != str(number) or line[1] != " ":
        raise ParseError(ParseErrorKind.FORMAT, f"must start with '{number} '", line=number)
    if not line[68].isdigit():
        raise ParseError(ParseErrorKind.CHECKSUM, f"checksum column holds {line[68]!r}",
                         field="checksum", line=number)
    expected = checksum(line)
    if int(line[68]) != expected:
        raise ParseError(ParseErrorKind.CHECKSUM,
                         f"expected {expected}, found {line[68]}", field="checksum", line=number)
    return line[:TLE_LINE_LENGTH]


def _token(line: str, start: int, end: int, field: str, number: int) -> str:
    token = line[start:end].strip()
    if not token:
        raise ParseError(ParseErrorKind.MISSING_FIELD, "columns are blank",
                         field=field, line=number)
    return token


def _number(line: str, start: int, end: int, field: str, number: int) -> float:
    token = _token(line, start, end, field, number)
    try:
        return float(token)
    except ValueError:
        raise ParseError(ParseErrorKind.BAD_NUMBER, f"{token!r} is not a number",
                         field=field, line=number) from None


def _integer(line: str, start: int, end: int, field: str, number: int,
             default: Optional[int] = None) -> int:
    if default is not None and not line[start:end].strip():
        return default
    token = _token(line, start, end, field, number)
    try:
        return int(token)
    except ValueError:
        raise ParseError(ParseErrorKind.BAD_NUMBER, f"{token!r} is not an integer",
                         field=field, line=number) from None


def _catalog_number(line: str, number: int) -> int:
    token = _token(line, 2, 7, "norad_id", number)
    head, tail = token[0], token[1:]
    try:
        if head.isalpha():
            # Alpha-5: A=10 ... Z=33
            return (_ALPHA5.index(head.upper()) + 10) * 10000 + int(tail)
        return int(token)
    except ValueError:
        raise ParseError(ParseErrorKind.BAD_NUMBER, f"{token!r} is not a catalog number",
                         field="norad_id", line=number) from None


def _eccentricity(line2: str) -> float:
    token = _token(line2, 26, 33, "eccentricity", 2)
    if not token.isdigit():
        raise ParseError(ParseErrorKind.BAD_NUMBER, f"{token!r} is not a decimal fraction",
                         field="eccentricity", line=2)
    return float("0." + token)


def _implied_decimal(line: str, start: int, end: int, field: str, number: int) -> float:
    """Parse TLE exponential notation, e.g. ' 21844-3' is 0.21844e-3."""
    token = line[start:end].strip()
    if not token:
        return 0.0
    sign = ""
    if token[0] in "+-":
        sign, token = ("-" if token[0] == "-" else ""), token[1:]
    mantissa, exponent = token[:-2], token[-2:]
    if not mantissa.isdigit() or exponent[0] not in "+-" or not exponent[1].isdigit():
        raise ParseError(ParseErrorKind.BAD_NUMBER, f"{line[start:end]!r} is not in TLE exponential form",
                         field=field, line=number)
    return float(f"{sign}0.{mantissa}e{exponent}")


def _expand_designator(designator: str) -> str:
    """'98067A' -> '1998-067A'; unrecognized designators are kept as-is."""
    if len(designator) < 5 or not designator[:5].isdigit():
        return designator
    year = int(designator[:2])
    year += 2000 if year < 57 else 1900
    return f"{year}-{designator[2:5]}{designator[5:].strip()}"


def _compress_designator(designator: str) -> str:
    """'1998-067A' -> '98067A'."""
    if len(designator) >= 8 and designator[4] == "-" and designator[:4].isdigit():
        return designator[2:4] + designator[5:]
    return designator


def _clean_name(name: str) -> str:
    name = name.strip()
    # 3LE name lines carry a leading "0 "
    if name.startswith("0 "):
        name = name[2:].strip()
    return name


def _omm_epoch(value: Any, index: Optional[int]) -> datetime:
    text = str(value).strip()
    if text.endswith("Z"):
        text = text[:-1]
    try:
        epoch = datetime.fromisoformat(text)
    except ValueError:
        raise ParseError(ParseErrorKind.BAD_NUMBER, f"{value!r} is not an ISO timestamp",
                         field="EPOCH", line=index) from None
    if epoch.tzinfo is None:
        epoch = epoch.replace(tzinfo=timezone.utc)
    return epoch


def _build(fields: Dict[str, Any], line: Optional[int]) -> OrbitalElementSet:
    try:
        return OrbitalElementSet(**fields)
    except ValidationError as e:
        error = e.errors()[0]
        field = ".".join(str(part) for part in error["loc"]) or None
        raise ParseError(ParseErrorKind.FORMAT, error["msg"], field=field, line=line) from None


def _format_decimal(value: float) -> str:
    """Format the first mean motion derivative as ' .00012022' / '-.00002182'."""
    sign = "-" if value < 0 else " "
    return sign + f"{abs(value):.8f}"[1:]


def _format_exponential(value: float) -> str:
    """Format a number in TLE exponential notation (8 columns)."""
    if value == 0.0 or abs(value) < 1e-10:
        return " 00000-0"

    sign = "-" if value < 0 else " "
    exponent = int(math.floor(math.log10(abs(value)))) + 1
    digits = int(round(abs(value) / 10.0 ** exponent * 100000))
    if digits >= 100000:
        digits //= 10
        exponent += 1
    exponent = max(-9, min(9, exponent))
    exp_sign = "-" if exponent < 0 else "+"
    return f"{sign}{digits:05d}{exp_sign}{abs(exponent):d}"


def _format_catalog(norad_id: int) -> str:
    if norad_id < 100000:
        return f"{norad_id:05d}"
    head, tail = divmod(norad_id, 10000)
    return f"{_ALPHA5[head - 10]}{tail:04d}"


def _load_json(text: str) -> List[Mapping[str, Any]]:
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise ParseError(ParseErrorKind.FORMAT, f"invalid JSON: {e.msg}", line=e.lineno) from None
    return data if isinstance(data, list) else [data]


def _parse_records(records) -> Tuple[List[OrbitalElementSet], List[ParseError]]:
    elements: List[OrbitalElementSet] = []
    errors: List[ParseError] = []
    for i, record in enumerate(records):
        if not isinstance(record, Mapping):
            errors.append(ParseError(ParseErrorKind.FORMAT, "record is not an object", line=i))
            continue
        try:
            elements.append(parse_omm(record, index=i))
        except ParseError as e:
            errors.append(e)
    return elements, errors


def _parse_tle_text(text: str) -> Tuple[List[OrbitalElementSet], List[ParseError]]:
    lines = [line.rstrip() for line in text.splitlines() if line.strip()]
    elements: List[OrbitalElementSet] = []
    errors: List[ParseError] = []

    name = ""
    i = 0
    while i < len(lines):
        line = lines[i]
        if line.startswith("1 "):
            if i + 1 < len(lines) and lines[i + 1].startswith("2 "):
                try:
                    elements.append(parse_tle(line, lines[i + 1], name))
                except ParseError as e:
                    errors.append(e)
                name = ""
                i += 2
                continue
            errors.append(ParseError(ParseErrorKind.FORMAT, "line 1 without matching line 2",
                                     line=1))
        elif line.startswith("2 "):
            errors.append(ParseError(ParseErrorKind.FORMAT, "line 2 without preceding line 1",
                                     line=2))
        else:
            name = line
        i += 1

    return elements, errors
