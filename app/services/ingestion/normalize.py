"""Normalisation of raw BigQuery / PatentsView rows into canonical patents."""

from __future__ import annotations

import hashlib
import logging
import math
import re
from dataclasses import dataclass, field
from datetime import UTC, date, datetime
from typing import Any, Iterable, List, Literal, Mapping, Optional, Sequence, Union

LOGGER = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Field alias tables
# ---------------------------------------------------------------------------

# Ordered most- to least-specific; the first non-blank value wins.
PUBLICATION_NUMBER_FIELDS = ("publication_number", "patent_number", "patent_id")
TITLE_LOCALIZED_FIELDS = ("title_localized",)
TITLE_TEXT_FIELDS = ("title", "patent_title")
ABSTRACT_LOCALIZED_FIELDS = ("abstract_localized",)
ABSTRACT_TEXT_FIELDS = ("abstract", "patent_abstract")
PUBLICATION_DATE_FIELDS = ("publication_date", "patent_date")
PRIORITY_DATE_FIELDS = ("priority_date", "patent_earliest_application_date")
FILING_DATE_FIELDS = ("filing_date", "application_date", "patent_application_date")

CPC_ENTRY_FIELDS = ("cpc", "cpc_current", "cpcs")
IPC_ENTRY_FIELDS = ("ipc", "ipcr", "ipcs")
ASSIGNEE_HARMONIZED_FIELDS = ("assignee_harmonized", "assignees")
INVENTOR_HARMONIZED_FIELDS = ("inventor_harmonized", "inventors")
ASSIGNEE_NAME_LIST_FIELDS = ("assignee",)
INVENTOR_NAME_LIST_FIELDS = ("inventor",)
CITATION_ENTRY_FIELDS = ("citation", "us_patent_citations", "cited_patents")

CPC_CODE_FIELDS = (
    "code",
    "cpc_subgroup_id",
    "subgroup_id",
    "cpc_group_id",
    "group_id",
    "cpc_subclass_id",
    "subclass_id",
    "cpc_section_id",
    "section_id",
)
CPC_DESCRIPTION_FIELDS = ("title", "description", "cpc_subgroup_title")
IPC_CODE_FIELDS = ("code", "symbol", "ipc_classification_symbol", "ipc_section")

ASSIGNEE_NAME_FIELDS = ("name", "organization", "assignee_organization")
ASSIGNEE_ID_FIELDS = ("assignee_id", "id")
INVENTOR_FIRST_NAME_FIELDS = (
    "first_name",
    "given_name",
    "firstName",
    "inventor_first_name",
    "inventor_name_first",
)
INVENTOR_LAST_NAME_FIELDS = (
    "last_name",
    "family_name",
    "lastName",
    "inventor_last_name",
    "inventor_name_last",
)
INVENTOR_FULL_NAME_FIELDS = ("name", "name_full", "inventor_name")
INVENTOR_ID_FIELDS = ("inventor_id", "id")
COUNTRY_FIELDS = ("country_code", "country", "assignee_country", "inventor_country")
STATE_FIELDS = ("state", "region", "assignee_state", "inventor_state")
CITY_FIELDS = ("city", "assignee_city", "inventor_city")

CITED_PATENT_FIELDS = (
    "publication_number",
    "cited_publication_number",
    "cited_patent_number",
    "citation_publication_number",
    "citation_patent_id",
)
CITATION_TYPE_FIELDS = ("category", "citation_category", "citation_type")


# ---------------------------------------------------------------------------
# Field extractors
# ---------------------------------------------------------------------------


def read_string(value: Any) -> Optional[str]:
    """Return the trimmed string, or None for non-strings and blanks."""

    if isinstance(value, str):
        trimmed = value.strip()
        if trimmed:
            return trimmed
    return None


def get_string(record: Optional[Mapping[str, Any]], keys: Sequence[str]) -> Optional[str]:
    """First non-blank string found under ``keys``, in order."""

    if not isinstance(record, Mapping):
        return None
    for key in keys:
        value = read_string(record.get(key))
        if value:
            return value
    return None


def get_list(record: Optional[Mapping[str, Any]], keys: Sequence[str]) -> List[Any]:
    """First non-empty list found under ``keys``; empty list when none is."""

    if not isinstance(record, Mapping):
        return []
    for key in keys:
        value = record.get(key)
        if isinstance(value, list) and value:
            return value
    return []


def get_value(record: Optional[Mapping[str, Any]], keys: Sequence[str]) -> Any:
    if not isinstance(record, Mapping):
        return None
    for key in keys:
        value = record.get(key)
        if value is not None:
            return value
    return None


def split_name(name: Optional[str]) -> tuple[Optional[str], Optional[str]]:
    """Split a full name into (first, last); the last token is the surname."""

    if not name:
        return None, None
    parts = name.split()
    if not parts:
        return None, None
    if len(parts) == 1:
        return parts[0], None
    return " ".join(parts[:-1]), parts[-1]


# ---------------------------------------------------------------------------
# Date normalisation
# ---------------------------------------------------------------------------


_EIGHT_DIGITS = re.compile(r"^\d{8}$")
_ISO_PREFIX = re.compile(r"^\d{4}-\d{2}-\d{2}")

DateInput = Union[str, int, float, date, datetime, None]


def _format_digits(digits: str) -> str:
    return f"{digits[0:4]}-{digits[4:6]}-{digits[6:8]}"


def normalize_date(value: DateInput) -> Optional[str]:
    """Convert ISO strings, ``YYYYMMDD`` numbers and date objects to ``YYYY-MM-DD``.

    Anything that cannot be read as an 8-digit date or an ISO-prefixed string
    yields None. Zero is treated as absent: the public patents dataset uses it
    for unknown dates.
    """

    if not value or isinstance(value, bool):
        return None
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone(UTC)
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, (int, float)):
        if isinstance(value, float) and not math.isfinite(value):
            return None
        padded = str(math.trunc(value)).zfill(8)
        # a leading zero means fewer than 8 significant digits
        if not _EIGHT_DIGITS.match(padded) or padded.startswith("0"):
            return None
        return _format_digits(padded)
    if isinstance(value, str):
        trimmed = value.strip()
        if _EIGHT_DIGITS.match(trimmed):
            return _format_digits(trimmed)
        if _ISO_PREFIX.match(trimmed):
            return trimmed[:10]
    return None


def to_date_int(value: Optional[str]) -> Optional[int]:
    """``YYYY-MM-DD`` (or ``YYYYMMDD``) to the integer encoding used by BigQuery."""

    if not value:
        return None
    cleaned = value.replace("-", "")
    if not _EIGHT_DIGITS.match(cleaned):
        return None
    return int(cleaned)


def to_calendar_date(value: Optional[str]) -> Optional[date]:
    if not value:
        return None
    try:
        return date.fromisoformat(value)
    except ValueError:
        LOGGER.warning("Discarding impossible calendar date %r", value)
        return None


# ---------------------------------------------------------------------------
# Identity derivation
# ---------------------------------------------------------------------------


def stable_id(entity_type: str, text: str) -> str:
    """Deterministic id for an entity without a source-native key."""

    digest = hashlib.sha1(text.encode("utf-8")).hexdigest()
    return f"{entity_type}_{digest}"


@dataclass(frozen=True)
class NativeId:
    """Identifier supplied by the data provider."""

    value: str
    kind: Literal["native"] = "native"


@dataclass(frozen=True)
class DerivedId:
    """Identifier hashed from the entity's canonical name."""

    entity_type: str
    name: str
    kind: Literal["derived"] = "derived"

    @property
    def value(self) -> str:
        return stable_id(self.entity_type, self.name)


EntityIdentity = Union[NativeId, DerivedId]


def resolve_identity(entity_type: str, native_id: Optional[str], name: str) -> EntityIdentity:
    if native_id:
        return NativeId(native_id)
    return DerivedId(entity_type, name)


# ---------------------------------------------------------------------------
# Canonical shapes
# ---------------------------------------------------------------------------


@dataclass
class NormalizedAssignee:
    identity: EntityIdentity
    name: str
    country: Optional[str] = None
    state: Optional[str] = None
    city: Optional[str] = None

    @property
    def id(self) -> str:
        return self.identity.value


@dataclass
class NormalizedInventor:
    identity: EntityIdentity
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    country: Optional[str] = None
    state: Optional[str] = None
    city: Optional[str] = None

    @property
    def id(self) -> str:
        return self.identity.value


@dataclass
class NormalizedClassification:
    code: str
    scheme: Literal["ipc", "cpc"]
    description: Optional[str] = None


@dataclass
class NormalizedCitation:
    cited_patent_id: Optional[str] = None
    citation_type: Optional[str] = None


@dataclass
class NormalizedPatent:
    id: str
    title: Optional[str] = None
    abstract: Optional[str] = None
    claims: Optional[str] = None
    ipc_codes: List[str] = field(default_factory=list)
    cpc_codes: List[str] = field(default_factory=list)
    publication_date: Optional[str] = None
    priority_date: Optional[str] = None
    filing_date: Optional[str] = None
    assignees: List[NormalizedAssignee] = field(default_factory=list)
    inventors: List[NormalizedInventor] = field(default_factory=list)
    classifications: List[NormalizedClassification] = field(default_factory=list)
    citations: List[NormalizedCitation] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Record normaliser
# ---------------------------------------------------------------------------


def pick_localized_text(entries: Sequence[Any]) -> Optional[str]:
    """English variant when tagged, else the first variant."""

    variants = [entry for entry in entries if isinstance(entry, Mapping)]
    if not variants:
        return None
    for entry in variants:
        language = entry.get("language") or ""
        if isinstance(language, str) and language.lower().startswith("en"):
            text = read_string(entry.get("text"))
            if text:
                return text
            break
    return read_string(variants[0].get("text"))


def _pick_text(raw: Mapping[str, Any], localized_keys: Sequence[str], plain_keys: Sequence[str]) -> Optional[str]:
    localized = get_list(raw, localized_keys)
    if localized:
        return pick_localized_text(localized)
    return get_string(raw, plain_keys)


def _entries(raw: Mapping[str, Any], keys: Sequence[str]) -> List[Mapping[str, Any]]:
    return [entry for entry in get_list(raw, keys) if isinstance(entry, Mapping)]


def extract_classification_codes(raw: Mapping[str, Any]) -> tuple[List[str], List[str]]:
    """Return (cpc_codes, ipc_codes) resolved through the alias chains."""

    cpc_codes = [
        code
        for code in (get_string(entry, CPC_CODE_FIELDS) for entry in _entries(raw, CPC_ENTRY_FIELDS))
        if code
    ]
    ipc_codes = [
        code
        for code in (get_string(entry, IPC_CODE_FIELDS) for entry in _entries(raw, IPC_ENTRY_FIELDS))
        if code
    ]
    return cpc_codes, ipc_codes


def _cpc_description(cpc_entries: Sequence[Mapping[str, Any]], code: str) -> Optional[str]:
    for entry in cpc_entries:
        if any(read_string(entry.get(key)) == code for key in CPC_CODE_FIELDS):
            return get_string(entry, CPC_DESCRIPTION_FIELDS)
    return None


def _harmonized_assignees(entries: Sequence[Mapping[str, Any]]) -> List[NormalizedAssignee]:
    assignees: List[NormalizedAssignee] = []
    for entry in entries:
        name = get_string(entry, ASSIGNEE_NAME_FIELDS)
        if not name:
            continue
        assignees.append(
            NormalizedAssignee(
                identity=resolve_identity("assignee", get_string(entry, ASSIGNEE_ID_FIELDS), name),
                name=name,
                country=get_string(entry, COUNTRY_FIELDS),
                state=get_string(entry, STATE_FIELDS),
                city=get_string(entry, CITY_FIELDS),
            )
        )
    return assignees


def _fallback_assignees(names: Iterable[Any]) -> List[NormalizedAssignee]:
    assignees: List[NormalizedAssignee] = []
    for value in names:
        name = read_string(value)
        if name:
            assignees.append(NormalizedAssignee(identity=DerivedId("assignee", name), name=name))
    return assignees


def _harmonized_inventors(entries: Sequence[Mapping[str, Any]]) -> List[NormalizedInventor]:
    inventors: List[NormalizedInventor] = []
    for entry in entries:
        full_name = get_string(entry, INVENTOR_FULL_NAME_FIELDS)
        split_first, split_last = split_name(full_name)
        first_name = get_string(entry, INVENTOR_FIRST_NAME_FIELDS) or split_first
        last_name = get_string(entry, INVENTOR_LAST_NAME_FIELDS) or split_last
        if not first_name and not last_name:
            LOGGER.debug("Dropping inventor without a resolvable name: %s", entry)
            continue
        display = full_name or " ".join(part for part in (first_name, last_name) if part)
        inventors.append(
            NormalizedInventor(
                identity=resolve_identity("inventor", get_string(entry, INVENTOR_ID_FIELDS), display),
                first_name=first_name,
                last_name=last_name,
                country=get_string(entry, COUNTRY_FIELDS),
                state=get_string(entry, STATE_FIELDS),
                city=get_string(entry, CITY_FIELDS),
            )
        )
    return inventors


def _fallback_inventors(names: Iterable[Any]) -> List[NormalizedInventor]:
    inventors: List[NormalizedInventor] = []
    for value in names:
        name = read_string(value)
        if not name:
            continue
        first_name, last_name = split_name(name)
        inventors.append(
            NormalizedInventor(
                identity=DerivedId("inventor", name),
                first_name=first_name,
                last_name=last_name,
            )
        )
    return inventors


def normalize_record(raw: Mapping[str, Any]) -> Optional[NormalizedPatent]:
    """Map one raw source row to a NormalizedPatent; None when it has no publication number."""

    publication_number = get_string(raw, PUBLICATION_NUMBER_FIELDS)
    if not publication_number:
        LOGGER.debug("Skipping record without publication number")
        return None

    cpc_entries = _entries(raw, CPC_ENTRY_FIELDS)
    cpc_codes, ipc_codes = extract_classification_codes(raw)

    assignees = _harmonized_assignees(_entries(raw, ASSIGNEE_HARMONIZED_FIELDS))
    if not assignees:
        assignees = _fallback_assignees(get_list(raw, ASSIGNEE_NAME_LIST_FIELDS))

    inventors = _harmonized_inventors(_entries(raw, INVENTOR_HARMONIZED_FIELDS))
    if not inventors:
        inventors = _fallback_inventors(get_list(raw, INVENTOR_NAME_LIST_FIELDS))

    classifications = [NormalizedClassification(code=code, scheme="ipc") for code in ipc_codes]
    classifications.extend(
        NormalizedClassification(code=code, scheme="cpc", description=_cpc_description(cpc_entries, code))
        for code in cpc_codes
    )

    citations = [
        NormalizedCitation(
            cited_patent_id=get_string(entry, CITED_PATENT_FIELDS),
            citation_type=get_string(entry, CITATION_TYPE_FIELDS),
        )
        for entry in _entries(raw, CITATION_ENTRY_FIELDS)
    ]

    return NormalizedPatent(
        id=publication_number,
        title=_pick_text(raw, TITLE_LOCALIZED_FIELDS, TITLE_TEXT_FIELDS),
        abstract=_pick_text(raw, ABSTRACT_LOCALIZED_FIELDS, ABSTRACT_TEXT_FIELDS),
        claims=None,
        ipc_codes=ipc_codes,
        cpc_codes=cpc_codes,
        publication_date=normalize_date(get_value(raw, PUBLICATION_DATE_FIELDS)),
        priority_date=normalize_date(get_value(raw, PRIORITY_DATE_FIELDS)),
        filing_date=normalize_date(get_value(raw, FILING_DATE_FIELDS)),
        assignees=assignees,
        inventors=inventors,
        classifications=classifications,
        citations=citations,
    )


def normalize_records(raws: Iterable[Mapping[str, Any]]) -> List[NormalizedPatent]:
    normalized: List[NormalizedPatent] = []
    for raw in raws:
        patent = normalize_record(raw)
        if patent is not None:
            normalized.append(patent)
    return normalized
