"""Structured report payload: fixed schema, defaults, and the total sanitizer."""
from __future__ import annotations

import re
from dataclasses import asdict, dataclass, field
from datetime import date, datetime
from typing import Any, Dict, List, Mapping, Optional

REPORT_TITLE = "Gesprächsauswertung - Avatar-Coaching"
NOT_PRESENT = "nicht vorhanden"
NOT_SPECIFIED = "nicht konkretisiert"

_FRACTION_RE = re.compile(r"\.(\d+)(?=[+-]\d{2}:\d{2}$|$)")

REQUIRED_FIELDS: List[str] = [
    "titel",
    "teilnehmer_name",
    "rolle_funktion",
    "unternehmen",
    "gespraechsdatum",
    "gespraechsstatus",
    "gespraechsphase",
    "zielstatus",
    "ausgangslage",
    "erkanntes_hauptthema",
    "zentrale_erkenntnisse",
    "zieldefinition.urspruengliches_ziel",
    "zieldefinition.konkretisiertes_ziel",
    "zieldefinition.neue_ziele",
    "empfehlungen_des_avatars",
    "entwicklungsimpuls",
    "naechster_sinnvoller_schritt",
]


@dataclass
class ParticipantProfile:
    person_id: str
    first_name: str = ""
    last_name: str = ""
    role: str = ""
    company: str = ""

    @property
    def full_name(self) -> str:
        return " ".join(p for p in (self.first_name, self.last_name) if p).strip()


@dataclass
class GoalDefinition:
    urspruengliches_ziel: str = NOT_SPECIFIED
    konkretisiertes_ziel: str = NOT_SPECIFIED
    neue_ziele: str = NOT_SPECIFIED


@dataclass
class ReportPayload:
    titel: str
    teilnehmer_name: str
    rolle_funktion: str
    unternehmen: str
    gespraechsdatum: str
    gespraechsstatus: str = "beendet"
    gespraechsphase: str = NOT_SPECIFIED
    zielstatus: str = NOT_SPECIFIED
    ausgangslage: str = NOT_SPECIFIED
    erkanntes_hauptthema: str = NOT_SPECIFIED
    zentrale_erkenntnisse: str = NOT_SPECIFIED
    zieldefinition: GoalDefinition = field(default_factory=GoalDefinition)
    empfehlungen_des_avatars: str = NOT_PRESENT
    entwicklungsimpuls: str = NOT_SPECIFIED
    naechster_sinnvoller_schritt: str = NOT_SPECIFIED

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def normalize_text(value: Any, fallback: str = "") -> str:
    if not isinstance(value, str):
        return fallback
    return value.strip() or fallback


def parse_iso_timestamp(value: Any) -> Optional[datetime]:
    """Parse an ISO-8601 timestamp as PostgREST returns it; None when unparsable.

    Postgres trims trailing zeros from fractional seconds (``.12``), which
    ``datetime.fromisoformat`` rejects before 3.11, so the fraction is padded
    or truncated to six digits first.
    """
    if not isinstance(value, str) or not value.strip():
        return None
    raw = _FRACTION_RE.sub(lambda m: "." + (m.group(1) + "000000")[:6], value.strip().replace("Z", "+00:00"))
    try:
        return datetime.fromisoformat(raw)
    except ValueError:
        return None


def format_german_date(value: Optional[str], today: Optional[date] = None) -> str:
    """ISO-8601 timestamp -> DD.MM.YYYY; unparsable or missing falls back to today."""
    parsed = parse_iso_timestamp(value)
    d = (parsed.date() if parsed else None) or today or date.today()
    return d.strftime("%d.%m.%Y")


def german_to_iso_date(value: str) -> Optional[str]:
    try:
        return datetime.strptime(value, "%d.%m.%Y").date().isoformat()
    except ValueError:
        return None


def transcript_to_text(messages: List[Mapping[str, Any]]) -> str:
    lines = []
    for msg in messages:
        speaker = "Avatar" if msg.get("sender") == "avatar" else "Teilnehmer"
        lines.append(f"{speaker}: {msg.get('content') or ''}")
    return "\n".join(lines)


def build_default_report(profile: ParticipantProfile, conversation_date: str) -> ReportPayload:
    return ReportPayload(
        titel=REPORT_TITLE,
        teilnehmer_name=profile.full_name or NOT_PRESENT,
        rolle_funktion=profile.role or NOT_PRESENT,
        unternehmen=profile.company or NOT_PRESENT,
        gespraechsdatum=conversation_date,
    )


def sanitize_report_payload(data: Any, profile: ParticipantProfile, conversation_date: str) -> ReportPayload:
    """Coerce arbitrary model output into a fully populated ``ReportPayload``.

    Never raises: non-dict input yields the defaults, and every field that is
    missing, blank or not a string falls back to the profile value or the
    literal placeholder.
    """
    fallback = build_default_report(profile, conversation_date)
    if not isinstance(data, Mapping):
        return fallback
    nested = data.get("zieldefinition")
    if not isinstance(nested, Mapping):
        nested = {}
    goals = fallback.zieldefinition
    return ReportPayload(
        titel=normalize_text(data.get("titel"), fallback.titel),
        teilnehmer_name=normalize_text(data.get("teilnehmer_name"), fallback.teilnehmer_name),
        rolle_funktion=normalize_text(data.get("rolle_funktion"), fallback.rolle_funktion),
        unternehmen=normalize_text(data.get("unternehmen"), fallback.unternehmen),
        gespraechsdatum=normalize_text(data.get("gespraechsdatum"), fallback.gespraechsdatum),
        gespraechsstatus=normalize_text(data.get("gespraechsstatus"), fallback.gespraechsstatus),
        gespraechsphase=normalize_text(data.get("gespraechsphase"), fallback.gespraechsphase),
        zielstatus=normalize_text(data.get("zielstatus"), fallback.zielstatus),
        ausgangslage=normalize_text(data.get("ausgangslage"), fallback.ausgangslage),
        erkanntes_hauptthema=normalize_text(data.get("erkanntes_hauptthema"), fallback.erkanntes_hauptthema),
        zentrale_erkenntnisse=normalize_text(data.get("zentrale_erkenntnisse"), fallback.zentrale_erkenntnisse),
        zieldefinition=GoalDefinition(
            urspruengliches_ziel=normalize_text(nested.get("urspruengliches_ziel"), goals.urspruengliches_ziel),
            konkretisiertes_ziel=normalize_text(nested.get("konkretisiertes_ziel"), goals.konkretisiertes_ziel),
            neue_ziele=normalize_text(nested.get("neue_ziele"), goals.neue_ziele),
        ),
        empfehlungen_des_avatars=normalize_text(data.get("empfehlungen_des_avatars"), fallback.empfehlungen_des_avatars),
        entwicklungsimpuls=normalize_text(data.get("entwicklungsimpuls"), fallback.entwicklungsimpuls),
        naechster_sinnvoller_schritt=normalize_text(
            data.get("naechster_sinnvoller_schritt"), fallback.naechster_sinnvoller_schritt
        ),
    )
