from typing import Optional

from app.config import ReportConfig
from app.providers.base import ReportClient

from .payload import NOT_PRESENT, ParticipantProfile, ReportPayload, sanitize_report_payload

SUMMARY_SYSTEM_PROMPT = """Du bist ein präziser deutschsprachiger Gesprächsanalyst.
Du bekommst ein Transcript zwischen Teilnehmer und Avatar-Coach.
Erstelle einen Bericht mit genau diesen Feldern und gib ausschließlich valides JSON zurück:
{
  "titel": string,
  "teilnehmer_name": string,
  "rolle_funktion": string,
  "unternehmen": string,
  "gespraechsdatum": "DD.MM.YYYY",
  "gespraechsstatus": string,
  "gespraechsphase": string,
  "zielstatus": string,
  "ausgangslage": string,
  "erkanntes_hauptthema": string,
  "zentrale_erkenntnisse": string,
  "zieldefinition": {
    "urspruengliches_ziel": string,
    "konkretisiertes_ziel": string,
    "neue_ziele": string
  },
  "empfehlungen_des_avatars": string,
  "entwicklungsimpuls": string,
  "naechster_sinnvoller_schritt": string
}
Regeln:
- Schreibe in professionellem, sachlichem Deutsch.
- Nutze nur Informationen aus dem Transcript und dem mitgelieferten Kontext.
- Falls Information fehlt, nutze "nicht vorhanden" bzw. "nicht konkretisiert".
- Kein Markdown, keine Zusatztexte, nur JSON."""


def build_context_block(profile: ParticipantProfile, conversation_date: str) -> str:
    return "\n".join([
        f"Teilnehmername: {profile.full_name or NOT_PRESENT}",
        f"Rolle/Funktion: {profile.role or NOT_PRESENT}",
        f"Unternehmen: {profile.company or NOT_PRESENT}",
        f"Gesprächsdatum: {conversation_date}",
    ])


def build_user_prompt(transcript: str, profile: ParticipantProfile, conversation_date: str) -> str:
    return "\n".join([
        "Erstelle den Bericht auf Basis dieses Kontexts und Transkripts.",
        "",
        "KONTEXT",
        build_context_block(profile, conversation_date),
        "",
        "TRANSKRIPT",
        transcript,
    ])


async def request_report(
    client: ReportClient,
    transcript: str,
    profile: ParticipantProfile,
    conversation_date: str,
    config: ReportConfig,
    *,
    request_id: Optional[str] = None,
) -> ReportPayload:
    """One LLM call; request/parse errors propagate, field-level gaps are repaired."""
    raw = await client.complete_json(
        SUMMARY_SYSTEM_PROMPT,
        build_user_prompt(transcript, profile, conversation_date),
        temperature=config.temperature,
        request_id=request_id,
    )
    return sanitize_report_payload(raw, profile, conversation_date)
