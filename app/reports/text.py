from .payload import ReportPayload


def build_report_text(payload: ReportPayload) -> str:
    """Render the payload as the plain-text report; layout and labels are fixed."""
    goals = payload.zieldefinition
    return "\n".join([
        payload.titel,
        "",
        f"Teilnehmer: {payload.teilnehmer_name}",
        f"Rolle/Funktion: {payload.rolle_funktion}",
        f"Unternehmen: {payload.unternehmen}",
        f"Gespraechsdatum: {payload.gespraechsdatum}",
        "",
        f"Gespraechsstatus: {payload.gespraechsstatus}",
        f"Gespraechsphase: {payload.gespraechsphase}",
        f"Zielstatus: {payload.zielstatus}",
        "",
        "Ausgangslage:",
        payload.ausgangslage,
        "",
        "Erkanntes Hauptthema:",
        payload.erkanntes_hauptthema,
        "",
        "Zentrale Erkenntnisse des Teilnehmers:",
        payload.zentrale_erkenntnisse,
        "",
        "Zieldefinition:",
        f"- Urspruengliches Ziel: {goals.urspruengliches_ziel}",
        f"- Konkretisiertes Ziel: {goals.konkretisiertes_ziel}",
        f"- Neue Ziele aus dem Gespraech: {goals.neue_ziele}",
        "",
        "Empfehlungen des Avatars:",
        payload.empfehlungen_des_avatars,
        "",
        "Entwicklungsimpuls:",
        payload.entwicklungsimpuls,
        "",
        "Naechster sinnvoller Schritt:",
        payload.naechster_sinnvoller_schritt,
    ])
