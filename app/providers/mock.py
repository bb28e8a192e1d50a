import re
from typing import Any, Dict, Optional

from .base import ReportClient


class MockReportClient(ReportClient):
    """Deterministic offline provider; echoes the context block back into the report."""

    provider_name: str = "mock"

    def __init__(self, model: Optional[str] = None):
        super().__init__(model=model or "mock-report-1")

    async def complete_json(
        self,
        system: str,
        user: str,
        *,
        temperature: float = 0.2,
        request_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        def ctx(label: str) -> str:
            m = re.search(rf"^{re.escape(label)}: (.*)$", user or "", flags=re.MULTILINE)
            return m.group(1).strip() if m else ""

        turns = [ln for ln in (user or "").split("\n") if ln.startswith(("Teilnehmer: ", "Avatar: "))]
        first_user = next((ln.split(": ", 1)[1] for ln in turns if ln.startswith("Teilnehmer: ")), "")
        return {
            "titel": "Gesprächsauswertung - Avatar-Coaching",
            "teilnehmer_name": ctx("Teilnehmername"),
            "rolle_funktion": ctx("Rolle/Funktion"),
            "unternehmen": ctx("Unternehmen"),
            "gespraechsdatum": ctx("Gesprächsdatum"),
            "gespraechsstatus": "beendet",
            "gespraechsphase": "nicht konkretisiert",
            "zielstatus": "nicht konkretisiert",
            "ausgangslage": first_user or "nicht konkretisiert",
            "erkanntes_hauptthema": "nicht konkretisiert",
            "zentrale_erkenntnisse": f"{len(turns)} Gesprächsbeiträge ausgewertet.",
            "zieldefinition": {
                "urspruengliches_ziel": "nicht konkretisiert",
                "konkretisiertes_ziel": "nicht konkretisiert",
                "neue_ziele": "nicht konkretisiert",
            },
            "empfehlungen_des_avatars": "nicht vorhanden",
            "entwicklungsimpuls": "nicht konkretisiert",
            "naechster_sinnvoller_schritt": "nicht konkretisiert",
        }
