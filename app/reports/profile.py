import logging
from typing import Any, Dict, Optional

from app.errors import PersistenceError
from app.observability import log_event
from app.store.base import ReportStore

from .payload import ParticipantProfile, normalize_text


def _embedded_company(employment: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    companies = employment.get("companies")
    if isinstance(companies, list):
        companies = companies[0] if companies else None
    return companies if isinstance(companies, dict) else None


async def _lookup(store: ReportStore, person_id: str, table: str, **kwargs: Any) -> Optional[Dict[str, Any]]:
    try:
        return await store.select_one(table, **kwargs)
    except PersistenceError as e:
        log_event("profile_lookup_degraded", logging.WARNING, personId=person_id, table=table, error=str(e)[:512])
        return None


async def resolve_participant_profile(store: ReportStore, person_id: str) -> ParticipantProfile:
    """person -> latest employment -> company. Never raises; unknowns stay empty strings.

    The employment query embeds the company name; when the embed is missing the
    company is looked up directly by ``company_id``.
    """
    profile = ParticipantProfile(person_id=person_id)

    person = await _lookup(
        store, person_id, "persons",
        columns="id, first_name, last_name",
        filters={"id": person_id},
    )
    if not person:
        return profile
    profile.first_name = normalize_text(person.get("first_name"))
    profile.last_name = normalize_text(person.get("last_name"))

    employment = await _lookup(
        store, person_id, "employments",
        columns="function_title, valid_from, company_id, companies(name)",
        filters={"person_id": person_id},
        order="valid_from",
        descending=True,
    )
    if not employment:
        return profile
    profile.role = normalize_text(employment.get("function_title"))

    company = _embedded_company(employment)
    if company is None and employment.get("company_id"):
        company = await _lookup(
            store, person_id, "companies",
            columns="id, name",
            filters={"id": employment.get("company_id")},
        )
    if company:
        profile.company = normalize_text(company.get("name"))
    return profile
