"""Congress.gov v3: recently updated bills, then House roll-call votes."""

from __future__ import annotations

import logging
from datetime import timedelta
from typing import Any, Dict, Iterable, List, Optional

import requests

from newsrelay.ingestion.adapter import WEEK, SourcePolicy, SourceStrategy
from newsrelay.ingestion.candidate import Candidate, FetchBatch, format_timestamp, parse_timestamp
from newsrelay.sources.http import get_json

logger = logging.getLogger(__name__)

CONGRESS_API_URL = "https://api.congress.gov/v3"
BILL_TYPES = ("hr", "s", "hjres", "sjres", "hconres", "sconres", "hres", "sres")

# First match wins; checked against the lowercased latest action text.
STATUS_RULES = (
    (("became public law", "signed by president"), "Became Law"),
    (("vetoed", "pocket veto"), "Vetoed"),
    (("presented to president", "sent to president"), "Sent to President"),
)
HOUSE_PASSED = ("passed house", "passed/agreed to in house")
SENATE_PASSED = ("passed senate", "passed/agreed to in senate")
LATER_RULES = (
    (("reported by committee", "reported to"), "Reported by Committee"),
    (("referred to committee", "referred to the committee"), "In Committee"),
    (("rule for consideration", "placed on calendar"), "Scheduled for Floor"),
    (("introduced", "submitted"), "Introduced"),
)


def _contains_any(text: str, needles) -> bool:
    return any(n in text for n in needles)


def determine_legislative_status(bill: Dict[str, Any]) -> Optional[str]:
    """Best guess at where a bill stands, from its latest action text."""
    action_text = ((bill.get("latestAction") or {}).get("text") or "").lower()
    if action_text:
        for needles, status in STATUS_RULES:
            if _contains_any(action_text, needles):
                return status
        if _contains_any(action_text, HOUSE_PASSED):
            if _contains_any(action_text, SENATE_PASSED):
                return "Passed Both Chambers"
            return "Passed House"
        if _contains_any(action_text, SENATE_PASSED):
            return "Passed Senate"
        for needles, status in LATER_RULES:
            if _contains_any(action_text, needles):
                return status
    if bill.get("introducedDate"):
        return "Introduced"
    return None


def format_sponsor(sponsor: Dict[str, Any]) -> str:
    name = sponsor.get("fullName") or f"{sponsor.get('firstName', '')} {sponsor.get('lastName', '')}".strip()
    district = f"-{sponsor['district']}" if sponsor.get("district") else ""
    return f"{name} ({sponsor.get('party', '?')}-{sponsor.get('state', '?')}{district})"


def bill_details(bill: Dict[str, Any], detail: Optional[Dict[str, Any]] = None) -> str:
    """Message details for a bill; ``detail`` is the full bill record when available."""
    data = detail or bill
    lines = [
        f"{str(bill.get('type', '')).upper()} {bill.get('number', '')} - "
        f"Updated: {format_timestamp(bill.get('updateDateIncludingText') or bill.get('updateDate'))}"
    ]
    sponsors = data.get("sponsors") or []
    if sponsors:
        lines.append(f"Sponsor: {format_sponsor(sponsors[0])}")
    else:
        lines.append("Sponsor: [Info not available]")

    status = determine_legislative_status(data)
    if status:
        lines.append(f"Status: {status}")

    policy_area = (data.get("policyArea") or {}).get("name")
    if policy_area:
        lines.append(f"Policy Area: {policy_area}")

    latest = data.get("latestAction") or {}
    if latest.get("text"):
        action_date = latest.get("actionDate") or latest.get("date")
        when = f" ({format_timestamp(action_date)})" if action_date else ""
        lines.append(f"Latest Action: {latest['text']}{when}")
    return "\n".join(lines)


def bill_id(bill: Dict[str, Any]) -> str:
    return f"{bill.get('congress')}-{str(bill.get('type', '')).lower()}-{bill.get('number')}"


def map_bill(bill: Dict[str, Any]) -> Optional[Candidate]:
    if not isinstance(bill, dict) or not bill.get("number") or not bill.get("type"):
        return None
    bill_type = str(bill["type"]).lower()
    return Candidate(
        id=bill_id(bill),
        title=f"📋 BILL UPDATE: {bill['title']}" if bill.get("title") else "",
        url=f"https://congress.gov/bill/{bill.get('congress')}th-congress/{bill_type}/{bill['number']}",
        published_at=parse_timestamp(bill.get("updateDateIncludingText") or bill.get("updateDate")),
        details=bill_details(bill),
        source_name="congress",
        raw=bill,
    )


def map_house_vote(vote: Dict[str, Any]) -> Optional[Candidate]:
    if not isinstance(vote, dict) or vote.get("rollNumber") is None:
        return None
    when = vote.get("date") or vote.get("startDate")
    return Candidate(
        id=f"house-{vote.get('congress')}-{vote.get('session') or vote.get('sessionNumber')}-{vote['rollNumber']}",
        title=f"🗳️ HOUSE VOTE: {vote.get('question') or vote.get('voteQuestion') or 'Unknown Question'}",
        url=f"https://clerk.house.gov/Votes/{vote.get('congress')}/{vote['rollNumber']}",
        published_at=parse_timestamp(when),
        details=(
            f"Roll #{vote['rollNumber']} - {vote.get('result') or 'Unknown Result'} "
            f"({vote.get('yea') or 0}-{vote.get('nay') or 0}) - {format_timestamp(when)}"
        ),
        source_name="congress",
        raw=vote,
    )


class CongressSource(SourceStrategy):
    """Bill types are tried in order, then House votes."""

    name = "congress"
    policy = SourcePolicy(
        retention_seconds=WEEK,
        lookback=timedelta(hours=24),
        target_language=None,
        use_denylist=False,
        use_similarity=False,
    )

    def __init__(self, api_key: str, current_congress: int = 119, timeout: float = 10.0, base_url: str = CONGRESS_API_URL):
        self.api_key = api_key
        self.current_congress = current_congress
        self.timeout = timeout
        self.base_url = base_url.rstrip("/")

    def is_configured(self) -> bool:
        return bool(self.api_key)

    def _get(self, session: requests.Session, path: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        query = {"format": "json"}
        query.update(params or {})
        return get_json(
            session,
            f"{self.base_url}{path}",
            source="Congress",
            params=query,
            headers={"X-API-Key": self.api_key},
            timeout=self.timeout,
        ) or {}

    def fetch_bills(self, session: requests.Session, bill_type: str) -> List[Candidate]:
        data = self._get(
            session,
            f"/bill/{self.current_congress}/{bill_type}",
            {"limit": 20, "sort": "updateDateIncludingText:desc"},
        )
        return [c for c in (map_bill(b) for b in data.get("bills") or []) if c is not None]

    def fetch_house_votes(self, session: requests.Session) -> List[Candidate]:
        data = self._get(session, f"/house-vote/{self.current_congress}", {"limit": 10, "sort": "date:desc"})
        return [c for c in (map_house_vote(v) for v in data.get("houseVotes") or []) if c is not None]

    def fetch_bill_detail(self, session: requests.Session, congress: Any, bill_type: str, number: Any) -> Optional[Dict[str, Any]]:
        data = self._get(session, f"/bill/{congress}/{str(bill_type).lower()}/{number}")
        return data.get("bill")

    def batches(self, session: requests.Session) -> Iterable[FetchBatch]:
        for bill_type in BILL_TYPES:
            yield FetchBatch(label=f"{bill_type} bills", load=lambda t=bill_type: self.fetch_bills(session, t))
        yield FetchBatch(label="house votes", load=lambda: self.fetch_house_votes(session))

    def finalize(self, candidate: Candidate, session: requests.Session) -> Candidate:
        bill = candidate.raw or {}
        if "number" not in bill or bill.get("sponsors"):
            return candidate
        detail = self.fetch_bill_detail(session, bill.get("congress"), bill.get("type"), bill.get("number"))
        if not detail:
            return candidate
        logger.debug(f"Enriched {candidate.id} with bill detail")
        return candidate.with_details(bill_details(bill, detail))

    def stats(self) -> Dict[str, Any]:
        return {"currentCongress": self.current_congress, "billTypes": list(BILL_TYPES)}
