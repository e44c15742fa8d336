"""Persona-driven relevance scoring, categorisation and digest selection."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass
from datetime import UTC, datetime
from email.utils import parseaddr

from persona_digest.core.datetime_utils import ensure_utc
from persona_digest.core.models import DEFAULT_CATEGORY, EmailRecord, Persona

LOGGER = logging.getLogger(__name__)

CONTACT_BONUS = 10.0
DOMAIN_BONUS = 8.0
KEYWORD_BONUS = 2.0
INTEREST_BONUS = 1.5
KEYWORD_BONUS_CAP = 10.0
LEARNED_BONUS_CAP = 5.0

_EPOCH = datetime.min.replace(tzinfo=UTC)


@dataclass(frozen=True, slots=True)
class ScoredEmail:
    """Scoring outcome for one candidate email."""

    email: EmailRecord
    score: float
    category: str
    important_contact: bool = False
    excluded: bool = False
    below_floor: bool = False

    @property
    def eligible(self) -> bool:
        """Return ``True`` when the email may compete for a digest slot."""
        return self.important_contact or not (self.excluded or self.below_floor)


class PersonaScorer:
    """Rank emails for a persona.

    Selection is rank based: the top ``max_emails_per_summary`` eligible
    emails win, important contacts always make it in. Scoring never raises;
    malformed persona data degrades to an unweighted, recency ordered pass.
    """

    def score(self, email: EmailRecord, persona: Persona) -> float:
        """Return the non-negative relevance of ``email`` for ``persona``."""
        return self.assess(email, persona).score

    def categorize(self, email: EmailRecord, persona: Persona) -> str:
        """Return the highest priority category whose keywords match ``email``."""
        try:
            return _categorize(email, persona)
        except (AttributeError, TypeError, ValueError) as exc:
            LOGGER.warning("Categorisation failed for email %s: %s", email.id, exc)
            return DEFAULT_CATEGORY

    def assess(self, email: EmailRecord, persona: Persona) -> ScoredEmail:
        """Score and classify ``email`` in one pass."""
        try:
            return _assess(email, persona)
        except (AttributeError, TypeError, ValueError) as exc:
            LOGGER.warning(
                "Scoring failed for email %s of user %s: %s",
                email.id,
                persona.user_id,
                exc,
            )
            return ScoredEmail(email=email, score=0.0, category=DEFAULT_CATEGORY)

    def select(
        self, emails: Sequence[EmailRecord], persona: Persona
    ) -> list[ScoredEmail]:
        """Pick the digest candidates from ``emails``, best first."""
        indexed = list(enumerate(self.assess(email, persona) for email in emails))
        contacts = sorted(
            (entry for entry in indexed if entry[1].important_contact), key=_rank_key
        )
        others = sorted(
            (
                entry
                for entry in indexed
                if entry[1].eligible and not entry[1].important_contact
            ),
            key=_rank_key,
        )
        remaining = max(persona.max_emails_per_summary - len(contacts), 0)
        selected = [item for _, item in contacts + others[:remaining]]
        LOGGER.debug(
            "Selected %d of %d emails for user %s",
            len(selected),
            len(emails),
            persona.user_id,
        )
        return selected

    def should_include(
        self,
        email: EmailRecord,
        persona: Persona,
        candidates: Sequence[EmailRecord] | None = None,
    ) -> bool:
        """Return ``True`` if ``email`` makes the cut within ``candidates``.

        Without ``candidates`` the email competes only against itself.
        """
        batch = list(candidates) if candidates else [email]
        if not any(item is email for item in batch):
            batch.append(email)
        return any(item.email is email for item in self.select(batch, persona))


def _rank_key(entry: tuple[int, ScoredEmail]) -> tuple[float, float, int]:
    index, item = entry
    received = item.email.received_at
    timestamp = (ensure_utc(received) or _EPOCH).timestamp()
    return (-item.score, -timestamp, index)


def _assess(email: EmailRecord, persona: Persona) -> ScoredEmail:
    sender = (email.sender or "").lower()
    address = sender_address(email.sender)
    subject = (email.subject or "").lower()
    text = f"{subject} {email.text.lower()}"

    important_contact = _is_important_contact(email.sender, persona.important_contacts)
    excluded = any(
        pattern.lower() in sender or pattern.lower() in subject
        for pattern in persona.exclude_patterns
        if pattern
    )
    below_floor = len(email.text) < persona.minimum_email_length

    category = _categorize(email, persona)
    if excluded and not important_contact:
        return ScoredEmail(
            email=email,
            score=0.0,
            category=category,
            excluded=True,
            below_floor=below_floor,
        )

    score = 0.0
    if important_contact:
        score += CONTACT_BONUS
    if _matches_domain(address, persona.important_domains):
        score += DOMAIN_BONUS

    keyword_bonus = KEYWORD_BONUS * _count_matches(text, persona.keywords)
    keyword_bonus += INTEREST_BONUS * _count_matches(text, persona.interests)
    score += min(keyword_bonus, KEYWORD_BONUS_CAP)

    if persona.categories:
        weight = persona.categories.get(category)
        if weight is not None:
            score += max(weight.priority, 0)

    score += _learned_bonus(address, text, persona)
    return ScoredEmail(
        email=email,
        score=max(score, 0.0),
        category=category,
        important_contact=important_contact,
        excluded=excluded,
        below_floor=below_floor,
    )


def _categorize(email: EmailRecord, persona: Persona) -> str:
    categories = persona.categories
    if not categories:
        return DEFAULT_CATEGORY

    sender = (email.sender or "").lower()
    subject = (email.subject or "").lower()
    body = email.text.lower()
    best: tuple[int, str] | None = None
    for name, config in categories.items():
        if any(
            keyword.lower() in subject
            or keyword.lower() in body
            or keyword.lower() in sender
            for keyword in config.keywords
            if keyword
        ):
            if best is None or config.priority > best[0]:
                best = (config.priority, name)
    if best is not None:
        return best[1]

    fallback = _heuristic_category(sender, subject, body)
    if fallback and fallback in categories:
        return fallback
    return DEFAULT_CATEGORY


def _heuristic_category(sender: str, subject: str, body: str) -> str | None:
    if "noreply" in sender or "no-reply" in sender or subject.startswith("newsletter"):
        return "newsletters"
    if "unsubscribe" in subject or "unsubscribe" in body or "promotion" in subject:
        return "promotions"
    if any(host in sender for host in ("linkedin.com", "facebookmail.com", "twitter.com")):
        return "social"
    return None


def _is_important_contact(raw_sender: str | None, contacts: Iterable[str]) -> bool:
    if not raw_sender:
        return False
    name, address = parseaddr(raw_sender)
    candidates = {raw_sender.strip().lower(), address.lower(), name.strip().lower()}
    candidates.discard("")
    return any(contact.strip().lower() in candidates for contact in contacts if contact)


def _matches_domain(address: str, domains: Iterable[str]) -> bool:
    if "@" not in address:
        return False
    domain = address.rsplit("@", 1)[1]
    for entry in domains:
        wanted = entry.strip().lower().lstrip("@")
        if wanted and (domain == wanted or domain.endswith(f".{wanted}")):
            return True
    return False


def _count_matches(text: str, terms: Iterable[str]) -> int:
    return sum(1 for term in terms if term and term.lower() in text)


def _learned_bonus(address: str, text: str, persona: Persona) -> float:
    bonus = _lookup_weight(persona.sender_weights, address)
    bonus += sum(
        max(weight, 0.0)
        for keyword, weight in persona.keyword_weights.items()
        if keyword and keyword in text
    )
    return min(bonus, LEARNED_BONUS_CAP)


def _lookup_weight(weights: Mapping[str, float], key: str) -> float:
    if not key:
        return 0.0
    return max(weights.get(key, 0.0), 0.0)


def sender_address(raw_sender: str | None) -> str:
    """Return the lowercased bare address of a ``From`` style value."""
    if not raw_sender:
        return ""
    _, address = parseaddr(raw_sender)
    return (address or raw_sender).strip().lower()


__all__ = [
    "CONTACT_BONUS",
    "DOMAIN_BONUS",
    "INTEREST_BONUS",
    "KEYWORD_BONUS",
    "KEYWORD_BONUS_CAP",
    "PersonaScorer",
    "ScoredEmail",
    "sender_address",
]
