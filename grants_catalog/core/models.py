"""
Data models for the grants catalog.

Mirrors the records returned by the Grants Stack indexer, plus the
AI-derived Features and the enriched projection served to consumers.
"""

from dataclasses import dataclass, field, asdict
from typing import Any, Optional, Union


# Enumerated domains for Features. "" means unknown/unspecified.
PROJECT_AGES = (
    "",
    "less than 1 year old",
    "1-2 years old",
    "2-3 years old",
    "3-5 years old",
    "5-10 years old",
    "10+ years old",
)

USERS_COUNTS = (
    "",
    "1-100 users",
    "100-1000 users",
    "1000-2000 users",
    "2000+ users",
)

TEAM_SIZES = (
    "",
    "Solo founder",
    "1-10 team members",
    "11-50 team members",
    "51-200 team members",
    "200+ team members",
)

DAO_GOVERNED_TAG = "DAO governed"


@dataclass(frozen=True)
class RoundRef:
    """Identifies one funding round on one chain."""
    chain_id: int
    round_id: int

    def __str__(self) -> str:
        return f"{self.chain_id}:{self.round_id}"

    @classmethod
    def from_dict(cls, data: dict) -> "RoundRef":
        """Create from dictionary (e.g., from YAML)."""
        return cls(chain_id=int(data["chain_id"]), round_id=int(data["round_id"]))


@dataclass
class Round:
    """Round metadata embedded in every application record."""
    id: str
    chain_id: int
    name: str = ""
    match_amount_in_usd: Optional[float] = None
    eligibility_description: str = ""
    eligibility_requirements: list[str] = field(default_factory=list)
    application_metadata: Any = None

    @classmethod
    def from_dict(cls, data: dict) -> "Round":
        round_metadata = data.get("roundMetadata") or {}
        eligibility = round_metadata.get("eligibility") or {}
        requirements = [
            r.get("requirement", "")
            for r in eligibility.get("requirements") or []
            if isinstance(r, dict)
        ]

        match_amount = data.get("matchAmountInUsd")
        return cls(
            id=str(data.get("id", "")),
            chain_id=int(data.get("chainId") or 0),
            name=round_metadata.get("name") or "",
            match_amount_in_usd=float(match_amount) if match_amount is not None else None,
            eligibility_description=eligibility.get("description") or "",
            eligibility_requirements=requirements,
            application_metadata=data.get("applicationMetadata"),
        )


@dataclass
class PlainAnswer:
    """Answer submitted in clear text. Feeds the classifier prompt."""
    question: str
    answer: str


@dataclass
class EncryptedAnswer:
    """Answer only readable by round operators. Never sent to the classifier."""
    question: str
    encrypted_answer: Any


Answer = Union[PlainAnswer, EncryptedAnswer]


def parse_answer(data: dict) -> Answer:
    """Select the answer variant by the presence of a plain ``answer`` key."""
    question = data.get("question") or ""
    if "answer" in data:
        answer = data["answer"]
        if isinstance(answer, list):
            answer = ", ".join(str(a) for a in answer)
        return PlainAnswer(question=question, answer="" if answer is None else str(answer))
    return EncryptedAnswer(question=question, encrypted_answer=data.get("encryptedAnswer"))


@dataclass
class ProjectMetadata:
    """Project section of an application's metadata."""
    title: str = ""
    description: str = ""
    website: str = ""
    logo_img: Optional[str] = None
    banner_img: Optional[str] = None
    user_github: str = ""
    project_github: str = ""
    project_twitter: str = ""

    @classmethod
    def from_dict(cls, data: dict) -> "ProjectMetadata":
        return cls(
            title=data.get("title") or "",
            description=data.get("description") or "",
            website=data.get("website") or "",
            logo_img=data.get("logoImg"),
            banner_img=data.get("bannerImg"),
            user_github=data.get("userGithub") or "",
            project_github=data.get("projectGithub") or "",
            project_twitter=data.get("projectTwitter") or "",
        )


@dataclass
class Application:
    """
    Approved application as returned by the indexer.

    ``raw`` keeps the indexer record untouched so the consumer receives
    every field, including ones this model does not interpret.
    """

    id: str
    chain_id: int
    round_id: str
    project_id: str
    round: Optional[Round]
    project: ProjectMetadata
    answers: list[Answer] = field(default_factory=list)
    total_amount_donated_in_usd: float = 0.0
    total_donations_count: int = 0
    raw: dict = field(default_factory=dict, repr=False)

    @property
    def ref_id(self) -> str:
        """Composite key unique across chain, round and application id."""
        return f"{self.chain_id}:{self.round_id}:{self.id}"

    @property
    def title(self) -> str:
        return self.project.title

    @property
    def plain_answers(self) -> list[PlainAnswer]:
        return [a for a in self.answers if isinstance(a, PlainAnswer)]

    @classmethod
    def from_dict(cls, data: dict) -> "Application":
        metadata = data.get("metadata") or {}
        application = metadata.get("application") or {}
        round_data = data.get("round")

        return cls(
            id=str(data["id"]),
            chain_id=int(data["chainId"]),
            round_id=str(data["roundId"]),
            project_id=str(data.get("projectId") or ""),
            round=Round.from_dict(round_data) if round_data else None,
            project=ProjectMetadata.from_dict(application.get("project") or {}),
            answers=[
                parse_answer(a)
                for a in application.get("answers") or []
                if isinstance(a, dict)
            ],
            total_amount_donated_in_usd=float(data.get("totalAmountDonatedInUsd") or 0),
            total_donations_count=int(data.get("totalDonationsCount") or 0),
            raw=data,
        )


def _string_list(data: dict, key: str) -> list[str]:
    value = data.get(key, [])
    if value is None:
        return []
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        raise ValueError(f"{key} must be a list of strings")
    return value


def _enum_value(data: dict, key: str, domain: tuple) -> str:
    value = data.get(key, "")
    if value is None:
        return ""
    if value not in domain:
        raise ValueError(f"{key} has unexpected value {value!r}")
    return value


@dataclass
class Features:
    """AI-derived structured metadata about one project."""
    short_description: str = ""
    enhanced_project_description: str = ""
    tags: list[str] = field(default_factory=list)
    technology_stack: list[str] = field(default_factory=list)
    project_age: str = ""
    users_count: str = ""
    team_size: str = ""
    regions: list[str] = field(default_factory=list)
    is_dao: bool = False

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "Features":
        """
        Validate and build Features from a classifier payload.

        Missing keys take empty defaults.

        Raises:
            ValueError: If a field has the wrong type or an enum is out of domain
        """
        if not isinstance(data, dict):
            raise ValueError("features payload must be an object")

        for key in ("short_description", "enhanced_project_description"):
            if not isinstance(data.get(key, "") or "", str):
                raise ValueError(f"{key} must be a string")

        is_dao = data.get("is_dao", False)
        if not isinstance(is_dao, bool):
            raise ValueError("is_dao must be a boolean")

        return cls(
            short_description=data.get("short_description") or "",
            enhanced_project_description=data.get("enhanced_project_description") or "",
            tags=_string_list(data, "tags"),
            technology_stack=_string_list(data, "technology_stack"),
            project_age=_enum_value(data, "project_age", PROJECT_AGES),
            users_count=_enum_value(data, "users_count", USERS_COUNTS),
            team_size=_enum_value(data, "team_size", TEAM_SIZES),
            regions=_string_list(data, "regions"),
            is_dao=is_dao,
        )

    def searchable_tags(self) -> list[str]:
        """Flatten features into the tag list used for filtering."""
        tags = [
            *self.tags,
            *self.regions,
            self.team_size,
            *self.technology_stack,
            self.project_age,
            self.users_count,
            DAO_GOVERNED_TAG if self.is_dao else "",
        ]
        return [t for t in tags if t]


@dataclass
class EnrichedApplication:
    """Application joined with its Features, as served to the presentation layer."""
    application: Application
    features: Features
    tags: list[str] = field(default_factory=list)

    @property
    def ref_id(self) -> str:
        return self.application.ref_id

    @property
    def title(self) -> str:
        return self.application.title

    @classmethod
    def build(cls, application: Application, features: Features) -> "EnrichedApplication":
        return cls(
            application=application,
            features=features,
            tags=features.searchable_tags(),
        )

    def to_dict(self) -> dict:
        """Raw indexer record merged with features, tags and refId."""
        return {
            **self.application.raw,
            "features": self.features.to_dict(),
            "tags": self.tags,
            "refId": self.ref_id,
        }
