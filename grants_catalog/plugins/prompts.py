"""
Prompt and function schema for feature classification.

The model is asked to call ``save_features`` exactly once; its
arguments follow the Features shape in core.models.
"""

from grants_catalog.core.models import (
    Application,
    PROJECT_AGES,
    TEAM_SIZES,
    USERS_COUNTS,
)


SAVE_FEATURES = "save_features"

# Guidance only: the model may emit tags outside this list.
TAG_EXAMPLES = [
    "Has GitHub",
    "Has Twitter",
    "Has Discord",
    "Has funding",
    "VC backed",
    "Has traction",
    "Open source",
    "Non-profit",
    "For-profit",
    "Proven impact",
    "Has community",
    "Has token",
    "Female-led",
    "First time founder",
    "Received previous grant",
    "No previous grant",
    "Has impact metrics",
    "Has images",
    "Has video",
    "Has demo",
    "Has product",
    "Has audit",
    "DAO governed",
    "Has roadmap",
    "dApp",
    "ReFi",
    "Climate",
    "Health",
    "Education",
    "Economic empowerment",
    "Equality",
    "Justice",
    "Infrastructure",
    "Is a community",
    "Arts",
    "Media",
    "Disaster relief",
    "Governance",
    "Sustainability",
    "Conservation",
    "Carbon offsetting",
    "Renewable energy",
    "Environment",
    "Green tech",
    "Financial inclusion",
    "Financial literacy",
    "Financial services",
    "Food tech",
    "NFT",
    "Developer tools",
    "ENS",
    "Layer 2",
    "DeFi",
    "Privacy",
    "Security",
    "Base",
    "Optimism",
    "Arbitrum",
    "AI",
    "LLM",
    "Polygon",
    "Fiat",
    "Wallet",
    "dMRV",
    "Protocol",
]

FEATURES_SCHEMA = {
    "type": "object",
    "properties": {
        "short_description": {
            "type": "string",
            "description": "Short project description",
            "maxLength": 100,
        },
        "is_dao": {
            "type": "boolean",
            "description": "The project is governed by a DAO.",
        },
        "enhanced_project_description": {
            "type": "string",
            "description": "Enhanced project description, summary of key features and intended impact",
            "maxLength": 1000,
        },
        "tags": {
            "type": "array",
            "description": "Tags that precisely describe the project.",
            "items": {"type": "string", "examples": TAG_EXAMPLES},
        },
        "technology_stack": {
            "type": "array",
            "description": "Technologies used in the project, e.g. 'Rust', 'EVM', 'Blockchain', 'Optimistic Rollups'",
            "items": {"type": "string"},
        },
        "project_age": {"type": "string", "enum": list(PROJECT_AGES)},
        "users_count": {"type": "string", "enum": list(USERS_COUNTS)},
        "team_size": {"type": "string", "enum": list(TEAM_SIZES)},
        "regions": {
            "type": "array",
            "description": "Regions or countries the project is based in or focused on.",
            "items": {"type": "string"},
        },
    },
}

SAVE_FEATURES_DESCRIPTION = (
    "Extracts and saves key features from project descriptions, emphasizing "
    "deep contextual understanding and semantic accuracy."
)

SYSTEM_PROMPT = (
    "Carefully analyze project descriptions to accurately extract and save features. "
    "Focus on the semantic relationships and ensure that tags reflect the project's "
    "core functionalities and goals."
)

USER_PROMPT = """Evaluate and tag the following project data using the 'save_features' function. Each feature must be backed by a clear and direct statement in the text:

- CALL the save_features function only ONCE.
- Do not tag on keyword presence alone; every tag needs a clear contextual link.
- When a case is ambiguous, leave the tag out.
- If a feature is mentioned but is not central to the project's operations or goals, do not tag it.
- Tags are used to search for projects; prefer tags people are likely to search for.
- Include tags that are not keyword based, like 'DAO governed', 'VC backed', 'Non-profit', 'For-profit', 'Has community'.
- Include tags about the people behind the project, like 'Solo founder', 'First time founder', 'Small team'.
- Keep tags short.
- Limit to 5-10 tags.
- Don't use title casing for tags, i.e. 'Climate solutions' not 'Climate Solutions'; keep acronyms upper case, i.e. DAO not Dao.
- Examples:
  Tag 'Wallet' only if the project provides wallet functionality such as transactions or storage, not when a wallet is merely mentioned.
  If a project works with DAOs but is not itself governed by a DAO, do not tag 'DAO governed'.
  If the number of users is not explicitly stated, do not set a user count.


Project Description:
{description}

Project GitHub: {project_github}
User GitHub: {user_github}
Project Twitter: {project_twitter}

Project Answers:
{answers}
"""


def format_answers(application: Application) -> str:
    """Render plain answers as Q/A pairs; encrypted answers are left out."""
    return "\n".join(
        f"Q: {answer.question}\nA: {answer.answer}"
        for answer in application.plain_answers
    )


def build_user_prompt(application: Application) -> str:
    """Embed the application's free-text fields into the user message."""
    project = application.project
    return USER_PROMPT.format(
        description=project.description,
        project_github=project.project_github,
        user_github=project.user_github,
        project_twitter=project.project_twitter,
        answers=format_answers(application),
    )
