"""Shared fixtures: indexer-shaped application records and feature payloads."""

import pytest


def make_record(
    app_id: str,
    chain_id: int = 10,
    round_id: str = "9",
    title: str = "Test Project",
    description: str = "A test project.",
    answers=None,
) -> dict:
    """Build an application record shaped like the indexer's response."""
    return {
        "id": app_id,
        "chainId": chain_id,
        "roundId": round_id,
        "projectId": f"0xproject{app_id}",
        "status": "APPROVED",
        "totalAmountDonatedInUsd": 120.5,
        "totalDonationsCount": 7,
        "metadata": {
            "signature": "0xsig",
            "application": {
                "recipient": "0xrecipient",
                "answers": answers if answers is not None else [
                    {"questionId": 0, "question": "Team size?", "answer": "Three people"},
                    {"questionId": 1, "question": "Email", "encryptedAnswer": {"ciphertext": "abc"}},
                ],
                "project": {
                    "title": title,
                    "description": description,
                    "website": "https://example.org",
                    "logoImg": "bafylogo",
                    "bannerImg": "bafybanner",
                    "userGithub": "alice",
                    "projectGithub": "example-org",
                    "projectTwitter": "example",
                },
            },
        },
        "round": {
            "id": round_id,
            "chainId": chain_id,
            "matchAmountInUsd": 50000,
            "roundMetadata": {
                "name": "Test Round",
                "eligibility": {
                    "description": "Open source projects",
                    "requirements": [{"requirement": "Be open source"}],
                },
            },
            "applicationMetadata": {"version": "1.0.0"},
        },
    }


def make_features(**overrides) -> dict:
    """Build a valid save_features payload."""
    features = {
        "short_description": "Open source climate data tools",
        "enhanced_project_description": "Builds open datasets for climate research.",
        "tags": ["climate", "open source"],
        "technology_stack": ["Python"],
        "project_age": "1-2 years old",
        "users_count": "",
        "team_size": "1-10 team members",
        "regions": ["Europe"],
        "is_dao": False,
    }
    features.update(overrides)
    return features


@pytest.fixture
def record_factory():
    return make_record


@pytest.fixture
def features_factory():
    return make_features
