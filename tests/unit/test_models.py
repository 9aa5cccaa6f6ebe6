"""Tests for core models."""

import pytest

from grants_catalog.core.models import (
    Application,
    EncryptedAnswer,
    EnrichedApplication,
    Features,
    PlainAnswer,
    RoundRef,
    parse_answer,
)


class TestRoundRef:
    """Tests for RoundRef."""

    def test_str(self):
        """Test string form used in logs."""
        assert str(RoundRef(chain_id=42161, round_id=26)) == "42161:26"

    def test_from_dict_coerces_ints(self):
        """Test YAML values are coerced to integers."""
        ref = RoundRef.from_dict({"chain_id": "10", "round_id": 9})
        assert ref == RoundRef(10, 9)

    def test_is_hashable_and_immutable(self):
        """Test refs can be used in sets and cannot be mutated."""
        ref = RoundRef(10, 9)
        assert {ref, RoundRef(10, 9)} == {ref}
        with pytest.raises(Exception):
            ref.chain_id = 1


class TestAnswers:
    """Tests for the plain/encrypted answer variant."""

    def test_plain_answer(self):
        answer = parse_answer({"question": "What?", "answer": "This."})
        assert answer == PlainAnswer(question="What?", answer="This.")

    def test_encrypted_answer(self):
        answer = parse_answer({"question": "Email", "encryptedAnswer": {"ciphertext": "x"}})
        assert isinstance(answer, EncryptedAnswer)
        assert answer.encrypted_answer == {"ciphertext": "x"}

    def test_list_answer_joined(self):
        """Test multiple-choice answers are rendered as text."""
        answer = parse_answer({"question": "Chains", "answer": ["Optimism", "Base"]})
        assert answer.answer == "Optimism, Base"


class TestApplication:
    """Tests for Application parsing."""

    def test_from_dict(self, record_factory):
        """Test parsing an indexer record."""
        app = Application.from_dict(record_factory("3", title="Climate Data"))

        assert app.id == "3"
        assert app.chain_id == 10
        assert app.round_id == "9"
        assert app.title == "Climate Data"
        assert app.project.project_github == "example-org"
        assert app.project.user_github == "alice"
        assert app.project.project_twitter == "example"
        assert app.round.name == "Test Round"
        assert app.round.match_amount_in_usd == 50000.0
        assert app.round.eligibility_requirements == ["Be open source"]
        assert app.total_donations_count == 7

    def test_ref_id(self, record_factory):
        """Test composite key format."""
        app = Application.from_dict(record_factory("3", chain_id=42161, round_id="26"))
        assert app.ref_id == "42161:26:3"

    def test_plain_answers_exclude_encrypted(self, record_factory):
        app = Application.from_dict(record_factory("1"))
        assert len(app.answers) == 2
        assert [a.question for a in app.plain_answers] == ["Team size?"]

    def test_missing_metadata(self):
        """Test records with null metadata still parse."""
        app = Application.from_dict(
            {"id": "1", "chainId": 10, "roundId": "9", "metadata": None, "round": None}
        )
        assert app.title == ""
        assert app.answers == []
        assert app.round is None

    def test_missing_id_raises(self):
        with pytest.raises(KeyError):
            Application.from_dict({"chainId": 10, "roundId": "9"})


class TestFeatures:
    """Tests for Features validation."""

    def test_from_dict_valid(self, features_factory):
        features = Features.from_dict(features_factory())
        assert features.tags == ["climate", "open source"]
        assert features.team_size == "1-10 team members"
        assert features.is_dao is False

    def test_missing_keys_use_defaults(self):
        features = Features.from_dict({"tags": ["defi"]})
        assert features.short_description == ""
        assert features.regions == []
        assert features.project_age == ""

    def test_invalid_enum_rejected(self, features_factory):
        with pytest.raises(ValueError):
            Features.from_dict(features_factory(team_size="huge"))

    def test_invalid_tags_rejected(self, features_factory):
        with pytest.raises(ValueError):
            Features.from_dict(features_factory(tags="climate"))

    def test_invalid_is_dao_rejected(self, features_factory):
        with pytest.raises(ValueError):
            Features.from_dict(features_factory(is_dao="yes"))

    def test_non_object_rejected(self):
        with pytest.raises(ValueError):
            Features.from_dict(["tags"])

    def test_round_trip_dict(self, features_factory):
        payload = features_factory()
        assert Features.from_dict(payload).to_dict() == payload

    def test_searchable_tags(self, features_factory):
        """Test flattening order and skipping of unknown values."""
        features = Features.from_dict(features_factory(is_dao=True))
        assert features.searchable_tags() == [
            "climate",
            "open source",
            "Europe",
            "1-10 team members",
            "Python",
            "1-2 years old",
            "DAO governed",
        ]

    def test_searchable_tags_without_dao(self, features_factory):
        features = Features.from_dict(features_factory())
        assert "DAO governed" not in features.searchable_tags()
        assert "" not in features.searchable_tags()


class TestEnrichedApplication:
    """Tests for the enriched projection."""

    def test_to_dict_merges_raw_record(self, record_factory, features_factory):
        record = record_factory("5")
        enriched = EnrichedApplication.build(
            Application.from_dict(record),
            Features.from_dict(features_factory()),
        )
        data = enriched.to_dict()

        assert data["refId"] == "10:9:5"
        assert data["metadata"] == record["metadata"]
        assert data["features"]["short_description"] == "Open source climate data tools"
        assert "climate" in data["tags"]
