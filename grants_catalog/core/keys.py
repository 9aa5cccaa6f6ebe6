"""Deterministic cache keys shared by the orchestrator, classifier and assembler."""

from .models import Application, RoundRef


def round_key(ref: RoundRef) -> str:
    """Key holding the raw application list of one round."""
    return f"applications:{ref.chain_id}:{ref.round_id}"


def features_key(application: Application) -> str:
    """Key holding the classified Features of one application."""
    return f"application:{application.chain_id}:{application.round_id}:{application.id}:features"
