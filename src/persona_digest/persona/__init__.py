"""Persona scoring, learning and profile helpers."""

from .learner import PersonaLearner
from .profile import default_persona, persona_from_dict, persona_to_dict
from .scorer import PersonaScorer, ScoredEmail

__all__ = [
    "PersonaLearner",
    "PersonaScorer",
    "ScoredEmail",
    "default_persona",
    "persona_from_dict",
    "persona_to_dict",
]
