# Application Layer
"""
Use Cases (Application Business Rules).

This layer orchestrates retrieval, routing and the feedback loop on top of
the domain interfaces.
"""

from .ask_usecase import AskUseCase
from .auto_learn import AutoLearnUseCase
from .intent_classifier import IntentClassifier

__all__ = [
    "AskUseCase",
    "AutoLearnUseCase",
    "IntentClassifier",
]
