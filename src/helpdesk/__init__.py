# Helpdesk module
"""
Hybrid retrieval and answer engine for an IT help desk.

Clean Architecture:
- domain/         - entities, value objects and interfaces
- application/    - use cases (ask pipeline, auto-learning)
- infrastructure/ - stores, scorers, caches and provider clients
"""
