"""
Rugwatch: community rug-pull registry and risk-warning lifecycle engine.

Ingests on-chain, market and social evidence for suspicious tokens, scores
rug-pull risk, moves warnings from Active to Resolved or False Alarm,
re-evaluates active warnings in the background and pushes real-time
notifications to subscribers.
"""

__version__ = "0.1.0"
