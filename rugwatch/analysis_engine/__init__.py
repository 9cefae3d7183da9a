"""
Analysis engine package: evidence merge, feature extraction and risk scoring.

Consumes on-chain, market and social evidence for a token, builds the
12-indicator project feature vector and produces a risk score, confidence
and named risk factors. Sentiment and message credibility live alongside.
"""
