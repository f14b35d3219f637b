"""
revIsion RSC v1.0 — Tutor Package

Classification, evaluation, decision, instruction and the agents that wrap
one generation call each. Nothing here talks to a model directly: every
agent takes an injected GenerateFn.
"""
