"""
revIsion RSC v1.0 — Content Package

Static GCSE content: the curriculum diagnostic question bank.
"""
