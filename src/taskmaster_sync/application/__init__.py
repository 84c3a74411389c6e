"""
Application layer - The incremental sync engine.
"""
