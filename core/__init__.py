"""
Core engine: versions, suggestion generation, retrieval context and pipelines.
"""
