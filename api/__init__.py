"""
Control surface for the revision workflow.
"""
