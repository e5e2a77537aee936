"""
planflow - Plan Execution Controller

Runs AI-generated plans step by step under manual, auto or full-auto modes.
"""

__version__ = "0.1.0"
