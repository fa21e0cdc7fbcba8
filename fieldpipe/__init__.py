"""
fieldpipe — module orchestration core for a field-study data pipeline.
"""

__version__ = "0.4.0"
