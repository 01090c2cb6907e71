"""
Services built on top of the orchestration core.
"""
