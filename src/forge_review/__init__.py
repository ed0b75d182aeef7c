"""
Forge Review

LLM-assisted pull request review: per-file summaries, a merged change
summary and line-anchored review comments, reviewed incrementally commit by
commit.
"""

__version__ = "0.1.0"
