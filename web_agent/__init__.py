"""
Web Agent - the execution and safety layer behind an LLM page planner.

Dispatches semantic tool calls (find, click, type, wait, extract, ...) onto a
live page through an injected script runtime, gated by a permission policy,
a consent flow and a persisted audit log.
"""

__version__ = "0.1.0"
__author__ = "Web Agent Contributors"
