"""
Reply orchestration: provider chain walk, history upkeep and intent tags.
"""
from .intent import Intent, classify_intent, should_use_reasoner
from .orchestrator import ResponseOrchestrator

__all__ = ['Intent', 'ResponseOrchestrator', 'classify_intent', 'should_use_reasoner']
