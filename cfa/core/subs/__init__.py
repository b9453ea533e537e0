"""
CFA Substitution Module.

Post-auction snake-draft substitution rounds.
"""

from cfa.core.subs.sequencer import SubstitutionSequencer, snake_order

__all__ = ["SubstitutionSequencer", "snake_order"]
