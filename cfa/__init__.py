"""
Cricket Fantasy Auction (CFA)

A live auction platform for fantasy cricket:
- Server-authoritative lot state machine with pause/resume timers
- Bid validation against budget, roster and foreign-player rules
- Room-scoped real-time fan-out of auction events
- Configurable fantasy points engine
- Snake-order substitution rounds
"""

__version__ = "0.1.0"
