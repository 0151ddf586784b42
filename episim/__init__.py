"""episim: spatial agent-based epidemic simulator with testing and quarantine.

An individual-based model coupling:
  - Agent movement in bounded 2D areas with elastic wall collisions
  - Behavior-driven velocity (passive, stationary, avoidant contact tracing)
  - Contact transmission found through a uniform-grid spatial index
  - Per-host pathogen lifecycle resolving to death or recovery
  - Immune memory with decaying immunity
  - Periodic testing that moves detected cases into a quarantine area
"""

__version__ = "0.1.0"
