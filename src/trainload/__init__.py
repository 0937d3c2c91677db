"""
trainload - endurance training analytics engine.

Turns normalized workout recordings into mean-maximal curves, effort scores
(NP / IF / TSS / VI) and a fitness-fatigue trend, with cached results stored
through an abstract repository.
"""

__version__ = "0.1.0"
