"""
StandingScan - League Standings Extraction

Turns a screenshot of a league standings table into a normalized,
ranked list of teams, falling back from a remote recognition service
to local OCR and finally to a synthetic roster.
"""

__version__ = "0.1.0"
