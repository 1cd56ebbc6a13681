"""
Interview Rehearsal - simulated spoken job interviews.

Drives a multi-turn interviewer/candidate dialogue, narrates interviewer
turns through synthesized speech, collects delivery metrics, and turns the
finished session into a scored feedback report.
"""

__version__ = "0.1.0"
