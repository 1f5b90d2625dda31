"""
Money Conversations - Source Package

A local journal for the money conversations people have with the
people around them: what they wanted, how it went, how it felt.

DESIGN PRINCIPLES:
1. Validate first, then write; nothing invalid reaches storage
2. Fail early, fail visibly
3. No silent corrections
4. Every change is published and logged
5. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "Money Conversations Team"
