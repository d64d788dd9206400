"""
Backend Listguard: listing intake and moderation for the marketplace.

Scores every proposed listing for fraud risk and content quality, fuses the
verdicts with account policy into approve / review / block, and runs the
moderator review queue with community reports and rewards.
"""

__version__ = "0.1.0"
