"""
Voice Expense Tracker - Source Package

A personal expense tracker: speak an expense, let the AI structure it,
review it (or not), and see where the money went in any currency.

DESIGN PRINCIPLES:
1. AI suggests → Human confirms (unless they opted out) → System saves
2. Never block the user on an advisory service (exchange rates)
3. Never trust the model's JSON blindly
4. Every step must be auditable
5. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "Voice Expense Tracker Team"
