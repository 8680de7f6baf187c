"""
Petty Cash Module (``backoffice_modules.petty_cash``).

Petty-cash cards (one active card per assignee), manual balance
adjustments and reloads, and expenses that debit the card only when
approved.  Every balance movement writes a card history row.
"""
