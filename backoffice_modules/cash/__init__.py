"""
Cash Module (``backoffice_modules.cash``).

Bank accounts and their append-only transaction history.  Other modules
post withdrawals through ``BankLedger`` inside their own transaction, so a
vendor-bill payment or petty-cash reload and its bank leg commit together
or not at all.
"""
