"""
Billing Module (``backoffice_modules.billing``).

Company bills (an internal, non-payable mirror of one purchase order) and
vendor bills (the supplier's payable invoice covering company bills or,
in the legacy flow, purchase orders directly).  Each purchase order can be
claimed by at most one vendor bill, directly or through its company bill.
"""
