"""
Tether backend package.

Reminder scheduling and delivery for contacts kept in shared vaults.
"""
