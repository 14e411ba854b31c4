"""
Billing Domain

Recurring service subscriptions, one-off pending services and the monthly
consolidated invoice built from both.
"""
