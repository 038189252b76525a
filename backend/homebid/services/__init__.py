"""
Business logic services package.

WHY: Services hold the proposal lifecycle rules, separated from API routes
and data access (API → Service → DAO). The validators and the state
machine are pure modules; the coordinator and services own transactions.
"""
