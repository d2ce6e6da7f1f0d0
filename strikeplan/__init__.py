"""
Strike staffing planner: reduced-headcount position generation, provider
matching, assignments and token-scoped self-service claims.
"""
