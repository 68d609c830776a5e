"""
Dashboard counters and sales reports, computed live from the entity tables.
"""
