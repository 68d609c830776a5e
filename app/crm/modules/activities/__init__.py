"""
Activities module (calls, meetings, emails, tasks).

Listing order is the agenda order: due date ascending with undated items
last, then priority high → low.
"""
