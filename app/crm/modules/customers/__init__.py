"""
Customers module.

- Customers CRUD under /api/customers
- Phone numbers are unique (enforced by the database constraint)
- Deleting a customer leaves its contacts, opportunities and activities in place
"""
