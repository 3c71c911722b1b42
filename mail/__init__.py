"""mail/ -- SMTP delivery and email templates.

Layer rule: mail/ imports only core/, stdlib, and third-party libraries.
"""
