"""Business logic services.

This package contains the scheduled report engine (``app.services.schedule``)
and the adapters for its external collaborators
(``app.services.integrations``).
"""
