"""Business logic service layer.

Services coordinate the repository, token issuer, credential store and
notifier. They are constructed once by the application factory and reached
from route handlers through ``app.extensions``.
"""
