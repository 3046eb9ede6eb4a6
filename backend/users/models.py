"""
User model for the household ledger backend.

Authentication itself is handled by JWT tokens; household membership and
roles live in the ledger app so a user row carries only identity fields.
"""

from django.contrib.auth.models import AbstractUser
from django.db import models


class CustomUser(AbstractUser):
    """
    Custom user model extending Django's AbstractUser.

    Email is unique and required so household members can be looked up
    and invited by address.
    """

    email = models.EmailField(
        unique=True,
        blank=False,
        help_text="User's unique email address, required for all accounts",
    )

    display_name = models.CharField(
        max_length=150,
        blank=True,
        help_text="Name shown to other household members",
    )

    def __str__(self):
        return self.display_name or self.username or f"User {self.id} ({self.email})"

    @property
    def public_name(self):
        """Name used in member listings and transaction authorship."""
        return self.display_name or self.get_full_name() or self.username
