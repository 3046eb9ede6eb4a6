"""
Django admin configuration for the CustomUser model.
"""

from django.contrib import admin
from django.contrib.auth.admin import UserAdmin

from .models import CustomUser


@admin.register(CustomUser)
class CustomUserAdmin(UserAdmin):
    """UserAdmin extended with the household display name."""

    fieldsets = UserAdmin.fieldsets + (
        ("Household Profile", {"fields": ("display_name",)}),
    )
    add_fieldsets = UserAdmin.add_fieldsets + (
        ("Household Profile", {"fields": ("email", "display_name")}),
    )
    list_display = ("username", "email", "display_name", "is_staff", "is_active")
