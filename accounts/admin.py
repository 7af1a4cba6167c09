from django.contrib import admin
from .models import User


@admin.register(User)
class UserAdmin(admin.ModelAdmin):
    list_display = (
        "username",
        "full_name",
        "email",
        "current_title",
        "affiliation",
        "is_active",
    )
    search_fields = ("username", "full_name", "email", "affiliation")
    list_filter = ("is_active", "role")
