from django.contrib import admin
from .models import Connection


@admin.register(Connection)
class ConnectionAdmin(admin.ModelAdmin):
    list_display = ("id", "requester", "target", "status", "created_at", "updated_at")
    list_filter = ("status",)
    search_fields = ("requester__username", "target__username")
    raw_id_fields = ("requester", "target")
    readonly_fields = ("user_low", "user_high", "created_at", "updated_at")
