from django.contrib import admin
from .models import Booklet, BookletAccess, AccessToken


class BookletAccessInline(admin.TabularInline):
    model = BookletAccess
    extra = 0
    readonly_fields = ('granted_at', 'revoked_at')


@admin.register(Booklet)
class BookletAdmin(admin.ModelAdmin):
    list_display = ('label', 'mother', 'status', 'expected_due_date', 'current_risk_level')
    list_filter = ('status', 'current_risk_level')
    search_fields = ('label', 'mother__username')
    inlines = [BookletAccessInline]


@admin.register(AccessToken)
class AccessTokenAdmin(admin.ModelAdmin):
    list_display = ('id', 'booklet', 'expires_at', 'used_at', 'used_by')
