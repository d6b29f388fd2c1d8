"""
Django admin registrations for the hospitalization models.

Both tables are written by other systems (the admission process and the
settlement procedure), so the admin is read-only apart from inspection.
"""

from django.contrib import admin

from .models import Hospitalization, BillingAccount


class ReadOnlyAdmin(admin.ModelAdmin):
    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False


@admin.register(Hospitalization)
class HospitalizationAdmin(ReadOnlyAdmin):
    list_display = ('episode_id', 'patient_id', 'insurance', 'origin', 'account_id', 'operator')
    list_filter = ('insurance', 'origin')
    search_fields = ('episode_id', 'patient_id', 'account_id')


@admin.register(BillingAccount)
class BillingAccountAdmin(ReadOnlyAdmin):
    list_display = ('account_id', 'patient_id', 'status', 'opened_at')
    list_filter = ('status',)
    search_fields = ('account_id', 'patient_id')
    ordering = ('-opened_at',)
