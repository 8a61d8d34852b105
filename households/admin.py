from django.contrib import admin

from .models import Household, HouseholdMembership


class HouseholdMembershipInline(admin.TabularInline):
    model = HouseholdMembership
    extra = 0
    raw_id_fields = ("user",)


@admin.register(Household)
class HouseholdAdmin(admin.ModelAdmin):
    list_display = ("id", "name", "created", "modified")
    search_fields = ("name",)
    inlines = (HouseholdMembershipInline,)


class HouseholdModelAdmin(admin.ModelAdmin):
    """Admin for household-owned models, bypassing the tenant-enforcing manager."""

    def get_queryset(self, request):
        return self.model.original_manager.all()
