from django.contrib import admin

from households.admin import HouseholdModelAdmin

from .models import (
    CalendarEvent,
    CalendarEventException,
    CalendarEventMember,
    CalendarFeedToken,
    ExternalCalendarEvent,
    ExternalCalendarSubscription,
)


class CalendarEventMemberInline(admin.TabularInline):
    model = CalendarEventMember
    extra = 0
    raw_id_fields = ("user",)


class CalendarEventExceptionInline(admin.TabularInline):
    model = CalendarEventException
    extra = 0
    fields = (
        "original_start_time",
        "is_deleted",
        "override_title",
        "override_start_time",
        "override_end_time",
    )


@admin.register(CalendarEvent)
class CalendarEventAdmin(HouseholdModelAdmin):
    list_display = ("id", "title", "household", "start_time", "end_time", "recurrence_rule")
    list_filter = ("is_all_day",)
    search_fields = ("title",)
    raw_id_fields = ("household", "created_by")
    inlines = (CalendarEventMemberInline, CalendarEventExceptionInline)


class ExternalCalendarEventInline(admin.TabularInline):
    model = ExternalCalendarEvent
    extra = 0
    readonly_fields = ("external_uid", "title", "start_time", "end_time", "is_all_day")
    max_num = 20


@admin.register(ExternalCalendarSubscription)
class ExternalCalendarSubscriptionAdmin(HouseholdModelAdmin):
    list_display = ("id", "name", "user", "household", "is_active", "last_sync_status")
    list_filter = ("is_active", "last_sync_status")
    raw_id_fields = ("household", "user")
    inlines = (ExternalCalendarEventInline,)


@admin.register(CalendarFeedToken)
class CalendarFeedTokenAdmin(HouseholdModelAdmin):
    list_display = ("id", "label", "user", "household", "is_revoked", "created")
    list_filter = ("is_revoked",)
    raw_id_fields = ("household", "user")
    readonly_fields = ("token",)
