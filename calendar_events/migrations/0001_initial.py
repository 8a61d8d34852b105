import django.core.validators
import django.db.models.deletion
import django.utils.timezone
from django.conf import settings
from django.db import migrations, models

import model_utils.fields


def _base_fields():
    return [
        ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
        (
            "created",
            model_utils.fields.AutoCreatedField(
                db_index=True, default=django.utils.timezone.now, editable=False, verbose_name="created"
            ),
        ),
        (
            "modified",
            model_utils.fields.AutoLastModifiedField(
                db_index=True, default=django.utils.timezone.now, editable=False, verbose_name="modified"
            ),
        ),
        ("meta", models.JSONField(blank=True, default=dict, verbose_name="meta")),
    ]


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ("households", "0001_initial"),
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="CalendarEvent",
            fields=[
                *_base_fields(),
                ("title", models.CharField(max_length=255)),
                ("description", models.TextField(blank=True)),
                ("location", models.CharField(blank=True, max_length=500)),
                ("start_time", models.DateTimeField(db_index=True)),
                ("end_time", models.DateTimeField()),
                ("is_all_day", models.BooleanField(default=False)),
                (
                    "recurrence_rule",
                    models.CharField(
                        blank=True,
                        help_text="RRULE string, e.g. 'FREQ=WEEKLY;BYDAY=MO,WE'. Empty for single events.",
                        max_length=500,
                    ),
                ),
                (
                    "recurrence_end_date",
                    models.DateTimeField(
                        blank=True,
                        help_text="No occurrence starts after this instant. An occurrence starting on it is kept.",
                        null=True,
                    ),
                ),
                (
                    "reminder_minutes_before",
                    models.PositiveIntegerField(
                        blank=True,
                        null=True,
                        validators=[
                            django.core.validators.MinValueValidator(1),
                            django.core.validators.MaxValueValidator(10080),
                        ],
                    ),
                ),
                ("color", models.CharField(blank=True, max_length=50)),
                (
                    "created_by",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="created_calendar_events",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
                (
                    "household",
                    models.ForeignKey(
                        help_text="The household this record belongs to.",
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="+",
                        to="households.household",
                    ),
                ),
            ],
            options={
                "abstract": False,
            },
        ),
        migrations.CreateModel(
            name="CalendarEventMember",
            fields=[
                *_base_fields(),
                (
                    "participation_type",
                    models.CharField(
                        choices=[("involved", "Involved"), ("aware", "Aware")],
                        default="involved",
                        max_length=20,
                    ),
                ),
                (
                    "event",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="members",
                        to="calendar_events.calendarevent",
                    ),
                ),
                (
                    "user",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="calendar_event_memberships",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "constraints": [
                    models.UniqueConstraint(fields=("event", "user"), name="unique_calendar_event_member")
                ],
            },
        ),
        migrations.CreateModel(
            name="CalendarEventException",
            fields=[
                *_base_fields(),
                (
                    "original_start_time",
                    models.DateTimeField(help_text="The generated start time of the occurrence being excepted"),
                ),
                (
                    "is_deleted",
                    models.BooleanField(
                        default=False, help_text="True if this occurrence is cancelled, False if it's modified"
                    ),
                ),
                ("override_title", models.CharField(blank=True, max_length=255, null=True)),
                ("override_description", models.TextField(blank=True, null=True)),
                ("override_location", models.CharField(blank=True, max_length=500, null=True)),
                ("override_start_time", models.DateTimeField(blank=True, null=True)),
                ("override_end_time", models.DateTimeField(blank=True, null=True)),
                ("override_is_all_day", models.BooleanField(blank=True, null=True)),
                (
                    "event",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="exceptions",
                        to="calendar_events.calendarevent",
                    ),
                ),
            ],
            options={
                "constraints": [
                    models.UniqueConstraint(
                        fields=("event", "original_start_time"), name="unique_calendar_event_exception"
                    )
                ],
            },
        ),
        migrations.CreateModel(
            name="ExternalCalendarSubscription",
            fields=[
                *_base_fields(),
                ("name", models.CharField(max_length=255)),
                ("ics_url", models.URLField(max_length=2048)),
                ("color", models.CharField(blank=True, max_length=50)),
                ("sync_interval_minutes", models.PositiveIntegerField(default=60)),
                ("last_synced_at", models.DateTimeField(blank=True, null=True)),
                (
                    "last_sync_status",
                    models.CharField(
                        choices=[
                            ("success", "Success"),
                            ("failed", "Failed"),
                            ("in_progress", "In Progress"),
                            ("not_started", "Not Started"),
                        ],
                        default="not_started",
                        max_length=20,
                    ),
                ),
                ("is_active", models.BooleanField(default=True)),
                (
                    "household",
                    models.ForeignKey(
                        help_text="The household this record belongs to.",
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="+",
                        to="households.household",
                    ),
                ),
                (
                    "user",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="external_calendar_subscriptions",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "abstract": False,
            },
        ),
        migrations.CreateModel(
            name="ExternalCalendarEvent",
            fields=[
                *_base_fields(),
                ("external_uid", models.CharField(max_length=1024)),
                ("title", models.CharField(blank=True, max_length=255)),
                ("start_time", models.DateTimeField(db_index=True)),
                ("end_time", models.DateTimeField()),
                ("is_all_day", models.BooleanField(default=False)),
                (
                    "subscription",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="events",
                        to="calendar_events.externalcalendarsubscription",
                    ),
                ),
            ],
            options={
                "constraints": [
                    models.UniqueConstraint(
                        fields=("subscription", "external_uid"), name="unique_external_calendar_event_uid"
                    )
                ],
            },
        ),
    ]
