"""
Initial migration for the events app.

Defines the Event catalog model and the EventRegistration record with
its payment method, payment status and payment proof columns.
"""
from decimal import Decimal
import uuid

import django.core.validators
import django.db.models.deletion
from django.db import migrations, models


class Migration(migrations.Migration):
    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="Event",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("title", models.CharField(max_length=255)),
                ("slug", models.SlugField(blank=True, max_length=255, unique=True)),
                ("description", models.TextField(blank=True)),
                ("start_time", models.DateTimeField(blank=True, null=True)),
                ("end_time", models.DateTimeField(blank=True, null=True)),
                ("location", models.CharField(blank=True, max_length=255)),
                (
                    "status",
                    models.CharField(
                        choices=[("draft", "Draft"), ("published", "Published"), ("ended", "Ended")],
                        default="published",
                        max_length=16,
                    ),
                ),
                ("fee", models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=10)),
                ("member_fee", models.DecimalField(blank=True, decimal_places=2, max_digits=10, null=True)),
                ("currency", models.CharField(default="aud", max_length=10)),
                ("capacity", models.PositiveIntegerField(blank=True, help_text="Empty means unlimited", null=True)),
                (
                    "access_type",
                    models.CharField(
                        choices=[("members_only", "Members only"), ("all_welcome", "All welcome")],
                        default="all_welcome",
                        max_length=20,
                    ),
                ),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
            ],
            options={
                "ordering": ["-created_at"],
            },
        ),
        migrations.CreateModel(
            name="EventRegistration",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("name", models.CharField(max_length=255)),
                ("phone", models.CharField(max_length=50)),
                ("email", models.EmailField(blank=True, max_length=254, null=True)),
                (
                    "tickets",
                    models.PositiveSmallIntegerField(
                        default=1,
                        validators=[
                            django.core.validators.MinValueValidator(1),
                            django.core.validators.MaxValueValidator(5),
                        ],
                    ),
                ),
                ("notes", models.TextField(blank=True)),
                (
                    "payment_method",
                    models.CharField(
                        blank=True,
                        choices=[
                            ("card", "Card"),
                            ("cash", "Cash"),
                            ("payid", "Bank transfer (PayID)"),
                            ("transfer", "Bank transfer (BSB)"),
                        ],
                        max_length=16,
                        null=True,
                    ),
                ),
                (
                    "payment_status",
                    models.CharField(
                        blank=True,
                        choices=[
                            ("pending", "Pending"),
                            ("confirmed", "Confirmed"),
                            ("cancelled", "Cancelled"),
                            ("expired", "Expired"),
                        ],
                        max_length=16,
                        null=True,
                    ),
                ),
                (
                    "payment_proof",
                    models.CharField(
                        blank=True,
                        help_text="Storage key of the uploaded transfer evidence (or a legacy absolute URL)",
                        max_length=512,
                        null=True,
                    ),
                ),
                ("checkout_session_id", models.CharField(blank=True, max_length=255, null=True, unique=True)),
                ("reviewed_by", models.CharField(blank=True, max_length=150)),
                ("reviewed_at", models.DateTimeField(blank=True, null=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "event",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="registrations",
                        to="events.event",
                    ),
                ),
            ],
            options={
                "db_table": "event_registrations",
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(fields=["event", "payment_status"], name="event_regis_event_i_6c1f0d_idx"),
                    models.Index(fields=["payment_status"], name="event_regis_payment_3b9e2a_idx"),
                ],
            },
        ),
    ]
