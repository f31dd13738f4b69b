from django.db import migrations, models


class Migration(migrations.Migration):

    dependencies = [
        ("events", "0001_initial"),
    ]

    operations = [
        migrations.AddConstraint(
            model_name="event",
            constraint=models.CheckConstraint(
                check=models.Q(member_fee__isnull=True) | models.Q(member_fee__lte=models.F("fee")),
                name="event_member_fee_lte_fee",
            ),
        ),
    ]
