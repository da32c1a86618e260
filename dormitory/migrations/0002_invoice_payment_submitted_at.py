from django.db import migrations, models


class Migration(migrations.Migration):

    dependencies = [
        ("dormitory", "0001_initial"),
    ]

    operations = [
        migrations.AddField(
            model_name="invoice",
            name="payment_submitted_at",
            field=models.DateTimeField(blank=True, help_text="When a student reported paying", null=True),
        ),
    ]
