from django.db import migrations, models


class Migration(migrations.Migration):

    dependencies = [
        ("encoding", "0001_initial"),
    ]

    operations = [
        migrations.AddField(
            model_name="video",
            name="claimed_by",
            field=models.CharField(blank=True, default="", max_length=128),
        ),
        migrations.AddField(
            model_name="video",
            name="heartbeat_at",
            field=models.DateTimeField(blank=True, null=True),
        ),
    ]
