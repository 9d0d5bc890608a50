import django.db.models.deletion
from django.db import migrations, models


class Migration(migrations.Migration):
    dependencies = [
        ("billing", "0001_initial"),
        ("tenants", "0001_initial"),
    ]

    operations = [
        migrations.AddField(
            model_name="tenant",
            name="plan",
            field=models.ForeignKey(
                blank=True,
                help_text="Plan currently granted to this tenant",
                null=True,
                on_delete=django.db.models.deletion.SET_NULL,
                related_name="tenants",
                to="billing.plandefinition",
            ),
        ),
    ]
