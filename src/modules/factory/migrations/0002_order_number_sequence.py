import re

from django.db import migrations, models

GENERATED_NUMBER = re.compile(r"^.+-(\d{4})-(\d+)$")


def backfill_sequences(apps, schema_editor):
    Order = apps.get_model("factory", "Order")
    for order in Order.objects.filter(order_sequence__isnull=True).only("order_number"):
        match = GENERATED_NUMBER.match(order.order_number)
        if match is None:
            continue
        Order.objects.filter(pk=order.pk).update(
            order_year=int(match.group(1)),
            order_sequence=int(match.group(2)),
        )


class Migration(migrations.Migration):

    dependencies = [
        ("factory", "0001_initial"),
    ]

    operations = [
        migrations.AddField(
            model_name="order",
            name="order_year",
            field=models.PositiveSmallIntegerField(blank=True, editable=False, null=True),
        ),
        migrations.AddField(
            model_name="order",
            name="order_sequence",
            field=models.PositiveIntegerField(blank=True, editable=False, null=True),
        ),
        migrations.RunPython(backfill_sequences, migrations.RunPython.noop),
        migrations.AddIndex(
            model_name="order",
            index=models.Index(
                fields=["order_year", "order_sequence"],
                name="factory_orders_number_idx",
            ),
        ),
    ]
