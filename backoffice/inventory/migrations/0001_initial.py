import django.db.models.deletion
from decimal import Decimal
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="Item",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("name", models.CharField(db_index=True, max_length=255)),
                ("description", models.TextField(blank=True)),
                ("price", models.DecimalField(decimal_places=2, max_digits=10)),
                ("discount", models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=5)),
                (
                    "unit",
                    models.CharField(
                        choices=[
                            ("kg", "Kilogram"),
                            ("grams", "Grams"),
                            ("ml", "Millilitre"),
                            ("litre", "Litre"),
                            ("pieces", "Pieces"),
                            ("dozen", "Dozen"),
                            ("packet", "Packet"),
                            ("bottle", "Bottle"),
                            ("can", "Can"),
                        ],
                        max_length=50,
                    ),
                ),
                ("category", models.CharField(blank=True, max_length=100)),
                ("quantity", models.PositiveIntegerField(default=0)),
                ("min_stock_level", models.PositiveIntegerField(default=10, help_text="Reorder threshold (informational)")),
                ("is_active", models.BooleanField(default=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
            ],
            options={
                "db_table": "items",
                "ordering": ["name"],
                "indexes": [
                    models.Index(fields=["is_active", "quantity"], name="idx_items_active_quantity"),
                    models.Index(fields=["category"], name="idx_items_category"),
                ],
                "constraints": [
                    models.CheckConstraint(condition=models.Q(("quantity__gte", 0)), name="items_quantity_non_negative"),
                    models.CheckConstraint(condition=models.Q(("price__gte", 0)), name="items_price_non_negative"),
                ],
            },
        ),
        migrations.CreateModel(
            name="StockAdjustment",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                (
                    "operation",
                    models.CharField(
                        choices=[("set", "Set"), ("add", "Add"), ("subtract", "Subtract")],
                        max_length=10,
                    ),
                ),
                ("quantity", models.PositiveIntegerField(help_text="Amount given with the operation")),
                ("previous_quantity", models.PositiveIntegerField()),
                ("new_quantity", models.PositiveIntegerField()),
                ("reason", models.CharField(blank=True, max_length=255)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                (
                    "created_by",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="stock_adjustments",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
                (
                    "item",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="adjustments",
                        to="inventory.item",
                    ),
                ),
            ],
            options={
                "db_table": "stock_adjustments",
                "ordering": ["-created_at"],
            },
        ),
    ]
