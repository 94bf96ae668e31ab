"""
Carry negative seller balances between settlements.

Adds the balance_source link and the two balance line types, and widens
the item constraints to accept them.
"""

import django.db.models.deletion
from django.db import migrations, models


ITEM_TYPE_CHOICES = [
    ("order", "Order"),
    ("verification", "Verification"),
    ("refund_adjustment", "Refund Adjustment"),
    ("carried_forward", "Balance Carried Forward"),
    ("brought_forward", "Balance Brought Forward"),
]


class Migration(migrations.Migration):

    dependencies = [
        ("payments", "0003_add_settlement_schedules"),
    ]

    operations = [
        migrations.AddField(
            model_name="settlementitem",
            name="balance_source",
            field=models.ForeignKey(
                blank=True,
                help_text="Settlement whose negative balance this line carries",
                null=True,
                on_delete=django.db.models.deletion.PROTECT,
                related_name="balance_items",
                to="payments.settlement",
            ),
        ),
        migrations.AlterField(
            model_name="settlementitem",
            name="item_type",
            field=models.CharField(choices=ITEM_TYPE_CHOICES, db_index=True, max_length=20),
        ),
        migrations.RemoveConstraint(
            model_name="settlementitem",
            name="settlement_item_single_source",
        ),
        migrations.RemoveConstraint(
            model_name="settlementitem",
            name="settlement_item_attached",
        ),
        migrations.AddConstraint(
            model_name="settlementitem",
            constraint=models.UniqueConstraint(
                condition=models.Q(("balance_source__isnull", False)),
                fields=("balance_source", "item_type"),
                name="settlement_item_unique_balance",
            ),
        ),
        migrations.AddConstraint(
            model_name="settlementitem",
            constraint=models.CheckConstraint(
                condition=models.Q(
                    models.Q(
                        ("item_type", "order"),
                        ("order__isnull", False),
                        ("verifier_payout__isnull", True),
                        ("refund__isnull", True),
                        ("balance_source__isnull", True),
                    ),
                    models.Q(
                        ("item_type", "verification"),
                        ("order__isnull", True),
                        ("verifier_payout__isnull", False),
                        ("refund__isnull", True),
                        ("balance_source__isnull", True),
                    ),
                    models.Q(
                        ("item_type", "refund_adjustment"),
                        ("verifier_payout__isnull", True),
                        ("refund__isnull", False),
                        ("balance_source__isnull", True),
                    ),
                    models.Q(
                        ("item_type__in", ["carried_forward", "brought_forward"]),
                        ("order__isnull", True),
                        ("verifier_payout__isnull", True),
                        ("refund__isnull", True),
                        ("balance_source__isnull", False),
                    ),
                    _connector="OR",
                ),
                name="settlement_item_single_source",
            ),
        ),
        migrations.AddConstraint(
            model_name="settlementitem",
            constraint=models.CheckConstraint(
                condition=models.Q(
                    ("settlement__isnull", False),
                    ("item_type__in", ["refund_adjustment", "brought_forward"]),
                    _connector="OR",
                ),
                name="settlement_item_attached",
            ),
        ),
    ]
