import uuid

import django.db.models.deletion
import django.utils.timezone
import django_fsm
from django.conf import settings
from django.db import migrations, models


def _timestamps():
    return [
        ("created_at", models.DateTimeField(auto_now_add=True, db_index=True)),
        ("updated_at", models.DateTimeField(auto_now=True)),
    ]


def _uuid_pk():
    return (
        "id",
        models.UUIDField(
            default=uuid.uuid4, editable=False, primary_key=True, serialize=False
        ),
    )


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="Product",
            fields=[
                _uuid_pk(),
                *_timestamps(),
                ("title", models.CharField(max_length=200)),
                ("price", models.PositiveBigIntegerField()),
                ("currency", models.CharField(default="usd", max_length=3)),
                ("is_active", models.BooleanField(db_index=True, default=True)),
                (
                    "seller",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="products",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "verbose_name": "Product",
                "verbose_name_plural": "Products",
                "ordering": ["-created_at"],
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(("price__gt", 0)),
                        name="product_price_positive",
                    )
                ],
            },
        ),
        migrations.CreateModel(
            name="Plan",
            fields=[
                _uuid_pk(),
                *_timestamps(),
                (
                    "tier",
                    models.CharField(
                        choices=[
                            ("FREE", "Free"),
                            ("BASIC", "Basic"),
                            ("PRO", "Pro"),
                            ("ENTERPRISE", "Enterprise"),
                        ],
                        max_length=20,
                        unique=True,
                    ),
                ),
                ("name", models.CharField(max_length=100)),
                ("description", models.TextField(blank=True, default="")),
                ("monthly_price", models.PositiveBigIntegerField(default=0)),
                ("yearly_price", models.PositiveBigIntegerField(default=0)),
                ("currency", models.CharField(default="usd", max_length=3)),
                ("features", models.JSONField(blank=True, default=dict)),
                ("sort_order", models.PositiveSmallIntegerField(default=0)),
                ("is_active", models.BooleanField(default=True)),
            ],
            options={
                "verbose_name": "Plan",
                "verbose_name_plural": "Plans",
                "ordering": ["sort_order"],
            },
        ),
        migrations.CreateModel(
            name="WebhookEvent",
            fields=[
                _uuid_pk(),
                *_timestamps(),
                (
                    "provider",
                    models.CharField(
                        choices=[("stripe", "Stripe"), ("toss", "Toss Payments")],
                        db_index=True,
                        max_length=20,
                    ),
                ),
                ("event_id", models.CharField(max_length=255)),
                ("event_type", models.CharField(db_index=True, max_length=100)),
                ("normalized_type", models.CharField(blank=True, default="", max_length=50)),
                ("payload", models.JSONField(default=dict)),
                ("normalized", models.JSONField(blank=True, default=dict)),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("pending", "Pending"),
                            ("processing", "Processing"),
                            ("processed", "Processed"),
                            ("failed", "Failed"),
                        ],
                        db_index=True,
                        default="pending",
                        max_length=20,
                    ),
                ),
                ("result", models.JSONField(blank=True, default=dict)),
                ("processed_at", models.DateTimeField(blank=True, null=True)),
                ("error_message", models.TextField(blank=True, null=True)),
                ("retry_count", models.PositiveSmallIntegerField(default=0)),
            ],
            options={
                "verbose_name": "Webhook Event",
                "verbose_name_plural": "Webhook Events",
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(fields=["status", "created_at"], name="webhook_status_created_idx"),
                    models.Index(fields=["status", "retry_count"], name="webhook_status_retry_idx"),
                ],
                "constraints": [
                    models.UniqueConstraint(
                        fields=("provider", "event_id"),
                        name="webhook_event_unique_provider_event",
                    )
                ],
            },
        ),
        migrations.CreateModel(
            name="Settlement",
            fields=[
                _uuid_pk(),
                *_timestamps(),
                ("version", models.PositiveIntegerField(default=1)),
                (
                    "settlement_type",
                    models.CharField(
                        choices=[("seller", "Seller"), ("verifier", "Verifier")],
                        default="seller",
                        max_length=20,
                    ),
                ),
                ("currency", models.CharField(default="usd", max_length=3)),
                ("period_start", models.DateTimeField()),
                ("period_end", models.DateTimeField()),
                ("total_amount", models.BigIntegerField(default=0)),
                ("platform_fee", models.BigIntegerField(default=0)),
                ("payout_amount", models.BigIntegerField(default=0)),
                ("refund_amount", models.BigIntegerField(default=0)),
                ("order_count", models.PositiveIntegerField(default=0)),
                ("verification_earnings", models.BigIntegerField(default=0)),
                ("verification_count", models.PositiveIntegerField(default=0)),
                (
                    "status",
                    django_fsm.FSMField(
                        choices=[
                            ("pending", "Pending"),
                            ("processing", "Processing"),
                            ("paid", "Paid"),
                            ("failed", "Failed"),
                            ("cancelled", "Cancelled"),
                        ],
                        db_index=True,
                        default="pending",
                        max_length=50,
                        protected=True,
                    ),
                ),
                (
                    "payout_method",
                    models.CharField(
                        choices=[
                            ("bank_transfer", "Bank Transfer"),
                            ("stripe_connect", "Stripe Connect"),
                        ],
                        default="bank_transfer",
                        max_length=20,
                    ),
                ),
                ("payout_reference", models.CharField(blank=True, max_length=255, null=True)),
                ("paid_at", models.DateTimeField(blank=True, null=True)),
                ("failed_at", models.DateTimeField(blank=True, null=True)),
                ("cancelled_at", models.DateTimeField(blank=True, null=True)),
                ("failure_reason", models.TextField(blank=True, null=True)),
                (
                    "seller",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="settlements",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "verbose_name": "Settlement",
                "verbose_name_plural": "Settlements",
                "ordering": ["-period_start", "-created_at"],
                "indexes": [
                    models.Index(fields=["seller", "status"], name="settlement_seller_status_idx"),
                    models.Index(fields=["status", "period_start"], name="settlement_status_period_idx"),
                ],
                "constraints": [
                    models.UniqueConstraint(
                        fields=("seller", "settlement_type", "currency", "period_start", "period_end"),
                        name="settlement_unique_payee_period",
                    ),
                    models.CheckConstraint(
                        condition=models.Q(("period_end__gt", models.F("period_start"))),
                        name="settlement_period_ordered",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="Order",
            fields=[
                _uuid_pk(),
                *_timestamps(),
                ("version", models.PositiveIntegerField(default=1)),
                ("amount", models.PositiveBigIntegerField()),
                ("currency", models.CharField(default="usd", max_length=3)),
                ("platform_fee", models.PositiveBigIntegerField(default=0)),
                ("seller_amount", models.PositiveBigIntegerField()),
                ("refunded_amount", models.PositiveBigIntegerField(default=0)),
                ("refunded_platform_fee", models.PositiveBigIntegerField(default=0)),
                (
                    "status",
                    django_fsm.FSMField(
                        choices=[
                            ("pending", "Pending"),
                            ("paid", "Paid"),
                            ("completed", "Completed"),
                            ("failed", "Failed"),
                            ("refunded", "Refunded"),
                        ],
                        db_index=True,
                        default="pending",
                        max_length=50,
                        protected=True,
                    ),
                ),
                ("access_granted", models.BooleanField(default=False)),
                ("failure_code", models.CharField(blank=True, max_length=100, null=True)),
                ("failure_message", models.TextField(blank=True, null=True)),
                ("paid_at", models.DateTimeField(blank=True, db_index=True, null=True)),
                ("completed_at", models.DateTimeField(blank=True, null=True)),
                ("refunded_at", models.DateTimeField(blank=True, null=True)),
                ("settled_at", models.DateTimeField(blank=True, null=True)),
                (
                    "buyer",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="orders",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
                (
                    "product",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="orders",
                        to="payments.product",
                    ),
                ),
                (
                    "settlement",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="orders",
                        to="payments.settlement",
                    ),
                ),
            ],
            options={
                "verbose_name": "Order",
                "verbose_name_plural": "Orders",
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(fields=["buyer", "status"], name="order_buyer_status_idx"),
                    models.Index(fields=["status", "paid_at"], name="order_status_paid_at_idx"),
                    models.Index(fields=["settlement", "status"], name="order_settlement_status_idx"),
                ],
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(("amount__gt", 0)),
                        name="order_amount_positive",
                    ),
                    models.CheckConstraint(
                        condition=models.Q(
                            ("seller_amount", models.F("amount") - models.F("platform_fee"))
                        ),
                        name="order_revenue_split_balanced",
                    ),
                    models.CheckConstraint(
                        condition=models.Q(("refunded_amount__lte", models.F("amount"))),
                        name="order_refund_within_amount",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="Payment",
            fields=[
                _uuid_pk(),
                *_timestamps(),
                ("version", models.PositiveIntegerField(default=1)),
                (
                    "provider",
                    models.CharField(
                        choices=[("stripe", "Stripe"), ("toss", "Toss Payments")],
                        max_length=20,
                    ),
                ),
                (
                    "provider_payment_id",
                    models.CharField(blank=True, db_index=True, max_length=255, null=True),
                ),
                ("customer_id", models.CharField(blank=True, max_length=255, null=True)),
                ("amount", models.PositiveBigIntegerField()),
                ("currency", models.CharField(default="usd", max_length=3)),
                (
                    "status",
                    django_fsm.FSMField(
                        choices=[
                            ("created", "Created"),
                            ("requires_payment_method", "Requires Payment Method"),
                            ("processing", "Processing"),
                            ("succeeded", "Succeeded"),
                            ("failed", "Failed"),
                            ("refunded", "Refunded"),
                        ],
                        db_index=True,
                        default="created",
                        max_length=50,
                        protected=True,
                    ),
                ),
                ("payment_method", models.JSONField(blank=True, default=dict)),
                ("failure_code", models.CharField(blank=True, max_length=100, null=True)),
                ("failure_message", models.TextField(blank=True, null=True)),
                ("succeeded_at", models.DateTimeField(blank=True, null=True)),
                ("failed_at", models.DateTimeField(blank=True, null=True)),
                ("refunded_at", models.DateTimeField(blank=True, null=True)),
                ("metadata", models.JSONField(blank=True, default=dict)),
                (
                    "order",
                    models.OneToOneField(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="payment",
                        to="payments.order",
                    ),
                ),
            ],
            options={
                "verbose_name": "Payment",
                "verbose_name_plural": "Payments",
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(fields=["provider", "status"], name="payment_provider_status_idx"),
                ],
                "constraints": [
                    models.UniqueConstraint(
                        fields=("provider", "provider_payment_id"),
                        name="payment_provider_id_unique",
                    )
                ],
            },
        ),
        migrations.CreateModel(
            name="Refund",
            fields=[
                _uuid_pk(),
                *_timestamps(),
                ("version", models.PositiveIntegerField(default=1)),
                ("amount", models.PositiveBigIntegerField()),
                ("platform_fee_reversed", models.PositiveBigIntegerField(default=0)),
                ("currency", models.CharField(default="usd", max_length=3)),
                ("reason", models.CharField(blank=True, max_length=255, null=True)),
                (
                    "status",
                    django_fsm.FSMField(
                        choices=[
                            ("pending", "Pending"),
                            ("processing", "Processing"),
                            ("succeeded", "Succeeded"),
                            ("failed", "Failed"),
                        ],
                        db_index=True,
                        default="pending",
                        max_length=50,
                        protected=True,
                    ),
                ),
                (
                    "provider_refund_id",
                    models.CharField(blank=True, max_length=255, null=True, unique=True),
                ),
                ("processed_at", models.DateTimeField(blank=True, null=True)),
                ("failed_at", models.DateTimeField(blank=True, null=True)),
                ("failure_reason", models.TextField(blank=True, null=True)),
                (
                    "order",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="refunds",
                        to="payments.order",
                    ),
                ),
                (
                    "payment",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="refunds",
                        to="payments.payment",
                    ),
                ),
                (
                    "requested_by",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="requested_refunds",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "verbose_name": "Refund",
                "verbose_name_plural": "Refunds",
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(fields=["order", "status"], name="refund_order_status_idx"),
                ],
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(("amount__gt", 0)),
                        name="refund_amount_positive",
                    )
                ],
            },
        ),
        migrations.CreateModel(
            name="VerifierPayout",
            fields=[
                _uuid_pk(),
                *_timestamps(),
                ("verification_reference", models.CharField(max_length=255, unique=True)),
                ("amount", models.PositiveBigIntegerField()),
                ("currency", models.CharField(default="usd", max_length=3)),
                (
                    "status",
                    django_fsm.FSMField(
                        choices=[
                            ("pending", "Pending"),
                            ("included_in_settlement", "Included in Settlement"),
                            ("paid", "Paid"),
                        ],
                        db_index=True,
                        default="pending",
                        max_length=50,
                        protected=True,
                    ),
                ),
                ("paid_at", models.DateTimeField(blank=True, null=True)),
                (
                    "settlement",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="verifier_payouts",
                        to="payments.settlement",
                    ),
                ),
                (
                    "verifier",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="verifier_payouts",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "verbose_name": "Verifier Payout",
                "verbose_name_plural": "Verifier Payouts",
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(
                        fields=["verifier", "status", "created_at"],
                        name="verifier_payout_lookup_idx",
                    ),
                ],
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(("amount__gt", 0)),
                        name="verifier_payout_amount_positive",
                    )
                ],
            },
        ),
        migrations.CreateModel(
            name="SettlementItem",
            fields=[
                _uuid_pk(),
                *_timestamps(),
                (
                    "item_type",
                    models.CharField(
                        choices=[
                            ("order", "Order"),
                            ("verification", "Verification"),
                            ("refund_adjustment", "Refund Adjustment"),
                        ],
                        db_index=True,
                        max_length=20,
                    ),
                ),
                ("currency", models.CharField(default="usd", max_length=3)),
                ("amount", models.BigIntegerField()),
                ("platform_fee", models.BigIntegerField(default=0)),
                ("payout_amount", models.BigIntegerField()),
                ("description", models.CharField(blank=True, default="", max_length=255)),
                (
                    "order",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="settlement_items",
                        to="payments.order",
                    ),
                ),
                (
                    "refund",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="settlement_items",
                        to="payments.refund",
                    ),
                ),
                (
                    "seller",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="settlement_items",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
                (
                    "settlement",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="items",
                        to="payments.settlement",
                    ),
                ),
                (
                    "verifier_payout",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="settlement_items",
                        to="payments.verifierpayout",
                    ),
                ),
            ],
            options={
                "verbose_name": "Settlement Item",
                "verbose_name_plural": "Settlement Items",
                "ordering": ["created_at"],
                "indexes": [
                    models.Index(
                        fields=["seller", "item_type", "settlement"],
                        name="settlement_item_lookup_idx",
                    ),
                ],
                "constraints": [
                    models.UniqueConstraint(
                        condition=models.Q(("item_type", "order")),
                        fields=("order",),
                        name="settlement_item_unique_order",
                    ),
                    models.UniqueConstraint(
                        condition=models.Q(("verifier_payout__isnull", False)),
                        fields=("verifier_payout",),
                        name="settlement_item_unique_verifier_payout",
                    ),
                    models.UniqueConstraint(
                        condition=models.Q(("refund__isnull", False)),
                        fields=("refund",),
                        name="settlement_item_unique_refund",
                    ),
                    models.CheckConstraint(
                        condition=models.Q(
                            models.Q(
                                ("item_type", "order"),
                                ("order__isnull", False),
                                ("refund__isnull", True),
                                ("verifier_payout__isnull", True),
                            ),
                            models.Q(
                                ("item_type", "verification"),
                                ("order__isnull", True),
                                ("refund__isnull", True),
                                ("verifier_payout__isnull", False),
                            ),
                            models.Q(
                                ("item_type", "refund_adjustment"),
                                ("refund__isnull", False),
                                ("verifier_payout__isnull", True),
                            ),
                            _connector="OR",
                        ),
                        name="settlement_item_single_source",
                    ),
                    models.CheckConstraint(
                        condition=models.Q(
                            ("settlement__isnull", False),
                            ("item_type", "refund_adjustment"),
                            _connector="OR",
                        ),
                        name="settlement_item_attached",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="Subscription",
            fields=[
                _uuid_pk(),
                *_timestamps(),
                ("version", models.PositiveIntegerField(default=1)),
                (
                    "tier",
                    models.CharField(
                        choices=[
                            ("FREE", "Free"),
                            ("BASIC", "Basic"),
                            ("PRO", "Pro"),
                            ("ENTERPRISE", "Enterprise"),
                        ],
                        db_index=True,
                        default="FREE",
                        max_length=20,
                    ),
                ),
                (
                    "interval",
                    models.CharField(
                        choices=[("monthly", "Monthly"), ("yearly", "Yearly")],
                        default="monthly",
                        max_length=10,
                    ),
                ),
                ("current_period_start", models.DateTimeField()),
                ("current_period_end", models.DateTimeField(db_index=True)),
                ("cancel_at_period_end", models.BooleanField(default=False)),
                (
                    "status",
                    django_fsm.FSMField(
                        choices=[
                            ("active", "Active"),
                            ("past_due", "Past Due"),
                            ("cancelled", "Cancelled"),
                        ],
                        db_index=True,
                        default="active",
                        max_length=50,
                        protected=True,
                    ),
                ),
                ("cancelled_at", models.DateTimeField(blank=True, null=True)),
                (
                    "stripe_subscription_id",
                    models.CharField(blank=True, max_length=255, null=True, unique=True),
                ),
                ("stripe_customer_id", models.CharField(blank=True, max_length=255, null=True)),
                (
                    "user",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="subscriptions",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "verbose_name": "Subscription",
                "verbose_name_plural": "Subscriptions",
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(
                        fields=["status", "cancel_at_period_end", "current_period_end"],
                        name="subscription_rollover_idx",
                    ),
                ],
                "constraints": [
                    models.UniqueConstraint(
                        condition=models.Q(("status", "cancelled"), _negated=True),
                        fields=("user",),
                        name="subscription_one_open_per_user",
                    ),
                    models.CheckConstraint(
                        condition=models.Q(
                            ("current_period_end__gt", models.F("current_period_start"))
                        ),
                        name="subscription_period_ordered",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="SubscriptionChange",
            fields=[
                _uuid_pk(),
                *_timestamps(),
                (
                    "from_tier",
                    models.CharField(
                        choices=[
                            ("FREE", "Free"),
                            ("BASIC", "Basic"),
                            ("PRO", "Pro"),
                            ("ENTERPRISE", "Enterprise"),
                        ],
                        max_length=20,
                    ),
                ),
                (
                    "to_tier",
                    models.CharField(
                        choices=[
                            ("FREE", "Free"),
                            ("BASIC", "Basic"),
                            ("PRO", "Pro"),
                            ("ENTERPRISE", "Enterprise"),
                        ],
                        max_length=20,
                    ),
                ),
                (
                    "interval",
                    models.CharField(
                        choices=[("monthly", "Monthly"), ("yearly", "Yearly")],
                        max_length=10,
                    ),
                ),
                ("credits_applied", models.PositiveBigIntegerField(default=0)),
                ("immediate_charge", models.PositiveBigIntegerField(default=0)),
                ("next_billing_amount", models.PositiveBigIntegerField(default=0)),
                ("next_billing_date", models.DateTimeField()),
                ("effective_at", models.DateTimeField(default=django.utils.timezone.now)),
                (
                    "subscription",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="changes",
                        to="payments.subscription",
                    ),
                ),
            ],
            options={
                "verbose_name": "Subscription Change",
                "verbose_name_plural": "Subscription Changes",
                "ordering": ["-effective_at"],
            },
        ),
    ]
