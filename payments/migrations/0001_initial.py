import django.db.models.deletion
from django.db import migrations, models


class Migration(migrations.Migration):
    initial = True

    dependencies = [
        ('donations', '0001_initial'),
    ]

    operations = [
        migrations.CreateModel(
            name='WebhookEvent',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('event_id', models.CharField(blank=True, db_index=True, max_length=64, null=True)),
                ('event_type', models.CharField(db_index=True, max_length=64)),
                ('gateway_order_id', models.CharField(blank=True, db_index=True, default='', max_length=64)),
                ('gateway_payment_id', models.CharField(blank=True, default='', max_length=64)),
                ('reported_amount', models.PositiveBigIntegerField(blank=True, null=True)),
                ('outcome', models.CharField(choices=[('applied', 'Applied'), ('duplicate', 'Duplicate'), ('amount_mismatch', 'Amount mismatch'), ('failed', 'Marked failed'), ('ignored', 'Ignored'), ('unknown_order', 'Unknown order')], max_length=24)),
                ('payload', models.JSONField(blank=True, default=dict)),
                ('received_at', models.DateTimeField(auto_now_add=True)),
            ],
            options={
                'ordering': ('-received_at',),
            },
        ),
        migrations.CreateModel(
            name='ReviewFlag',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('reason', models.CharField(choices=[('AMOUNT_MISMATCH', 'Webhook amount differs from order'), ('GATEWAY_PAID_NO_WEBHOOK', 'Gateway reports paid, no webhook received')], db_index=True, max_length=32)),
                ('detail', models.JSONField(blank=True, default=dict)),
                ('resolved', models.BooleanField(default=False)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('donation', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='review_flags', to='donations.donation')),
            ],
            options={
                'ordering': ('-created_at',),
            },
        ),
    ]
