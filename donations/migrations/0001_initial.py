import uuid

import django.core.validators
import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):
    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name='DonationHead',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('key', models.SlugField(max_length=64, unique=True)),
                ('name', models.CharField(max_length=128)),
                ('description', models.CharField(blank=True, default='', max_length=500)),
                ('min_amount', models.PositiveIntegerField(blank=True, null=True)),
                ('preset_amounts', models.JSONField(blank=True, default=list)),
                ('display_order', models.IntegerField(default=0)),
                ('is_active', models.BooleanField(db_index=True, default=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
            ],
            options={
                'ordering': ('display_order', 'name'),
            },
        ),
        migrations.CreateModel(
            name='OtpCode',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('mobile', models.CharField(db_index=True, max_length=16)),
                ('code_hash', models.CharField(max_length=128)),
                ('expires_at', models.DateTimeField()),
                ('consumed', models.BooleanField(default=False)),
                ('attempts', models.PositiveIntegerField(default=0)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
            ],
        ),
        migrations.CreateModel(
            name='Donation',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('donor_name', models.CharField(max_length=128)),
                ('donor_mobile', models.CharField(max_length=16)),
                ('donor_email', models.EmailField(blank=True, default='', max_length=254)),
                ('email_opt_in', models.BooleanField(default=False)),
                ('address_line', models.CharField(blank=True, default='', max_length=256)),
                ('city', models.CharField(blank=True, default='', max_length=64)),
                ('state', models.CharField(blank=True, default='', max_length=64)),
                ('country', models.CharField(blank=True, default='India', max_length=64)),
                ('pincode', models.CharField(blank=True, default='', max_length=10)),
                ('donor_dob', models.DateField()),
                ('id_type', models.CharField(default='PAN', max_length=8)),
                ('id_number', models.CharField(max_length=16)),
                ('anonymous_display', models.BooleanField(default=False)),
                ('donation_head_name', models.CharField(max_length=128)),
                ('amount', models.PositiveIntegerField(validators=[django.core.validators.MinValueValidator(1)])),
                ('referral_code', models.CharField(blank=True, db_index=True, default='', max_length=16)),
                ('collector_name', models.CharField(blank=True, default='', max_length=128)),
                ('payment_method', models.CharField(choices=[('ONLINE', 'Online'), ('CASH', 'Cash')], db_index=True, default='ONLINE', max_length=8)),
                ('gateway_order_id', models.CharField(blank=True, max_length=64, null=True, unique=True)),
                ('order_amount_minor', models.PositiveBigIntegerField(blank=True, null=True)),
                ('currency', models.CharField(blank=True, default='', max_length=3)),
                ('gateway_payment_id', models.CharField(blank=True, default='', max_length=64)),
                ('status', models.CharField(choices=[('PENDING', 'PENDING'), ('SUCCESS', 'SUCCESS'), ('FAILED', 'FAILED')], db_index=True, default='PENDING', max_length=16)),
                ('receipt_number', models.CharField(blank=True, max_length=32, null=True, unique=True)),
                ('otp_verified', models.BooleanField(default=False)),
                ('created_at', models.DateTimeField(db_index=True)),
                ('confirmed_at', models.DateTimeField(blank=True, null=True)),
                ('donation_head', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='donations', to='donations.donationhead')),
                ('user', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.PROTECT, related_name='donations', to=settings.AUTH_USER_MODEL)),
                ('added_by', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.PROTECT, related_name='recorded_donations', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'ordering': ('-created_at',),
                'indexes': [
                    models.Index(fields=['referral_code', 'status'], name='donations_d_referra_5c1f0e_idx'),
                    models.Index(fields=['user', 'created_at'], name='donations_d_user_id_8a2b4d_idx'),
                ],
            },
        ),
        migrations.CreateModel(
            name='Receipt',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('number', models.CharField(max_length=32, null=True, unique=True)),
                ('file_path', models.CharField(blank=True, default='', max_length=256)),
                ('issued_at', models.DateTimeField(auto_now_add=True)),
                ('emailed_at', models.DateTimeField(blank=True, null=True)),
                ('donation', models.OneToOneField(on_delete=django.db.models.deletion.PROTECT, related_name='receipt', to='donations.donation')),
            ],
        ),
    ]
