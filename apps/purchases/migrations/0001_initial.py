# Generated manually for the token purchase ledger

import uuid
from decimal import Decimal
from django.conf import settings
from django.core.validators import MinValueValidator
from django.db import migrations, models
import django.db.models.deletion


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name='TokenPurchase',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('total_tokens', models.DecimalField(decimal_places=4, max_digits=12, validators=[MinValueValidator(Decimal('0.0001'))])),
                ('total_payment', models.DecimalField(decimal_places=2, max_digits=12, validators=[MinValueValidator(Decimal('0.01'))])),
                ('meter_reading', models.DecimalField(decimal_places=2, max_digits=12, validators=[MinValueValidator(Decimal('0.01'))])),
                ('purchase_date', models.DateTimeField()),
                ('is_emergency', models.BooleanField(default=False)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('created_by', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='token_purchases', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'db_table': 'token_purchases',
                'ordering': ['purchase_date', 'created_at', 'id'],
                'indexes': [
                    models.Index(fields=['purchase_date', 'created_at'], name='token_purch_purchas_5d1f0e_idx'),
                    models.Index(fields=['created_by', 'purchase_date'], name='token_purch_created_a3c4b7_idx'),
                ],
            },
        ),
        migrations.CreateModel(
            name='UserContribution',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('contribution_amount', models.DecimalField(decimal_places=2, max_digits=12, validators=[MinValueValidator(Decimal('0.00'))])),
                ('meter_reading', models.DecimalField(decimal_places=2, max_digits=12, validators=[MinValueValidator(Decimal('0.00'))])),
                ('tokens_consumed', models.DecimalField(decimal_places=4, max_digits=12, validators=[MinValueValidator(Decimal('0.00'))])),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('purchase', models.OneToOneField(on_delete=django.db.models.deletion.PROTECT, related_name='contribution', to='purchases.tokenpurchase')),
                ('user', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='contributions', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'db_table': 'user_contributions',
                'ordering': ['purchase__purchase_date', 'purchase__created_at', 'purchase__id'],
                'indexes': [
                    models.Index(fields=['user', 'created_at'], name='user_contri_user_id_8e2a61_idx'),
                ],
            },
        ),
        migrations.CreateModel(
            name='MeterReading',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('reading', models.DecimalField(decimal_places=2, max_digits=12, validators=[MinValueValidator(Decimal('0.00'))])),
                ('reading_date', models.DateTimeField()),
                ('notes', models.TextField(blank=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('user', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='meter_readings', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'db_table': 'meter_readings',
                'ordering': ['-reading_date', '-created_at'],
                'indexes': [
                    models.Index(fields=['reading_date'], name='meter_readi_reading_2f7c90_idx'),
                ],
            },
        ),
    ]
