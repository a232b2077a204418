import uuid

import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models


def regulated_fields():
    return [
        ('created_at', models.DateTimeField(auto_now_add=True, db_index=True, verbose_name='created at')),
        ('updated_at', models.DateTimeField(auto_now=True, verbose_name='updated at')),
        ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
        ('is_deleted', models.BooleanField(db_index=True, default=False, verbose_name='deleted')),
        ('deleted_at', models.DateTimeField(blank=True, null=True, verbose_name='deleted at')),
        ('created_by', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='+', to=settings.AUTH_USER_MODEL, verbose_name='created by')),
        ('updated_by', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='+', to=settings.AUTH_USER_MODEL, verbose_name='updated by')),
        ('deleted_by', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='+', to=settings.AUTH_USER_MODEL, verbose_name='deleted by')),
    ]


VERIFICATION_CHOICES = [('PENDING', 'Pending'), ('VERIFIED', 'Verified'), ('SUSPENDED', 'Suspended')]


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name='Manufacturer',
            fields=regulated_fields() + [
                ('company_name', models.CharField(max_length=255, verbose_name='company name')),
                ('license_number', models.CharField(blank=True, max_length=100, verbose_name='license number')),
                ('address', models.TextField(blank=True, verbose_name='address')),
                ('contact_email', models.EmailField(blank=True, max_length=254, verbose_name='contact email')),
                ('verification_status', models.CharField(choices=VERIFICATION_CHOICES, db_index=True, default='PENDING', max_length=12, verbose_name='verification status')),
                ('metadata', models.JSONField(blank=True, default=dict, verbose_name='metadata')),
            ],
            options={
                'verbose_name': 'manufacturer',
                'verbose_name_plural': 'manufacturers',
                'ordering': ['company_name'],
                'indexes': [models.Index(fields=['verification_status', 'is_deleted'], name='mfr_status_idx')],
            },
        ),
        migrations.CreateModel(
            name='Retailer',
            fields=regulated_fields() + [
                ('store_name', models.CharField(max_length=255, verbose_name='store name')),
                ('license_number', models.CharField(blank=True, max_length=100, verbose_name='license number')),
                ('address', models.TextField(blank=True, verbose_name='address')),
                ('latitude', models.DecimalField(blank=True, decimal_places=6, max_digits=9, null=True, verbose_name='latitude')),
                ('longitude', models.DecimalField(blank=True, decimal_places=6, max_digits=9, null=True, verbose_name='longitude')),
                ('phone', models.CharField(blank=True, max_length=20, verbose_name='phone')),
                ('email', models.EmailField(blank=True, max_length=254, verbose_name='email')),
                ('business_hours', models.JSONField(blank=True, default=dict, help_text='{"monday": {"open": "09:00", "close": "17:00"}, ...}', verbose_name='business hours')),
                ('verification_status', models.CharField(choices=VERIFICATION_CHOICES, db_index=True, default='PENDING', max_length=12, verbose_name='verification status')),
                ('metadata', models.JSONField(blank=True, default=dict, verbose_name='metadata')),
            ],
            options={
                'verbose_name': 'retailer',
                'verbose_name_plural': 'retailers',
                'ordering': ['store_name'],
                'indexes': [models.Index(fields=['verification_status', 'is_deleted'], name='retailer_status_idx')],
            },
        ),
        migrations.CreateModel(
            name='Consumer',
            fields=regulated_fields() + [
                ('display_name', models.CharField(blank=True, max_length=150, verbose_name='display name')),
                ('external_ref', models.CharField(blank=True, db_index=True, help_text='Identifier of the account in the storefront platform', max_length=64, verbose_name='external reference')),
                ('is_anonymized', models.BooleanField(default=False, verbose_name='anonymized')),
            ],
            options={
                'verbose_name': 'consumer',
                'verbose_name_plural': 'consumers',
                'ordering': ['-created_at'],
            },
        ),
    ]
