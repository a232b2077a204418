import uuid

import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models


def base_fields():
    return [
        ('created_at', models.DateTimeField(auto_now_add=True, db_index=True, verbose_name='created at')),
        ('updated_at', models.DateTimeField(auto_now=True, verbose_name='updated at')),
        ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
        ('created_by', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='+', to=settings.AUTH_USER_MODEL, verbose_name='created by')),
        ('updated_by', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='+', to=settings.AUTH_USER_MODEL, verbose_name='updated by')),
    ]


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ('parties', '0001_initial'),
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name='ProductCategory',
            fields=base_fields() + [
                ('name', models.CharField(max_length=100, verbose_name='name')),
                ('slug', models.SlugField(max_length=100, unique=True, verbose_name='slug')),
                ('attributes_schema', models.JSONField(blank=True, default=dict, verbose_name='attributes schema')),
                ('parent', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='children', to='catalog.productcategory', verbose_name='parent')),
            ],
            options={
                'verbose_name': 'product category',
                'verbose_name_plural': 'product categories',
                'ordering': ['name'],
            },
        ),
        migrations.CreateModel(
            name='Product',
            fields=base_fields() + [
                ('is_deleted', models.BooleanField(db_index=True, default=False, verbose_name='deleted')),
                ('deleted_at', models.DateTimeField(blank=True, null=True, verbose_name='deleted at')),
                ('product_name', models.CharField(max_length=255, verbose_name='product name')),
                ('sku', models.CharField(max_length=100, verbose_name='SKU')),
                ('description', models.TextField(blank=True, verbose_name='description')),
                ('nicotine_strength', models.DecimalField(blank=True, decimal_places=2, max_digits=5, null=True, verbose_name='nicotine strength (mg)')),
                ('volume_ml', models.DecimalField(blank=True, decimal_places=2, max_digits=10, null=True, verbose_name='volume (ml)')),
                ('flavor', models.CharField(blank=True, max_length=100, verbose_name='flavor')),
                ('ingredients', models.JSONField(blank=True, default=list, verbose_name='ingredients')),
                ('warnings', models.JSONField(blank=True, default=list, verbose_name='warnings')),
                ('images', models.JSONField(blank=True, default=list, help_text='[{"url": ..., "alt_text": ..., "is_primary": bool}]', verbose_name='images')),
                ('attributes', models.JSONField(blank=True, default=dict, verbose_name='attributes')),
                ('compliance_info', models.JSONField(blank=True, default=dict, verbose_name='compliance info')),
                ('status', models.CharField(choices=[('DRAFT', 'Draft'), ('ACTIVE', 'Active'), ('DISCONTINUED', 'Discontinued')], db_index=True, default='DRAFT', max_length=14, verbose_name='status')),
                ('deleted_by', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='+', to=settings.AUTH_USER_MODEL, verbose_name='deleted by')),
                ('manufacturer', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='products', to='parties.manufacturer', verbose_name='manufacturer')),
                ('category', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='products', to='catalog.productcategory', verbose_name='category')),
            ],
            options={
                'verbose_name': 'product',
                'verbose_name_plural': 'products',
                'ordering': ['product_name'],
                'indexes': [
                    models.Index(fields=['status', 'is_deleted'], name='product_status_idx'),
                    models.Index(fields=['manufacturer', 'status'], name='product_mfr_status_idx'),
                ],
                'constraints': [
                    models.UniqueConstraint(fields=('manufacturer', 'sku'), name='unique_sku_per_manufacturer'),
                    models.CheckConstraint(condition=models.Q(('nicotine_strength__isnull', True), ('nicotine_strength__gte', 0), _connector='OR'), name='product_nicotine_non_negative'),
                ],
            },
        ),
    ]
