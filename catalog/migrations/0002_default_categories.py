from django.db import migrations

DEFAULT_CATEGORIES = [
    ('E-Cigarettes/Vapes', 'vapes', ['battery_capacity', 'coil_resistance']),
    ('Nicotine Pouches', 'pouches', ['pouch_count', 'pouch_weight']),
    ('Lozenges', 'lozenges', ['lozenge_count']),
    ('Gum', 'gum', ['pieces_per_pack']),
    ('Patches', 'patches', ['patch_size', 'duration_hours']),
]


def seed_categories(apps, schema_editor):
    ProductCategory = apps.get_model('catalog', 'ProductCategory')
    db_alias = schema_editor.connection.alias
    for name, slug, required in DEFAULT_CATEGORIES:
        ProductCategory.objects.using(db_alias).get_or_create(
            slug=slug,
            defaults={'name': name, 'attributes_schema': {'required': required}},
        )


def remove_categories(apps, schema_editor):
    ProductCategory = apps.get_model('catalog', 'ProductCategory')
    slugs = [slug for _, slug, _ in DEFAULT_CATEGORIES]
    ProductCategory.objects.using(schema_editor.connection.alias).filter(
        slug__in=slugs, products__isnull=True,
    ).delete()


class Migration(migrations.Migration):

    dependencies = [
        ('catalog', '0001_initial'),
    ]

    operations = [
        migrations.RunPython(seed_categories, remove_categories),
    ]
