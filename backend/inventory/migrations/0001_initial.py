# Generated manually

import django.db.models.deletion
from decimal import Decimal
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ('catalog', '0001_initial'),
        ('pos', '0001_initial'),
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name='Inventory',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('qty_g', models.BigIntegerField(default=0)),
                ('qty_units', models.IntegerField(default=0)),
                ('reorder_level_g', models.BigIntegerField(default=0)),
                ('reorder_level_units', models.IntegerField(default=0)),
                ('avg_cost_per_g', models.DecimalField(decimal_places=6, default=Decimal('0'), max_digits=16)),
                ('avg_cost_per_unit', models.DecimalField(decimal_places=6, default=Decimal('0'), max_digits=16)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('variant', models.OneToOneField(on_delete=django.db.models.deletion.CASCADE, related_name='inventory', to='catalog.productvariant')),
            ],
            options={
                'db_table': 'inventory',
                'verbose_name_plural': 'inventory',
            },
        ),
        migrations.CreateModel(
            name='InventoryMovement',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('type', models.CharField(choices=[('restock', 'Restock'), ('manual_out', 'Manual Out'), ('return', 'Return'), ('adjustment', 'Adjustment'), ('sale', 'Sale')], db_index=True, max_length=20)),
                ('qty_g', models.BigIntegerField(default=0)),
                ('qty_units', models.IntegerField(default=0)),
                ('cost_total', models.DecimalField(blank=True, decimal_places=2, max_digits=14, null=True)),
                ('supplier_name', models.CharField(blank=True, db_index=True, max_length=200, null=True)),
                ('note', models.TextField(blank=True)),
                ('created_at', models.DateTimeField(auto_now_add=True, db_index=True)),
                ('created_by', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='inventory_movements', to=settings.AUTH_USER_MODEL)),
                ('order', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.PROTECT, related_name='movements', to='pos.order')),
                ('variant', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='movements', to='catalog.productvariant')),
            ],
            options={
                'db_table': 'inventory_movements',
                'ordering': ['-created_at', '-id'],
                'indexes': [
                    models.Index(fields=['variant', '-created_at'], name='idx_movement_variant_created'),
                    models.Index(fields=['order'], name='idx_movement_order'),
                ],
            },
        ),
    ]
