import uuid

import django.db.models.deletion
import django.db.models.functions.text
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
    ]

    operations = [
        migrations.CreateModel(
            name='Handphone',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('brand', models.CharField(max_length=50)),
                ('tipe', models.CharField(max_length=100)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
            ],
            options={
                'verbose_name': 'Handphone',
                'verbose_name_plural': 'Handphone',
                'ordering': ['brand', 'tipe'],
            },
        ),
        migrations.CreateModel(
            name='KendalaHandphone',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('topik_masalah', models.CharField(max_length=150)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('handphone', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='kendala', to='katalog.handphone')),
            ],
            options={
                'verbose_name': 'Kendala Handphone',
                'verbose_name_plural': 'Kendala Handphone',
                'ordering': ['topik_masalah'],
            },
        ),
        migrations.CreateModel(
            name='PergantianBarang',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('nama_barang', models.CharField(max_length=255)),
                ('harga', models.DecimalField(decimal_places=0, default=0, max_digits=12)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('kendala', models.OneToOneField(on_delete=django.db.models.deletion.CASCADE, related_name='pergantian_barang', to='katalog.kendalahandphone')),
            ],
            options={
                'verbose_name': 'Pergantian Barang',
                'verbose_name_plural': 'Pergantian Barang',
                'ordering': ['harga'],
            },
        ),
        migrations.AddConstraint(
            model_name='handphone',
            constraint=models.UniqueConstraint(django.db.models.functions.text.Lower('brand'), django.db.models.functions.text.Lower('tipe'), name='uniq_handphone_brand_tipe'),
        ),
        migrations.AddConstraint(
            model_name='kendalahandphone',
            constraint=models.UniqueConstraint(models.F('handphone'), django.db.models.functions.text.Lower('topik_masalah'), name='uniq_kendala_per_handphone'),
        ),
    ]
