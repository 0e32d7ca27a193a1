import uuid

import django.db.models.deletion
import django.db.models.functions.text
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ('katalog', '0001_initial'),
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name='Waktu',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('nama_shift', models.CharField(max_length=100)),
                ('jam_mulai', models.TimeField()),
                ('jam_selesai', models.TimeField()),
                ('is_available', models.BooleanField(default=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
            ],
            options={
                'verbose_name': 'Waktu Shift',
                'verbose_name_plural': 'Waktu Shift',
                'ordering': ['jam_mulai'],
            },
        ),
        migrations.CreateModel(
            name='Service',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('tanggal_pesan', models.DateField(db_index=True)),
                ('status', models.CharField(choices=[('PENDING', 'Menunggu'), ('IN_PROGRESS', 'Sedang Dikerjakan'), ('MENUNGGU_PEMBAYARAN', 'Menunggu Pembayaran'), ('COMPLETED', 'Selesai'), ('CANCELLED', 'Dibatalkan')], default='PENDING', max_length=24)),
                ('tempat', models.CharField(max_length=255)),
                ('alamat', models.TextField(blank=True)),
                ('google_maps_link', models.URLField(blank=True, max_length=500)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('handphone', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='services', to='katalog.handphone')),
                ('kendala', models.ManyToManyField(blank=True, related_name='services', to='katalog.kendalahandphone')),
                ('user', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='services', to=settings.AUTH_USER_MODEL)),
                ('waktu', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='services', to='booking.waktu')),
            ],
            options={
                'ordering': ['-created_at'],
            },
        ),
        migrations.AddConstraint(
            model_name='waktu',
            constraint=models.UniqueConstraint(django.db.models.functions.text.Lower('nama_shift'), name='uniq_nama_shift'),
        ),
        migrations.AddConstraint(
            model_name='service',
            constraint=models.UniqueConstraint(condition=models.Q(('status', 'CANCELLED'), _negated=True), fields=('waktu', 'tanggal_pesan'), name='uniq_service_aktif_per_shift'),
        ),
    ]
