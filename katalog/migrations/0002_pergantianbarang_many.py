import django.db.models.deletion
from django.db import migrations, models


class Migration(migrations.Migration):

    dependencies = [
        ('katalog', '0001_initial'),
    ]

    operations = [
        migrations.AlterModelOptions(
            name='pergantianbarang',
            options={'ordering': ['harga', '-created_at'], 'verbose_name': 'Pergantian Barang', 'verbose_name_plural': 'Pergantian Barang'},
        ),
        migrations.AlterField(
            model_name='pergantianbarang',
            name='kendala',
            field=models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.CASCADE, related_name='pergantian_barang', to='katalog.kendalahandphone'),
        ),
    ]
